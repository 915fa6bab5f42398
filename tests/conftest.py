"""Pytest configuration and shared fixtures."""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from frontdesk.database import Base, get_db
from frontdesk.main import app
from frontdesk.models.choices import Choice
from frontdesk.models.domain import User, Visitor
from frontdesk.models.enums import UserRole
from frontdesk.services.actor import Actor

VALID_REASON = "duplicate entry, confirmed with visitor"


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    # One shared connection so the API thread sees the same in-memory database
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    engine.dispose()


def _add_user(db_session, name, email, role):
    user = User(name=name, email=email, role=role)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def admin_user(db_session):
    return _add_user(db_session, "Ayu Admin", "ayu@frontdesk.test", UserRole.ADMIN)


@pytest.fixture
def owner_user(db_session):
    """The receptionist who checks the sample visitor in."""
    return _add_user(db_session, "Rina Receptionist", "rina@frontdesk.test", UserRole.RECEPTIONIST)


@pytest.fixture
def staff_user(db_session):
    """A receptionist who does not own the sample visitor."""
    return _add_user(db_session, "Sam Staff", "sam@frontdesk.test", UserRole.RECEPTIONIST)


@pytest.fixture
def admin(admin_user):
    return Actor.from_user(admin_user)


@pytest.fixture
def owner(owner_user):
    return Actor.from_user(owner_user)


@pytest.fixture
def staff(staff_user):
    return Actor.from_user(staff_user)


@pytest.fixture
def sample_visitor(db_session, owner_user):
    """A checked-in visitor created by owner_user."""
    visitor = Visitor(
        full_name="Budi Santoso",
        phone_number="111",
        email="budi@example.com",
        institution="Dinas Pendidikan",
        purpose=Choice.predefined("Meeting"),
        person_to_meet=Choice.predefined("Head of Unit"),
        unit=Choice.custom("Archive room"),
        input_by_user_id=owner_user.id
    )
    db_session.add(visitor)
    db_session.commit()
    db_session.refresh(visitor)
    return visitor


@pytest.fixture
def client(db_session):
    """API client bound to the test database."""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def as_user(user):
    """Headers identifying the caller to the API."""
    return {"X-User-Id": str(user.id)}
