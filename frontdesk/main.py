"""Main FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from frontdesk.api.routes import router
from frontdesk.config import settings
from frontdesk.database import Base, SessionLocal, engine
from frontdesk.logging_config import configure_logging
# Import models to register them with SQLAlchemy Base
from frontdesk.models.audit import AuditEvent  # noqa: F401
from frontdesk.models.domain import User
from frontdesk.models.enums import UserRole
from frontdesk.services.errors import WorkflowError

logger = logging.getLogger(__name__)


def seed_admin() -> None:
    """Create the bootstrap admin when configured and no users exist yet."""
    if not settings.SEED_ADMIN_NAME:
        return
    db = SessionLocal()
    try:
        if db.query(User).count() == 0:
            db.add(User(name=settings.SEED_ADMIN_NAME, email=settings.SEED_ADMIN_EMAIL, role=UserRole.ADMIN))
            db.commit()
            logger.info("Seeded admin user %r", settings.SEED_ADMIN_NAME)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    # Create database tables
    Base.metadata.create_all(bind=engine)
    seed_admin()
    yield


# Create FastAPI app
app = FastAPI(
    title="Front Desk - Visitor Records",
    description="Visitor check-in records with an admin-reviewed edit and deletion request workflow.",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_body(kind: str, message: str, **extra) -> dict:
    return {"error": {"kind": kind, "message": message, **extra}}


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    # Refusals are expected outcomes, not failures
    logger.info(
        "%s %s refused: %s",
        request.method,
        request.url.path,
        exc.message,
        extra={"error_kind": exc.kind, "status": exc.status_code}
    )
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.kind, exc.message))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content=_error_body("ValidationError", "Validation failed", details=jsonable_encoder(exc.errors()))
    )


@app.exception_handler(OperationalError)
async def database_error_handler(request: Request, exc: OperationalError):
    logger.error(
        "Database unavailable while handling %s %s",
        request.method,
        request.url.path,
        exc_info=exc
    )
    return JSONResponse(
        status_code=503,
        content=_error_body("DatabaseUnavailable", "The database is currently unavailable")
    )


# Include API routes
app.include_router(router, prefix="/api", tags=["Front Desk"])


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "Front Desk"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
