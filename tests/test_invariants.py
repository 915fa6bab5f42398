"""
Tests that prove the approval workflow invariants.

Each test verifies a specific rule about who may change a visitor record
and how a change request moves through its states.
"""
import pytest

from frontdesk.models.domain import DeletionRequest, EditHistoryEntry, EditRequest, User
from frontdesk.models.enums import RequestStatus, RequestType, UserRole
from frontdesk.services.actor import Actor
from frontdesk.services.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from frontdesk.services.visitors import VisitorService
from frontdesk.services.workflow import VISITOR_DELETED_NOTE, ApprovalWorkflow
from tests.conftest import VALID_REASON


class TestSinglePendingInvariants:
    """At most one pending request of each type per visitor."""

    def test_second_pending_deletion_is_refused(self, db_session, sample_visitor, staff, admin):
        """
        INVARIANT: A visitor has at most one pending deletion request.
        """
        wf = ApprovalWorkflow(db_session)
        wf.create_deletion_request(sample_visitor.id, staff, VALID_REASON)

        with pytest.raises(ConflictError):
            wf.create_deletion_request(sample_visitor.id, admin, "another reason from the admin")

        pending = db_session.query(DeletionRequest).filter(
            DeletionRequest.visitor_id == sample_visitor.id,
            DeletionRequest.status == RequestStatus.PENDING
        ).count()
        assert pending == 1

    def test_second_pending_edit_is_refused(self, db_session, sample_visitor, staff):
        """
        INVARIANT: A visitor has at most one pending edit request.
        """
        wf = ApprovalWorkflow(db_session)
        wf.create_edit_request(sample_visitor.id, staff, VALID_REASON, {"phone_number": "999"})

        with pytest.raises(ConflictError):
            wf.create_edit_request(sample_visitor.id, staff, VALID_REASON, {"institution": "Dinas Kesehatan"})

    def test_new_request_allowed_after_resolution(self, db_session, sample_visitor, staff, admin):
        """
        INVARIANT: Only pending rows count; a rejected request frees the slot.
        """
        wf = ApprovalWorkflow(db_session)
        first = wf.create_deletion_request(sample_visitor.id, staff, VALID_REASON)
        wf.reject(RequestType.DELETION, first.id, admin, "not a duplicate")

        second = wf.create_deletion_request(sample_visitor.id, staff, "visitor asked to be removed")

        assert second.id != first.id
        assert second.status == RequestStatus.PENDING

    def test_unique_index_backs_up_the_pending_check(self, db_session, sample_visitor, staff, monkeypatch):
        """
        INVARIANT: If the pre-check is bypassed, the partial unique index still
        refuses a second pending row and the caller sees ConflictError.
        """
        wf = ApprovalWorkflow(db_session)
        wf.create_deletion_request(sample_visitor.id, staff, VALID_REASON)

        monkeypatch.setattr(wf.status, "pending_deletion", lambda visitor_id: None)

        with pytest.raises(ConflictError):
            wf.create_deletion_request(sample_visitor.id, staff, VALID_REASON)

        assert db_session.query(DeletionRequest).count() == 1


class TestAuthorizationInvariants:
    """Only admins resolve requests; reasons have a minimum length."""

    def test_non_admin_cannot_approve(self, db_session, sample_visitor, staff, owner):
        """
        INVARIANT: approve by a non-admin fails with PermissionError.
        """
        wf = ApprovalWorkflow(db_session)
        request = wf.create_deletion_request(sample_visitor.id, staff, VALID_REASON)

        with pytest.raises(PermissionDeniedError):
            wf.approve_deletion(request.id, owner)

        db_session.refresh(request)
        db_session.refresh(sample_visitor)
        assert request.status == RequestStatus.PENDING
        assert sample_visitor.deleted_at is None

    def test_non_admin_cannot_reject(self, db_session, sample_visitor, staff):
        """
        INVARIANT: reject by a non-admin fails with PermissionError.
        """
        wf = ApprovalWorkflow(db_session)
        request = wf.create_edit_request(sample_visitor.id, staff, VALID_REASON, {"phone_number": "999"})

        with pytest.raises(PermissionDeniedError):
            wf.reject(RequestType.EDIT, request.id, staff, "not needed")

        db_session.refresh(request)
        assert request.status == RequestStatus.PENDING

    def test_permission_error_kind_is_stable(self):
        assert PermissionDeniedError("nope").kind == "PermissionError"
        assert PermissionDeniedError.status_code == 403

    def test_reason_minimum_length(self, db_session, sample_visitor, staff):
        """
        INVARIANT: A 9-character reason is refused, a 10-character one accepted.
        """
        wf = ApprovalWorkflow(db_session)

        with pytest.raises(ValidationError):
            wf.create_deletion_request(sample_visitor.id, staff, "123456789")

        request = wf.create_deletion_request(sample_visitor.id, staff, "1234567890")
        assert request.reason == "1234567890"

    def test_reason_is_trimmed_before_length_check(self, db_session, sample_visitor, staff):
        wf = ApprovalWorkflow(db_session)

        with pytest.raises(ValidationError):
            wf.create_deletion_request(sample_visitor.id, staff, "   short     ")

    def test_missing_reason_is_refused(self, db_session, sample_visitor, staff):
        wf = ApprovalWorkflow(db_session)

        with pytest.raises(ValidationError):
            wf.create_edit_request(sample_visitor.id, staff, None, {"phone_number": "999"})

    def test_short_rejection_reason_is_refused(self, db_session, sample_visitor, staff, admin):
        wf = ApprovalWorkflow(db_session)
        request = wf.create_deletion_request(sample_visitor.id, staff, VALID_REASON)

        with pytest.raises(ValidationError):
            wf.reject(RequestType.DELETION, request.id, admin, "no")

        db_session.refresh(request)
        assert request.status == RequestStatus.PENDING

    def test_manager_counts_as_admin(self, db_session, sample_visitor, staff):
        manager_user = User(name="Mira Manager", email="mira@frontdesk.test", role=UserRole.MANAGER)
        db_session.add(manager_user)
        db_session.commit()
        manager = Actor.from_user(manager_user)

        wf = ApprovalWorkflow(db_session)
        request = wf.create_deletion_request(sample_visitor.id, staff, VALID_REASON)
        visitor = wf.approve_deletion(request.id, manager)

        assert visitor.deleted_by_user_id == manager.id


class TestRequestValidation:
    """Refusals raised while filing a request."""

    def test_unknown_visitor(self, db_session, staff):
        wf = ApprovalWorkflow(db_session)

        with pytest.raises(NotFoundError):
            wf.create_deletion_request(9999, staff, VALID_REASON)

    def test_unknown_edit_field(self, db_session, sample_visitor, staff):
        wf = ApprovalWorkflow(db_session)

        with pytest.raises(ValidationError):
            wf.create_edit_request(sample_visitor.id, staff, VALID_REASON, {"input_by_user_id": 1})

    def test_empty_edit(self, db_session, sample_visitor, staff):
        wf = ApprovalWorkflow(db_session)

        with pytest.raises(ValidationError):
            wf.create_edit_request(sample_visitor.id, staff, VALID_REASON, {})

    def test_edit_that_changes_nothing(self, db_session, sample_visitor, staff):
        wf = ApprovalWorkflow(db_session)

        with pytest.raises(ValidationError):
            wf.create_edit_request(sample_visitor.id, staff, VALID_REASON, {"phone_number": "111"})

    def test_requests_against_deleted_visitor(self, db_session, sample_visitor, owner, staff):
        wf = ApprovalWorkflow(db_session)
        wf.delete_visitor(sample_visitor.id, owner)

        with pytest.raises(ConflictError):
            wf.create_deletion_request(sample_visitor.id, staff, VALID_REASON)
        with pytest.raises(ConflictError):
            wf.create_edit_request(sample_visitor.id, staff, VALID_REASON, {"phone_number": "999"})

    def test_edit_request_snapshots_original_values(self, db_session, sample_visitor, staff):
        wf = ApprovalWorkflow(db_session)
        request = wf.create_edit_request(
            sample_visitor.id,
            staff,
            VALID_REASON,
            {"phone_number": "999", "unit": {"kind": "custom", "value": "Library"}}
        )

        assert request.proposed_data == {"phone_number": "999", "unit": "Other: Library"}
        assert request.original_data == {"phone_number": "111", "unit": "Other: Archive room"}
        assert request.requested_by_name == staff.name
        assert request.requested_by_role == "Receptionist"


class TestScenarios:
    """End-to-end paths through the workflow."""

    def test_owner_deletes_directly(self, db_session, sample_visitor, owner):
        """
        Owner deletes their own record: no request row, deleted_at set.
        """
        wf = ApprovalWorkflow(db_session)
        outcome = wf.delete_visitor(sample_visitor.id, owner)

        assert outcome.deleted is True
        assert outcome.visitor.deleted_at is not None
        assert outcome.visitor.deleted_by_user_id == owner.id
        assert db_session.query(DeletionRequest).count() == 0

    def test_admin_deletes_any_record_directly(self, db_session, sample_visitor, admin):
        wf = ApprovalWorkflow(db_session)
        outcome = wf.delete_visitor(sample_visitor.id, admin)

        assert outcome.deleted is True
        assert outcome.visitor.deleted_by_user_id == admin.id

    def test_non_owner_without_reason_is_refused(self, db_session, sample_visitor, staff):
        wf = ApprovalWorkflow(db_session)

        with pytest.raises(PermissionDeniedError):
            wf.delete_visitor(sample_visitor.id, staff)

        db_session.refresh(sample_visitor)
        assert sample_visitor.deleted_at is None

    def test_non_owner_with_reason_files_request(self, db_session, sample_visitor, staff):
        wf = ApprovalWorkflow(db_session)
        outcome = wf.delete_visitor(sample_visitor.id, staff, VALID_REASON)

        assert outcome.deleted is False
        assert outcome.deletion_request.status == RequestStatus.PENDING
        assert outcome.deletion_request.requested_by_user_id == staff.id
        assert outcome.visitor.deleted_at is None

    def test_non_owner_request_then_admin_approves(self, db_session, sample_visitor, staff, admin):
        """
        Non-owner files a deletion request; the admin approves it.
        """
        wf = ApprovalWorkflow(db_session)
        request = wf.create_deletion_request(sample_visitor.id, staff, VALID_REASON)

        visitor = wf.approve_deletion(request.id, admin)
        db_session.refresh(request)

        assert visitor.deleted_at is not None
        assert visitor.deleted_by_user_id == admin.id
        assert request.status == RequestStatus.APPROVED
        assert request.resolved_by_user_id == admin.id
        assert request.resolved_at is not None

    def test_non_owner_request_then_admin_rejects(self, db_session, sample_visitor, staff, admin):
        """
        Non-owner files a deletion request; the admin rejects it with a reason.
        """
        wf = ApprovalWorkflow(db_session)
        request = wf.create_deletion_request(sample_visitor.id, staff, VALID_REASON)

        rejected = wf.reject(RequestType.DELETION, request.id, admin, "still needed for the monthly report")
        db_session.refresh(sample_visitor)

        assert rejected.status == RequestStatus.REJECTED
        assert rejected.rejection_reason == "still needed for the monthly report"
        assert rejected.resolved_by_user_id == admin.id
        assert sample_visitor.deleted_at is None

    def test_reject_without_reason(self, db_session, sample_visitor, staff, admin):
        wf = ApprovalWorkflow(db_session)
        request = wf.create_deletion_request(sample_visitor.id, staff, VALID_REASON)

        rejected = wf.reject(RequestType.DELETION, request.id, admin)

        assert rejected.status == RequestStatus.REJECTED
        assert rejected.rejection_reason is None

    def test_approve_dispatches_on_type(self, db_session, sample_visitor, staff, admin):
        wf = ApprovalWorkflow(db_session)
        request = wf.create_edit_request(sample_visitor.id, staff, VALID_REASON, {"notes": "Brought a laptop"})

        visitor = wf.approve(RequestType.EDIT, request.id, admin)

        assert visitor.notes == "Brought a laptop"


class TestHistoryInvariants:
    """Edit history records exactly what changed."""

    def test_history_diff_for_approved_edit(self, db_session, sample_visitor, staff, admin):
        """
        INVARIANT: Approving {phone: "999"} over "111" records changes
        {phone: "999"} and original {phone: "111"}, nothing else.
        """
        wf = ApprovalWorkflow(db_session)
        request = wf.create_edit_request(sample_visitor.id, staff, VALID_REASON, {"phone_number": "999"})

        visitor = wf.approve_edit(request.id, admin)

        assert visitor.phone_number == "999"
        entries = db_session.query(EditHistoryEntry).filter(EditHistoryEntry.visitor_id == visitor.id).all()
        assert len(entries) == 1
        assert entries[0].changes == {"phone_number": "999"}
        assert entries[0].original == {"phone_number": "111"}
        assert entries[0].edit_request_id == request.id
        # Attributed to whoever asked for the change
        assert entries[0].user_id == staff.id
        assert entries[0].user_name == staff.name

    def test_history_ignores_fields_that_already_match(self, db_session, sample_visitor, staff, owner, admin):
        """
        INVARIANT: The diff is computed at approval time; fields that already
        hold the proposed value are left out.
        """
        wf = ApprovalWorkflow(db_session)
        request = wf.create_edit_request(
            sample_visitor.id,
            staff,
            VALID_REASON,
            {"phone_number": "999", "institution": "Dinas Kesehatan"}
        )
        # Owner fixes the phone number themselves while the request waits
        VisitorService(db_session).edit_visitor(sample_visitor.id, owner, {"phone_number": "999"})

        wf.approve_edit(request.id, admin)

        entry = db_session.query(EditHistoryEntry).filter(
            EditHistoryEntry.edit_request_id == request.id
        ).one()
        assert entry.changes == {"institution": "Dinas Kesehatan"}
        assert entry.original == {"institution": "Dinas Pendidikan"}

    def test_no_history_when_nothing_differs_at_approval(self, db_session, sample_visitor, staff, owner, admin):
        wf = ApprovalWorkflow(db_session)
        request = wf.create_edit_request(sample_visitor.id, staff, VALID_REASON, {"phone_number": "999"})
        VisitorService(db_session).edit_visitor(sample_visitor.id, owner, {"phone_number": "999"})

        wf.approve_edit(request.id, admin)
        db_session.refresh(request)

        assert request.status == RequestStatus.APPROVED
        assert db_session.query(EditHistoryEntry).filter(
            EditHistoryEntry.edit_request_id == request.id
        ).count() == 0

    def test_choice_fields_diff_in_stored_form(self, db_session, sample_visitor, staff, admin):
        wf = ApprovalWorkflow(db_session)
        request = wf.create_edit_request(
            sample_visitor.id,
            staff,
            VALID_REASON,
            {"purpose": {"kind": "custom", "value": "Internship interview"}}
        )

        visitor = wf.approve_edit(request.id, admin)

        assert visitor.purpose.kind.value == "custom"
        assert visitor.purpose.value == "Internship interview"
        entry = db_session.query(EditHistoryEntry).filter(EditHistoryEntry.edit_request_id == request.id).one()
        assert entry.changes == {"purpose": "Other: Internship interview"}
        assert entry.original == {"purpose": "Meeting"}


class TestPendingDeletionInteractions:
    """How a pending deletion interacts with edits."""

    def test_pending_deletion_blocks_edit_requests(self, db_session, sample_visitor, staff):
        wf = ApprovalWorkflow(db_session)
        wf.create_deletion_request(sample_visitor.id, staff, VALID_REASON)

        with pytest.raises(ConflictError):
            wf.create_edit_request(sample_visitor.id, staff, VALID_REASON, {"phone_number": "999"})

    def test_pending_edit_does_not_block_deletion_request(self, db_session, sample_visitor, staff):
        wf = ApprovalWorkflow(db_session)
        wf.create_edit_request(sample_visitor.id, staff, VALID_REASON, {"phone_number": "999"})

        request = wf.create_deletion_request(sample_visitor.id, staff, VALID_REASON)

        assert request.status == RequestStatus.PENDING

    def test_approving_deletion_closes_pending_edit(self, db_session, sample_visitor, staff, admin):
        wf = ApprovalWorkflow(db_session)
        edit = wf.create_edit_request(sample_visitor.id, staff, VALID_REASON, {"phone_number": "999"})
        deletion = wf.create_deletion_request(sample_visitor.id, staff, VALID_REASON)

        wf.approve_deletion(deletion.id, admin)
        db_session.refresh(edit)

        assert edit.status == RequestStatus.REJECTED
        assert edit.rejection_reason == VISITOR_DELETED_NOTE
        assert edit.resolved_by_user_id == admin.id

    def test_direct_delete_closes_all_pending_requests(self, db_session, sample_visitor, staff, owner):
        wf = ApprovalWorkflow(db_session)
        edit = wf.create_edit_request(sample_visitor.id, staff, VALID_REASON, {"phone_number": "999"})
        deletion = wf.create_deletion_request(sample_visitor.id, staff, VALID_REASON)

        wf.delete_visitor(sample_visitor.id, owner)

        for request in (edit, deletion):
            db_session.refresh(request)
            assert request.status == RequestStatus.REJECTED
            assert request.rejection_reason == VISITOR_DELETED_NOTE

        assert db_session.query(EditRequest).filter(EditRequest.status == RequestStatus.PENDING).count() == 0

    def test_direct_delete_of_deleted_visitor(self, db_session, sample_visitor, owner):
        wf = ApprovalWorkflow(db_session)
        wf.delete_visitor(sample_visitor.id, owner)

        with pytest.raises(ConflictError):
            wf.delete_visitor(sample_visitor.id, owner)
