import pytest
from sqlalchemy import update

from app.errors import AuthForbidden, TransitionInvalid, ValidationFailed
from app.models.monograph import (
    CollaboratorPermission,
    CollaboratorRole,
    Document,
    DocumentStatus,
    DocumentStatusChange,
    TransitionAction,
)
from app.models.person import AccountRole
from app.schemas.collaborator import CollaboratorCreate
from app.schemas.monograph import VersionCreate
from app.services.collaborators import collaborators
from app.services.lifecycle import ALLOWED_EDGES, Lifecycle, lifecycle
from app.services.versions import versions


def _save(db_session, document, person, content="Chapter one"):
    return versions.create(
        db_session,
        document.id,
        person.id,
        VersionCreate(content=content, commit_message="draft"),
    )


def _add(db_session, document, manager, person, role, permission):
    return collaborators.add(
        db_session,
        document.id,
        manager.id,
        CollaboratorCreate(person_id=person.id, role=role, permission=permission),
    )


def _submitted(db_session, document, student):
    _save(db_session, document, student)
    return lifecycle.submit(db_session, document.id, student.id)


class TestStateGraph:
    def test_allowed_edges(self):
        assert ALLOWED_EDGES == {
            (DocumentStatus.draft, DocumentStatus.submitted),
            (DocumentStatus.revision, DocumentStatus.submitted),
            (DocumentStatus.submitted, DocumentStatus.revision),
            (DocumentStatus.submitted, DocumentStatus.approved),
            (DocumentStatus.approved, DocumentStatus.finalized),
        }

    def test_finalized_has_no_outgoing_edges(self):
        assert not [edge for edge in ALLOWED_EDGES if edge[0] == DocumentStatus.finalized]


class TestWorkflowScenario:
    def test_full_review_cycle(self, db_session, document, student, advisor):
        assert document.status == DocumentStatus.draft
        assert document.versions == []

        version = _save(db_session, document, student, content="v1")
        assert version.version_number == 1

        doc = lifecycle.submit(db_session, document.id, student.id)
        assert doc.status == DocumentStatus.submitted
        assert doc.submitted_at is not None

        with pytest.raises(ValidationFailed):
            lifecycle.request_revision(db_session, document.id, advisor.id, "")
        db_session.refresh(doc)
        assert doc.status == DocumentStatus.submitted

        doc = lifecycle.request_revision(
            db_session, document.id, advisor.id, "needs more analysis"
        )
        assert doc.status == DocumentStatus.revision
        assert doc.rejection_reason == "needs more analysis"
        assert doc.rejected_at is not None

        doc = lifecycle.submit(db_session, document.id, student.id)
        assert doc.status == DocumentStatus.submitted

        doc = lifecycle.approve(db_session, document.id, advisor.id)
        assert doc.status == DocumentStatus.approved
        assert doc.approved_at is not None

        doc = lifecycle.finalize(db_session, document.id, advisor.id)
        assert doc.status == DocumentStatus.finalized

        with pytest.raises(TransitionInvalid) as exc:
            lifecycle.submit(db_session, document.id, student.id)
        assert exc.value.details["current_status"] == "finalized"

    def test_history_records_each_transition(
        self, db_session, document, student, advisor
    ):
        _submitted(db_session, document, student)
        lifecycle.request_revision(db_session, document.id, advisor.id, "shorter")
        history = Lifecycle.list(db_session, document.id, student.id, 50, 0)
        assert [(h.from_status, h.to_status) for h in history] == [
            (DocumentStatus.draft, DocumentStatus.submitted),
            (DocumentStatus.submitted, DocumentStatus.revision),
        ]
        assert history[1].reason == "shorter"
        assert history[1].actor_id == advisor.id
        assert all(
            (h.from_status, h.to_status) in ALLOWED_EDGES for h in history
        )

    def test_generic_transition_accepts_action_string(
        self, db_session, document, student
    ):
        _save(db_session, document, student)
        doc = lifecycle.transition(db_session, document.id, student.id, "submit")
        assert doc.status == DocumentStatus.submitted

    def test_unknown_action_rejected(self, db_session, document, student):
        with pytest.raises(ValidationFailed):
            lifecycle.transition(db_session, document.id, student.id, "publish")


class TestSubmit:
    def test_requires_a_version(self, db_session, document, student):
        with pytest.raises(ValidationFailed):
            lifecycle.submit(db_session, document.id, student.id)
        db_session.refresh(document)
        assert document.status == DocumentStatus.draft
        assert document.submitted_at is None

    def test_advisor_cannot_submit(self, db_session, document, student, advisor):
        _save(db_session, document, student)
        with pytest.raises(AuthForbidden) as exc:
            lifecycle.submit(db_session, document.id, advisor.id)
        assert exc.value.details["action"] == "submit"

    def test_read_only_student_cannot_submit(
        self, db_session, document, student, second_student
    ):
        _save(db_session, document, student)
        _add(
            db_session,
            document,
            student,
            second_student,
            CollaboratorRole.co_student,
            CollaboratorPermission.read_comment,
        )
        with pytest.raises(AuthForbidden):
            lifecycle.submit(db_session, document.id, second_student.id)

    def test_secondary_student_with_write_can_submit(
        self, db_session, document, student, second_student
    ):
        _save(db_session, document, student)
        _add(
            db_session,
            document,
            student,
            second_student,
            CollaboratorRole.secondary_student,
            CollaboratorPermission.read_write,
        )
        doc = lifecycle.submit(db_session, document.id, second_student.id)
        assert doc.status == DocumentStatus.submitted

    def test_non_collaborator_forbidden(self, db_session, document, person_factory):
        outsider = person_factory()
        with pytest.raises(AuthForbidden):
            lifecycle.submit(db_session, document.id, outsider.id)

    def test_resubmission_clears_approval_stamp(
        self, db_session, document, student, advisor
    ):
        _submitted(db_session, document, student)
        lifecycle.request_revision(db_session, document.id, advisor.id, "redo")
        doc = lifecycle.submit(db_session, document.id, student.id)
        assert doc.approved_at is None
        assert doc.rejection_reason == "redo"


class TestReview:
    def test_student_cannot_approve(self, db_session, document, student):
        _submitted(db_session, document, student)
        with pytest.raises(AuthForbidden):
            lifecycle.approve(db_session, document.id, student.id)

    def test_commenting_co_advisor_can_approve(
        self, db_session, document, student, advisor, second_advisor
    ):
        _add(
            db_session,
            document,
            advisor,
            second_advisor,
            CollaboratorRole.co_advisor,
            CollaboratorPermission.read_comment,
        )
        _submitted(db_session, document, student)
        doc = lifecycle.approve(db_session, document.id, second_advisor.id)
        assert doc.status == DocumentStatus.approved

    def test_read_only_advisor_cannot_review(
        self, db_session, document, student, advisor, second_advisor
    ):
        _add(
            db_session,
            document,
            advisor,
            second_advisor,
            CollaboratorRole.external_advisor,
            CollaboratorPermission.read_only,
        )
        _submitted(db_session, document, student)
        with pytest.raises(AuthForbidden):
            lifecycle.request_revision(
                db_session, document.id, second_advisor.id, "no"
            )

    def test_examiner_cannot_approve(
        self, db_session, document, student, advisor, person_factory
    ):
        examiner = person_factory(account_role=AccountRole.advisor)
        _add(
            db_session,
            document,
            advisor,
            examiner,
            CollaboratorRole.examiner,
            CollaboratorPermission.full_access,
        )
        _submitted(db_session, document, student)
        with pytest.raises(AuthForbidden):
            lifecycle.approve(db_session, document.id, examiner.id)

    def test_draft_cannot_jump_to_approved(self, db_session, document, advisor):
        with pytest.raises(TransitionInvalid) as exc:
            lifecycle.approve(db_session, document.id, advisor.id)
        assert exc.value.details["current_status"] == "draft"

    def test_illegal_edge_checked_before_permission(
        self, db_session, document, student
    ):
        with pytest.raises(TransitionInvalid):
            lifecycle.finalize(db_session, document.id, student.id)


class TestFinalize:
    def test_requires_full_access_advisor(
        self, db_session, document, student, advisor, second_advisor
    ):
        _add(
            db_session,
            document,
            advisor,
            second_advisor,
            CollaboratorRole.co_advisor,
            CollaboratorPermission.read_write,
        )
        _submitted(db_session, document, student)
        lifecycle.approve(db_session, document.id, second_advisor.id)
        with pytest.raises(AuthForbidden):
            lifecycle.finalize(db_session, document.id, second_advisor.id)
        doc = lifecycle.finalize(db_session, document.id, advisor.id)
        assert doc.status == DocumentStatus.finalized

    def test_admin_has_no_override(self, db_session, document, student, admin):
        _submitted(db_session, document, student)
        with pytest.raises(AuthForbidden):
            lifecycle.approve(db_session, document.id, admin.id)


class TestConcurrency:
    def test_stale_status_loses_compare_and_swap(
        self, db_session, document, student, advisor
    ):
        _submitted(db_session, document, student)
        doc = db_session.get(Document, document.id)
        assert doc.status == DocumentStatus.submitted

        # Another request approves the document behind this session's back.
        db_session.execute(
            update(Document)
            .where(Document.id == document.id)
            .values(status=DocumentStatus.approved)
            .execution_options(synchronize_session=False)
        )
        assert doc.status == DocumentStatus.submitted

        with pytest.raises(TransitionInvalid) as exc:
            lifecycle.request_revision(db_session, document.id, advisor.id, "late")
        assert exc.value.details["expected_status"] == "submitted"
        assert exc.value.details["current_status"] == "approved"

        changes = (
            db_session.query(DocumentStatusChange)
            .filter(DocumentStatusChange.document_id == document.id)
            .all()
        )
        assert len(changes) == 1

    def test_second_identical_action_rejected(
        self, db_session, document, student, advisor
    ):
        _submitted(db_session, document, student)
        lifecycle.approve(db_session, document.id, advisor.id)
        with pytest.raises(TransitionInvalid):
            lifecycle.approve(db_session, document.id, advisor.id)


class TestEvents:
    def test_transition_publishes_status_change(
        self, db_session, document, student, published_events
    ):
        _save(db_session, document, student)
        published_events.reset_mock()
        lifecycle.transition(
            db_session, document.id, student.id, TransitionAction.submit
        )
        kwargs = published_events.call_args.kwargs
        assert kwargs["event_type"] == "document.status_changed"
        assert kwargs["payload"]["from_status"] == "draft"
        assert kwargs["payload"]["to_status"] == "submitted"
