import pytest

from app.errors import AuthForbidden, NotFound, TransitionInvalid, ValidationFailed
from app.models.monograph import (
    Collaborator,
    CollaboratorPermission,
    CollaboratorRole,
    Document,
    DocumentStatus,
)
from app.models.person import PersonStatus
from app.schemas.collaborator import CollaboratorCreate
from app.schemas.monograph import DocumentCreate, DocumentUpdate, VersionCreate
from app.services import access
from app.services.collaborators import collaborators
from app.services.documents import Documents, documents
from app.services.lifecycle import lifecycle
from app.services.versions import versions


class TestCreateDocument:
    def test_creator_becomes_primary_student(self, db_session, student):
        document = documents.create(
            db_session, student.id, DocumentCreate(title="Coastal erosion")
        )
        assert document.status == DocumentStatus.draft
        assert document.created_by == student.id
        collaborator = access.find_collaborator(db_session, document.id, student.id)
        assert collaborator.role == CollaboratorRole.primary_student
        assert collaborator.permission == CollaboratorPermission.full_access

    def test_default_limits_from_settings(self, db_session, student):
        document = documents.create(db_session, student.id, DocumentCreate(title="T"))
        assert document.max_students == 5
        assert document.max_advisors == 3

    def test_with_advisor_and_initial_version(self, db_session, student, advisor):
        document = documents.create(
            db_session,
            student.id,
            DocumentCreate(
                title="Urban heat islands",
                advisor_id=advisor.id,
                initial_content="Abstract",
                initial_commit_message="Initial draft",
            ),
        )
        collaborator = access.find_collaborator(db_session, document.id, advisor.id)
        assert collaborator.role == CollaboratorRole.primary_advisor
        latest = versions.latest(db_session, document.id, student.id)
        assert latest.version_number == 1
        assert latest.commit_message == "Initial draft"

    def test_advisor_account_cannot_create(self, db_session, advisor):
        with pytest.raises(AuthForbidden):
            documents.create(db_session, advisor.id, DocumentCreate(title="T"))

    def test_pending_student_cannot_create(self, db_session, person_factory):
        pending = person_factory(status=PersonStatus.pending)
        with pytest.raises(ValidationFailed):
            documents.create(db_session, pending.id, DocumentCreate(title="T"))

    def test_advisor_id_must_be_advisor(self, db_session, student, second_student):
        with pytest.raises(ValidationFailed):
            documents.create(
                db_session,
                student.id,
                DocumentCreate(title="T", advisor_id=second_student.id),
            )
        assert db_session.query(Document).count() == 0

    def test_blank_initial_content_rejected(self, db_session, student):
        with pytest.raises(ValidationFailed):
            documents.create(
                db_session,
                student.id,
                DocumentCreate(title="T", initial_content="  "),
            )


class TestReadDocument:
    def test_get_requires_membership(self, db_session, document, person_factory):
        with pytest.raises(AuthForbidden):
            documents.get(db_session, document.id, person_factory().id)

    def test_admin_can_read(self, db_session, document, admin):
        assert documents.get(db_session, document.id, admin.id).id == document.id

    def test_detail_for_student(self, db_session, document, student):
        versions.create(db_session, document.id, student.id, VersionCreate(content="a"))
        detail = documents.detail(db_session, document.id, student.id)
        assert detail.version_count == 1
        assert detail.latest_version_number == 1
        assert detail.active_student_count == 1
        assert detail.active_advisor_count == 1
        caps = detail.capabilities
        assert caps.can_submit and caps.can_manage and caps.can_delete
        assert not caps.can_review and not caps.can_finalize

    def test_detail_for_advisor(self, db_session, document, advisor):
        caps = documents.detail(db_session, document.id, advisor.id).capabilities
        assert caps.can_review and caps.can_finalize
        assert not caps.can_submit
        assert not caps.can_delete

    def test_detail_for_admin(self, db_session, document, admin):
        caps = documents.detail(db_session, document.id, admin.id).capabilities
        assert caps.can_read and caps.can_delete
        assert not caps.can_edit

    def test_list_for_actor(self, db_session, document, student, advisor, person_factory):
        documents.create(db_session, student.id, DocumentCreate(title="Second"))
        mine = Documents.list(
            db_session, student.id, None, None, "created_at", "asc", 50, 0
        )
        assert [d.title for d in mine] == ["Soil carbon dynamics", "Second"]
        theirs = Documents.list(
            db_session, advisor.id, None, None, "created_at", "asc", 50, 0
        )
        assert [d.id for d in theirs] == [document.id]
        nobody = person_factory()
        assert Documents.list(db_session, nobody.id, None, None, "title", "asc", 50, 0) == []

    def test_list_filters(self, db_session, document, student):
        documents.create(db_session, student.id, DocumentCreate(title="Glacier melt"))
        found = Documents.list(
            db_session, student.id, "draft", "glacier", "title", "asc", 50, 0
        )
        assert [d.title for d in found] == ["Glacier melt"]

    def test_list_invalid_status(self, db_session, student):
        with pytest.raises(ValidationFailed):
            Documents.list(db_session, student.id, "lost", None, "title", "asc", 50, 0)

    def test_list_invalid_order_by(self, db_session, student):
        with pytest.raises(ValidationFailed):
            Documents.list(db_session, student.id, None, None, "secret", "asc", 50, 0)


class TestUpdateDocument:
    def test_update_title(self, db_session, document, student):
        updated = documents.update(
            db_session, document.id, student.id, DocumentUpdate(title="New title")
        )
        assert updated.title == "New title"

    def test_read_only_cannot_update(self, db_session, document, student, second_student):
        collaborators.add(
            db_session,
            document.id,
            student.id,
            CollaboratorCreate(
                person_id=second_student.id,
                role=CollaboratorRole.observer,
                permission=CollaboratorPermission.read_only,
            ),
        )
        with pytest.raises(AuthForbidden):
            documents.update(
                db_session, document.id, second_student.id, DocumentUpdate(title="X")
            )

    def test_finalized_is_frozen(self, db_session, document, student, advisor):
        versions.create(db_session, document.id, student.id, VersionCreate(content="a"))
        lifecycle.submit(db_session, document.id, student.id)
        lifecycle.approve(db_session, document.id, advisor.id)
        lifecycle.finalize(db_session, document.id, advisor.id)
        with pytest.raises(TransitionInvalid):
            documents.update(
                db_session, document.id, advisor.id, DocumentUpdate(description="late")
            )


class TestDeleteDocument:
    def test_primary_student_deletes_draft(self, db_session, document, student):
        documents.delete(db_session, document.id, student.id)
        with pytest.raises(NotFound):
            documents.get(db_session, document.id, student.id)
        assert db_session.get(Document, document.id).is_active is False
        assert db_session.query(Collaborator).filter_by(document_id=document.id).count() == 2

    def test_student_cannot_delete_submitted(self, db_session, document, student):
        versions.create(db_session, document.id, student.id, VersionCreate(content="a"))
        lifecycle.submit(db_session, document.id, student.id)
        with pytest.raises(TransitionInvalid):
            documents.delete(db_session, document.id, student.id)

    def test_advisor_cannot_delete(self, db_session, document, advisor):
        with pytest.raises(AuthForbidden):
            documents.delete(db_session, document.id, advisor.id)

    def test_admin_deletes_any_status(self, db_session, document, student, admin):
        versions.create(db_session, document.id, student.id, VersionCreate(content="a"))
        lifecycle.submit(db_session, document.id, student.id)
        documents.delete(db_session, document.id, admin.id)
        assert db_session.get(Document, document.id).is_active is False

    def test_deleted_documents_leave_listing(self, db_session, document, student):
        documents.delete(db_session, document.id, student.id)
        assert Documents.list(
            db_session, student.id, None, None, "title", "asc", 50, 0
        ) == []