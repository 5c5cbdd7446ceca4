import pytest
from sqlalchemy.exc import IntegrityError

from app.models.monograph import (
    Collaborator,
    CollaboratorPermission,
    CollaboratorRole,
    Comment,
    Document,
    DocumentStatus,
    Version,
)


def _document(db_session, person):
    doc = Document(title="Model test", created_by=person.id)
    db_session.add(doc)
    db_session.commit()
    db_session.refresh(doc)
    return doc


class TestDocumentModel:
    def test_defaults(self, db_session, person):
        doc = _document(db_session, person)
        assert doc.status == DocumentStatus.draft
        assert doc.is_active is True
        assert doc.max_students == 5
        assert doc.max_advisors == 3
        assert doc.created_at is not None


class TestVersionModel:
    def test_number_unique_per_document(self, db_session, person):
        doc = _document(db_session, person)
        db_session.add(
            Version(document_id=doc.id, version_number=1, content="a", created_by=person.id)
        )
        db_session.commit()
        db_session.add(
            Version(document_id=doc.id, version_number=1, content="b", created_by=person.id)
        )
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_number_must_be_positive(self, db_session, person):
        doc = _document(db_session, person)
        db_session.add(
            Version(document_id=doc.id, version_number=0, content="a", created_by=person.id)
        )
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()


class TestCollaboratorModel:
    def _collaborator(self, doc, person, role, is_active=True):
        return Collaborator(
            document_id=doc.id,
            person_id=person.id,
            role=role,
            permission=CollaboratorPermission.full_access,
            is_active=is_active,
        )

    def test_one_active_primary_per_family(self, db_session, person, second_student):
        doc = _document(db_session, person)
        db_session.add(self._collaborator(doc, person, CollaboratorRole.primary_student))
        db_session.commit()
        db_session.add(
            self._collaborator(doc, second_student, CollaboratorRole.primary_student)
        )
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_inactive_primary_does_not_count(self, db_session, person, second_student):
        doc = _document(db_session, person)
        db_session.add(
            self._collaborator(
                doc, person, CollaboratorRole.primary_student, is_active=False
            )
        )
        db_session.add(
            self._collaborator(doc, second_student, CollaboratorRole.primary_student)
        )
        db_session.commit()

    def test_one_record_per_person(self, db_session, person):
        doc = _document(db_session, person)
        db_session.add(self._collaborator(doc, person, CollaboratorRole.co_student))
        db_session.commit()
        db_session.add(self._collaborator(doc, person, CollaboratorRole.reviewer))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()


class TestCommentModel:
    def test_range_check(self, db_session, person):
        doc = _document(db_session, person)
        version = Version(
            document_id=doc.id, version_number=1, content="abc", created_by=person.id
        )
        db_session.add(version)
        db_session.commit()
        db_session.add(
            Comment(
                version_id=version.id,
                content="bad range",
                start_position=2,
                end_position=1,
                created_by=person.id,
            )
        )
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()
