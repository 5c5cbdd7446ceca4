import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import AuthForbidden, TransitionInvalid, ValidationFailed
from app.models.monograph import (
    Collaborator,
    CollaboratorPermission,
    CollaboratorRole,
    Document,
    DocumentStatus,
    RoleFamily,
    Version,
)
from app.models.person import AccountRole, PersonStatus
from app.schemas.monograph import (
    DocumentCapabilities,
    DocumentCreate,
    DocumentDetail,
    DocumentRead,
    DocumentUpdate,
)
from app.services import access
from app.services.common import (
    apply_ordering,
    apply_pagination,
    coerce_uuid,
    require_text,
)
from app.services.event import EventType, publish_event
from app.services.response import ListResponseMixin
from app.services.versions import append_version

logger = logging.getLogger(__name__)


def _require_approved(person, account_role: AccountRole, label: str) -> None:
    if (
        person.account_role != account_role
        or person.status != PersonStatus.approved
        or not person.is_active
    ):
        raise ValidationFailed(
            f"{label} must be an approved {account_role.value} account",
            person_id=str(person.id),
            account_role=person.account_role.value,
            status=person.status.value,
        )


def _capabilities(
    document: Document, collaborator: Collaborator | None, admin: bool
) -> DocumentCapabilities:
    deletable = admin or (
        collaborator is not None
        and collaborator.role == CollaboratorRole.primary_student
        and document.status == DocumentStatus.draft
    )
    if collaborator is None:
        return DocumentCapabilities(can_read=admin, can_delete=deletable)
    return DocumentCapabilities(
        can_read=True,
        can_edit=collaborator.can_edit,
        can_comment=collaborator.can_comment,
        can_manage=collaborator.can_manage,
        can_submit=access.can_submit(collaborator),
        can_review=access.can_review(collaborator),
        can_finalize=access.can_finalize(collaborator),
        can_delete=deletable,
    )


class Documents(ListResponseMixin):
    @staticmethod
    def create(
        db: Session, actor_id: str | uuid.UUID, payload: DocumentCreate
    ) -> Document:
        """Create a draft with its creator as primary student.

        The optional primary advisor and first version are written in the
        same transaction.
        """
        creator = access.get_person(db, actor_id)
        if creator.account_role != AccountRole.student:
            raise AuthForbidden(
                "Only student accounts can create documents",
                account_role=creator.account_role.value,
            )
        _require_approved(creator, AccountRole.student, "Creator")
        advisor = None
        if payload.advisor_id is not None:
            advisor = access.get_person(db, payload.advisor_id, "Advisor")
            _require_approved(advisor, AccountRole.advisor, "Advisor")
        title = require_text(payload.title, "title")
        initial_content = payload.initial_content
        if initial_content is not None:
            require_text(initial_content, "initial_content")

        document = Document(
            title=title,
            description=payload.description,
            status=DocumentStatus.draft,
            max_students=payload.max_students or settings.default_max_students,
            max_advisors=payload.max_advisors or settings.default_max_advisors,
            created_by=creator.id,
        )
        db.add(document)
        db.flush()
        db.add(
            Collaborator(
                document_id=document.id,
                person_id=creator.id,
                role=CollaboratorRole.primary_student,
                permission=CollaboratorPermission.full_access,
                added_by=creator.id,
            )
        )
        if advisor is not None:
            db.add(
                Collaborator(
                    document_id=document.id,
                    person_id=advisor.id,
                    role=CollaboratorRole.primary_advisor,
                    permission=CollaboratorPermission.full_access,
                    added_by=creator.id,
                )
            )
        db.flush()
        if initial_content is not None:
            append_version(
                db,
                document.id,
                creator.id,
                initial_content,
                payload.initial_commit_message,
            )
        db.commit()
        db.refresh(document)
        logger.info("Created document %s for %s", document.id, creator.id)
        publish_event(
            EventType.document_created,
            entity_type="document",
            entity_id=document.id,
            actor_id=creator.id,
            document_id=document.id,
            payload={
                "advisor_id": str(advisor.id) if advisor else None,
                "with_initial_version": initial_content is not None,
            },
        )
        return document

    @staticmethod
    def get(
        db: Session, document_id: str, actor_id: str | uuid.UUID
    ) -> Document:
        document = access.get_document(db, document_id)
        access.require_read(db, document, actor_id)
        return document

    @staticmethod
    def detail(
        db: Session, document_id: str, actor_id: str | uuid.UUID
    ) -> DocumentDetail:
        document = access.get_document(db, document_id)
        collaborator = access.require_read(db, document, actor_id)
        admin = access.is_admin(access.get_person(db, actor_id))
        version_count, latest = db.execute(
            select(func.count(Version.id), func.max(Version.version_number)).where(
                Version.document_id == document.id
            )
        ).one()
        counts = access.family_counts(db, document.id)
        return DocumentDetail(
            document=DocumentRead.model_validate(document),
            capabilities=_capabilities(document, collaborator, admin),
            version_count=version_count,
            latest_version_number=latest,
            active_student_count=counts[RoleFamily.student],
            active_advisor_count=counts[RoleFamily.advisor],
        )

    @staticmethod
    def list(
        db: Session,
        actor_id: str | uuid.UUID,
        status: str | None,
        search: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> list[Document]:
        """Active documents on which the actor is an active collaborator."""
        stmt = (
            select(Document)
            .join(Collaborator, Collaborator.document_id == Document.id)
            .where(
                Collaborator.person_id == coerce_uuid(actor_id),
                Collaborator.is_active.is_(True),
                Document.is_active.is_(True),
            )
        )
        if status is not None:
            try:
                stmt = stmt.where(Document.status == DocumentStatus(status))
            except ValueError:
                raise ValidationFailed(
                    f"Invalid status: {status}",
                    allowed=[s.value for s in DocumentStatus],
                )
        if search:
            stmt = stmt.where(Document.title.ilike(f"%{search.strip()}%"))
        stmt = apply_ordering(
            stmt,
            order_by,
            order_dir,
            {
                "created_at": Document.created_at,
                "updated_at": Document.updated_at,
                "title": Document.title,
                "status": Document.status,
            },
        )
        return db.scalars(apply_pagination(stmt, limit, offset)).all()

    @staticmethod
    def update(
        db: Session,
        document_id: str,
        actor_id: str | uuid.UUID,
        payload: DocumentUpdate,
    ) -> Document:
        document = access.get_document(db, document_id)
        collaborator = access.require_collaborator(db, document, actor_id)
        if not collaborator.can_edit:
            raise AuthForbidden(
                "Editing document details requires write access",
                required="read_write",
                permission=collaborator.permission.value,
            )
        access.lock_document(db, document.id)
        db.refresh(document)
        if document.status == DocumentStatus.finalized:
            raise TransitionInvalid(
                "A finalized document cannot be changed",
                current_status=document.status.value,
            )
        data = payload.model_dump(exclude_unset=True)
        if "title" in data:
            data["title"] = require_text(data["title"], "title")
        for key, value in data.items():
            setattr(document, key, value)
        access.touch(collaborator)
        db.commit()
        db.refresh(document)
        logger.info("Updated document %s", document.id)
        publish_event(
            EventType.document_updated,
            entity_type="document",
            entity_id=document.id,
            actor_id=collaborator.person_id,
            document_id=document.id,
            payload={"fields": sorted(data)},
        )
        return document

    @staticmethod
    def delete(db: Session, document_id: str, actor_id: str | uuid.UUID) -> None:
        """Soft delete; versions and comments stay as the audit trail."""
        document = access.get_document(db, document_id)
        actor = access.get_person(db, actor_id)
        if not access.is_admin(actor):
            collaborator = access.require_collaborator(db, document, actor.id)
            if collaborator.role != CollaboratorRole.primary_student:
                raise AuthForbidden(
                    "Only the primary student or an admin can delete a document",
                    role=collaborator.role.value,
                )
            if document.status != DocumentStatus.draft:
                raise TransitionInvalid(
                    "Only draft documents can be deleted by their student",
                    current_status=document.status.value,
                )
        document.is_active = False
        db.commit()
        logger.info("Deleted document %s by %s", document.id, actor.id)
        publish_event(
            EventType.document_deleted,
            entity_type="document",
            entity_id=document.id,
            actor_id=actor.id,
            document_id=document.id,
        )


documents = Documents()
