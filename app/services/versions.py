import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import AuthForbidden, Conflict, NotFound, TransitionInvalid
from app.models.monograph import DocumentStatus, Version
from app.schemas.monograph import VersionCreate
from app.services import access
from app.services.common import apply_pagination, coerce_uuid, require_text
from app.services.event import EventType, publish_event
from app.services.response import ListResponseMixin

logger = logging.getLogger(__name__)

# Content is frozen while under review and after approval.
EDITABLE_STATUSES = {DocumentStatus.draft, DocumentStatus.revision}

# One retry after losing a version-number race, then the caller gets CONFLICT.
_NUMBERING_ATTEMPTS = 2


def _next_version_number(db: Session, document_id: uuid.UUID) -> int:
    current = db.scalar(
        select(func.max(Version.version_number)).where(
            Version.document_id == document_id
        )
    )
    return (current or 0) + 1


def append_version(
    db: Session,
    document_id: uuid.UUID,
    created_by: uuid.UUID,
    content: str,
    commit_message: str | None,
) -> Version:
    """Append an immutable snapshot with the next per-document number.

    The document row is locked for the read-max-then-insert step and the
    insert runs in a savepoint so a lost race against the
    ``(document_id, version_number)`` constraint can be retried once.
    """
    access.lock_document(db, document_id)
    number = None
    for attempt in range(1, _NUMBERING_ATTEMPTS + 1):
        number = _next_version_number(db, document_id)
        try:
            with db.begin_nested():
                version = Version(
                    document_id=document_id,
                    version_number=number,
                    content=content,
                    commit_message=commit_message,
                    created_by=created_by,
                )
                db.add(version)
                db.flush()
            return version
        except IntegrityError:
            logger.warning(
                "Version number %d already taken for document %s (attempt %d)",
                number,
                document_id,
                attempt,
            )
    raise Conflict(
        "Another version was created concurrently; retry the save",
        document_id=str(document_id),
        version_number=number,
    )


class Versions(ListResponseMixin):
    @staticmethod
    def create(
        db: Session,
        document_id: str,
        actor_id: str | uuid.UUID,
        payload: VersionCreate,
    ) -> Version:
        document = access.get_document(db, document_id)
        collaborator = access.require_collaborator(db, document, actor_id)
        if not collaborator.can_edit:
            raise AuthForbidden(
                "Creating versions requires write access",
                required="read_write",
                permission=collaborator.permission.value,
            )
        content = payload.content
        require_text(content, "content")
        # The editing window is judged on the status seen under the lock.
        access.lock_document(db, document.id)
        db.refresh(document)
        if document.status not in EDITABLE_STATUSES:
            raise TransitionInvalid(
                "New versions can only be created while the document is "
                "in draft or revision",
                current_status=document.status.value,
            )

        version = append_version(
            db,
            document.id,
            collaborator.person_id,
            content,
            payload.commit_message,
        )
        access.touch(collaborator)
        db.commit()
        db.refresh(version)
        logger.info(
            "Created version %s (v%d) for document %s",
            version.id,
            version.version_number,
            document.id,
        )
        publish_event(
            EventType.version_created,
            entity_type="version",
            entity_id=version.id,
            actor_id=version.created_by,
            document_id=document.id,
            payload={"version_number": version.version_number},
        )
        return version

    @staticmethod
    def get(db: Session, version_id: str, actor_id: str | uuid.UUID) -> Version:
        version = db.get(Version, coerce_uuid(version_id))
        if not version:
            raise NotFound("Version not found", version_id=str(version_id))
        document = access.get_document(db, version.document_id)
        access.require_read(db, document, actor_id)
        return version

    @staticmethod
    def latest(
        db: Session, document_id: str, actor_id: str | uuid.UUID
    ) -> Version:
        document = access.get_document(db, document_id)
        access.require_read(db, document, actor_id)
        version = db.scalars(
            select(Version)
            .where(Version.document_id == document.id)
            .order_by(Version.version_number.desc())
        ).first()
        if not version:
            raise NotFound("Document has no versions", document_id=str(document.id))
        return version

    @staticmethod
    def list(
        db: Session,
        document_id: str,
        actor_id: str | uuid.UUID,
        limit: int,
        offset: int,
    ) -> list[Version]:
        document = access.get_document(db, document_id)
        access.require_read(db, document, actor_id)
        stmt = (
            select(Version)
            .where(Version.document_id == document.id)
            .order_by(Version.version_number.desc())
        )
        return db.scalars(apply_pagination(stmt, limit, offset)).all()


versions = Versions()
