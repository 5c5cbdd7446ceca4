import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.errors import AuthForbidden, Conflict, NotFound, ValidationFailed
from app.models.monograph import Comment, Version
from app.schemas.comment import CommentCreate
from app.services import access
from app.services.common import apply_pagination, coerce_uuid, require_text, utcnow
from app.services.event import EventType, publish_event
from app.services.response import ListResponseMixin

logger = logging.getLogger(__name__)


def _get_version(db: Session, version_id: str) -> Version:
    version = db.get(Version, coerce_uuid(version_id))
    if not version:
        raise NotFound("Version not found", version_id=str(version_id))
    return version


def _validate_anchor(
    version: Version, start: int | None, end: int | None
) -> None:
    if start is None and end is None:
        return
    if start is None or end is None:
        raise ValidationFailed(
            "start_position and end_position must be given together",
            start_position=start,
            end_position=end,
        )
    length = len(version.content)
    if start > end or end > length:
        raise ValidationFailed(
            "Comment range must satisfy 0 <= start <= end <= content length",
            start_position=start,
            end_position=end,
            content_length=length,
        )


class Comments(ListResponseMixin):
    @staticmethod
    def add(
        db: Session,
        version_id: str,
        actor_id: str | uuid.UUID,
        payload: CommentCreate,
    ) -> Comment:
        version = _get_version(db, version_id)
        document = access.get_document(db, version.document_id)
        collaborator = access.require_collaborator(db, document, actor_id)
        if not collaborator.can_comment:
            raise AuthForbidden(
                "Commenting requires comment access",
                required="read_comment",
                permission=collaborator.permission.value,
            )
        content = require_text(payload.content, "content")
        _validate_anchor(version, payload.start_position, payload.end_position)

        comment = Comment(
            version_id=version.id,
            content=content,
            start_position=payload.start_position,
            end_position=payload.end_position,
            created_by=collaborator.person_id,
        )
        db.add(comment)
        access.touch(collaborator)
        db.commit()
        db.refresh(comment)
        logger.info(
            "Created comment %s on version %s (v%d)",
            comment.id,
            version.id,
            version.version_number,
        )
        publish_event(
            EventType.comment_created,
            entity_type="comment",
            entity_id=comment.id,
            actor_id=comment.created_by,
            document_id=document.id,
            payload={"version_id": str(version.id)},
        )
        return comment

    @staticmethod
    def resolve(
        db: Session, comment_id: str, actor_id: str | uuid.UUID
    ) -> Comment:
        comment = db.get(Comment, coerce_uuid(comment_id))
        if not comment:
            raise NotFound("Comment not found", comment_id=str(comment_id))
        document = access.get_document(db, comment.version.document_id)
        collaborator = access.require_collaborator(db, document, actor_id)
        if not access.can_resolve_comments(collaborator):
            raise AuthForbidden(
                "Resolving comments requires an advisor role or full access",
                role=collaborator.role.value,
                permission=collaborator.permission.value,
            )

        result = db.execute(
            update(Comment)
            .where(Comment.id == comment.id, Comment.resolved.is_(False))
            .values(
                resolved=True,
                resolved_by=collaborator.person_id,
                resolved_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise Conflict(
                "Comment is already resolved", comment_id=str(comment.id)
            )
        access.touch(collaborator)
        db.commit()
        db.refresh(comment)
        logger.info("Resolved comment %s", comment.id)
        publish_event(
            EventType.comment_resolved,
            entity_type="comment",
            entity_id=comment.id,
            actor_id=collaborator.person_id,
            document_id=document.id,
        )
        return comment

    @staticmethod
    def get(db: Session, comment_id: str, actor_id: str | uuid.UUID) -> Comment:
        comment = db.get(Comment, coerce_uuid(comment_id))
        if not comment:
            raise NotFound("Comment not found", comment_id=str(comment_id))
        document = access.get_document(db, comment.version.document_id)
        access.require_read(db, document, actor_id)
        return comment

    @staticmethod
    def list(
        db: Session,
        version_id: str,
        actor_id: str | uuid.UUID,
        resolved: bool | None,
        created_by: str | uuid.UUID | None,
        limit: int,
        offset: int,
    ) -> list[Comment]:
        version = _get_version(db, version_id)
        document = access.get_document(db, version.document_id)
        access.require_read(db, document, actor_id)
        stmt = select(Comment).where(Comment.version_id == version.id)
        if resolved is not None:
            stmt = stmt.where(Comment.resolved == resolved)
        if created_by is not None:
            stmt = stmt.where(Comment.created_by == coerce_uuid(created_by))
        stmt = stmt.order_by(Comment.created_at.desc())
        return db.scalars(apply_pagination(stmt, limit, offset)).all()


comments = Comments()
