"""Document status state machine.

Only these edges exist::

    draft ──submit──▶ submitted ──approve──▶ approved ──finalize──▶ finalized
                      ▲      │
               submit │      │ request_revision
                      │      ▼
                      revision

``finalized`` is absorbing. Every transition is applied as a
compare-and-swap on the status the caller observed, so of two concurrent
requests against the same document only one can succeed.
"""

import logging
import uuid

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.errors import AuthForbidden, TransitionInvalid, ValidationFailed
from app.models.monograph import (
    Collaborator,
    Document,
    DocumentStatus,
    DocumentStatusChange,
    TransitionAction,
    Version,
)
from app.services import access
from app.services.common import apply_pagination, require_text, utcnow
from app.services.event import EventType, publish_event
from app.services.response import ListResponseMixin

logger = logging.getLogger(__name__)

TRANSITIONS: dict[TransitionAction, tuple[frozenset[DocumentStatus], DocumentStatus]] = {
    TransitionAction.submit: (
        frozenset({DocumentStatus.draft, DocumentStatus.revision}),
        DocumentStatus.submitted,
    ),
    TransitionAction.request_revision: (
        frozenset({DocumentStatus.submitted}),
        DocumentStatus.revision,
    ),
    TransitionAction.approve: (
        frozenset({DocumentStatus.submitted}),
        DocumentStatus.approved,
    ),
    TransitionAction.finalize: (
        frozenset({DocumentStatus.approved}),
        DocumentStatus.finalized,
    ),
}

ALLOWED_EDGES: frozenset[tuple[DocumentStatus, DocumentStatus]] = frozenset(
    (source, target)
    for sources, target in TRANSITIONS.values()
    for source in sources
)

_REQUIREMENTS = {
    TransitionAction.submit: (
        access.can_submit,
        "a student role with write access",
    ),
    TransitionAction.request_revision: (
        access.can_review,
        "an advisor role with comment access",
    ),
    TransitionAction.approve: (
        access.can_review,
        "an advisor role with comment access",
    ),
    TransitionAction.finalize: (
        access.can_finalize,
        "an advisor role with full access",
    ),
}


def _coerce_action(action: TransitionAction | str) -> TransitionAction:
    if isinstance(action, TransitionAction):
        return action
    try:
        return TransitionAction(action)
    except ValueError:
        raise ValidationFailed(
            f"Unknown action: {action}",
            allowed=[a.value for a in TransitionAction],
        )


def _authorize(action: TransitionAction, collaborator: Collaborator) -> None:
    check, description = _REQUIREMENTS[action]
    if not check(collaborator):
        logger.warning(
            "Person %s (%s/%s) may not %s document %s",
            collaborator.person_id,
            collaborator.role.value,
            collaborator.permission.value,
            action.value,
            collaborator.document_id,
        )
        raise AuthForbidden(
            f"Action '{action.value}' requires {description}",
            action=action.value,
            required=description,
            role=collaborator.role.value,
            permission=collaborator.permission.value,
        )


def _side_effects(
    db: Session,
    document: Document,
    action: TransitionAction,
    reason: str | None,
) -> tuple[dict, str | None]:
    now = utcnow()
    if action == TransitionAction.submit:
        version_count = db.scalar(
            select(func.count(Version.id)).where(Version.document_id == document.id)
        )
        if not version_count:
            raise ValidationFailed(
                "A document needs at least one version before it can be submitted",
                current_status=document.status.value,
            )
        return {"submitted_at": now, "approved_at": None}, None
    if action == TransitionAction.request_revision:
        reason = require_text(reason, "reason")
        return {"rejection_reason": reason, "rejected_at": now}, reason
    if action == TransitionAction.approve:
        return {"approved_at": now}, None
    return {}, None


class Lifecycle(ListResponseMixin):
    @staticmethod
    def transition(
        db: Session,
        document_id: str,
        actor_id: str | uuid.UUID,
        action: TransitionAction | str,
        reason: str | None = None,
    ) -> Document:
        action = _coerce_action(action)
        document = access.get_document(db, document_id)
        collaborator = access.require_collaborator(db, document, actor_id)

        current = document.status
        sources, target = TRANSITIONS[action]
        if current not in sources:
            raise TransitionInvalid(
                f"Cannot {action.value.replace('_', ' ')} a document "
                f"in status '{current.value}'",
                action=action.value,
                current_status=current.value,
                allowed_from=sorted(s.value for s in sources),
            )
        _authorize(action, collaborator)
        changes, stored_reason = _side_effects(db, document, action, reason)

        result = db.execute(
            update(Document)
            .where(Document.id == document.id, Document.status == current)
            .values(status=target, updated_at=utcnow(), **changes)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            actual = db.scalar(select(Document.status).where(Document.id == document.id))
            logger.warning(
                "Lost status race on document %s: expected %s, found %s",
                document.id,
                current.value,
                actual.value if actual else None,
            )
            raise TransitionInvalid(
                "The document status changed while the request was processed",
                action=action.value,
                expected_status=current.value,
                current_status=actual.value if actual else None,
            )

        db.add(
            DocumentStatusChange(
                document_id=document.id,
                from_status=current,
                to_status=target,
                actor_id=collaborator.person_id,
                reason=stored_reason,
            )
        )
        access.touch(collaborator)
        db.commit()
        db.refresh(document)
        logger.info(
            "Document %s moved %s -> %s by %s",
            document.id,
            current.value,
            target.value,
            collaborator.person_id,
        )
        publish_event(
            EventType.document_status_changed,
            entity_type="document",
            entity_id=document.id,
            actor_id=collaborator.person_id,
            document_id=document.id,
            payload={
                "action": action.value,
                "from_status": current.value,
                "to_status": target.value,
                "reason": stored_reason,
            },
        )
        return document

    @staticmethod
    def submit(db: Session, document_id: str, actor_id) -> Document:
        return Lifecycle.transition(db, document_id, actor_id, TransitionAction.submit)

    @staticmethod
    def request_revision(
        db: Session, document_id: str, actor_id, reason: str | None
    ) -> Document:
        return Lifecycle.transition(
            db, document_id, actor_id, TransitionAction.request_revision, reason
        )

    @staticmethod
    def approve(db: Session, document_id: str, actor_id) -> Document:
        return Lifecycle.transition(db, document_id, actor_id, TransitionAction.approve)

    @staticmethod
    def finalize(db: Session, document_id: str, actor_id) -> Document:
        return Lifecycle.transition(
            db, document_id, actor_id, TransitionAction.finalize
        )

    @staticmethod
    def list(
        db: Session,
        document_id: str,
        actor_id: str | uuid.UUID,
        limit: int,
        offset: int,
    ) -> list[DocumentStatusChange]:
        """Status history, oldest first."""
        document = access.get_document(db, document_id)
        access.require_read(db, document, actor_id)
        stmt = (
            select(DocumentStatusChange)
            .where(DocumentStatusChange.document_id == document.id)
            .order_by(DocumentStatusChange.created_at.asc())
        )
        return db.scalars(apply_pagination(stmt, limit, offset)).all()


lifecycle = Lifecycle()
