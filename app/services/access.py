"""Collaborator lookups and capability checks shared by the document services.

Capabilities are always derived from the collaborator's current
``role``/``permission`` pair; nothing here is cached or stored.
"""

import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.errors import AuthForbidden, NotFound
from app.models.monograph import (
    PRIMARY_ROLES,
    Collaborator,
    CollaboratorRole,
    Document,
    RoleFamily,
)
from app.models.person import AccountRole, Person
from app.services.common import coerce_uuid, utcnow

logger = logging.getLogger(__name__)


def get_document(
    db: Session, document_id: str | uuid.UUID, include_inactive: bool = False
) -> Document:
    document = db.get(Document, coerce_uuid(document_id))
    if not document or (not document.is_active and not include_inactive):
        raise NotFound("Document not found", document_id=str(document_id))
    return document


def get_person(
    db: Session, person_id: str | uuid.UUID, label: str = "Person"
) -> Person:
    person = db.get(Person, coerce_uuid(person_id))
    if not person:
        raise NotFound(f"{label} not found", person_id=str(person_id))
    return person


def is_admin(person: Person | None) -> bool:
    return person is not None and person.account_role == AccountRole.admin


def find_collaborator(
    db: Session,
    document_id: str | uuid.UUID,
    person_id: str | uuid.UUID,
    include_inactive: bool = False,
) -> Collaborator | None:
    stmt = select(Collaborator).where(
        Collaborator.document_id == coerce_uuid(document_id),
        Collaborator.person_id == coerce_uuid(person_id),
    )
    if not include_inactive:
        stmt = stmt.where(Collaborator.is_active.is_(True))
    return db.scalars(stmt).first()


def require_collaborator(
    db: Session, document: Document, actor_id: str | uuid.UUID
) -> Collaborator:
    collaborator = find_collaborator(db, document.id, actor_id)
    if collaborator is None:
        logger.warning(
            "Person %s is not a collaborator on document %s", actor_id, document.id
        )
        raise AuthForbidden(
            "You are not a collaborator on this document",
            document_id=str(document.id),
        )
    return collaborator


def require_manager(
    db: Session, document: Document, actor_id: str | uuid.UUID
) -> Collaborator:
    collaborator = require_collaborator(db, document, actor_id)
    if not collaborator.can_manage:
        raise AuthForbidden(
            "Managing collaborators requires full access",
            required="full_access",
            permission=collaborator.permission.value,
        )
    return collaborator


def require_read(
    db: Session, document: Document, actor_id: str | uuid.UUID
) -> Collaborator | None:
    """Active collaborators (any permission) and admins may read."""
    collaborator = find_collaborator(db, document.id, actor_id)
    if collaborator is not None:
        return collaborator
    if is_admin(db.get(Person, coerce_uuid(actor_id))):
        return None
    raise AuthForbidden(
        "You do not have access to this document", document_id=str(document.id)
    )


def touch(collaborator: Collaborator) -> None:
    collaborator.last_access_at = utcnow()


def active_primary(
    db: Session, document_id: uuid.UUID, family: RoleFamily
) -> Collaborator | None:
    role = PRIMARY_ROLES[family]
    return db.scalars(
        select(Collaborator).where(
            Collaborator.document_id == document_id,
            Collaborator.role == role,
            Collaborator.is_active.is_(True),
        )
    ).first()


def family_counts(db: Session, document_id: uuid.UUID) -> dict[RoleFamily, int]:
    rows = db.execute(
        select(Collaborator.role, func.count(Collaborator.id))
        .where(
            Collaborator.document_id == document_id,
            Collaborator.is_active.is_(True),
        )
        .group_by(Collaborator.role)
    ).all()
    counts = {family: 0 for family in RoleFamily}
    for role, count in rows:
        counts[CollaboratorRole(role).family] += count
    return counts


def can_submit(collaborator: Collaborator | None) -> bool:
    return (
        collaborator is not None
        and collaborator.family == RoleFamily.student
        and collaborator.can_edit
    )


def can_review(collaborator: Collaborator | None) -> bool:
    return (
        collaborator is not None
        and collaborator.family == RoleFamily.advisor
        and collaborator.can_comment
    )


def can_finalize(collaborator: Collaborator | None) -> bool:
    return (
        collaborator is not None
        and collaborator.family == RoleFamily.advisor
        and collaborator.can_manage
    )


def can_resolve_comments(collaborator: Collaborator | None) -> bool:
    return collaborator is not None and (
        collaborator.family == RoleFamily.advisor or collaborator.can_manage
    )


def lock_document(db: Session, document_id: uuid.UUID) -> None:
    """Serialize writers on one document for the rest of the transaction."""
    db.execute(
        select(Document.id).where(Document.id == document_id).with_for_update()
    )
