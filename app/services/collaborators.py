"""Per-document membership: who holds which role and permission.

Every mutation requires the actor to manage the document and never
targets the actor's own record. Primary roles change hands only through
``promote_to_primary``, which swaps the old and new primary inside one
savepoint so the document never has zero or two primaries of a family.
"""

import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import (
    AuthForbidden,
    Conflict,
    InvariantViolation,
    NotFound,
    ValidationFailed,
)
from app.models.monograph import (
    DEMOTED_ROLES,
    PRIMARY_ROLES,
    Collaborator,
    CollaboratorPermission,
    CollaboratorRole,
    Document,
    RoleFamily,
)
from app.models.person import AccountRole, Person, PersonStatus
from app.schemas.collaborator import CollaboratorCreate
from app.services import access
from app.services.common import apply_pagination, coerce_uuid, utcnow
from app.services.event import EventType, publish_event
from app.services.response import ListResponseMixin

logger = logging.getLogger(__name__)

_FAMILY_ACCOUNTS = {
    RoleFamily.student: AccountRole.student,
    RoleFamily.advisor: AccountRole.advisor,
}


def _check_account(person: Person, role: CollaboratorRole) -> None:
    if person.status != PersonStatus.approved or not person.is_active:
        raise ValidationFailed(
            "Only approved, active accounts can be collaborators",
            person_id=str(person.id),
            status=person.status.value,
        )
    required = _FAMILY_ACCOUNTS.get(role.family)
    if required is not None and person.account_role != required:
        raise ValidationFailed(
            f"Role '{role.value}' requires a {required.value} account",
            role=role.value,
            account_role=person.account_role.value,
        )


def _check_observer(role: CollaboratorRole, permission: CollaboratorPermission):
    if (
        role == CollaboratorRole.observer
        and permission != CollaboratorPermission.read_only
    ):
        raise ValidationFailed(
            "Observers are always read-only",
            role=role.value,
            permission=permission.value,
        )


def _check_capacity(db: Session, document: Document, family: RoleFamily) -> None:
    limits = {
        RoleFamily.student: document.max_students,
        RoleFamily.advisor: document.max_advisors,
    }
    limit = limits.get(family)
    if limit is None:
        return
    active = access.family_counts(db, document.id)[family]
    if active >= limit:
        raise InvariantViolation(
            f"Document already has the maximum of {limit} {family.value} "
            "collaborators",
            family=family.value,
            limit=limit,
            active=active,
        )


def _get_target(
    db: Session, document: Document, collaborator_id: str
) -> Collaborator:
    collaborator = db.get(
        Collaborator, coerce_uuid(collaborator_id), populate_existing=True
    )
    if (
        not collaborator
        or collaborator.document_id != document.id
        or not collaborator.is_active
    ):
        raise NotFound(
            "Collaborator not found", collaborator_id=str(collaborator_id)
        )
    return collaborator


def _forbid_self(manager: Collaborator, target: Collaborator, operation: str):
    if manager.id == target.id:
        logger.warning(
            "Person %s attempted to %s their own collaborator record on %s",
            manager.person_id,
            operation,
            manager.document_id,
        )
        raise AuthForbidden(
            "You cannot change your own collaborator record",
            operation=operation,
        )


def _forbid_primary(target: Collaborator, operation: str) -> None:
    if target.is_primary:
        raise InvariantViolation(
            "A primary collaborator can only change through promotion of a "
            "replacement",
            operation=operation,
            role=target.role.value,
        )


def _manage(
    db: Session,
    document_id: str,
    actor_id: str | uuid.UUID,
    collaborator_id: str,
    operation: str,
) -> tuple[Document, Collaborator, Collaborator]:
    document = access.get_document(db, document_id)
    access.lock_document(db, document.id)
    manager = access.require_manager(db, document, actor_id)
    target = _get_target(db, document, collaborator_id)
    _forbid_self(manager, target, operation)
    return document, manager, target


def _write_non_primary(
    db: Session, target: Collaborator, operation: str, **values
) -> None:
    """Apply ``values`` only while ``target`` is still active and not primary."""
    result = db.execute(
        update(Collaborator)
        .where(
            Collaborator.id == target.id,
            Collaborator.is_active.is_(True),
            Collaborator.role.not_in(list(PRIMARY_ROLES.values())),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return
    db.refresh(target)
    logger.warning(
        "Collaborator %s changed before %s could be applied", target.id, operation
    )
    _forbid_primary(target, operation)
    raise Conflict(
        "The collaborator changed concurrently; retry",
        collaborator_id=str(target.id),
        operation=operation,
    )


def _add_one(
    db: Session,
    document: Document,
    manager: Collaborator,
    payload: CollaboratorCreate,
) -> tuple[Collaborator, bool]:
    person = access.get_person(db, payload.person_id)
    if person.id == manager.person_id:
        raise AuthForbidden(
            "You cannot change your own collaborator record", operation="add"
        )
    role, permission = payload.role, payload.permission
    _check_account(person, role)
    _check_observer(role, permission)

    existing = access.find_collaborator(
        db, document.id, person.id, include_inactive=True
    )
    if existing is not None and existing.is_active:
        raise Conflict(
            "Person is already a collaborator on this document",
            collaborator_id=str(existing.id),
            role=existing.role.value,
        )
    if role.is_primary:
        if permission != CollaboratorPermission.full_access:
            raise InvariantViolation(
                "A primary collaborator must hold full access",
                role=role.value,
                permission=permission.value,
            )
        current = access.active_primary(db, document.id, role.family)
        if current is not None:
            raise InvariantViolation(
                f"Document already has an active {role.value}; promote instead",
                role=role.value,
                current_collaborator_id=str(current.id),
            )
    _check_capacity(db, document, role.family)

    try:
        with db.begin_nested():
            if existing is None:
                collaborator = Collaborator(
                    document_id=document.id, person_id=person.id
                )
                db.add(collaborator)
            else:
                collaborator = existing
            collaborator.role = role
            collaborator.permission = permission
            collaborator.is_active = True
            collaborator.removal_reason = None
            collaborator.invitation_message = payload.message
            collaborator.added_by = manager.person_id
            collaborator.added_at = utcnow()
            collaborator.last_access_at = None
            db.flush()
    except IntegrityError:
        logger.warning(
            "Concurrent membership change on document %s while adding %s",
            document.id,
            person.id,
        )
        raise Conflict(
            "Collaborators changed concurrently; retry",
            document_id=str(document.id),
        )
    return collaborator, existing is not None


def _announce_added(
    document: Document,
    manager: Collaborator,
    collaborator: Collaborator,
    reactivated: bool,
) -> None:
    logger.info(
        "Added collaborator %s (%s/%s) to document %s",
        collaborator.person_id,
        collaborator.role.value,
        collaborator.permission.value,
        document.id,
    )
    publish_event(
        EventType.collaborator_added,
        entity_type="collaborator",
        entity_id=collaborator.id,
        actor_id=manager.person_id,
        document_id=document.id,
        payload={
            "person_id": str(collaborator.person_id),
            "role": collaborator.role.value,
            "permission": collaborator.permission.value,
            "reactivated": reactivated,
        },
    )


class Collaborators(ListResponseMixin):
    @staticmethod
    def add(
        db: Session,
        document_id: str,
        actor_id: str | uuid.UUID,
        payload: CollaboratorCreate,
    ) -> Collaborator:
        document = access.get_document(db, document_id)
        access.lock_document(db, document.id)
        manager = access.require_manager(db, document, actor_id)
        collaborator, reactivated = _add_one(db, document, manager, payload)
        access.touch(manager)
        db.commit()
        db.refresh(collaborator)
        _announce_added(document, manager, collaborator, reactivated)
        return collaborator

    @staticmethod
    def add_many(
        db: Session,
        document_id: str,
        actor_id: str | uuid.UUID,
        payloads: list[CollaboratorCreate],
    ) -> list[Collaborator]:
        """Add several collaborators in one transaction; any failure adds none."""
        document = access.get_document(db, document_id)
        access.lock_document(db, document.id)
        manager = access.require_manager(db, document, actor_id)
        added = []
        with db.begin_nested():
            for payload in payloads:
                added.append(_add_one(db, document, manager, payload))
        access.touch(manager)
        db.commit()
        for collaborator, reactivated in added:
            db.refresh(collaborator)
            _announce_added(document, manager, collaborator, reactivated)
        return [collaborator for collaborator, _ in added]

    @staticmethod
    def update_role(
        db: Session,
        document_id: str,
        actor_id: str | uuid.UUID,
        collaborator_id: str,
        role: CollaboratorRole,
    ) -> Collaborator:
        document, manager, target = _manage(
            db, document_id, actor_id, collaborator_id, "update_role"
        )
        _forbid_primary(target, "update_role")
        if role.is_primary:
            raise InvariantViolation(
                "Primary roles are assigned through promotion",
                role=role.value,
            )
        if role.family != target.family:
            raise ValidationFailed(
                "A collaborator cannot move between role families",
                current_family=target.family.value,
                requested_family=role.family.value,
            )
        _check_observer(role, target.permission)

        previous = target.role
        _write_non_primary(db, target, "update_role", role=role)
        access.touch(manager)
        db.commit()
        db.refresh(target)
        logger.info(
            "Changed role of collaborator %s from %s to %s",
            target.id,
            previous.value,
            role.value,
        )
        publish_event(
            EventType.collaborator_role_changed,
            entity_type="collaborator",
            entity_id=target.id,
            actor_id=manager.person_id,
            document_id=document.id,
            payload={"from": previous.value, "to": role.value},
        )
        return target

    @staticmethod
    def update_permission(
        db: Session,
        document_id: str,
        actor_id: str | uuid.UUID,
        collaborator_id: str,
        permission: CollaboratorPermission,
    ) -> Collaborator:
        document, manager, target = _manage(
            db, document_id, actor_id, collaborator_id, "update_permission"
        )
        _forbid_primary(target, "update_permission")
        _check_observer(target.role, permission)

        previous = target.permission
        _write_non_primary(db, target, "update_permission", permission=permission)
        access.touch(manager)
        db.commit()
        db.refresh(target)
        logger.info(
            "Changed permission of collaborator %s from %s to %s",
            target.id,
            previous.value,
            permission.value,
        )
        publish_event(
            EventType.collaborator_permission_changed,
            entity_type="collaborator",
            entity_id=target.id,
            actor_id=manager.person_id,
            document_id=document.id,
            payload={"from": previous.value, "to": permission.value},
        )
        return target

    @staticmethod
    def remove(
        db: Session,
        document_id: str,
        actor_id: str | uuid.UUID,
        collaborator_id: str,
        reason: str | None = None,
    ) -> Collaborator:
        document, manager, target = _manage(
            db, document_id, actor_id, collaborator_id, "remove"
        )
        _forbid_primary(target, "remove")

        _write_non_primary(
            db, target, "remove", is_active=False, removal_reason=reason
        )
        access.touch(manager)
        db.commit()
        db.refresh(target)
        logger.info(
            "Removed collaborator %s from document %s", target.id, document.id
        )
        publish_event(
            EventType.collaborator_removed,
            entity_type="collaborator",
            entity_id=target.id,
            actor_id=manager.person_id,
            document_id=document.id,
            payload={"person_id": str(target.person_id), "reason": reason},
        )
        return target

    @staticmethod
    def promote_to_primary(
        db: Session,
        document_id: str,
        actor_id: str | uuid.UUID,
        collaborator_id: str,
    ) -> Collaborator:
        document, manager, target = _manage(
            db, document_id, actor_id, collaborator_id, "promote_to_primary"
        )
        if target.is_primary:
            return target
        family = target.family
        if family not in PRIMARY_ROLES:
            raise ValidationFailed(
                f"Role '{target.role.value}' has no primary counterpart",
                role=target.role.value,
            )
        primary_role = PRIMARY_ROLES[family]

        demoted = None
        try:
            with db.begin_nested():
                current = access.active_primary(db, document.id, family)
                if current is not None:
                    current.role = DEMOTED_ROLES[current.role]
                    current.permission = CollaboratorPermission.read_write
                    # The partial unique index needs the old primary gone first.
                    db.flush()
                    demoted = current
                target.role = primary_role
                target.permission = CollaboratorPermission.full_access
                db.flush()
        except IntegrityError:
            logger.warning(
                "Primary %s swap on document %s lost a concurrent race",
                family.value,
                document.id,
            )
            raise Conflict(
                "The primary collaborator changed concurrently; retry",
                document_id=str(document.id),
                family=family.value,
            )

        access.touch(manager)
        db.commit()
        db.refresh(target)
        logger.info(
            "Promoted collaborator %s to %s on document %s (demoted %s)",
            target.id,
            primary_role.value,
            document.id,
            demoted.id if demoted else None,
        )
        publish_event(
            EventType.collaborator_promoted,
            entity_type="collaborator",
            entity_id=target.id,
            actor_id=manager.person_id,
            document_id=document.id,
            payload={
                "role": primary_role.value,
                "demoted_collaborator_id": str(demoted.id) if demoted else None,
            },
        )
        return target

    @staticmethod
    def get(
        db: Session,
        document_id: str,
        collaborator_id: str,
        actor_id: str | uuid.UUID,
    ) -> Collaborator:
        document = access.get_document(db, document_id)
        access.require_read(db, document, actor_id)
        collaborator = db.get(Collaborator, coerce_uuid(collaborator_id))
        if not collaborator or collaborator.document_id != document.id:
            raise NotFound(
                "Collaborator not found", collaborator_id=str(collaborator_id)
            )
        return collaborator

    @staticmethod
    def list(
        db: Session,
        document_id: str,
        actor_id: str | uuid.UUID,
        include_inactive: bool,
        limit: int,
        offset: int,
    ) -> list[Collaborator]:
        document = access.get_document(db, document_id)
        access.require_read(db, document, actor_id)
        stmt = select(Collaborator).where(Collaborator.document_id == document.id)
        if not include_inactive:
            stmt = stmt.where(Collaborator.is_active.is_(True))
        stmt = stmt.order_by(Collaborator.added_at.asc())
        return db.scalars(apply_pagination(stmt, limit, offset)).all()


collaborators = Collaborators()
