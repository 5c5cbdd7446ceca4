import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.errors import AuthForbidden, Conflict, NotFound, ValidationFailed
from app.models.person import AccountRole, Person, PersonStatus
from app.models.registration import RegistrationRequest, RegistrationStatus
from app.schemas.registration import RegistrationRequestCreate
from app.services import access
from app.services.common import apply_pagination, coerce_uuid, require_text, utcnow
from app.services.event import EventType, publish_event
from app.services.response import ListResponseMixin

logger = logging.getLogger(__name__)


def _require_admin(db: Session, admin_id: str | uuid.UUID) -> Person:
    admin = access.get_person(db, admin_id)
    if not access.is_admin(admin):
        raise AuthForbidden(
            "Only administrators can resolve registration requests",
            account_role=admin.account_role.value,
        )
    return admin


def _get_request(db: Session, request_id: str) -> RegistrationRequest:
    request = db.get(RegistrationRequest, coerce_uuid(request_id))
    if not request:
        raise NotFound("Registration request not found", request_id=str(request_id))
    return request


def _resolve(
    db: Session,
    request: RegistrationRequest,
    admin: Person,
    outcome: RegistrationStatus,
    person_status: PersonStatus,
    **values,
) -> RegistrationRequest:
    result = db.execute(
        update(RegistrationRequest)
        .where(
            RegistrationRequest.id == request.id,
            RegistrationRequest.status == RegistrationStatus.pending,
        )
        .values(status=outcome, resolved_by=admin.id, resolved_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.refresh(request)
        raise Conflict(
            "Registration request has already been resolved",
            request_id=str(request.id),
            status=request.status.value,
        )
    db.execute(
        update(Person)
        .where(Person.id == request.person_id)
        .values(status=person_status, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(request)
    return request


class Registrations(ListResponseMixin):
    @staticmethod
    def create(db: Session, payload: RegistrationRequestCreate) -> RegistrationRequest:
        if payload.account_role == AccountRole.admin:
            raise ValidationFailed(
                "Administrator accounts cannot be requested",
                account_role=payload.account_role.value,
            )
        email = require_text(payload.email, "email").lower()
        if db.scalars(select(Person).where(Person.email == email)).first():
            raise Conflict("An account with this email already exists", email=email)

        person = Person(
            first_name=require_text(payload.first_name, "first_name"),
            last_name=require_text(payload.last_name, "last_name"),
            email=email,
            account_role=payload.account_role,
            status=PersonStatus.pending,
        )
        db.add(person)
        db.flush()
        request = RegistrationRequest(person_id=person.id, message=payload.message)
        db.add(request)
        db.commit()
        db.refresh(request)
        logger.info("Created registration request %s for %s", request.id, email)
        return request

    @staticmethod
    def approve(
        db: Session,
        request_id: str,
        admin_id: str | uuid.UUID,
        notes: str | None = None,
    ) -> RegistrationRequest:
        admin = _require_admin(db, admin_id)
        request = _get_request(db, request_id)
        request = _resolve(
            db,
            request,
            admin,
            RegistrationStatus.approved,
            PersonStatus.approved,
            admin_notes=notes,
        )
        logger.info("Approved registration request %s", request.id)
        publish_event(
            EventType.registration_approved,
            entity_type="registration_request",
            entity_id=request.id,
            actor_id=admin.id,
            payload={"person_id": str(request.person_id)},
        )
        return request

    @staticmethod
    def reject(
        db: Session,
        request_id: str,
        admin_id: str | uuid.UUID,
        reason: str | None,
    ) -> RegistrationRequest:
        admin = _require_admin(db, admin_id)
        request = _get_request(db, request_id)
        reason = require_text(reason, "reason")
        request = _resolve(
            db,
            request,
            admin,
            RegistrationStatus.rejected,
            PersonStatus.rejected,
            rejection_reason=reason,
        )
        logger.info("Rejected registration request %s", request.id)
        publish_event(
            EventType.registration_rejected,
            entity_type="registration_request",
            entity_id=request.id,
            actor_id=admin.id,
            payload={"person_id": str(request.person_id), "reason": reason},
        )
        return request

    @staticmethod
    def get(
        db: Session, request_id: str, admin_id: str | uuid.UUID
    ) -> RegistrationRequest:
        _require_admin(db, admin_id)
        return _get_request(db, request_id)

    @staticmethod
    def list(
        db: Session,
        admin_id: str | uuid.UUID,
        status: str | None,
        limit: int,
        offset: int,
    ) -> list[RegistrationRequest]:
        _require_admin(db, admin_id)
        stmt = select(RegistrationRequest)
        if status is not None:
            try:
                stmt = stmt.where(
                    RegistrationRequest.status == RegistrationStatus(status)
                )
            except ValueError:
                raise ValidationFailed(
                    f"Invalid status: {status}",
                    allowed=[s.value for s in RegistrationStatus],
                )
        stmt = stmt.order_by(RegistrationRequest.created_at.asc())
        return db.scalars(apply_pagination(stmt, limit, offset)).all()


registrations = Registrations()
