from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_admin
from app.models.person import Person
from app.schemas.common import ListResponse
from app.schemas.registration import (
    RegistrationApproval,
    RegistrationRejection,
    RegistrationRequestCreate,
    RegistrationRequestRead,
)
from app.services import registrations as registration_service

router = APIRouter(prefix="/registrations", tags=["registrations"])


@router.post(
    "",
    response_model=RegistrationRequestRead,
    status_code=status.HTTP_201_CREATED,
)
def create_registration(
    payload: RegistrationRequestCreate, db: Session = Depends(get_db)
):
    return registration_service.registrations.create(db, payload)


@router.get("", response_model=ListResponse[RegistrationRequestRead])
def list_registrations(
    status_filter: str | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    admin: Person = Depends(require_admin),
):
    return registration_service.registrations.list_response(
        db, admin.id, status_filter, limit, offset
    )


@router.get("/{request_id}", response_model=RegistrationRequestRead)
def get_registration(
    request_id: str,
    db: Session = Depends(get_db),
    admin: Person = Depends(require_admin),
):
    return registration_service.registrations.get(db, request_id, admin.id)


@router.post("/{request_id}/approve", response_model=RegistrationRequestRead)
def approve_registration(
    request_id: str,
    payload: RegistrationApproval,
    db: Session = Depends(get_db),
    admin: Person = Depends(require_admin),
):
    return registration_service.registrations.approve(
        db, request_id, admin.id, payload.notes
    )


@router.post("/{request_id}/reject", response_model=RegistrationRequestRead)
def reject_registration(
    request_id: str,
    payload: RegistrationRejection,
    db: Session = Depends(get_db),
    admin: Person = Depends(require_admin),
):
    return registration_service.registrations.reject(
        db, request_id, admin.id, payload.reason
    )
