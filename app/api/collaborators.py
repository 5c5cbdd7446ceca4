from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_user_auth
from app.models.person import Person
from app.schemas.collaborator import (
    CollaboratorBatchCreate,
    CollaboratorCreate,
    CollaboratorPermissionUpdate,
    CollaboratorRead,
    CollaboratorRoleUpdate,
)
from app.schemas.common import ListResponse
from app.services import collaborators as collaborator_service

router = APIRouter(
    prefix="/documents/{document_id}/collaborators", tags=["collaborators"]
)


@router.post("", response_model=CollaboratorRead, status_code=status.HTTP_201_CREATED)
def add_collaborator(
    document_id: str,
    payload: CollaboratorCreate,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return collaborator_service.collaborators.add(db, document_id, actor.id, payload)


@router.post(
    "/batch",
    response_model=list[CollaboratorRead],
    status_code=status.HTTP_201_CREATED,
)
def add_collaborators(
    document_id: str,
    payload: CollaboratorBatchCreate,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return collaborator_service.collaborators.add_many(
        db, document_id, actor.id, payload.collaborators
    )


@router.get("", response_model=ListResponse[CollaboratorRead])
def list_collaborators(
    document_id: str,
    include_inactive: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return collaborator_service.collaborators.list_response(
        db, document_id, actor.id, include_inactive, limit, offset
    )


@router.get("/{collaborator_id}", response_model=CollaboratorRead)
def get_collaborator(
    document_id: str,
    collaborator_id: str,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return collaborator_service.collaborators.get(
        db, document_id, collaborator_id, actor.id
    )


@router.patch("/{collaborator_id}/role", response_model=CollaboratorRead)
def update_collaborator_role(
    document_id: str,
    collaborator_id: str,
    payload: CollaboratorRoleUpdate,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return collaborator_service.collaborators.update_role(
        db, document_id, actor.id, collaborator_id, payload.role
    )


@router.patch("/{collaborator_id}/permission", response_model=CollaboratorRead)
def update_collaborator_permission(
    document_id: str,
    collaborator_id: str,
    payload: CollaboratorPermissionUpdate,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return collaborator_service.collaborators.update_permission(
        db, document_id, actor.id, collaborator_id, payload.permission
    )


@router.post("/{collaborator_id}/promote", response_model=CollaboratorRead)
def promote_collaborator(
    document_id: str,
    collaborator_id: str,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return collaborator_service.collaborators.promote_to_primary(
        db, document_id, actor.id, collaborator_id
    )


@router.delete("/{collaborator_id}", response_model=CollaboratorRead)
def remove_collaborator(
    document_id: str,
    collaborator_id: str,
    reason: str | None = Query(default=None, max_length=2000),
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return collaborator_service.collaborators.remove(
        db, document_id, actor.id, collaborator_id, reason
    )
