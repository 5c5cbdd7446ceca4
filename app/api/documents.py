from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_user_auth
from app.models.person import Person
from app.schemas.common import ListResponse
from app.schemas.monograph import (
    DocumentCreate,
    DocumentDetail,
    DocumentRead,
    DocumentUpdate,
    RevisionRequest,
    StatusChangeRead,
    TransitionRequest,
    VersionCreate,
    VersionRead,
)
from app.services import documents as document_service
from app.services import lifecycle as lifecycle_service
from app.services import versions as version_service

router = APIRouter(prefix="/documents", tags=["documents"])


# ------------------------------------------------------------------
# Document CRUD
# ------------------------------------------------------------------


@router.post("", response_model=DocumentRead, status_code=status.HTTP_201_CREATED)
def create_document(
    payload: DocumentCreate,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return document_service.documents.create(db, actor.id, payload)


@router.get("", response_model=ListResponse[DocumentRead])
def list_documents(
    status_filter: str | None = Query(default=None, alias="status"),
    search: str | None = None,
    order_by: str = Query(default="updated_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return document_service.documents.list_response(
        db, actor.id, status_filter, search, order_by, order_dir, limit, offset
    )


@router.get("/{document_id}", response_model=DocumentRead)
def get_document(
    document_id: str,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return document_service.documents.get(db, document_id, actor.id)


@router.get("/{document_id}/detail", response_model=DocumentDetail)
def get_document_detail(
    document_id: str,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return document_service.documents.detail(db, document_id, actor.id)


@router.patch("/{document_id}", response_model=DocumentRead)
def update_document(
    document_id: str,
    payload: DocumentUpdate,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return document_service.documents.update(db, document_id, actor.id, payload)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(
    document_id: str,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    document_service.documents.delete(db, document_id, actor.id)


# ------------------------------------------------------------------
# Lifecycle actions
# ------------------------------------------------------------------


@router.post("/{document_id}/transitions", response_model=DocumentRead)
def transition_document(
    document_id: str,
    payload: TransitionRequest,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return lifecycle_service.lifecycle.transition(
        db, document_id, actor.id, payload.action, payload.reason
    )


@router.post("/{document_id}/submit", response_model=DocumentRead)
def submit_document(
    document_id: str,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return lifecycle_service.lifecycle.submit(db, document_id, actor.id)


@router.post("/{document_id}/request-revision", response_model=DocumentRead)
def request_revision(
    document_id: str,
    payload: RevisionRequest,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return lifecycle_service.lifecycle.request_revision(
        db, document_id, actor.id, payload.reason
    )


@router.post("/{document_id}/approve", response_model=DocumentRead)
def approve_document(
    document_id: str,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return lifecycle_service.lifecycle.approve(db, document_id, actor.id)


@router.post("/{document_id}/finalize", response_model=DocumentRead)
def finalize_document(
    document_id: str,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return lifecycle_service.lifecycle.finalize(db, document_id, actor.id)


@router.get(
    "/{document_id}/history", response_model=ListResponse[StatusChangeRead]
)
def list_status_history(
    document_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return lifecycle_service.lifecycle.list_response(
        db, document_id, actor.id, limit, offset
    )


# ------------------------------------------------------------------
# Version sub-endpoints
# ------------------------------------------------------------------


@router.post(
    "/{document_id}/versions",
    response_model=VersionRead,
    status_code=status.HTTP_201_CREATED,
)
def create_version(
    document_id: str,
    payload: VersionCreate,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return version_service.versions.create(db, document_id, actor.id, payload)


@router.get("/{document_id}/versions", response_model=ListResponse[VersionRead])
def list_versions(
    document_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return version_service.versions.list_response(
        db, document_id, actor.id, limit, offset
    )


@router.get("/{document_id}/versions/latest", response_model=VersionRead)
def get_latest_version(
    document_id: str,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return version_service.versions.latest(db, document_id, actor.id)
