from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_user_auth
from app.models.person import Person
from app.schemas.comment import CommentCreate, CommentRead
from app.schemas.common import ListResponse
from app.schemas.monograph import VersionRead
from app.services import comments as comment_service
from app.services import versions as version_service

router = APIRouter(tags=["comments"])


@router.get("/versions/{version_id}", response_model=VersionRead)
def get_version(
    version_id: str,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return version_service.versions.get(db, version_id, actor.id)


@router.post(
    "/versions/{version_id}/comments",
    response_model=CommentRead,
    status_code=status.HTTP_201_CREATED,
)
def add_comment(
    version_id: str,
    payload: CommentCreate,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return comment_service.comments.add(db, version_id, actor.id, payload)


@router.get(
    "/versions/{version_id}/comments", response_model=ListResponse[CommentRead]
)
def list_comments(
    version_id: str,
    resolved: bool | None = None,
    created_by: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return comment_service.comments.list_response(
        db, version_id, actor.id, resolved, created_by, limit, offset
    )


@router.get("/comments/{comment_id}", response_model=CommentRead)
def get_comment(
    comment_id: str,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return comment_service.comments.get(db, comment_id, actor.id)


@router.post("/comments/{comment_id}/resolve", response_model=CommentRead)
def resolve_comment(
    comment_id: str,
    db: Session = Depends(get_db),
    actor: Person = Depends(require_user_auth),
):
    return comment_service.comments.resolve(db, comment_id, actor.id)
