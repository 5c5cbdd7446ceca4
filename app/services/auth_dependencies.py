"""API-key authentication for the HTTP layer.

Keys are shown once at issue time; only their sha256 digest is stored.
"""

import hashlib
import logging
import secrets
import uuid
from datetime import datetime, timezone

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import settings
from app.db import get_db
from app.errors import AuthForbidden, Unauthorized
from app.models.person import AccountRole, ApiKey, Person, PersonStatus
from app.services.common import coerce_uuid, utcnow

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key() -> str:
    return f"{settings.api_key_prefix}{secrets.token_urlsafe(32)}"


def issue_api_key(
    db: Session,
    person_id: str | uuid.UUID,
    label: str | None = None,
    expires_at: datetime | None = None,
) -> tuple[ApiKey, str]:
    """Create a key for ``person_id`` and return it with the raw secret."""
    raw_key = generate_api_key()
    api_key = ApiKey(
        person_id=coerce_uuid(person_id),
        key_hash=hash_api_key(raw_key),
        label=label,
        expires_at=expires_at,
    )
    db.add(api_key)
    db.commit()
    db.refresh(api_key)
    logger.info("Issued API key %s for person %s", api_key.id, api_key.person_id)
    return api_key, raw_key


def _is_expired(api_key: ApiKey) -> bool:
    if api_key.expires_at is None:
        return False
    expires_at = api_key.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= utcnow()


def require_user_auth(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    x_api_key: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> Person:
    raw_key = credentials.credentials if credentials else x_api_key
    if not raw_key:
        raise Unauthorized()
    api_key = db.scalars(
        select(ApiKey).where(ApiKey.key_hash == hash_api_key(raw_key))
    ).first()
    if api_key is None or not api_key.is_active or _is_expired(api_key):
        logger.warning("Rejected unknown, revoked or expired API key")
        raise Unauthorized("Invalid or expired API key")
    person = db.get(Person, api_key.person_id)
    if person is None or not person.is_active:
        raise AuthForbidden("Account is inactive")
    if person.status != PersonStatus.approved:
        raise AuthForbidden(
            "Account is not approved", status=person.status.value
        )
    api_key.last_used_at = utcnow()
    db.commit()
    return person


def require_admin(person: Person = Depends(require_user_auth)) -> Person:
    if person.account_role != AccountRole.admin:
        raise AuthForbidden(
            "Administrator access required",
            account_role=person.account_role.value,
        )
    return person
