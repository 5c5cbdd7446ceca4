from datetime import datetime, timedelta, timezone

import pytest

from app.errors import AuthForbidden, Unauthorized
from app.models.person import AccountRole, PersonStatus
from app.services.auth_dependencies import (
    hash_api_key,
    issue_api_key,
    require_admin,
    require_user_auth,
)


class _Credentials:
    def __init__(self, token):
        self.credentials = token


class TestApiKeys:
    def test_only_digest_is_stored(self, db_session, person):
        api_key, raw_key = issue_api_key(db_session, person.id, label="cli")
        assert raw_key.startswith("mgk_")
        assert api_key.key_hash == hash_api_key(raw_key)
        assert raw_key not in api_key.key_hash

    def test_bearer_resolves_person(self, db_session, person):
        _, raw_key = issue_api_key(db_session, person.id)
        resolved = require_user_auth(_Credentials(raw_key), None, db_session)
        assert resolved.id == person.id

    def test_header_key_resolves_person(self, db_session, person):
        api_key, raw_key = issue_api_key(db_session, person.id)
        resolved = require_user_auth(None, raw_key, db_session)
        assert resolved.id == person.id
        db_session.refresh(api_key)
        assert api_key.last_used_at is not None

    def test_missing_key(self, db_session):
        with pytest.raises(Unauthorized) as exc:
            require_user_auth(None, None, db_session)
        assert exc.value.headers == {"WWW-Authenticate": "Bearer"}

    def test_unknown_key(self, db_session):
        with pytest.raises(Unauthorized):
            require_user_auth(None, "mgk_nope", db_session)

    def test_expired_key(self, db_session, person):
        _, raw_key = issue_api_key(
            db_session,
            person.id,
            expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
        )
        with pytest.raises(Unauthorized):
            require_user_auth(None, raw_key, db_session)

    def test_revoked_key(self, db_session, person):
        api_key, raw_key = issue_api_key(db_session, person.id)
        api_key.is_active = False
        db_session.commit()
        with pytest.raises(Unauthorized):
            require_user_auth(None, raw_key, db_session)

    def test_pending_person_forbidden(self, db_session, person_factory):
        pending = person_factory(status=PersonStatus.pending)
        _, raw_key = issue_api_key(db_session, pending.id)
        with pytest.raises(AuthForbidden):
            require_user_auth(None, raw_key, db_session)


class TestRequireAdmin:
    def test_admin_passes(self, admin):
        assert require_admin(admin) is admin

    def test_student_rejected(self, person):
        assert person.account_role == AccountRole.student
        with pytest.raises(AuthForbidden):
            require_admin(person)
