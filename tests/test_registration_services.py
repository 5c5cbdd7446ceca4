import pytest

from app.errors import AuthForbidden, Conflict, NotFound, ValidationFailed
from app.models.person import AccountRole, Person, PersonStatus
from app.models.registration import RegistrationStatus
from app.schemas.registration import RegistrationRequestCreate
from app.services.registrations import Registrations, registrations


def _request(db_session, email="new.student@example.edu", **overrides):
    data = dict(first_name="Nia", last_name="Okafor", email=email)
    data.update(overrides)
    return registrations.create(db_session, RegistrationRequestCreate(**data))


class TestCreateRegistration:
    def test_creates_pending_person(self, db_session):
        request = _request(db_session, message="Please let me in")
        person = db_session.get(Person, request.person_id)
        assert request.status == RegistrationStatus.pending
        assert request.message == "Please let me in"
        assert person.status == PersonStatus.pending
        assert person.account_role == AccountRole.student

    def test_email_normalised_and_unique(self, db_session):
        _request(db_session, email="Case@Example.edu")
        with pytest.raises(Conflict):
            _request(db_session, email="case@example.edu")

    def test_admin_role_not_requestable(self, db_session):
        with pytest.raises(ValidationFailed):
            _request(db_session, account_role=AccountRole.admin)


class TestResolveRegistration:
    def test_approve(self, db_session, admin, published_events):
        request = _request(db_session)
        published_events.reset_mock()
        approved = registrations.approve(db_session, request.id, admin.id, "Welcome")
        assert approved.status == RegistrationStatus.approved
        assert approved.admin_notes == "Welcome"
        assert approved.resolved_by == admin.id
        assert approved.resolved_at is not None
        assert db_session.get(Person, request.person_id).status == PersonStatus.approved
        assert (
            published_events.call_args.kwargs["event_type"] == "registration.approved"
        )

    def test_reject_requires_reason(self, db_session, admin):
        request = _request(db_session)
        with pytest.raises(ValidationFailed):
            registrations.reject(db_session, request.id, admin.id, "  ")
        rejected = registrations.reject(db_session, request.id, admin.id, "Unknown")
        assert rejected.status == RegistrationStatus.rejected
        assert rejected.rejection_reason == "Unknown"
        assert db_session.get(Person, request.person_id).status == PersonStatus.rejected

    def test_resolving_twice_conflicts(self, db_session, admin):
        request = _request(db_session)
        registrations.approve(db_session, request.id, admin.id)
        with pytest.raises(Conflict) as exc:
            registrations.reject(db_session, request.id, admin.id, "Changed my mind")
        assert exc.value.details["status"] == "approved"
        with pytest.raises(Conflict):
            registrations.approve(db_session, request.id, admin.id)

    def test_non_admin_forbidden(self, db_session, advisor):
        request = _request(db_session)
        with pytest.raises(AuthForbidden):
            registrations.approve(db_session, request.id, advisor.id)

    def test_missing_request(self, db_session, admin):
        with pytest.raises(NotFound):
            registrations.approve(
                db_session, "00000000-0000-0000-0000-000000000000", admin.id
            )

    def test_list_pending(self, db_session, admin):
        first = _request(db_session, email="a@example.edu")
        _request(db_session, email="b@example.edu")
        registrations.approve(db_session, first.id, admin.id)
        pending = Registrations.list(db_session, admin.id, "pending", 50, 0)
        assert len(pending) == 1
        assert pending[0].status == RegistrationStatus.pending
