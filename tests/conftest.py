import os
import uuid
from unittest.mock import patch

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

import app.models  # noqa: E402,F401
from app.db import Base, engine, get_db  # noqa: E402
from app.models.person import AccountRole, Person, PersonStatus  # noqa: E402
from app.schemas.monograph import DocumentCreate  # noqa: E402
from app.services.auth_dependencies import issue_api_key  # noqa: E402
from app.services.documents import documents  # noqa: E402


# pysqlite does not emit BEGIN itself, which breaks SAVEPOINT handling.
@event.listens_for(engine, "connect")
def _sqlite_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


@pytest.fixture(scope="session", autouse=True)
def _schema():
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture()
def db_session():
    """Session whose commits only release savepoints of an outer transaction."""
    connection = engine.connect()
    transaction = connection.begin()
    session = Session(bind=connection, join_transaction_mode="create_savepoint")
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture(autouse=True)
def published_events():
    with patch("app.tasks.events.process_event.delay") as mock_delay:
        yield mock_delay


def make_person(
    db_session,
    account_role: AccountRole = AccountRole.student,
    status: PersonStatus = PersonStatus.approved,
    first_name: str = "Test",
) -> Person:
    person = Person(
        first_name=first_name,
        last_name=account_role.value.title(),
        email=f"{account_role.value}-{uuid.uuid4().hex[:8]}@example.edu",
        account_role=account_role,
        status=status,
    )
    db_session.add(person)
    db_session.commit()
    db_session.refresh(person)
    return person


@pytest.fixture()
def person_factory(db_session):
    def _make(**kwargs) -> Person:
        return make_person(db_session, **kwargs)

    return _make


@pytest.fixture()
def person(db_session):
    return make_person(db_session, first_name="Ana")


@pytest.fixture()
def student(person):
    return person


@pytest.fixture()
def second_student(db_session):
    return make_person(db_session, first_name="Bruno")


@pytest.fixture()
def advisor(db_session):
    return make_person(db_session, AccountRole.advisor, first_name="Clara")


@pytest.fixture()
def second_advisor(db_session):
    return make_person(db_session, AccountRole.advisor, first_name="Diego")


@pytest.fixture()
def admin(db_session):
    return make_person(db_session, AccountRole.admin, first_name="Elena")


@pytest.fixture()
def document(db_session, student, advisor):
    """Draft with a primary student and primary advisor and no versions."""
    return documents.create(
        db_session,
        student.id,
        DocumentCreate(title="Soil carbon dynamics", advisor_id=advisor.id),
    )


@pytest.fixture()
def client(db_session):
    from app.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def headers_for(db_session):
    def _headers(person: Person) -> dict:
        _, raw_key = issue_api_key(db_session, person.id, label="tests")
        return {"Authorization": f"Bearer {raw_key}"}

    return _headers


@pytest.fixture()
def auth_headers(headers_for, person):
    return headers_for(person)
