"""monograph core schema

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "3f1c2a9d7b10"
down_revision = None
branch_labels = None
depends_on = None

_ENUMS = {
    "accountrole": ("student", "advisor", "admin"),
    "personstatus": ("pending", "approved", "rejected"),
    "registrationstatus": ("pending", "approved", "rejected"),
    "documentstatus": ("draft", "submitted", "revision", "approved", "finalized"),
    "collaboratorrole": (
        "primary_student",
        "secondary_student",
        "co_student",
        "primary_advisor",
        "secondary_advisor",
        "co_advisor",
        "external_advisor",
        "examiner",
        "reviewer",
        "observer",
    ),
    "collaboratorpermission": (
        "read_only",
        "read_comment",
        "read_write",
        "full_access",
    ),
}

_PRIMARY_WHERE = "is_active AND role IN ('primary_student', 'primary_advisor')"


def _enum(name: str):
    return postgresql.ENUM(*_ENUMS[name], name=name, create_type=False).with_variant(
        sa.Enum(*_ENUMS[name], name=name), "sqlite"
    )


def upgrade() -> None:
    # --- Enums ---
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name, values in _ENUMS.items():
            postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # --- People ---
    op.create_table(
        "people",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("first_name", sa.String(120), nullable=False),
        sa.Column("last_name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("account_role", _enum("accountrole"), nullable=True),
        sa.Column("status", _enum("personstatus"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_people_email"),
    )

    op.create_table(
        "api_keys",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("person_id", sa.UUID(), nullable=False),
        sa.Column("key_hash", sa.String(64), nullable=False),
        sa.Column("label", sa.String(120), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["person_id"], ["people.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("key_hash", name="uq_api_keys_key_hash"),
    )
    op.create_index("ix_api_keys_person_id", "api_keys", ["person_id"])

    # --- Registration requests ---
    op.create_table(
        "registration_requests",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("person_id", sa.UUID(), nullable=False),
        sa.Column("status", _enum("registrationstatus"), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("resolved_by", sa.UUID(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["person_id"], ["people.id"]),
        sa.ForeignKeyConstraint(["resolved_by"], ["people.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_registration_requests_status", "registration_requests", ["status"]
    )
    op.create_index(
        "ix_registration_requests_person_id",
        "registration_requests",
        ["person_id"],
    )

    # --- Documents ---
    op.create_table(
        "documents",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", _enum("documentstatus"), nullable=False),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("max_students", sa.Integer(), nullable=False),
        sa.Column("max_advisors", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.UUID(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["created_by"], ["people.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_documents_status", "documents", ["status"])
    op.create_index("ix_documents_created_by", "documents", ["created_by"])

    # --- Versions (append-only) ---
    op.create_table(
        "versions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("commit_message", sa.Text(), nullable=True),
        sa.Column("created_by", sa.UUID(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["created_by"], ["people.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "document_id",
            "version_number",
            name="uq_versions_document_version_number",
        ),
        sa.CheckConstraint("version_number > 0", name="ck_versions_positive_number"),
    )
    op.create_index("ix_versions_document_id", "versions", ["document_id"])

    # --- Collaborators ---
    op.create_table(
        "collaborators",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("person_id", sa.UUID(), nullable=False),
        sa.Column("role", _enum("collaboratorrole"), nullable=False),
        sa.Column("permission", _enum("collaboratorpermission"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("invitation_message", sa.Text(), nullable=True),
        sa.Column("removal_reason", sa.Text(), nullable=True),
        sa.Column("added_by", sa.UUID(), nullable=True),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_access_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["person_id"], ["people.id"]),
        sa.ForeignKeyConstraint(["added_by"], ["people.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "document_id", "person_id", name="uq_collaborators_document_person"
        ),
    )
    op.create_index(
        "ix_collaborators_document_id", "collaborators", ["document_id"]
    )
    op.create_index("ix_collaborators_person_id", "collaborators", ["person_id"])
    op.create_index(
        "uq_collaborators_active_primary",
        "collaborators",
        ["document_id", "role"],
        unique=True,
        postgresql_where=sa.text(_PRIMARY_WHERE),
        sqlite_where=sa.text(_PRIMARY_WHERE),
    )

    # --- Comments ---
    op.create_table(
        "comments",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("version_id", sa.UUID(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("start_position", sa.Integer(), nullable=True),
        sa.Column("end_position", sa.Integer(), nullable=True),
        sa.Column("resolved", sa.Boolean(), nullable=False),
        sa.Column("resolved_by", sa.UUID(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.UUID(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["version_id"], ["versions.id"]),
        sa.ForeignKeyConstraint(["resolved_by"], ["people.id"]),
        sa.ForeignKeyConstraint(["created_by"], ["people.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "start_position IS NULL OR end_position IS NULL "
            "OR start_position <= end_position",
            name="ck_comments_position_range",
        ),
    )
    op.create_index("ix_comments_version_id", "comments", ["version_id"])

    # --- Status history ---
    op.create_table(
        "document_status_changes",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("from_status", _enum("documentstatus"), nullable=False),
        sa.Column("to_status", _enum("documentstatus"), nullable=False),
        sa.Column("actor_id", sa.UUID(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["actor_id"], ["people.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_document_status_changes_document_id",
        "document_status_changes",
        ["document_id"],
    )

    # --- Audit trail ---
    op.create_table(
        "audit_events",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("event_type", sa.String(80), nullable=False),
        sa.Column("entity_type", sa.String(80), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("actor_id", sa.UUID(), nullable=True),
        sa.Column("document_id", sa.UUID(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_events_document_id", "audit_events", ["document_id"])
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("document_status_changes")
    op.drop_table("comments")
    op.drop_index("uq_collaborators_active_primary", table_name="collaborators")
    op.drop_table("collaborators")
    op.drop_table("versions")
    op.drop_table("documents")
    op.drop_table("registration_requests")
    op.drop_table("api_keys")
    op.drop_table("people")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name in reversed(list(_ENUMS)):
            postgresql.ENUM(name=name).drop(bind, checkfirst=True)
