import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class DocumentStatus(enum.Enum):
    draft = "draft"
    submitted = "submitted"
    revision = "revision"
    approved = "approved"
    finalized = "finalized"


class TransitionAction(enum.Enum):
    submit = "submit"
    request_revision = "request_revision"
    approve = "approve"
    finalize = "finalize"


class RoleFamily(enum.Enum):
    student = "student"
    advisor = "advisor"
    other = "other"


class CollaboratorRole(enum.Enum):
    primary_student = "primary_student"
    secondary_student = "secondary_student"
    co_student = "co_student"
    primary_advisor = "primary_advisor"
    secondary_advisor = "secondary_advisor"
    co_advisor = "co_advisor"
    external_advisor = "external_advisor"
    examiner = "examiner"
    reviewer = "reviewer"
    observer = "observer"

    @property
    def family(self) -> RoleFamily:
        return _ROLE_FAMILIES[self]

    @property
    def is_primary(self) -> bool:
        return self in PRIMARY_ROLES.values()


_ROLE_FAMILIES = {
    CollaboratorRole.primary_student: RoleFamily.student,
    CollaboratorRole.secondary_student: RoleFamily.student,
    CollaboratorRole.co_student: RoleFamily.student,
    CollaboratorRole.primary_advisor: RoleFamily.advisor,
    CollaboratorRole.secondary_advisor: RoleFamily.advisor,
    CollaboratorRole.co_advisor: RoleFamily.advisor,
    CollaboratorRole.external_advisor: RoleFamily.advisor,
    CollaboratorRole.examiner: RoleFamily.other,
    CollaboratorRole.reviewer: RoleFamily.other,
    CollaboratorRole.observer: RoleFamily.other,
}

PRIMARY_ROLES = {
    RoleFamily.student: CollaboratorRole.primary_student,
    RoleFamily.advisor: CollaboratorRole.primary_advisor,
}

# Role a demoted primary falls back to: the next most senior in its family.
DEMOTED_ROLES = {
    CollaboratorRole.primary_student: CollaboratorRole.secondary_student,
    CollaboratorRole.primary_advisor: CollaboratorRole.secondary_advisor,
}


class CollaboratorPermission(enum.Enum):
    read_only = "read_only"
    read_comment = "read_comment"
    read_write = "read_write"
    full_access = "full_access"

    @property
    def level(self) -> int:
        return _PERMISSION_LEVELS[self]

    def __ge__(self, other):
        if not isinstance(other, CollaboratorPermission):
            return NotImplemented
        return self.level >= other.level

    def __gt__(self, other):
        if not isinstance(other, CollaboratorPermission):
            return NotImplemented
        return self.level > other.level

    def __le__(self, other):
        if not isinstance(other, CollaboratorPermission):
            return NotImplemented
        return self.level <= other.level

    def __lt__(self, other):
        if not isinstance(other, CollaboratorPermission):
            return NotImplemented
        return self.level < other.level


_PERMISSION_LEVELS = {
    CollaboratorPermission.read_only: 0,
    CollaboratorPermission.read_comment: 1,
    CollaboratorPermission.read_write: 2,
    CollaboratorPermission.full_access: 3,
}


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        Index("ix_documents_status", "status"),
        Index("ix_documents_created_by", "created_by"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus), nullable=False, default=DocumentStatus.draft
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text)

    max_students: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    max_advisors: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    created_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("people.id"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    versions = relationship(
        "Version",
        back_populates="document",
        order_by="Version.version_number.desc()",
    )
    collaborators = relationship("Collaborator", back_populates="document")
    status_changes = relationship(
        "DocumentStatusChange",
        back_populates="document",
        order_by="DocumentStatusChange.created_at",
    )
    creator = relationship("Person", foreign_keys=[created_by])


# ---------------------------------------------------------------------------
# Versions (immutable, no updated_at)
# ---------------------------------------------------------------------------


class Version(Base):
    __tablename__ = "versions"
    __table_args__ = (
        UniqueConstraint(
            "document_id",
            "version_number",
            name="uq_versions_document_version_number",
        ),
        CheckConstraint("version_number > 0", name="ck_versions_positive_number"),
        Index("ix_versions_document_id", "document_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    commit_message: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("people.id"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    # No updated_at: immutable record

    document = relationship("Document", back_populates="versions")
    creator = relationship("Person", foreign_keys=[created_by])
    comments = relationship(
        "Comment", back_populates="version", order_by="Comment.created_at.desc()"
    )


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class Collaborator(Base):
    __tablename__ = "collaborators"
    __table_args__ = (
        UniqueConstraint(
            "document_id", "person_id", name="uq_collaborators_document_person"
        ),
        Index("ix_collaborators_document_id", "document_id"),
        Index("ix_collaborators_person_id", "person_id"),
        # At most one active primary student and one active primary advisor.
        Index(
            "uq_collaborators_active_primary",
            "document_id",
            "role",
            unique=True,
            postgresql_where=text(
                "is_active AND role IN ('primary_student', 'primary_advisor')"
            ),
            sqlite_where=text(
                "is_active AND role IN ('primary_student', 'primary_advisor')"
            ),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    person_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("people.id"), nullable=False
    )
    role: Mapped[CollaboratorRole] = mapped_column(
        Enum(CollaboratorRole), nullable=False
    )
    permission: Mapped[CollaboratorPermission] = mapped_column(
        Enum(CollaboratorPermission), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    invitation_message: Mapped[str | None] = mapped_column(Text)
    removal_reason: Mapped[str | None] = mapped_column(Text)
    added_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("people.id")
    )
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    last_access_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    document = relationship("Document", back_populates="collaborators")
    person = relationship("Person", foreign_keys=[person_id])
    adder = relationship("Person", foreign_keys=[added_by])

    # Capabilities are derived on read, never stored.

    @property
    def family(self) -> RoleFamily:
        return self.role.family

    @property
    def is_primary(self) -> bool:
        return self.role.is_primary

    @property
    def can_edit(self) -> bool:
        return self.permission >= CollaboratorPermission.read_write

    @property
    def can_comment(self) -> bool:
        return self.permission >= CollaboratorPermission.read_comment

    @property
    def can_manage(self) -> bool:
        return self.permission == CollaboratorPermission.full_access


# ---------------------------------------------------------------------------
# Comments (anchored to a version, never to the document)
# ---------------------------------------------------------------------------


class Comment(Base):
    __tablename__ = "comments"
    __table_args__ = (
        Index("ix_comments_version_id", "version_id"),
        CheckConstraint(
            "start_position IS NULL OR end_position IS NULL "
            "OR start_position <= end_position",
            name="ck_comments_position_range",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    version_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("versions.id"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    start_position: Mapped[int | None] = mapped_column(Integer)
    end_position: Mapped[int | None] = mapped_column(Integer)
    resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolved_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("people.id")
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("people.id"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    version = relationship("Version", back_populates="comments")
    author = relationship("Person", foreign_keys=[created_by])
    resolver = relationship("Person", foreign_keys=[resolved_by])


# ---------------------------------------------------------------------------
# Status history (append-only)
# ---------------------------------------------------------------------------


class DocumentStatusChange(Base):
    __tablename__ = "document_status_changes"
    __table_args__ = (Index("ix_document_status_changes_document_id", "document_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    from_status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus), nullable=False
    )
    to_status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus), nullable=False
    )
    actor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("people.id"), nullable=False
    )
    reason: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    document = relationship("Document", back_populates="status_changes")
    actor = relationship("Person", foreign_keys=[actor_id])
