from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.monograph import DocumentStatus, TransitionAction


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class DocumentBase(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: str | None = None


class DocumentCreate(DocumentBase):
    advisor_id: UUID | None = None
    initial_content: str | None = None
    initial_commit_message: str | None = Field(default=None, max_length=2000)
    max_students: int | None = Field(default=None, ge=1, le=50)
    max_advisors: int | None = Field(default=None, ge=1, le=50)


class DocumentUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=500)
    description: str | None = None


class DocumentRead(DocumentBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: DocumentStatus
    rejection_reason: str | None = None
    max_students: int
    max_advisors: int
    created_by: UUID
    is_active: bool
    created_at: datetime
    updated_at: datetime
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None


class DocumentCapabilities(BaseModel):
    can_read: bool = False
    can_edit: bool = False
    can_comment: bool = False
    can_manage: bool = False
    can_submit: bool = False
    can_review: bool = False
    can_finalize: bool = False
    can_delete: bool = False


class DocumentDetail(BaseModel):
    document: DocumentRead
    capabilities: DocumentCapabilities
    version_count: int
    latest_version_number: int | None = None
    active_student_count: int
    active_advisor_count: int


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TransitionRequest(BaseModel):
    action: TransitionAction
    reason: str | None = Field(default=None, max_length=5000)


class RevisionRequest(BaseModel):
    reason: str = Field(max_length=5000)


class StatusChangeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    from_status: DocumentStatus
    to_status: DocumentStatus
    actor_id: UUID
    reason: str | None = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Version (immutable, create + read only)
# ---------------------------------------------------------------------------


class VersionCreate(BaseModel):
    content: str
    commit_message: str | None = Field(default=None, max_length=2000)


class VersionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    version_number: int
    content: str
    commit_message: str | None = None
    created_by: UUID
    created_at: datetime
