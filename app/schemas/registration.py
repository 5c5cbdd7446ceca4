from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.person import AccountRole
from app.models.registration import RegistrationStatus


class RegistrationRequestCreate(BaseModel):
    first_name: str = Field(min_length=1, max_length=120)
    last_name: str = Field(min_length=1, max_length=120)
    email: str = Field(min_length=3, max_length=255)
    account_role: AccountRole = AccountRole.student
    message: str | None = Field(default=None, max_length=2000)


class RegistrationApproval(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


class RegistrationRejection(BaseModel):
    reason: str = Field(max_length=2000)


class RegistrationRequestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    person_id: UUID
    status: RegistrationStatus
    message: str | None = None
    admin_notes: str | None = None
    rejection_reason: str | None = None
    resolved_by: UUID | None = None
    resolved_at: datetime | None = None
    created_at: datetime
