from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.monograph import CollaboratorPermission, CollaboratorRole


class CollaboratorCreate(BaseModel):
    person_id: UUID
    role: CollaboratorRole
    permission: CollaboratorPermission
    message: str | None = Field(default=None, max_length=2000)


class CollaboratorBatchCreate(BaseModel):
    collaborators: list[CollaboratorCreate] = Field(min_length=1, max_length=50)


class CollaboratorRoleUpdate(BaseModel):
    role: CollaboratorRole


class CollaboratorPermissionUpdate(BaseModel):
    permission: CollaboratorPermission


class CollaboratorRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    person_id: UUID
    role: CollaboratorRole
    permission: CollaboratorPermission
    is_active: bool
    invitation_message: str | None = None
    removal_reason: str | None = None
    added_by: UUID | None = None
    added_at: datetime
    last_access_at: datetime | None = None

    # Derived on read from role/permission
    is_primary: bool
    can_edit: bool
    can_comment: bool
    can_manage: bool
