from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CommentCreate(BaseModel):
    content: str = Field(max_length=10000)
    start_position: int | None = Field(default=None, ge=0)
    end_position: int | None = Field(default=None, ge=0)


class CommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    version_id: UUID
    content: str
    start_position: int | None = None
    end_position: int | None = None
    resolved: bool
    resolved_by: UUID | None = None
    resolved_at: datetime | None = None
    created_by: UUID
    created_at: datetime
