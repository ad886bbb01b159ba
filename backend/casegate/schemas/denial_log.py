import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PermissionDenialLogResponse(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    id: uuid.UUID
    org_id: uuid.UUID
    user_id: uuid.UUID
    resource: str
    action: str
    resource_id: str | None = None
    reason: str
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime


class PermissionDenialLogFilter(BaseModel):
    user_id: uuid.UUID | None = None
    resource: str | None = None
    action: str | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    limit: int = Field(50, ge=1, le=200)
    offset: int = Field(0, ge=0)


class PermissionDenialLogPage(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    items: list[PermissionDenialLogResponse]
    total: int
    limit: int
    offset: int
