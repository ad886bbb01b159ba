import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class SettingsDelegationUpdate(BaseModel):
    """Full replacement of a user's settings delegation.

    Flags left out default to False: a grant never merges with an earlier one.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    can_manage_billing: bool = False
    can_manage_team: bool = False
    can_manage_integrations: bool = False
    can_manage_branding: bool = False
    expires_at: datetime | None = None


class SettingsDelegationResponse(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    org_id: uuid.UUID
    user_id: uuid.UUID
    can_manage_billing: bool
    can_manage_team: bool
    can_manage_integrations: bool
    can_manage_branding: bool
    delegated_at: datetime
    delegated_by_id: uuid.UUID
    expires_at: datetime | None = None
    is_expired: bool = False


class SettingsDelegationList(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    items: list[SettingsDelegationResponse]
    total: int
