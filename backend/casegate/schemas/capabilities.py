from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class PermissionEntry(BaseModel):
    resource: str
    action: str
    scope: str


class CapabilitiesResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    role: str
    is_admin: bool
    permissions: list[PermissionEntry]
    settings_access: dict[str, bool]
    routes: list[str]
