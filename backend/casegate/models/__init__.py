from .base import Base
from .organization import Organization
from .user import User
from .program import Program, ProgramEnrollment, ProgramMember
from .client import Client, ClientShare
from .call import Call
from .settings_delegation import SettingsDelegation
from .permission_denial_log import PermissionDenialLog

__all__ = [
    "Base",
    "Organization",
    "User",
    "Program",
    "ProgramMember",
    "ProgramEnrollment",
    "Client",
    "ClientShare",
    "Call",
    "SettingsDelegation",
    "PermissionDenialLog",
]
