import uuid
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from .auth.middleware import AccessMiddleware
from .auth.rbac_contract import Role
from .config import settings
from .crud.client import ClientRepository
from .crud.permission_denial_log import PermissionDenialLogRepository
from .crud.program import ProgramRepository
from .crud.settings_delegation import SettingsDelegationRepository
from .crud.user import UserRepository
from .database import AsyncSessionLocal, get_session
from .domain.access import AuthenticatedUser
from .domain.ports.denial_log import DenialLogPort, DenialLogRepositoryFactory
from .errors import AuthError
from .models.user import User
from .security.token_inspection import ExpiredTokenError, InvalidTokenError, validate_access_token
from .services.audit.denial_auditor import DenialAuditor
from .services.rbac.delegation_service import DelegationService
from .services.rbac.permission_service import PermissionChecker
from .services.rbac.scope_resolver import ScopeResolver

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_session():
        yield session


def to_authenticated_user(user: User) -> AuthenticatedUser:
    return AuthenticatedUser(
        id=user.id,
        org_id=user.org_id,
        role=Role(user.role),
        email=user.email,
        name=user.name,
    )


async def get_current_user_optional(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> AuthenticatedUser | None:
    if credentials is None or credentials.scheme.lower() != "bearer":
        return None

    try:
        payload = validate_access_token(credentials.credentials)
    except ExpiredTokenError:
        raise AuthError("Token has expired") from None
    except InvalidTokenError:
        raise AuthError("Invalid token") from None

    try:
        user_id = uuid.UUID(payload["sub"])
    except ValueError:
        raise AuthError("Invalid token payload") from None

    user = await UserRepository(db).get_by_id(user_id)
    if user is None or not user.is_active:
        raise AuthError("User not found")

    return to_authenticated_user(user)


async def get_current_user(
    user: AuthenticatedUser | None = Depends(get_current_user_optional),
) -> AuthenticatedUser:
    if user is None:
        raise AuthError()
    return user


def get_scope_resolver(db: AsyncSession = Depends(get_db)) -> ScopeResolver:
    programs = ProgramRepository(db)
    return ScopeResolver(
        memberships=programs,
        enrollments=programs,
        client_access=ClientRepository(db),
        sessions=programs,
        lookup_timeout=settings.scope_lookup_timeout_seconds,
        allow_unenrolled_clients=settings.program_scope_allows_unenrolled_clients,
    )


def get_delegation_service(db: AsyncSession = Depends(get_db)) -> DelegationService:
    return DelegationService(SettingsDelegationRepository(db))


def get_permission_checker(
    db: AsyncSession = Depends(get_db),
    scope_resolver: ScopeResolver = Depends(get_scope_resolver),
    delegations: DelegationService = Depends(get_delegation_service),
) -> PermissionChecker:
    return PermissionChecker(
        scope_resolver,
        delegations,
        UserRepository(db),
        default_admin_contact=settings.default_admin_contact,
        lookup_timeout=settings.scope_lookup_timeout_seconds,
    )


def denial_log_repository_factory() -> DenialLogRepositoryFactory:
    @asynccontextmanager
    async def factory() -> AsyncIterator[DenialLogPort]:
        # Audit writes use their own session, isolated from the request transaction
        async with AsyncSessionLocal() as session:
            yield PermissionDenialLogRepository(session)

    return factory


def get_denial_auditor(request: Request) -> DenialAuditor:
    auditor = getattr(request.app.state, "denial_auditor", None)
    if auditor is None:
        raise RuntimeError("Denial auditor is not configured")
    return auditor


def get_access_middleware(
    request: Request,
    checker: PermissionChecker = Depends(get_permission_checker),
    auditor: DenialAuditor = Depends(get_denial_auditor),
) -> AccessMiddleware:
    pending = getattr(request.app.state, "pending_audits", None)
    return AccessMiddleware(checker, auditor, pending=pending)
