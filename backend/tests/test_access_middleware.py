import asyncio
import uuid

import pytest
from starlette.requests import Request

from casegate.auth.middleware import AccessMiddleware, AccessOptions, request_meta
from casegate.auth.rbac_contract import Action, Resource, Role
from casegate.auth.scope_context import (
    client_scope_from_path,
    path_resource_id,
    program_scope_from_path,
)
from casegate.domain.access import DenialReason, ScopeContext
from casegate.errors import AuthError, ForbiddenError
from casegate.services.audit.denial_auditor import DenialAuditor, InMemoryDenialCounterStore
from casegate.services.rbac.delegation_service import DelegationService
from casegate.services.rbac.permission_service import PermissionChecker
from casegate.services.rbac.scope_resolver import ScopeResolver

from conftest import FakeDelegationRepository, RecordingDenialLogRepository, make_user

pytestmark = pytest.mark.anyio


def _request(path_params=None, headers=None, client=("203.0.113.9", 5555)) -> Request:
    raw_headers = [
        (key.lower().encode("latin-1"), value.encode("latin-1"))
        for key, value in (headers or {}).items()
    ]
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/",
            "headers": raw_headers,
            "path_params": path_params or {},
            "client": client,
        }
    )


@pytest.fixture()
def denial_logs() -> RecordingDenialLogRepository:
    return RecordingDenialLogRepository()


@pytest.fixture()
def middleware(scope_data, denial_logs) -> AccessMiddleware:
    checker = PermissionChecker(
        ScopeResolver(scope_data, scope_data, scope_data, scope_data),
        DelegationService(FakeDelegationRepository()),
        scope_data,
    )
    auditor = DenialAuditor(
        InMemoryDenialCounterStore(threshold=1), denial_logs.factory(), threshold=1
    )
    return AccessMiddleware(checker, auditor)


async def test_missing_user_is_unauthenticated(middleware) -> None:
    with pytest.raises(AuthError):
        await middleware.authorize(
            _request(), None, AccessOptions(Resource.CLIENTS, Action.READ)
        )


async def test_allowed_request_returns_context(middleware, scope_data) -> None:
    user = make_user(Role.CASE_MANAGER)
    client_id = uuid.uuid4()
    scope_data.assignments[client_id] = user.id
    options = AccessOptions(
        Resource.CLIENTS,
        Action.READ,
        get_resource_id=path_resource_id("client_id"),
        get_scope=client_scope_from_path,
    )

    context = await middleware.authorize(
        _request(path_params={"client_id": str(client_id)}), user, options
    )

    assert context.user is user
    assert context.permission_result.allowed
    assert context.resource_id == str(client_id)
    assert middleware.pending_audits == 0


async def test_denial_raises_forbidden_and_audits(middleware, denial_logs, scope_data) -> None:
    user = make_user(Role.VIEWER)
    scope_data.admin_contacts[user.org_id] = "Org Admin (admin@example.org)"

    with pytest.raises(ForbiddenError) as exc_info:
        await middleware.authorize(
            _request(headers={"user-agent": "pytest"}),
            user,
            AccessOptions(Resource.BILLING, Action.READ),
        )

    assert exc_info.value.message == "Your viewer role does not allow this action."
    assert exc_info.value.admin_contact == "Org Admin (admin@example.org)"
    assert exc_info.value.reason == DenialReason.NO_GRANT.value

    await middleware.drain()
    assert len(denial_logs.created) == 1
    assert denial_logs.created[0]["ip_address"] == "203.0.113.9"
    assert denial_logs.created[0]["user_agent"] == "pytest"


async def test_slow_audit_does_not_delay_denial(scope_data) -> None:
    release = asyncio.Event()

    class SlowAuditor:
        async def record_denial(self, *args):
            await release.wait()
            return True

    checker = PermissionChecker(
        ScopeResolver(scope_data, scope_data, scope_data, scope_data),
        DelegationService(FakeDelegationRepository()),
        scope_data,
    )
    middleware = AccessMiddleware(checker, SlowAuditor())

    with pytest.raises(ForbiddenError):
        await middleware.authorize(
            _request(), make_user(Role.VIEWER), AccessOptions(Resource.ADMIN, Action.READ)
        )

    assert middleware.pending_audits == 1
    release.set()
    await middleware.drain()
    assert middleware.pending_audits == 0


async def test_skip_only_requires_authentication(middleware, scope_data) -> None:
    context = await middleware.authorize(
        _request(),
        make_user(Role.VIEWER),
        AccessOptions(Resource.BILLING, Action.UPDATE, skip=True),
    )

    assert context.permission_result.allowed
    assert scope_data.calls == []


async def test_failing_extractor_denies_as_lookup_failed(middleware) -> None:
    def broken_scope(request, db):
        raise KeyError("client_id")

    with pytest.raises(ForbiddenError) as exc_info:
        await middleware.authorize(
            _request(),
            make_user(Role.CASE_MANAGER),
            AccessOptions(Resource.CLIENTS, Action.READ, get_scope=broken_scope),
        )

    assert exc_info.value.reason == DenialReason.LOOKUP_FAILED.value
    await middleware.drain()


async def test_malformed_path_id_fails_closed(middleware) -> None:
    with pytest.raises(ForbiddenError) as exc_info:
        await middleware.authorize(
            _request(path_params={"client_id": "not-a-uuid"}),
            make_user(Role.CASE_MANAGER),
            AccessOptions(Resource.CLIENTS, Action.READ, get_scope=client_scope_from_path),
        )

    assert exc_info.value.reason == DenialReason.INSUFFICIENT_CONTEXT.value
    await middleware.drain()


async def test_wrap_passes_context_to_handler(middleware, scope_data) -> None:
    user = make_user(Role.VIEWER)
    program_id = uuid.uuid4()
    scope_data.user_programs[user.id] = {program_id}

    async def handler(context, payload):
        return context.user.id, payload

    wrapped = middleware.wrap(
        handler,
        AccessOptions(Resource.PROGRAMS, Action.READ, get_scope=program_scope_from_path),
    )

    result = await wrapped(_request(path_params={"program_id": str(program_id)}), user, "body")

    assert result == (user.id, "body")


async def test_sync_scope_getter_is_supported(middleware, scope_data) -> None:
    user = make_user(Role.VIEWER)
    program_id = uuid.uuid4()
    scope_data.user_programs[user.id] = {program_id}

    context = await middleware.authorize(
        _request(),
        user,
        AccessOptions(
            Resource.GOALS,
            Action.READ,
            get_scope=lambda request, db: ScopeContext.for_program(program_id),
        ),
    )

    assert context.permission_result.allowed


class TestRequestMeta:
    def test_prefers_first_forwarded_address(self) -> None:
        meta = request_meta(
            _request(headers={"x-forwarded-for": "198.51.100.1, 10.0.0.2", "x-real-ip": "10.0.0.3"})
        )

        assert meta.ip_address == "198.51.100.1"

    def test_falls_back_to_real_ip_then_peer(self) -> None:
        assert request_meta(_request(headers={"x-real-ip": "10.0.0.3"})).ip_address == "10.0.0.3"
        assert request_meta(_request()).ip_address == "203.0.113.9"
        assert request_meta(_request(client=None)).ip_address is None

    def test_no_request(self) -> None:
        meta = request_meta(None)

        assert meta.ip_address is None
        assert meta.user_agent is None
