import asyncio
import logging
import uuid

import pytest

from casegate.auth.rbac_contract import Role, Scope
from casegate.domain.access import DenialReason, ScopeContext
from casegate.services.rbac.scope_resolver import ScopeResolver

pytestmark = pytest.mark.anyio


def _resolver(data, **kwargs) -> ScopeResolver:
    return ScopeResolver(data, data, data, data, **kwargs)


USER_ID = uuid.uuid4()
CLIENT_ID = uuid.uuid4()
PROGRAM_X = uuid.uuid4()
PROGRAM_Y = uuid.uuid4()
PROGRAM_Z = uuid.uuid4()


async def test_scope_all_allows_without_lookups(scope_data) -> None:
    decision = await _resolver(scope_data).resolve(
        Scope.ALL, Role.PROGRAM_MANAGER, USER_ID, ScopeContext()
    )

    assert decision.allowed
    assert scope_data.calls == []


async def test_admin_role_allows_any_scope(scope_data) -> None:
    decision = await _resolver(scope_data).resolve(
        Scope.ASSIGNED, Role.ADMIN, USER_ID, ScopeContext()
    )

    assert decision.allowed
    assert scope_data.calls == []


async def test_scope_none_denies(scope_data) -> None:
    decision = await _resolver(scope_data).resolve(
        Scope.NONE, Role.VIEWER, USER_ID, ScopeContext.for_client(CLIENT_ID)
    )

    assert not decision.allowed
    assert decision.reason is DenialReason.SCOPE_DENIED


class TestProgramScope:
    async def test_overlap_with_resource_programs_allows(self, scope_data) -> None:
        scope_data.user_programs[USER_ID] = {PROGRAM_Y}
        context = ScopeContext(program_ids=frozenset({PROGRAM_X, PROGRAM_Y}))

        decision = await _resolver(scope_data).resolve(
            Scope.PROGRAM, Role.PROGRAM_MANAGER, USER_ID, context
        )

        assert decision.allowed

    async def test_disjoint_programs_deny(self, scope_data) -> None:
        scope_data.user_programs[USER_ID] = {PROGRAM_Z}
        context = ScopeContext(program_ids=frozenset({PROGRAM_X, PROGRAM_Y}))

        decision = await _resolver(scope_data).resolve(
            Scope.PROGRAM, Role.PROGRAM_MANAGER, USER_ID, context
        )

        assert not decision.allowed
        assert decision.reason is DenialReason.SCOPE_DENIED

    async def test_client_enrollment_overlap_allows(self, scope_data) -> None:
        scope_data.user_programs[USER_ID] = {PROGRAM_X}
        scope_data.client_programs[CLIENT_ID] = {PROGRAM_X, PROGRAM_Z}

        decision = await _resolver(scope_data).resolve(
            Scope.PROGRAM, Role.VIEWER, USER_ID, ScopeContext.for_client(CLIENT_ID)
        )

        assert decision.allowed

    async def test_unenrolled_client_denies_by_default(self, scope_data) -> None:
        scope_data.user_programs[USER_ID] = {PROGRAM_X}

        decision = await _resolver(scope_data).resolve(
            Scope.PROGRAM, Role.VIEWER, USER_ID, ScopeContext.for_client(CLIENT_ID)
        )

        assert not decision.allowed
        assert decision.reason is DenialReason.SCOPE_DENIED

    async def test_unenrolled_client_allowed_when_configured(self, scope_data, caplog) -> None:
        resolver = _resolver(scope_data, allow_unenrolled_clients=True)

        with caplog.at_level(logging.WARNING, logger="casegate.rbac.scope"):
            decision = await resolver.resolve(
                Scope.PROGRAM, Role.VIEWER, USER_ID, ScopeContext.for_client(CLIENT_ID)
            )

        assert decision.allowed
        assert "unenrolled_client_allowed" in caplog.text

    async def test_empty_context_is_insufficient(self, scope_data) -> None:
        decision = await _resolver(scope_data).resolve(
            Scope.PROGRAM, Role.VIEWER, USER_ID, ScopeContext()
        )

        assert not decision.allowed
        assert decision.reason is DenialReason.INSUFFICIENT_CONTEXT
        assert scope_data.calls == []

    async def test_user_programs_fetched_once(self, scope_data) -> None:
        scope_data.user_programs[USER_ID] = {PROGRAM_Z}
        scope_data.client_programs[CLIENT_ID] = {PROGRAM_Y}
        context = ScopeContext(program_ids=frozenset({PROGRAM_X}), client_id=CLIENT_ID)

        decision = await _resolver(scope_data).resolve(
            Scope.PROGRAM, Role.VIEWER, USER_ID, context
        )

        assert not decision.allowed
        assert scope_data.calls.count("user_programs") == 1


class TestAssignedScope:
    async def test_assigned_client_allows(self, scope_data) -> None:
        scope_data.assignments[CLIENT_ID] = USER_ID

        decision = await _resolver(scope_data).resolve(
            Scope.ASSIGNED, Role.CASE_MANAGER, USER_ID, ScopeContext.for_client(CLIENT_ID)
        )

        assert decision.allowed
        assert scope_data.calls == ["assignment"]

    async def test_shared_client_allows(self, scope_data) -> None:
        scope_data.shares.add((CLIENT_ID, USER_ID))

        decision = await _resolver(scope_data).resolve(
            Scope.ASSIGNED, Role.CASE_MANAGER, USER_ID, ScopeContext.for_client(CLIENT_ID)
        )

        assert decision.allowed
        assert scope_data.calls == ["assignment", "share"]

    async def test_program_fallback_allows(self, scope_data) -> None:
        scope_data.user_programs[USER_ID] = {PROGRAM_X}
        scope_data.client_programs[CLIENT_ID] = {PROGRAM_X}

        decision = await _resolver(scope_data).resolve(
            Scope.ASSIGNED, Role.CASE_MANAGER, USER_ID, ScopeContext.for_client(CLIENT_ID)
        )

        assert decision.allowed

    async def test_unrelated_client_denies(self, scope_data) -> None:
        scope_data.assignments[CLIENT_ID] = uuid.uuid4()
        scope_data.user_programs[USER_ID] = {PROGRAM_X}
        scope_data.client_programs[CLIENT_ID] = {PROGRAM_Y}

        decision = await _resolver(scope_data).resolve(
            Scope.ASSIGNED, Role.CASE_MANAGER, USER_ID, ScopeContext.for_client(CLIENT_ID)
        )

        assert not decision.allowed
        assert decision.reason is DenialReason.SCOPE_DENIED

    async def test_foreign_owner_denies_without_lookups(self, scope_data) -> None:
        context = ScopeContext(client_id=CLIENT_ID, resource_owner_id=uuid.uuid4())

        decision = await _resolver(scope_data).resolve(
            Scope.ASSIGNED, Role.CASE_MANAGER, USER_ID, context
        )

        assert not decision.allowed
        assert scope_data.calls == []

    async def test_own_resource_allows(self, scope_data) -> None:
        context = ScopeContext(resource_owner_id=USER_ID)

        decision = await _resolver(scope_data).resolve(
            Scope.ASSIGNED, Role.CASE_MANAGER, USER_ID, context
        )

        assert decision.allowed

    async def test_missing_context_is_insufficient(self, scope_data) -> None:
        decision = await _resolver(scope_data).resolve(
            Scope.ASSIGNED, Role.CASE_MANAGER, USER_ID, ScopeContext()
        )

        assert decision.reason is DenialReason.INSUFFICIENT_CONTEXT


class TestSessionScope:
    async def test_active_session_in_shared_program_allows(self, scope_data) -> None:
        scope_data.user_programs[USER_ID] = {PROGRAM_X}
        scope_data.client_programs[CLIENT_ID] = {PROGRAM_X}
        scope_data.active_sessions.add((USER_ID, CLIENT_ID))

        decision = await _resolver(scope_data).resolve(
            Scope.SESSION, Role.FACILITATOR, USER_ID, ScopeContext.for_client(CLIENT_ID)
        )

        assert decision.allowed
        assert scope_data.calls[-1] == "session"

    async def test_supplied_predicate_wins(self, scope_data) -> None:
        scope_data.user_programs[USER_ID] = {PROGRAM_X}
        scope_data.client_programs[CLIENT_ID] = {PROGRAM_X}
        context = ScopeContext(client_id=CLIENT_ID, session_active=False)

        decision = await _resolver(scope_data).resolve(
            Scope.SESSION, Role.FACILITATOR, USER_ID, context
        )

        assert not decision.allowed
        assert "session" not in scope_data.calls

    async def test_no_program_overlap_denies_before_session_lookup(self, scope_data) -> None:
        scope_data.user_programs[USER_ID] = {PROGRAM_X}
        scope_data.client_programs[CLIENT_ID] = {PROGRAM_Y}
        scope_data.active_sessions.add((USER_ID, CLIENT_ID))

        decision = await _resolver(scope_data).resolve(
            Scope.SESSION, Role.FACILITATOR, USER_ID, ScopeContext.for_client(CLIENT_ID)
        )

        assert not decision.allowed
        assert "session" not in scope_data.calls

    async def test_program_only_context_is_insufficient(self, scope_data) -> None:
        decision = await _resolver(scope_data).resolve(
            Scope.SESSION,
            Role.FACILITATOR,
            USER_ID,
            ScopeContext.for_program(PROGRAM_X),
        )

        assert decision.reason is DenialReason.INSUFFICIENT_CONTEXT


class TestLookupFailures:
    async def test_slow_lookup_becomes_timeout_denial(self, scope_data) -> None:
        async def slow(_user_id):
            await asyncio.sleep(1)
            return frozenset({PROGRAM_X})

        scope_data.get_user_program_ids = slow

        decision = await _resolver(scope_data, lookup_timeout=0.01).resolve(
            Scope.PROGRAM, Role.VIEWER, USER_ID, ScopeContext.for_program(PROGRAM_X)
        )

        assert not decision.allowed
        assert decision.reason is DenialReason.LOOKUP_TIMEOUT
        assert decision.reason.is_engineering_defect

    async def test_failing_lookup_becomes_failed_denial(self, scope_data, caplog) -> None:
        async def broken(_client_id, _user_id):
            raise ConnectionError("database gone")

        scope_data.is_client_assigned_to_user = broken

        with caplog.at_level(logging.ERROR, logger="casegate.rbac.scope"):
            decision = await _resolver(scope_data).resolve(
                Scope.ASSIGNED,
                Role.CASE_MANAGER,
                USER_ID,
                ScopeContext.for_client(CLIENT_ID),
            )

        assert decision.reason is DenialReason.LOOKUP_FAILED
        assert "lookup=client_assignment" in caplog.text
