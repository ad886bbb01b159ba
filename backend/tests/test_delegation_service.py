import uuid
from datetime import datetime, timedelta, timezone

import pytest

from casegate.auth.rbac_contract import Role, SettingsArea
from casegate.domain.access import DelegationGrants
from casegate.services.rbac.delegation_service import DelegationService, is_expired

from conftest import FakeDelegationRepository

pytestmark = pytest.mark.anyio

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
ORG_ID = uuid.uuid4()
USER_ID = uuid.uuid4()
ADMIN_ID = uuid.uuid4()


def _service(repo: FakeDelegationRepository) -> DelegationService:
    return DelegationService(repo, clock=lambda: NOW)


async def test_admin_has_every_setting_without_a_row() -> None:
    service = _service(FakeDelegationRepository())

    for area in SettingsArea:
        assert await service.has_settings_access(Role.ADMIN, USER_ID, ORG_ID, area)


async def test_no_row_means_no_access() -> None:
    service = _service(FakeDelegationRepository())

    assert not await service.has_settings_access(
        Role.PROGRAM_MANAGER, USER_ID, ORG_ID, SettingsArea.BILLING
    )


async def test_grant_then_check_single_area() -> None:
    service = _service(FakeDelegationRepository())

    await service.grant(
        ORG_ID, USER_ID, ADMIN_ID, DelegationGrants(can_manage_billing=True)
    )

    assert await service.has_settings_access(
        Role.CASE_MANAGER, USER_ID, ORG_ID, SettingsArea.BILLING
    )
    assert not await service.has_settings_access(
        Role.CASE_MANAGER, USER_ID, ORG_ID, SettingsArea.TEAM
    )


async def test_grant_replaces_previous_flags() -> None:
    repo = FakeDelegationRepository()
    service = _service(repo)

    await service.grant(ORG_ID, USER_ID, ADMIN_ID, DelegationGrants(can_manage_billing=True))
    await service.grant(ORG_ID, USER_ID, ADMIN_ID, DelegationGrants(can_manage_team=True))

    row = repo.rows[(ORG_ID, USER_ID)]
    assert row.can_manage_team is True
    assert row.can_manage_billing is False
    assert row.delegated_at == NOW
    assert row.delegated_by_id == ADMIN_ID


async def test_expired_delegation_is_ignored() -> None:
    service = _service(FakeDelegationRepository())
    await service.grant(
        ORG_ID,
        USER_ID,
        ADMIN_ID,
        DelegationGrants(can_manage_branding=True),
        expires_at=NOW - timedelta(seconds=1),
    )

    assert not await service.has_settings_access(
        Role.VIEWER, USER_ID, ORG_ID, SettingsArea.BRANDING
    )
    assert await service.get_active(ORG_ID, USER_ID) is None


async def test_revoke_is_visible_immediately() -> None:
    service = _service(FakeDelegationRepository())
    await service.grant(ORG_ID, USER_ID, ADMIN_ID, DelegationGrants(can_manage_team=True))

    assert await service.revoke(ORG_ID, USER_ID) is True
    assert not await service.has_settings_access(
        Role.VIEWER, USER_ID, ORG_ID, SettingsArea.TEAM
    )
    assert await service.revoke(ORG_ID, USER_ID) is False


async def test_delegation_is_scoped_to_organization() -> None:
    service = _service(FakeDelegationRepository())
    await service.grant(ORG_ID, USER_ID, ADMIN_ID, DelegationGrants(can_manage_team=True))

    assert not await service.has_settings_access(
        Role.VIEWER, USER_ID, uuid.uuid4(), SettingsArea.TEAM
    )


async def test_unknown_setting_is_denied() -> None:
    service = _service(FakeDelegationRepository())
    await service.grant(ORG_ID, USER_ID, ADMIN_ID, DelegationGrants(can_manage_team=True))

    assert not await service.has_settings_access(Role.VIEWER, USER_ID, ORG_ID, "payroll")


async def test_snapshot_for_non_admin() -> None:
    service = _service(FakeDelegationRepository())
    expires = NOW + timedelta(days=7)
    await service.grant(
        ORG_ID,
        USER_ID,
        ADMIN_ID,
        DelegationGrants(can_manage_integrations=True),
        expires_at=expires,
    )

    snapshot = await service.snapshot_for(Role.FACILITATOR, USER_ID, ORG_ID)

    assert not snapshot.is_admin
    assert snapshot.allows(SettingsArea.INTEGRATIONS)
    assert not snapshot.allows(SettingsArea.BILLING)
    assert snapshot.expires_at == expires


async def test_snapshot_for_admin_allows_all() -> None:
    snapshot = await _service(FakeDelegationRepository()).snapshot_for(
        Role.SUPER_ADMIN, USER_ID, ORG_ID
    )

    assert snapshot.is_admin
    assert all(snapshot.allows(area) for area in SettingsArea)


def test_is_expired_treats_naive_timestamps_as_utc() -> None:
    class Row:
        expires_at = datetime(2026, 3, 1, 11, 0)

    assert is_expired(Row(), NOW)
    Row.expires_at = None
    assert not is_expired(Row(), NOW)
