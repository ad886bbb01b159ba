import logging
import uuid
from datetime import datetime, timezone

from ...auth.rbac_contract import Role, SettingsArea, is_admin_role
from ...domain.access import DelegationGrants, DelegationSnapshot, NO_GRANTS
from ...domain.ports.delegation import DelegationData, DelegationPort

logger = logging.getLogger("casegate.delegation")


def _as_utc(value: datetime) -> datetime:
    # SQLite and some drivers hand back naive timestamps that are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_expired(delegation: DelegationData, now: datetime | None = None) -> bool:
    if delegation.expires_at is None:
        return False
    current = now or datetime.now(timezone.utc)
    return _as_utc(delegation.expires_at) <= current


def grants_of(delegation: DelegationData) -> DelegationGrants:
    return DelegationGrants(
        can_manage_billing=delegation.can_manage_billing,
        can_manage_team=delegation.can_manage_team,
        can_manage_integrations=delegation.can_manage_integrations,
        can_manage_branding=delegation.can_manage_branding,
    )


class DelegationService:
    """Per-org, per-user overrides for the settings areas.

    Admin-level roles never need a delegation row. Reads always hit the
    store; there is no cache, so a revoke is visible on the next check.
    """

    def __init__(self, repository: DelegationPort, clock=None) -> None:
        self._repository = repository
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @staticmethod
    def is_admin(role: Role | str) -> bool:
        return is_admin_role(role)

    async def get_active(
        self, org_id: uuid.UUID, user_id: uuid.UUID
    ) -> DelegationData | None:
        delegation = await self._repository.get(org_id, user_id)
        if delegation is None or is_expired(delegation, self._clock()):
            return None
        return delegation

    async def has_settings_access(
        self,
        role: Role | str,
        user_id: uuid.UUID,
        org_id: uuid.UUID,
        setting: SettingsArea | str,
    ) -> bool:
        if self.is_admin(role):
            return True
        try:
            area = SettingsArea(setting)
        except ValueError:
            return False
        delegation = await self.get_active(org_id, user_id)
        if delegation is None:
            return False
        return grants_of(delegation).allows(area)

    async def snapshot_for(
        self, role: Role | str, user_id: uuid.UUID, org_id: uuid.UUID
    ) -> DelegationSnapshot:
        if self.is_admin(role):
            return DelegationSnapshot(is_admin=True)
        delegation = await self.get_active(org_id, user_id)
        if delegation is None:
            return DelegationSnapshot(is_admin=False, grants=NO_GRANTS)
        return DelegationSnapshot(
            is_admin=False,
            grants=grants_of(delegation),
            expires_at=delegation.expires_at,
        )

    async def grant(
        self,
        org_id: uuid.UUID,
        user_id: uuid.UUID,
        delegator_id: uuid.UUID,
        grants: DelegationGrants,
        expires_at: datetime | None = None,
    ) -> DelegationData:
        """Replace the user's delegation with exactly ``grants``.

        Last write wins: flags left out of ``grants`` are cleared, never
        merged with an earlier grant.
        """
        delegation = await self._repository.upsert(
            org_id,
            user_id,
            delegated_by_id=delegator_id,
            can_manage_billing=grants.can_manage_billing,
            can_manage_team=grants.can_manage_team,
            can_manage_integrations=grants.can_manage_integrations,
            can_manage_branding=grants.can_manage_branding,
            expires_at=expires_at,
            delegated_at=self._clock(),
        )
        logger.info(
            "delegation_granted org_id=%s user_id=%s delegator_id=%s grants=%s expires_at=%s",
            org_id,
            user_id,
            delegator_id,
            grants.as_dict(),
            expires_at.isoformat() if expires_at else None,
        )
        return delegation

    async def revoke(self, org_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        removed = await self._repository.delete(org_id, user_id)
        logger.info(
            "delegation_revoked org_id=%s user_id=%s removed=%s", org_id, user_id, removed
        )
        return removed

    async def list_for_org(self, org_id: uuid.UUID) -> list[DelegationData]:
        return await self._repository.list_by_org(org_id)
