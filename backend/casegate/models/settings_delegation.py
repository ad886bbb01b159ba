import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, UniqueConstraint, false, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class SettingsDelegation(Base):
    __tablename__ = "settings_delegations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    org_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    can_manage_billing: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=false(), default=False
    )
    can_manage_team: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=false(), default=False
    )
    can_manage_integrations: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=false(), default=False
    )
    can_manage_branding: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=false(), default=False
    )
    delegated_by_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    delegated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # One delegation row per user per organization
    __table_args__ = (
        UniqueConstraint("org_id", "user_id", name="uq_settings_delegations_org_user"),
    )
