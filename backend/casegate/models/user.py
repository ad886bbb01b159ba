import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    String,
    func,
    true,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, validates

from ..auth.rbac_contract import Role
from .base import Base

ALLOWED_ROLES = tuple(role.value for role in Role)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    org_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=true(), default=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Role is a closed set, enforced by the database as well
    __table_args__ = (
        CheckConstraint(
            "role IN (" + ", ".join(f"'{value}'" for value in ALLOWED_ROLES) + ")",
            name="valid_user_role",
        ),
    )

    @validates("role")
    def validate_role(self, key: str, value: str | Role) -> str:
        raw = value.value if isinstance(value, Role) else value
        if raw not in ALLOWED_ROLES:
            raise ValueError(
                f"Invalid role '{raw}'. Must be one of: {', '.join(ALLOWED_ROLES)}"
            )
        return raw
