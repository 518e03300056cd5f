"""SQLAlchemy models for identities, roles and permissions."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, Column, ForeignKey, String, Table, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from openblind_auth.common.models import Base, TimestampMixin, UTCDateTime, generate_uuid


class IdentityRole(str, Enum):
    """The single role value carried on an identity row."""

    ADMIN = "admin"
    MODERATOR = "moderator"
    USER = "user"


identity_roles = Table(
    "identity_roles",
    Base.metadata,
    Column(
        "identity_id", String(36),
        ForeignKey("identities.id", ondelete="CASCADE"), primary_key=True,
    ),
    Column(
        "role_id", String(36),
        ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True,
    ),
)

role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column(
        "role_id", String(36),
        ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True,
    ),
    Column(
        "permission_id", String(36),
        ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True,
    ),
)


class IdentityModel(Base, TimestampMixin):
    __tablename__ = "identities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(200), default="")
    role: Mapped[str] = mapped_column(
        String(50), default=IdentityRole.USER.value, nullable=False, index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    @property
    def is_admin(self) -> bool:
        return self.role == IdentityRole.ADMIN.value


class RoleModel(Base, TimestampMixin):
    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, default="")


class PermissionModel(Base, TimestampMixin):
    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint("resource", "action", name="uq_permission_resource_action"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    resource: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
