"""Role/permission store: roles, permissions and the two join relations."""

from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from openblind_auth.common.exceptions import RoleNotFoundError
from openblind_auth.identity.models import (
    IdentityRole,
    PermissionModel,
    RoleModel,
    identity_roles,
    role_permissions,
)

CONTENT_RESOURCES = ("routes", "messages", "tourist_spots", "voice_guides", "users")
CRUD_ACTIONS = ("create", "read", "update", "delete")

# Role name -> permission names granted by seed_defaults().
DEFAULT_GRANTS: dict[str, tuple[str, ...]] = {
    IdentityRole.ADMIN.value: tuple(
        f"{resource}.{action}" for resource in CONTENT_RESOURCES for action in CRUD_ACTIONS
    ),
    IdentityRole.MODERATOR.value: tuple(
        f"{resource}.{action}"
        for resource in ("routes", "messages", "tourist_spots", "voice_guides")
        for action in ("create", "read", "update")
    ) + ("users.read",),
    IdentityRole.USER.value: (
        "routes.read",
        "messages.read",
        "tourist_spots.read",
        "voice_guides.read",
        "users.read",
        "users.update",
    ),
}


def permission_name(resource: str, action: str) -> str:
    return f"{resource}.{action}"


class RoleService:
    """Role and permission management, plus the identity → permission relation."""

    # ── Roles ──

    async def create_role(
        self, session: AsyncSession, name: str, description: str = ""
    ) -> RoleModel:
        role = RoleModel(name=name, description=description)
        session.add(role)
        await session.flush()
        return role

    async def get_role(self, session: AsyncSession, name: str) -> RoleModel | None:
        result = await session.execute(select(RoleModel).where(RoleModel.name == name))
        return result.scalar_one_or_none()

    async def list_roles(self, session: AsyncSession) -> list[RoleModel]:
        result = await session.execute(select(RoleModel).order_by(RoleModel.name))
        return list(result.scalars().all())

    async def _require_role(self, session: AsyncSession, name: str) -> RoleModel:
        role = await self.get_role(session, name)
        if role is None:
            raise RoleNotFoundError(f"Role not found: {name}")
        return role

    # ── Permissions ──

    async def create_permission(
        self,
        session: AsyncSession,
        resource: str,
        action: str,
        name: str | None = None,
        description: str = "",
    ) -> PermissionModel:
        permission = PermissionModel(
            name=name or permission_name(resource, action),
            resource=resource,
            action=action,
            description=description,
        )
        session.add(permission)
        await session.flush()
        return permission

    async def get_permission(
        self, session: AsyncSession, name: str
    ) -> PermissionModel | None:
        result = await session.execute(
            select(PermissionModel).where(PermissionModel.name == name)
        )
        return result.scalar_one_or_none()

    async def grant(
        self, session: AsyncSession, role_name: str, permission: str
    ) -> bool:
        """Attach a permission to a role. Returns False if it was already attached."""
        role = await self._require_role(session, role_name)
        perm = await self.get_permission(session, permission)
        if perm is None:
            raise RoleNotFoundError(f"Permission not found: {permission}")
        existing = await session.execute(
            select(role_permissions).where(
                role_permissions.c.role_id == role.id,
                role_permissions.c.permission_id == perm.id,
            )
        )
        if existing.first() is not None:
            return False
        await session.execute(
            insert(role_permissions).values(role_id=role.id, permission_id=perm.id)
        )
        return True

    async def revoke(
        self, session: AsyncSession, role_name: str, permission: str
    ) -> bool:
        role = await self._require_role(session, role_name)
        perm = await self.get_permission(session, permission)
        if perm is None:
            return False
        result = await session.execute(
            delete(role_permissions).where(
                role_permissions.c.role_id == role.id,
                role_permissions.c.permission_id == perm.id,
            )
        )
        return result.rowcount > 0

    async def permissions_of_role(
        self, session: AsyncSession, role_name: str
    ) -> list[str]:
        """Names of the permissions granted directly to a role, sorted."""
        role = await self._require_role(session, role_name)
        result = await session.execute(
            select(PermissionModel.name)
            .join(role_permissions, role_permissions.c.permission_id == PermissionModel.id)
            .where(role_permissions.c.role_id == role.id)
            .order_by(PermissionModel.name)
        )
        return list(result.scalars().all())

    # ── Assignments ──

    async def assign(
        self, session: AsyncSession, identity_id: str, role_name: str
    ) -> bool:
        """Assign a role to an identity. Returns False if it was already assigned."""
        role = await self._require_role(session, role_name)
        existing = await session.execute(
            select(identity_roles).where(
                identity_roles.c.identity_id == identity_id,
                identity_roles.c.role_id == role.id,
            )
        )
        if existing.first() is not None:
            return False
        await session.execute(
            insert(identity_roles).values(identity_id=identity_id, role_id=role.id)
        )
        return True

    async def unassign(
        self, session: AsyncSession, identity_id: str, role_name: str
    ) -> bool:
        role = await self.get_role(session, role_name)
        if role is None:
            return False
        result = await session.execute(
            delete(identity_roles).where(
                identity_roles.c.identity_id == identity_id,
                identity_roles.c.role_id == role.id,
            )
        )
        return result.rowcount > 0

    async def roles_for(
        self, session: AsyncSession, identity_id: str
    ) -> list[RoleModel]:
        result = await session.execute(
            select(RoleModel)
            .join(identity_roles, identity_roles.c.role_id == RoleModel.id)
            .where(identity_roles.c.identity_id == identity_id)
            .order_by(RoleModel.name)
        )
        return list(result.scalars().all())

    async def permissions_for(
        self, session: AsyncSession, identity_id: str
    ) -> list[PermissionModel]:
        """Every permission reachable through any role assigned to the identity.

        A permission granted by several roles appears once per role here;
        the resolver deduplicates by permission id.
        """
        result = await session.execute(
            select(PermissionModel)
            .join(role_permissions, role_permissions.c.permission_id == PermissionModel.id)
            .join(identity_roles, identity_roles.c.role_id == role_permissions.c.role_id)
            .where(identity_roles.c.identity_id == identity_id)
        )
        return list(result.scalars().all())

    # ── Seeding ──

    async def seed_defaults(self, session: AsyncSession) -> None:
        """Create the default roles and content permissions if missing."""
        for role_name in DEFAULT_GRANTS:
            if await self.get_role(session, role_name) is None:
                await self.create_role(session, role_name)

        for resource in CONTENT_RESOURCES:
            for action in CRUD_ACTIONS:
                name = permission_name(resource, action)
                if await self.get_permission(session, name) is None:
                    await self.create_permission(session, resource, action, name=name)

        for role_name, permissions in DEFAULT_GRANTS.items():
            for name in permissions:
                await self.grant(session, role_name, name)
