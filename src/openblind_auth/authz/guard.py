"""
Authorization guard: per-request role, permission and ownership gates.

A request reaches a gate only once it is authenticated; passing ``None`` as
the principal raises AuthenticationError(MissingToken). Each gate returns a
Decision; ``Decision.raise_if_denied()`` turns a denial into an
AuthorizationError carrying the precise failure kind.

Admins (identity.role == "admin") bypass the permission and ownership gates
before any requirement is looked at. The role gate is a plain membership test
with no admin bypass.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Protocol, Sequence, Union, runtime_checkable

from sqlalchemy.ext.asyncio import AsyncSession

from openblind_auth.audit.service import AuditSink
from openblind_auth.common.exceptions import (
    AuthenticationError,
    AuthenticationFailure,
    AuthorizationError,
    AuthorizationFailure,
)
from openblind_auth.identity.models import IdentityRole
from openblind_auth.permissions.cache import PermissionRef
from openblind_auth.permissions.resolver import PermissionResolver

logger = logging.getLogger(__name__)

PermissionRequirement = Union[str, tuple[str, str], PermissionRef]


class Principal(Protocol):
    id: str
    role: str


@runtime_checkable
class OwnedResource(Protocol):
    """A governed resource that can report the identity that created it."""

    @property
    def owner_id(self) -> str | None: ...


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str
    failure: AuthorizationFailure | None = None
    details: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def allow(cls, reason: str) -> "Decision":
        return cls(True, reason)

    @classmethod
    def deny(
        cls,
        failure: AuthorizationFailure,
        reason: str,
        details: dict[str, Any] | None = None,
    ) -> "Decision":
        return cls(False, reason, failure, details or {})

    def __bool__(self) -> bool:
        return self.allowed

    def raise_if_denied(self) -> None:
        if not self.allowed:
            raise AuthorizationError(self.failure or AuthorizationFailure.INSUFFICIENT_PERMISSION)


def _require_principal(principal: Principal | None) -> Principal:
    if principal is None:
        raise AuthenticationError(AuthenticationFailure.MISSING_TOKEN)
    return principal


def _is_admin(principal: Principal) -> bool:
    return principal.role == IdentityRole.ADMIN.value


class AuthorizationGuard:
    """Composes the permission resolver and audit sink into allow/deny decisions.

    Each gate comes in two forms. ``check_*`` evaluates and has no side
    effects. ``authorize``, ``require_role`` and ``require_ownership`` run the
    same check and log and audit a denial.
    """

    def __init__(self, resolver: PermissionResolver, audit: AuditSink):
        self._resolver = resolver
        self._audit = audit

    # ── Pure checks ──

    async def check_permissions(
        self,
        session: AsyncSession,
        principal: Principal | None,
        required: Iterable[PermissionRequirement],
    ) -> Decision:
        principal = _require_principal(principal)
        if _is_admin(principal):
            return Decision.allow("admin")

        required_refs = [PermissionRef.parse(r) for r in required]
        if not required_refs:
            return Decision.allow("no permissions required")

        held = await self._resolver.resolve(session, principal.id)
        missing = [ref.name for ref in required_refs if ref not in held]
        if missing:
            return Decision.deny(
                AuthorizationFailure.INSUFFICIENT_PERMISSION,
                f"missing permissions: {', '.join(missing)}",
                {
                    "required": [ref.name for ref in required_refs],
                    "missing": missing,
                },
            )
        return Decision.allow("all required permissions held")

    async def check_role(
        self, principal: Principal | None, allowed_roles: Sequence[str] | str
    ) -> Decision:
        principal = _require_principal(principal)
        if isinstance(allowed_roles, str):
            allowed_roles = [allowed_roles]
        allowed = [IdentityRole(r).value for r in allowed_roles]

        if principal.role in allowed:
            return Decision.allow(f"role {principal.role}")
        return Decision.deny(
            AuthorizationFailure.INSUFFICIENT_ROLE,
            f"role {principal.role} not in {allowed}",
            {"role": principal.role, "allowed_roles": allowed},
        )

    async def check_ownership(
        self,
        principal: Principal | None,
        resource: OwnedResource | str | None,
    ) -> Decision:
        principal = _require_principal(principal)
        if _is_admin(principal):
            return Decision.allow("admin")

        owner_id = resource.owner_id if isinstance(resource, OwnedResource) else resource
        if owner_id is not None and str(owner_id) == str(principal.id):
            return Decision.allow("owner")
        return Decision.deny(
            AuthorizationFailure.NOT_OWNER,
            "not the resource owner",
            {"resource_owner_id": owner_id},
        )

    # ── Gates ──

    async def authorize(
        self,
        session: AsyncSession,
        principal: Principal | None,
        required: Iterable[PermissionRequirement],
    ) -> Decision:
        """Allow iff every required permission is held (admins always pass)."""
        decision = await self.check_permissions(session, principal, required)
        return self._audited(principal, decision)

    async def require_role(
        self, principal: Principal | None, allowed_roles: Sequence[str] | str
    ) -> Decision:
        decision = await self.check_role(principal, allowed_roles)
        return self._audited(principal, decision)

    async def require_ownership(
        self,
        principal: Principal | None,
        resource: OwnedResource | str | None,
    ) -> Decision:
        """Allow admins and the identity that owns the resource."""
        decision = await self.check_ownership(principal, resource)
        return self._audited(principal, decision)

    async def require_any(
        self,
        principal: Principal | None,
        *checks: Callable[[], Awaitable[Decision]],
    ) -> Decision:
        """Allow if any check allows; otherwise audit and return the last denial.

        Checks are zero-argument factories over the pure ``check_*`` methods,
        e.g. ``lambda: guard.check_ownership(identity, route)``. Only the
        combined outcome is audited.
        """
        principal = _require_principal(principal)
        if not checks:
            raise ValueError("require_any needs at least one check")
        decision: Decision | None = None
        for check in checks:
            decision = await check()
            if decision.allowed:
                return decision
        return self._audited(principal, decision)

    def _audited(self, principal: Principal | None, decision: Decision) -> Decision:
        if decision.allowed:
            return decision
        failure = decision.failure or AuthorizationFailure.INSUFFICIENT_PERMISSION
        logger.warning("Access denied for identity %s: %s", principal.id, decision.reason)
        self._audit.append(
            "authorization.denied",
            "identities",
            resource_id=str(principal.id),
            actor_id=str(principal.id),
            details={"failure": failure.value, "reason": decision.reason, **decision.details},
        )
        return decision
