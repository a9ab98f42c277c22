from dataclasses import dataclass
from uuid import NAMESPACE_DNS, UUID, uuid5

from fastapi import Depends, Header, HTTPException, status

from fieldops.config.settings import AuthMode, settings
from fieldops.v1.core.exceptions import ForbiddenError


def string_to_uuid(text: str) -> UUID:
    """Convert a string to a deterministic UUID using namespace DNS."""
    return uuid5(NAMESPACE_DNS, text)


@dataclass
class Principal:
    """Represents the current authenticated user/context."""

    user_id: str
    org_id: str
    roles: list[str]
    email: str | None = None

    @property
    def user_uuid(self) -> UUID:
        """Get the user ID as a UUID for database operations."""
        return string_to_uuid(self.user_id)

    @property
    def org_uuid(self) -> UUID:
        """Get the org ID as a UUID for database operations."""
        return string_to_uuid(self.org_id)

    def has_any_role(self, *roles: str) -> bool:
        wanted = {role.upper() for role in roles}
        return any(role.upper() in wanted for role in self.roles)


async def get_principal(
    x_user_id: str | None = Header(None, alias="X-User-ID"),
    x_org_id: str | None = Header(None, alias="X-Org-ID"),
    x_roles: str | None = Header(None, alias="X-Roles"),
) -> Principal:
    """
    Dependency injection function to get the current principal.

    Behavior based on AUTH_MODE:
    - none: Returns dev defaults with the configured dev roles
    - dev: Extract identity and comma-separated roles from headers
    - oidc: Token verification is handled by the identity provider integration
    """
    if settings.auth_mode == AuthMode.NONE:
        return Principal(
            user_id=settings.dev_user_id,
            org_id=settings.dev_org_id,
            roles=list(settings.dev_roles),
        )
    elif settings.auth_mode == AuthMode.DEV:
        # Require headers in dev mode
        if not x_user_id or not x_org_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="X-User-ID and X-Org-ID headers are required in dev auth mode",
            )

        roles = [role.strip() for role in (x_roles or "").split(",") if role.strip()]
        return Principal(
            user_id=x_user_id,
            org_id=x_org_id,
            roles=roles or list(settings.dev_roles),
        )
    elif settings.auth_mode == AuthMode.OIDC:
        raise NotImplementedError("OIDC auth mode not implemented yet")
    else:
        raise ValueError(f"Unknown auth mode: {settings.auth_mode}")


def require_roles(*roles: str):
    """Build a dependency that only admits principals holding one of ``roles``."""

    async def dependency(principal: Principal = Depends(get_principal)) -> Principal:
        if not principal.has_any_role(*roles):
            raise ForbiddenError(
                "Insufficient role for this operation",
                details={"required_roles": list(roles)},
            )
        return principal

    return dependency


# Convenience type aliases for dependency injection
PrincipalDep = Depends(get_principal)
AdminDep = Depends(require_roles("ADMIN", "OFFICE"))
