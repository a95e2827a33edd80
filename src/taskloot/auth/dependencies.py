"""Caller identity.

Authentication happens upstream: the gateway verifies the token and forwards
the caller as ``X-User-Id`` / ``X-User-Role`` headers. These dependencies
only read and check them.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException

ROLES = frozenset({"user", "company", "admin"})


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: str

    @property
    def is_company(self) -> bool:
        return self.role == "company"


async def get_optional_principal(
    x_user_id: str | None = Header(None),
    x_user_role: str = Header("user"),
) -> Principal | None:
    """Caller identity if the gateway forwarded one."""
    if not x_user_id:
        return None
    role = x_user_role.lower()
    if role not in ROLES:
        raise HTTPException(status_code=401, detail="Unknown caller role")
    return Principal(user_id=x_user_id, role=role)


async def get_current_principal(
    principal: Principal | None = Depends(get_optional_principal),
) -> Principal:
    """Require an identified caller. Raises 401 otherwise."""
    if principal is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return principal


async def get_current_company(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Require a company account. Raises 403 for players."""
    if not principal.is_company:
        raise HTTPException(status_code=403, detail="Company account required")
    return principal
