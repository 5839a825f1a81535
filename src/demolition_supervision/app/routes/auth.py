"""Caller identity dependencies: Bearer token in, CallerIdentity out."""

import logging

from fastapi import Depends, HTTPException, Request, status

from demolition_supervision.domain.enums import UserRole
from demolition_supervision.services.auth_service import decode_token
from demolition_supervision.services.demolition_workflow import CallerIdentity

logger = logging.getLogger(__name__)


async def get_caller_dep(request: Request) -> CallerIdentity:
    """Dependency: extract the caller's role and id from the Bearer token."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid token",
        )
    token = auth_header.removeprefix("Bearer ")
    payload = decode_token(token)
    if not payload or "sub" not in payload or "role" not in payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    try:
        role = UserRole(payload["role"])
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        logger.warning("Rejected token with role=%r sub=%r", payload.get("role"), payload.get("sub"))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token carries an unknown role or subject",
        )
    return CallerIdentity(role=role, user_id=user_id)


def require_role(*roles: UserRole):
    """Factory: dependency that checks the caller has one of the required roles."""

    async def checker(caller: CallerIdentity = Depends(get_caller_dep)) -> CallerIdentity:
        if caller.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return caller

    return checker
