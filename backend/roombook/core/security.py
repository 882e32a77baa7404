"""
Caller role resolution.

Identity is handled upstream (face login in the web client); the API only
needs the caller's role to pick the initial booking status and to gate
admin actions. The role arrives in the X-User-Role header.
"""

from fastapi import Header, HTTPException, status

from roombook.models.booking import OWNER_ROLES

DEFAULT_ROLE = "student"


async def get_current_role(x_user_role: str | None = Header(default=None)) -> str:
    role = (x_user_role or DEFAULT_ROLE).strip().lower()
    if role not in OWNER_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown role '{x_user_role}'. Expected one of: {', '.join(OWNER_ROLES)}",
        )
    return role


async def require_admin(x_user_role: str | None = Header(default=None)) -> str:
    role = await get_current_role(x_user_role)
    if role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admins can approve or reject bookings",
        )
    return role
