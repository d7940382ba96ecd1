"""
Shared route dependencies.
"""

import secrets

from fastapi import Header, HTTPException, status

from ticketqueue.core.config import get_settings


async def require_admin_key(x_admin_key: str = Header(default="")) -> None:
    """Guard for maintenance endpoints: X-Admin-Key must match ADMIN_API_KEY."""
    expected = get_settings().ADMIN_API_KEY
    if not x_admin_key or not secrets.compare_digest(x_admin_key, expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin key",
        )
