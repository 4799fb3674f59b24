"""
app/api/dependencies.py

Shared FastAPI dependencies.
"""

from __future__ import annotations

from fastapi import Header, HTTPException, status

OWNER_HEADER = "X-User-Id"


def get_owner_id(x_user_id: str | None = Header(default=None, alias=OWNER_HEADER)) -> str:
    """
    Return the verified user id set by the upstream identity layer.
    """

    owner_id = (x_user_id or "").strip()
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return owner_id
