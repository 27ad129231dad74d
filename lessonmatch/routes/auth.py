"""Bearer-token authentication helpers.

Accounts and login live in the platform's identity service; this service only
verifies the HS256 tokens it issues and looks the user up locally.
"""

import aiosqlite
import jwt
from fastapi import HTTPException, Request

from lessonmatch.config import settings

JWT_ALGORITHM = "HS256"


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


async def get_current_user(request: Request, db: aiosqlite.Connection) -> dict:
    """Extract and validate the current user from the JWT token."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")

    token = auth_header.split(" ", 1)[1].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Empty token")

    payload = decode_token(token)
    try:
        user_id = int(payload["sub"])
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")

    cursor = await db.execute(
        "SELECT id, name, email, current_level, role FROM users WHERE id = ?",
        (user_id,),
    )
    user = await cursor.fetchone()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return {
        "id": user["id"],
        "name": user["name"],
        "email": user["email"],
        "current_level": user["current_level"],
        "role": user["role"] or "student",
    }


def require_role(*allowed_roles: str):
    """Return a checker that the user has one of the allowed roles.

    Usage in a route:
        user = await require_role("teacher")(request, db)
    """
    async def _check(request: Request, db: aiosqlite.Connection) -> dict:
        user = await get_current_user(request, db)
        if user["role"] not in allowed_roles:
            raise HTTPException(
                status_code=403,
                detail=f"Access denied. Required role: {', '.join(allowed_roles)}",
            )
        return user
    return _check


async def require_student_owner(request: Request, student_id: int, db: aiosqlite.Connection) -> dict:
    """Students may only act for themselves; teachers and admins may act for anyone."""
    user = await get_current_user(request, db)
    if user["role"] == "student" and user["id"] != student_id:
        raise HTTPException(status_code=403, detail="Access denied")
    return user
