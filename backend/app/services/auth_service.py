import logging
import secrets
from datetime import timedelta
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError
from fastapi import Depends, HTTPException, Request, Response, status
import jwt
from jwt.exceptions import InvalidTokenError as JWTError

from app.config import settings
from app.database import get_db
from app.models.user import UserRole
from app.utils import parse_object_id, utcnow

logger = logging.getLogger("courtside.auth")
ph = PasswordHasher()

ALGORITHM = "HS256"
COOKIE_NAME = "access_token"


def hash_password(password: str) -> str:
    return ph.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    try:
        return ph.verify(hashed, password)
    except (VerifyMismatchError, InvalidHashError):
        return False


def create_access_token(user_id: str, email: str) -> str:
    expire = utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": user_id,
        "email": email,
        "exp": expire,
        "type": "access",
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGORITHM)


def decode_jwt(token: str) -> dict:
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])


def set_auth_cookie(response: Response, access_token: str) -> None:
    response.set_cookie(
        key=COOKIE_NAME,
        value=access_token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        path="/",
    )


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(COOKIE_NAME, path="/")


def _extract_token(request: Request) -> Optional[str]:
    """Cookie first, then an ``Authorization: Bearer`` header."""
    token = request.cookies.get(COOKIE_NAME)
    if token:
        return token
    header = request.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value:
        return value.strip()
    return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


async def get_current_user(request: Request, db=Depends(get_db)) -> dict:
    """FastAPI dependency: the user behind a valid access token, else 401."""
    token = _extract_token(request)
    if not token:
        raise _unauthorized("Not authenticated.")

    try:
        payload = decode_jwt(token)
    except JWTError:
        raise _unauthorized("Invalid or expired token.")

    if payload.get("type") != "access":
        raise _unauthorized("Invalid token type.")

    user_oid = parse_object_id(payload.get("sub") or "")
    user = await db.users.find_one({"_id": user_oid}) if user_oid else None
    if not user:
        raise _unauthorized("User not found.")
    # Picked up by the request log line
    request.state.user_id = str(user["_id"])
    request.state.user_role = user.get("role", UserRole.user.value)
    return user


async def get_admin_user(request: Request, db=Depends(get_db)) -> dict:
    """FastAPI dependency: requires an authenticated admin user."""
    user = await get_current_user(request, db)
    if user.get("role") != UserRole.admin.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admins only.")
    return user
