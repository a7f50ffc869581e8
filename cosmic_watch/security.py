"""Password hashing, token issuance and the authenticated-user dependency."""

from datetime import datetime, timedelta
from typing import Optional

import jwt
from fastapi import Cookie, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

from cosmic_watch.config import get_settings
from cosmic_watch.repositories import UserRepository, get_user_repository

TOKEN_COOKIE = "token"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """One-way journey."""
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Generate JWT with appropriate lifespan."""
    settings = get_settings()
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    """Verify and extract claims from token."""
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token is invalid or has expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Token is invalid or has expired")


def public_user(user: dict) -> dict:
    """The parts of a user record that may leave the server."""
    return {
        "id": user["id"],
        "name": user.get("name"),
        "email": user.get("email"),
        "interests": user.get("interests", []),
        "preferences": user.get("preferences", {}),
    }


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    token_cookie: Optional[str] = Cookie(default=None, alias=TOKEN_COOKIE),
    users: UserRepository = Depends(get_user_repository),
) -> dict:
    """Extract user from the token cookie or bearer header. Trust but verify."""
    token = token_cookie or (credentials.credentials if credentials else None)
    if not token:
        raise HTTPException(status_code=401, detail="Not authorized to access this route")

    payload = decode_access_token(token)
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Token is invalid or has expired")

    user = await users.find_by_id(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User no longer exists")

    return user
