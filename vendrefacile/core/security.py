from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from vendrefacile.core import config
from vendrefacile.core.errors import Unauthorized

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class CallerIdentity(BaseModel):
    """Verified identity extracted from a bearer token."""
    id: int
    role: str = "user"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=10)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def create_access_token(user_id: int, role: str, expires_in: Optional[timedelta] = None) -> str:
    expires_at = datetime.now(timezone.utc) + (expires_in or timedelta(days=config.JWT_EXPIRES_DAYS))
    payload = {
        "sub": str(user_id),
        "id": user_id,
        "role": role,
        "exp": expires_at,
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> CallerIdentity:
    """
    Verify a token and return the caller it was issued to.

    Raises:
        Unauthorized: if the token is expired, tampered with or malformed
    """
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        logger.info(f"Rejected bearer token: {str(e)}")
        raise Unauthorized("Invalid token")

    if "id" not in payload:
        raise Unauthorized("Invalid token")
    return CallerIdentity(id=payload["id"], role=payload.get("role", "user"))


def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> CallerIdentity:
    """Dependency for protected routes."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized("Missing token")
    return decode_access_token(credentials.credentials)
