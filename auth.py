import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, Header
from jose import JWTError, jwt
from passlib.context import CryptContext

from config import JWT_ALG, JWT_EXPIRE_MINUTES, JWT_SECRET
from database import get_db
from errors import AuthError, AuthorizationError
from schemas import USER_COLLECTION

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash or "")


def create_token(user_id, role: str) -> str:
    issued = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": issued,
        "exp": issued + timedelta(minutes=JWT_EXPIRE_MINUTES),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def decode_token(token: str) -> ObjectId:
    """Check signature and expiry, return the user id the token was issued for."""
    try:
        data = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
        return ObjectId(data["sub"])
    except (JWTError, KeyError, InvalidId, TypeError):
        raise AuthError("Invalid or expired token")


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthError("No token, authorization denied")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Invalid auth scheme")
    return token.strip()


def verify_token(authorization: Optional[str] = Header(None), db=Depends(get_db)) -> dict:
    """Resolve the caller from the bearer token. The password hash is never loaded."""
    user_id = decode_token(_bearer_token(authorization))
    user = db[USER_COLLECTION].find_one({"_id": user_id}, {"password_hash": 0})
    if not user:
        raise AuthError("Token is not valid")
    return user


def optional_verify_token(authorization: Optional[str] = Header(None), db=Depends(get_db)) -> Optional[dict]:
    """Like verify_token, but an absent or bad token means an anonymous caller (None)."""
    if not authorization:
        return None
    try:
        return verify_token(authorization, db)
    except AuthError as e:
        logger.debug("Continuing anonymously: %s", e.message)
        return None


def require_role(user: Optional[dict], allowed: Iterable[str], message: str = "Access denied"):
    if not user or user.get("role") not in set(allowed):
        raise AuthorizationError(message)


def require_owner_or_admin(user: dict, owner_id, message: str = "Not authorized"):
    if user.get("role") == "admin":
        return
    if owner_id is None or str(owner_id) != str(user["_id"]):
        raise AuthorizationError(message)


def require_admin(user: dict = Depends(verify_token)) -> dict:
    require_role(user, ("admin",), "Admin access required")
    return user
