import logging
import time
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException
from werkzeug.security import check_password_hash, generate_password_hash

from feedback_tracker.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

ALLOWED_ROLES = {"admin", "user"}


@dataclass
class CurrentUser:
    id: str
    role: str
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)


def _require_secret(settings: Settings) -> str:
    if not settings.jwt_secret:
        raise HTTPException(500, "JWT_SECRET is not configured")
    return settings.jwt_secret


def issue_token(*, user_id: str, role: str, email: Optional[str], settings: Optional[Settings] = None) -> tuple[str, int]:
    """Return a signed bearer token and its expiry (unix seconds)."""
    settings = settings or get_settings()
    secret = _require_secret(settings)
    now = int(time.time())
    ttl_hours = settings.jwt_ttl_hours if settings.jwt_ttl_hours > 0 else 24
    exp = now + int(ttl_hours) * 3600
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "aud": settings.jwt_audience,
        "iat": now,
        "exp": exp,
    }
    token = jwt.encode(payload, secret, algorithm="HS256")
    return token, exp


def _decode(token: str, settings: Settings) -> Optional[dict]:
    secret = _require_secret(settings)
    audience = (settings.jwt_audience or "").strip()
    options = {"verify_aud": bool(audience)}
    decode_kwargs = {"audience": audience} if audience else {}
    try:
        return jwt.decode(token, secret, algorithms=["HS256"], options=options, **decode_kwargs)
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired bearer token")
        return None
    except jwt.InvalidTokenError as exc:
        logger.debug("Bearer token verification failed: %s", exc)
        return None


def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> CurrentUser:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(401, "Missing bearer token")

    token = authorization.split(" ", 1)[1].strip()
    payload = _decode(token, get_settings())
    if payload is None:
        raise HTTPException(401, "Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(401, "Invalid or expired token")

    role = str(payload.get("role") or "").strip().lower()
    if role not in ALLOWED_ROLES:
        raise HTTPException(403, "Missing role")

    return CurrentUser(id=str(user_id), role=role, email=payload.get("email"))


def require_roles(*roles: str):
    def _dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise HTTPException(403, f"Requires role: {', '.join(roles)}")
        return user

    return _dependency
