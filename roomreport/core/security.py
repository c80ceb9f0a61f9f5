# roomreport/core/security.py

import logging
from datetime import datetime, timezone

import jwt

from roomreport.core.config import settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


class InvalidTokenError(Exception):
    """Raised when a bearer token cannot be trusted"""


def generate_token(user_id: int, username: str, role: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "user_id": user_id,
        "username": username,
        "role": role,
        "iat": now,
        "exp": now + settings.jwt_expiry,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])
    except jwt.PyJWTError as e:
        logger.info(f"Rejected token: {e}")
        raise InvalidTokenError(str(e)) from e

    if "user_id" not in claims:
        raise InvalidTokenError("token has no user_id claim")
    return claims
