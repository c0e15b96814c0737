"""Bearer-token decoding and role checks.

Login and session handling live outside this service; tokens arrive already
issued and only need to be verified and mapped to a user row.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone

import jwt

from grassroots.controllers import db, config as cfg
from grassroots.controllers.helpers.errors import (
    ForbiddenError, UnauthenticatedError,
)

logger = logging.getLogger(__name__)

_USER_ROLE_RANKING = {
    "guest": 1,
    "normal": 10,
    "mod": 20,
    "admin": 30,
}


def create_token(user_id):
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=cfg.TOKEN_LIFESPAN_MIN),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, cfg.TOKEN_SECRET, algorithm=cfg.TOKEN_ALGO)


def decode_token(token):
    """Connexion bearerInfoFunc: claims dict for a valid token, None otherwise."""
    try:
        return jwt.decode(token, cfg.TOKEN_SECRET, algorithms=[cfg.TOKEN_ALGO])
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
        return None
    except jwt.InvalidTokenError as e:
        logger.info("Rejected invalid token: %s", e)
        return None


def get_user(user_id):
    return db.execute_query("""
        SELECT id, display_name, user_type, home_location_id, status
        FROM users WHERE id = %s
    """, (user_id,), fetchone=True, raise_on_error=True)


def has_role(user, required_level):
    return _USER_ROLE_RANKING.get(user["user_type"], 0) >= _USER_ROLE_RANKING[required_level]


def require_user(token_info, required_level="normal"):
    """Resolve the caller and check their role.

    Returns:
        The caller's user row.

    Raises:
        UnauthenticatedError: no token, or the token's user no longer exists.
        ForbiddenError: the user is banned or below `required_level`.
    """
    if not token_info:
        raise UnauthenticatedError()
    user = get_user(token_info["sub"])
    if not user:
        raise UnauthenticatedError(user_id=token_info["sub"])
    if user.get("status") == "banned" or not has_role(user, required_level):
        raise ForbiddenError(user_id=str(user["id"]), required=required_level)
    return user
