import logging

from fastapi import Header
from jose import JWTError, jwt

from zapshift.config import settings
from zapshift.errors import Forbidden, Unauthorized

logger = logging.getLogger("zapshift")


def verify_token(authorization: str = Header(None)) -> str:
    """Return the verified email of the bearer token, or fail with 401."""
    if not authorization:
        raise Unauthorized("Unauthorised access")
    if not settings.jwt_secret:
        logger.error("JWT_SECRET is not set; rejecting all bearer tokens")
        raise Unauthorized("Unauthorised access")

    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("not a bearer token")
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options={"verify_aud": settings.jwt_audience is not None},
        )
    except (ValueError, JWTError) as e:
        logger.warning(f"Token verification failed: {e}")
        raise Unauthorized("Unauthorised access")

    email = claims.get("email")
    if not email:
        raise Unauthorized("Unauthorised access")
    return email


def ensure_same_email(requested: str, verified: str):
    if requested != verified:
        logger.warning(f"{verified} tried to read payments of {requested}")
        raise Forbidden("forbidden access")
