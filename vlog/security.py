"""
Password hashing and access tokens.

Hashing is delegated to passlib; the services only ever pass a plaintext
password through ``hash_password`` / ``verify_password`` and store or
compare the resulting hash.  Access tokens are HS256 JWTs whose ``sub``
claim is the account email, which is how routers identify the acting user.
Each token carries a random ``jti`` so logout can revoke one token alone.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone

import jwt
from jwt import ExpiredSignatureError, InvalidTokenError
from passlib.context import CryptContext

from vlog.config import settings
from vlog.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(email: str, expires_delta: timedelta | None = None) -> str:
    """Issue a signed token identifying *email*."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {"sub": email, "exp": expire, "jti": uuid.uuid4().hex}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> str:
    """
    Return the email carried by *token*.

    Raises ``AuthenticationError`` when the token is expired, malformed,
    signed with another key, or has no subject.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        logger.info("Rejected expired access token")
        raise AuthenticationError("Token has expired")
    except InvalidTokenError as exc:
        logger.warning("Rejected invalid access token: %s", exc)
        raise AuthenticationError("Could not validate credentials")

    email = payload.get("sub")
    if not email:
        raise AuthenticationError("Could not validate credentials")
    return email
