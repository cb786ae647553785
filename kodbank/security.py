"""
Password hashing and session token signing.

Passwords are hashed with salted scrypt; tokens are HS256 JWTs carrying
``sub``, ``role``, ``uid``, ``iat``, ``exp`` and a random ``jti`` so that
every login yields a distinct token.
"""

from datetime import datetime, timedelta, timezone
from dataclasses import dataclass
from typing import Any, Dict
import hashlib
import hmac
import secrets
import uuid

import jwt

from .errors import ServiceError

SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1
HASH_SCHEME = "scrypt"


def _generate_salt() -> str:
    """Generate random salt for password hashing"""
    return secrets.token_hex(16)


def _scrypt(password: str, salt: str) -> str:
    return hashlib.scrypt(
        password.encode(),
        salt=salt.encode(),
        n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P
    ).hex()


def hash_password(password: str) -> str:
    """Return ``scrypt$<salt>$<hash>`` for storage; plaintext is never kept"""
    salt = _generate_salt()
    return f"{HASH_SCHEME}${salt}${_scrypt(password, salt)}"


def verify_password(password: str, stored_hash: str) -> bool:
    """Verify password against stored hash in constant time"""
    try:
        scheme, salt, expected = stored_hash.split("$")
    except (AttributeError, ValueError):
        return False
    if scheme != HASH_SCHEME:
        return False
    return hmac.compare_digest(_scrypt(password, salt), expected)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    issued_at: datetime
    expires_at: datetime


class TokenSigner:
    """Mints and decodes HMAC-signed session tokens"""

    def __init__(self, secret: str, algorithm: str = "HS256", lifetime_hours: int = 24):
        self.secret = secret
        self.algorithm = algorithm
        self.lifetime = timedelta(hours=lifetime_hours)

    def _key(self) -> str:
        if not self.secret:
            raise ServiceError()
        return self.secret

    def issue(self, username: str, role: str, uid: str) -> IssuedToken:
        # JWT timestamps are whole seconds; keep the stored expiry identical
        issued_at = datetime.now(timezone.utc).replace(microsecond=0)
        expires_at = issued_at + self.lifetime
        payload = {
            "sub": username,
            "role": role,
            "uid": uid,
            "iat": issued_at,
            "exp": expires_at,
            "jti": uuid.uuid4().hex,
        }
        token = jwt.encode(payload, self._key(), algorithm=self.algorithm)
        return IssuedToken(token=token, issued_at=issued_at, expires_at=expires_at)

    def decode(self, token: str) -> Dict[str, Any]:
        """
        Verify signature and embedded expiry.

        Raises jwt.ExpiredSignatureError for expired tokens and
        jwt.InvalidTokenError for anything malformed or mis-signed.
        """
        return jwt.decode(
            token,
            self._key(),
            algorithms=[self.algorithm],
            options={"require": ["sub", "exp", "jti"]},
        )
