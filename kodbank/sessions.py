"""
Session Verification Module

Resolves a bearer credential to an authenticated identity. A credential is
accepted only if it is a well-formed token, its HMAC signature verifies
under the server key, its embedded expiry has not passed, and a live
(unrevoked, unexpired) session row with the same token exists. The
signature and the row are checked independently: a forged token fails the
signature check even if a row matches, and a validly signed token with no
row fails the lookup.

Verification has no side effects and is safe to run concurrently.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt

from .errors import AuthFailureReason, Unauthenticated
from .security import TokenSigner
from .storage import StorageInterface, StorageRecord
from .logging_config import get_logger, log_action


@dataclass
class Session(StorageRecord):
    """Stored session row backing one issued token"""
    token: str
    username: str
    expires_at: datetime
    revoked: bool = False
    revoked_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(timezone.utc)) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "token": self.token,
            "username": self.username,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "revoked": self.revoked,
            "revoked_at": self.revoked_at.isoformat() if self.revoked_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Session':
        revoked_at = data.get("revoked_at")
        return cls(
            id=data["id"],
            created_at=cls.parse_timestamp(data["created_at"]),
            token=data["token"],
            username=data["username"],
            expires_at=cls.parse_timestamp(data["expires_at"]),
            revoked=bool(data.get("revoked")),
            revoked_at=cls.parse_timestamp(revoked_at) if revoked_at else None,
        )


@dataclass(frozen=True)
class Identity:
    """Authenticated caller resolved from a session credential"""
    username: str
    role: str
    session_id: str
    expires_at: datetime


def _looks_like_token(credential: str) -> bool:
    parts = credential.split(".")
    return len(parts) == 3 and all(parts)


class SessionVerifier:
    """Checks credentials; see module docstring for the acceptance rules"""

    def __init__(self, storage: StorageInterface, signer: TokenSigner):
        self.storage = storage
        self.signer = signer
        self.logger = get_logger("kodbank.sessions")

    def _reject(self, reason: AuthFailureReason, user_id: Optional[str] = None) -> Unauthenticated:
        log_action(
            self.logger, "info", f"Authentication rejected: {reason.value}",
            user_id=user_id, action="authenticate_failed", resource="session",
            extra={"reason": reason.value}
        )
        return Unauthenticated(reason)

    def authenticate(self, credential: Optional[str]) -> Identity:
        """
        Resolve a credential to an Identity.

        Raises:
            Unauthenticated: with reason MISSING, INVALID, EXPIRED or REVOKED
            ServiceError: the signing key is not configured
        """
        if credential is None or not credential.strip():
            raise self._reject(AuthFailureReason.MISSING)
        credential = credential.strip()

        if not _looks_like_token(credential):
            raise self._reject(AuthFailureReason.INVALID)

        try:
            claims = self.signer.decode(credential)
        except jwt.ExpiredSignatureError:
            raise self._reject(AuthFailureReason.EXPIRED)
        except jwt.InvalidTokenError:
            raise self._reject(AuthFailureReason.INVALID)

        username = claims["sub"]
        row = self.storage.get_session(credential)
        if row is None:
            raise self._reject(AuthFailureReason.REVOKED, username)

        session = Session.from_dict(row)
        if session.revoked:
            raise self._reject(AuthFailureReason.REVOKED, username)
        if session.is_expired():
            raise self._reject(AuthFailureReason.EXPIRED, username)
        if session.username != username:
            raise self._reject(AuthFailureReason.INVALID, username)

        return Identity(
            username=username,
            role=claims.get("role", ""),
            session_id=session.id,
            expires_at=session.expires_at,
        )
