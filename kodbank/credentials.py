"""
Credential Issuer Module

Registration of customer accounts and username/password login. Login
mints a signed, time-boxed session token and persists the matching
session row; logout revokes that row.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass
from typing import Optional
import re
import uuid

from .accounts import Account, AccountStore, ROLE_CUSTOMER
from .config import KodbankConfig
from .errors import InvalidCredentials, ValidationError
from .security import TokenSigner, hash_password, verify_password
from .sessions import Session, SessionVerifier
from .storage import StorageInterface
from .logging_config import get_logger, log_action

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{3,32}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_PATTERN = re.compile(r"^\+?[0-9][0-9 -]{6,18}$")

# Verified against when the username is unknown so both failure paths cost the same
_DUMMY_HASH = hash_password(uuid.uuid4().hex)


@dataclass(frozen=True)
class LoginResult:
    token: str
    username: str
    role: str
    expires_at: datetime

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "username": self.username,
            "role": self.role,
            "expires_at": self.expires_at.isoformat(),
        }


class CredentialIssuer:
    """Registers accounts and issues session credentials"""

    def __init__(
        self,
        storage: StorageInterface,
        accounts: AccountStore,
        signer: TokenSigner,
        verifier: SessionVerifier,
        config: KodbankConfig
    ):
        self.storage = storage
        self.accounts = accounts
        self.signer = signer
        self.verifier = verifier
        self.opening_balance = Decimal(config.opening_balance)
        self.password_min_length = config.password_min_length
        self.logger = get_logger("kodbank.credentials")

    def _validate_registration(self, username: str, password: str, email: str,
                               phone: str, role: Optional[str]) -> None:
        if not username or not password or not email or not phone:
            raise ValidationError("All fields are required")
        if role and role != ROLE_CUSTOMER:
            raise ValidationError(f"Only '{ROLE_CUSTOMER}' role is allowed")
        if not USERNAME_PATTERN.match(username):
            raise ValidationError(
                "Username must be 3-32 characters: letters, digits, '.', '_' or '-'"
            )
        if len(password) < self.password_min_length:
            raise ValidationError(
                f"Password must be at least {self.password_min_length} characters"
            )
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid email address")
        if not PHONE_PATTERN.match(phone):
            raise ValidationError("Invalid phone number")

    def register(
        self,
        username: str,
        password: str,
        email: str,
        phone: str,
        role: Optional[str] = None
    ) -> Account:
        """
        Register a new customer account with the opening balance.

        The role is always "Customer"; a client asking for anything else is
        rejected rather than silently downgraded.

        Raises:
            ValidationError: missing or malformed fields
            AlreadyExists: username or email already registered
        """
        username = (username or "").strip()
        email = (email or "").strip()
        phone = (phone or "").strip()
        password = password or ""
        self._validate_registration(username, password, email, phone, role)

        account = self.accounts.create(
            username=username,
            email=email,
            phone=phone,
            password_hash=hash_password(password),
            opening_balance=self.opening_balance,
        )

        log_action(
            self.logger, "info", "Account registered",
            user_id=account.username, action="register", resource=f"account:{account.id}"
        )
        return account

    def login(self, username: str, password: str) -> LoginResult:
        """
        Authenticate username/password and open a new session.

        Unknown usernames and wrong passwords raise the same error. Earlier
        sessions of the same user stay valid.

        Raises:
            ValidationError: username or password missing
            InvalidCredentials: authentication failed
        """
        if not username or not password:
            raise ValidationError("Username and password are required")

        account = self.accounts.get(username)
        if account is None:
            verify_password(password, _DUMMY_HASH)
            self._log_login_failure(username, "user_not_found")
            raise InvalidCredentials()
        if not verify_password(password, account.password_hash):
            self._log_login_failure(username, "invalid_password")
            raise InvalidCredentials()

        issued = self.signer.issue(account.username, account.role, account.id)
        session = Session(
            id=str(uuid.uuid4()),
            created_at=issued.issued_at,
            token=issued.token,
            username=account.username,
            expires_at=issued.expires_at,
        )
        self.storage.insert_session(session.to_dict())

        log_action(
            self.logger, "info", "User authenticated successfully",
            user_id=account.username, action="login", resource=f"session:{session.id}"
        )
        return LoginResult(
            token=issued.token,
            username=account.username,
            role=account.role,
            expires_at=issued.expires_at,
        )

    def logout(self, token: Optional[str]) -> bool:
        """
        Revoke the session behind a currently valid token.

        Raises:
            Unauthenticated: the token is not a live session
        """
        identity = self.verifier.authenticate(token)
        revoked = self.storage.revoke_session(token.strip())
        log_action(
            self.logger, "info", "Session revoked",
            user_id=identity.username, action="logout",
            resource=f"session:{identity.session_id}"
        )
        return revoked

    def _log_login_failure(self, username: str, reason: str) -> None:
        log_action(
            self.logger, "warning", "Authentication failed",
            action="login_failed", resource="auth",
            extra={"username": username, "reason": reason}
        )
