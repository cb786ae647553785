"""
Account Management Module

Customer accounts: identity fields, the password hash and the balance.
Accounts are created at registration and only ever mutated by the ledger
engine; they are never deleted.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, Optional
import uuid

from .currency import from_minor_units, to_minor_units
from .errors import AlreadyExists
from .storage import DuplicateKeyError, StorageInterface, StorageRecord
from .logging_config import get_logger, log_action

ROLE_CUSTOMER = "Customer"


@dataclass
class Account(StorageRecord):
    """
    Customer account. ``username`` keeps the case given at registration;
    lookups for transfer recipients ignore case.
    """
    updated_at: datetime
    username: str
    email: str
    phone: str
    password_hash: str
    balance: Decimal
    role: str = ROLE_CUSTOMER

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "phone": self.phone,
            "password_hash": self.password_hash,
            "role": self.role,
            "balance_minor": to_minor_units(self.balance),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        """Create instance from a storage row"""
        return cls(
            id=data["id"],
            created_at=cls.parse_timestamp(data["created_at"]),
            updated_at=cls.parse_timestamp(data["updated_at"]),
            username=data["username"],
            email=data["email"],
            phone=data["phone"],
            password_hash=data["password_hash"],
            role=data["role"],
            balance=from_minor_units(data["balance_minor"]),
        )

    def to_public_dict(self) -> Dict[str, Any]:
        """Fields safe to return to the account holder"""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
        }


class AccountStore:
    """Durable username -> account mapping with uniqueness on username and email"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.logger = get_logger("kodbank.accounts")

    def create(
        self,
        username: str,
        email: str,
        phone: str,
        password_hash: str,
        opening_balance: Decimal
    ) -> Account:
        """
        Insert a new customer account.

        Uniqueness is decided by the store's constraint at insert time, not
        by an earlier lookup, so two racing registrations cannot both win.

        Raises:
            AlreadyExists: username or email is taken (case-insensitive)
        """
        now = datetime.now(timezone.utc)
        account = Account(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            username=username,
            email=email,
            phone=phone,
            password_hash=password_hash,
            balance=opening_balance,
            role=ROLE_CUSTOMER,
        )
        try:
            self.storage.insert_account(account.to_dict())
        except DuplicateKeyError as e:
            log_action(
                self.logger, "info", "Account creation rejected: duplicate",
                action="create_account_rejected", resource="account",
                extra={"field": e.field}
            )
            raise AlreadyExists() from e
        return account

    def get(self, username: str) -> Optional[Account]:
        """Load account by exact username"""
        data = self.storage.get_account(username)
        return Account.from_dict(data) if data else None
