"""
Transaction Log Module

Append-only record of every balance-affecting event. Records are written
only through a storage unit, inside the same atomic scope as the balance
change they document, and are never updated afterwards.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import uuid

from .currency import from_minor_units, to_minor_units
from .storage import StorageInterface, StorageRecord, StorageUnit


class TransactionType(Enum):
    """Types of balance-affecting events"""
    DEPOSIT = "deposit"
    TRANSFER = "transfer"


@dataclass
class TransactionRecord(StorageRecord):
    """Immutable ledger entry; ``from_username`` is None for deposits"""
    from_username: Optional[str]
    to_username: str
    transaction_type: TransactionType
    amount: Decimal
    description: str

    def __post_init__(self):
        if self.amount <= Decimal("0"):
            raise ValueError("Transaction amount must be positive")
        if self.transaction_type == TransactionType.DEPOSIT and self.from_username:
            raise ValueError("Deposits have no sender")
        if self.transaction_type == TransactionType.TRANSFER and not self.from_username:
            raise ValueError("Transfers require a sender")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return {
            "id": self.id,
            "from_username": self.from_username,
            "to_username": self.to_username,
            "type": self.transaction_type.value,
            "amount_minor": to_minor_units(self.amount),
            "description": self.description,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TransactionRecord':
        return cls(
            id=data["id"],
            created_at=cls.parse_timestamp(data["created_at"]),
            from_username=data["from_username"],
            to_username=data["to_username"],
            transaction_type=TransactionType(data["type"]),
            amount=from_minor_units(data["amount_minor"]),
            description=data["description"],
        )

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "from_username": self.from_username,
            "to_username": self.to_username,
            "type": self.transaction_type.value,
            "amount": str(self.amount),
            "description": self.description,
            "created_at": self.created_at.isoformat(),
        }


class TransactionLog:
    """Writes and queries the append-only transaction history"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage

    def record(
        self,
        unit: StorageUnit,
        transaction_type: TransactionType,
        to_username: str,
        amount: Decimal,
        description: str,
        from_username: Optional[str] = None
    ) -> TransactionRecord:
        """Append a record through an open unit of work"""
        record = TransactionRecord(
            id=str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc),
            from_username=from_username,
            to_username=to_username,
            transaction_type=transaction_type,
            amount=amount,
            description=description,
        )
        unit.append_transaction(record.to_dict())
        return record

    def history(self, username: str, limit: int) -> List[TransactionRecord]:
        """
        Records where username is sender or recipient, newest first.

        Each call runs a fresh query; nothing is cached between calls.
        """
        if limit <= 0:
            return []
        rows = self.storage.list_transactions(username, limit)
        return [TransactionRecord.from_dict(row) for row in rows]
