"""
Ledger Engine

Deposits and transfers against customer balances. Every mutation moves
through Authorized -> Validated -> Applied -> Logged, or stops as a
typed rejection at the first failing gate.

Balances are never read into memory, adjusted and written back. A deposit
is an in-place increment; a transfer debits the sender with a single
conditional update ("subtract where balance >= amount") whose affected-row
count decides insufficient funds at write time. The credit and the
transaction record are written in the same atomic unit, so either all of a
mutation is visible or none of it is.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional
from contextlib import contextmanager

from .accounts import AccountStore
from .config import KodbankConfig
from .currency import (
    format_inr, from_minor_units, has_minor_unit_precision, parse_amount, to_minor_units
)
from .errors import (
    InsufficientFunds, InvalidAmount, KodbankError, MissingRecipient, NotFound,
    RecipientNotFound, SelfTransferDenied, TransientStoreFailure
)
from .sessions import Identity
from .storage import StorageInterface, StoreBusyError
from .transactions import TransactionLog, TransactionRecord, TransactionType
from .logging_config import get_logger, log_action


def validate_amount(value: Any, maximum: Decimal) -> Decimal:
    """
    Parse and bound-check a client amount: 0 < amount <= maximum, paise precision.

    Raises:
        InvalidAmount: not a number, out of range, or too precise
    """
    amount = parse_amount(value)
    if amount is None or amount <= Decimal("0") or amount > maximum:
        raise InvalidAmount()
    if not has_minor_unit_precision(amount):
        raise InvalidAmount("Invalid amount. At most 2 decimal places are allowed.")
    return amount


@dataclass(frozen=True)
class DepositResult:
    new_balance: Decimal
    message: str
    transaction: TransactionRecord

    def to_dict(self) -> Dict[str, Any]:
        return {
            "newBalance": str(self.new_balance),
            "message": self.message,
        }


@dataclass(frozen=True)
class TransferResult:
    new_balance: Decimal
    recipient: str
    message: str
    transaction: TransactionRecord

    def to_dict(self) -> Dict[str, Any]:
        return {
            "newBalance": str(self.new_balance),
            "recipient": self.recipient,
            "message": self.message,
        }


class LedgerEngine:
    """
    Balance reads, deposits, transfers and history for authenticated callers
    """

    def __init__(
        self,
        storage: StorageInterface,
        accounts: AccountStore,
        transaction_log: TransactionLog,
        config: KodbankConfig
    ):
        self.storage = storage
        self.accounts = accounts
        self.transaction_log = transaction_log
        self.max_amount = Decimal(config.max_transaction_amount)
        self.history_limit = config.history_limit
        self.logger = get_logger("kodbank.ledger")

    @contextmanager
    def _mutation(self, action: str, username: str) -> Iterator[None]:
        """Log rejections and turn store contention into TransientStoreFailure"""
        try:
            yield
        except StoreBusyError as e:
            log_action(
                self.logger, "warning", f"{action} aborted: store busy",
                user_id=username, action=f"{action}_failed", resource="ledger",
                extra={"code": TransientStoreFailure.code, "detail": str(e)}
            )
            raise TransientStoreFailure() from e
        except KodbankError as e:
            log_action(
                self.logger, "info", f"{action} rejected: {e.code}",
                user_id=username, action=f"{action}_rejected", resource="ledger",
                extra={"code": e.code}
            )
            raise

    def check_balance(self, identity: Identity) -> Decimal:
        """Current balance; pure read"""
        account = self.accounts.get(identity.username)
        if account is None:
            raise NotFound()
        return account.balance

    def deposit(self, identity: Identity, amount: Any) -> DepositResult:
        """
        Add funds to the caller's own account.

        Raises:
            InvalidAmount: amount outside (0, max] or too precise
            NotFound: the caller's account no longer exists
            TransientStoreFailure: store busy; nothing was applied
        """
        username = identity.username
        with self._mutation("deposit", username):
            amount = validate_amount(amount, self.max_amount)
            amount_minor = to_minor_units(amount)

            with self.storage.atomic() as unit:
                if not unit.credit(username, amount_minor):
                    raise NotFound()
                record = self.transaction_log.record(
                    unit,
                    TransactionType.DEPOSIT,
                    to_username=username,
                    amount=amount,
                    description=f"Deposit of {format_inr(amount)}",
                )
                new_balance = from_minor_units(unit.balance_of(username))

        log_action(
            self.logger, "info", "Deposit applied",
            user_id=username, action="deposit", resource=f"transaction:{record.id}",
            extra={"amount": str(amount), "new_balance": str(new_balance)}
        )
        return DepositResult(
            new_balance=new_balance,
            message=f"{format_inr(amount)} deposited successfully.",
            transaction=record,
        )

    def transfer(self, identity: Identity, to_username: Any, amount: Any) -> TransferResult:
        """
        Move funds from the caller to another customer.

        Checks run in this order and stop at the first failure: amount,
        recipient given, not a self transfer, recipient exists, funds.

        Raises:
            InvalidAmount, MissingRecipient, SelfTransferDenied,
            RecipientNotFound, InsufficientFunds, TransientStoreFailure
        """
        sender = identity.username
        with self._mutation("transfer", sender):
            amount = validate_amount(amount, self.max_amount)
            if not isinstance(to_username, str) or not to_username.strip():
                raise MissingRecipient()
            recipient_name = to_username.strip()
            if recipient_name.lower() == sender.lower():
                raise SelfTransferDenied()
            amount_minor = to_minor_units(amount)

            with self.storage.atomic() as unit:
                recipient = unit.find_account_ci(recipient_name)
                if recipient is None:
                    raise RecipientNotFound(recipient_name)
                recipient_username = recipient["username"]

                if not unit.debit_if_sufficient(sender, amount_minor):
                    if unit.balance_of(sender) is None:
                        raise NotFound()
                    raise InsufficientFunds()
                if not unit.credit(recipient_username, amount_minor):
                    raise RecipientNotFound(recipient_name)

                record = self.transaction_log.record(
                    unit,
                    TransactionType.TRANSFER,
                    to_username=recipient_username,
                    amount=amount,
                    description=f"Transfer from {sender} to {recipient_username}",
                    from_username=sender,
                )
                new_balance = from_minor_units(unit.balance_of(sender))

        log_action(
            self.logger, "info", "Transfer applied",
            user_id=sender, action="transfer", resource=f"transaction:{record.id}",
            extra={
                "amount": str(amount),
                "recipient": recipient_username,
                "new_balance": str(new_balance),
            }
        )
        return TransferResult(
            new_balance=new_balance,
            recipient=recipient_username,
            message=f"{format_inr(amount)} transferred to {recipient_username} successfully.",
            transaction=record,
        )

    def get_history(self, identity: Identity, limit: Optional[int] = None) -> List[TransactionRecord]:
        """Caller's transactions, newest first, at most ``limit`` (default from config)"""
        if limit is None:
            limit = self.history_limit
        return self.transaction_log.history(identity.username, limit)
