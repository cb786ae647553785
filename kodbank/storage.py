"""
Storage Backend Module

Provides the abstract storage interface and implementations for in-memory
(testing) and SQLite (persistence). Three logical tables are kept:
accounts, sessions and transactions. Balances and amounts are stored as
integer minor units (paise).

Balance mutations only happen inside ``atomic()``, which yields a
``StorageUnit``. Everything done through the unit commits together or
not at all.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional
from datetime import datetime, timezone
from pathlib import Path
from contextlib import contextmanager
from dataclasses import dataclass
import copy
import sqlite3
import threading


class StorageError(Exception):
    """Base class for storage failures"""


class DuplicateKeyError(StorageError):
    """A uniqueness constraint rejected an insert"""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Duplicate value for unique field '{field}'")


class StoreBusyError(StorageError):
    """The store could not obtain its write lock in time"""


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime

    @staticmethod
    def parse_timestamp(value: Any) -> datetime:
        """Convert a stored ISO string back to an aware datetime"""
        if isinstance(value, datetime):
            return value
        return datetime.fromisoformat(value)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _key(value: str) -> str:
    """Case-insensitive lookup key for usernames and emails"""
    return value.strip().lower()


class StorageUnit(ABC):
    """Operations available inside one atomic unit of work"""

    @abstractmethod
    def find_account_ci(self, username: str) -> Optional[Dict[str, Any]]:
        """Load an account by case-insensitive username"""
        pass

    @abstractmethod
    def balance_of(self, username: str) -> Optional[int]:
        """Current balance in minor units, None for unknown accounts"""
        pass

    @abstractmethod
    def credit(self, username: str, amount_minor: int) -> bool:
        """Increment a balance in place. False if the account does not exist."""
        pass

    @abstractmethod
    def debit_if_sufficient(self, username: str, amount_minor: int) -> bool:
        """
        Decrement a balance only where balance >= amount.

        False means nothing was changed (insufficient funds or unknown
        account); the check and the write are one statement.
        """
        pass

    @abstractmethod
    def append_transaction(self, data: Dict[str, Any]) -> None:
        """Append one immutable transaction record"""
        pass


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def insert_account(self, data: Dict[str, Any]) -> None:
        """Insert a new account, raising DuplicateKeyError on username/email clash"""
        pass

    @abstractmethod
    def get_account(self, username: str) -> Optional[Dict[str, Any]]:
        """Load an account by exact username"""
        pass

    @abstractmethod
    def find_account_ci(self, username: str) -> Optional[Dict[str, Any]]:
        """Load an account by case-insensitive username"""
        pass

    @abstractmethod
    def insert_session(self, data: Dict[str, Any]) -> None:
        """Persist a new session row"""
        pass

    @abstractmethod
    def get_session(self, token: str) -> Optional[Dict[str, Any]]:
        """Load a session row by token"""
        pass

    @abstractmethod
    def revoke_session(self, token: str) -> bool:
        """Mark a session revoked. False if no such session."""
        pass

    @abstractmethod
    def list_transactions(self, username: str, limit: int) -> List[Dict[str, Any]]:
        """Transactions sent or received by username, newest first"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def atomic(self):
        """Context manager yielding a StorageUnit; commits on success, rolls back on error"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass


TABLES = ("accounts", "sessions", "transactions")


class _InMemoryUnit(StorageUnit):

    def __init__(self, storage: 'InMemoryStorage'):
        self._storage = storage

    def find_account_ci(self, username: str) -> Optional[Dict[str, Any]]:
        return self._storage._find_account_ci(username)

    def balance_of(self, username: str) -> Optional[int]:
        account = self._storage._accounts.get(username)
        return account["balance_minor"] if account else None

    def credit(self, username: str, amount_minor: int) -> bool:
        account = self._storage._accounts.get(username)
        if account is None:
            return False
        account["balance_minor"] += amount_minor
        account["updated_at"] = _utcnow()
        return True

    def debit_if_sufficient(self, username: str, amount_minor: int) -> bool:
        account = self._storage._accounts.get(username)
        if account is None or account["balance_minor"] < amount_minor:
            return False
        account["balance_minor"] -= amount_minor
        account["updated_at"] = _utcnow()
        return True

    def append_transaction(self, data: Dict[str, Any]) -> None:
        self._storage._transactions.append(dict(data))


class InMemoryStorage(StorageInterface):
    """
    In-memory storage implementation for testing.

    A single re-entrant lock guards all tables. ``atomic()`` holds it for
    the whole unit, so units are serial, and restores a snapshot if the
    unit raises.
    """

    def __init__(self):
        self._accounts: Dict[str, Dict[str, Any]] = {}
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._transactions: List[Dict[str, Any]] = []
        self._lock = threading.RLock()

    def _find_account_ci(self, username: str) -> Optional[Dict[str, Any]]:
        wanted = _key(username)
        for account in self._accounts.values():
            if account["username_key"] == wanted:
                return dict(account)
        return None

    def insert_account(self, data: Dict[str, Any]) -> None:
        """Save a new account to memory"""
        with self._lock:
            record = dict(data)
            record["username_key"] = _key(record["username"])
            record["email_key"] = _key(record["email"])
            for existing in self._accounts.values():
                if existing["username_key"] == record["username_key"]:
                    raise DuplicateKeyError("username")
                if existing["email_key"] == record["email_key"]:
                    raise DuplicateKeyError("email")
            self._accounts[record["username"]] = record

    def get_account(self, username: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            account = self._accounts.get(username)
            return dict(account) if account else None

    def find_account_ci(self, username: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._find_account_ci(username)

    def insert_session(self, data: Dict[str, Any]) -> None:
        with self._lock:
            if data["token"] in self._sessions:
                raise DuplicateKeyError("token")
            record = dict(data)
            record.setdefault("revoked", False)
            record.setdefault("revoked_at", None)
            self._sessions[record["token"]] = record

    def get_session(self, token: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            session = self._sessions.get(token)
            return dict(session) if session else None

    def revoke_session(self, token: str) -> bool:
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return False
            session["revoked"] = True
            session["revoked_at"] = _utcnow()
            return True

    def list_transactions(self, username: str, limit: int) -> List[Dict[str, Any]]:
        with self._lock:
            results = []
            for record in reversed(self._transactions):
                if record["from_username"] == username or record["to_username"] == username:
                    results.append(dict(record))
                    if len(results) >= limit:
                        break
            return results

    def count(self, table: str) -> int:
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table}")
        with self._lock:
            return len(getattr(self, f"_{table}"))

    @contextmanager
    def atomic(self) -> Iterator[StorageUnit]:
        """Context manager for atomic operations"""
        with self._lock:
            accounts_snapshot = copy.deepcopy(self._accounts)
            transactions_length = len(self._transactions)
            try:
                yield _InMemoryUnit(self)
            except BaseException:
                self._accounts = accounts_snapshot
                del self._transactions[transactions_length:]
                raise

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS accounts (
        id TEXT PRIMARY KEY,
        username TEXT NOT NULL UNIQUE,
        username_key TEXT NOT NULL UNIQUE,
        email TEXT NOT NULL,
        email_key TEXT NOT NULL UNIQUE,
        phone TEXT NOT NULL,
        password_hash TEXT NOT NULL,
        role TEXT NOT NULL,
        balance_minor INTEGER NOT NULL CHECK (balance_minor >= 0),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sessions (
        id TEXT PRIMARY KEY,
        token TEXT NOT NULL UNIQUE,
        username TEXT NOT NULL,
        created_at TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        revoked INTEGER NOT NULL DEFAULT 0,
        revoked_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        from_username TEXT,
        to_username TEXT NOT NULL,
        type TEXT NOT NULL CHECK (type IN ('deposit', 'transfer')),
        amount_minor INTEGER NOT NULL CHECK (amount_minor > 0),
        description TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_transactions_from ON transactions(from_username)",
    "CREATE INDEX IF NOT EXISTS idx_transactions_to ON transactions(to_username)",
    "CREATE INDEX IF NOT EXISTS idx_sessions_username ON sessions(username)",
)

ACCOUNT_COLUMNS = (
    "id", "username", "username_key", "email", "email_key", "phone",
    "password_hash", "role", "balance_minor", "created_at", "updated_at",
)

TRANSACTION_COLUMNS = (
    "id", "from_username", "to_username", "type", "amount_minor",
    "description", "created_at",
)


def _is_busy(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return "locked" in message or "busy" in message


def _account_row(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    return dict(row) if row else None


def _session_row(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    if not row:
        return None
    data = dict(row)
    data["revoked"] = bool(data["revoked"])
    return data


def _transaction_row(row: sqlite3.Row) -> Dict[str, Any]:
    data = dict(row)
    data.pop("seq", None)
    return data


class _SQLiteUnit(StorageUnit):

    def __init__(self, connection: sqlite3.Connection):
        self._connection = connection

    def find_account_ci(self, username: str) -> Optional[Dict[str, Any]]:
        cursor = self._connection.execute(
            "SELECT * FROM accounts WHERE username_key = ?", (_key(username),)
        )
        return _account_row(cursor.fetchone())

    def balance_of(self, username: str) -> Optional[int]:
        cursor = self._connection.execute(
            "SELECT balance_minor FROM accounts WHERE username = ?", (username,)
        )
        row = cursor.fetchone()
        return row["balance_minor"] if row else None

    def credit(self, username: str, amount_minor: int) -> bool:
        cursor = self._connection.execute(
            """
            UPDATE accounts SET balance_minor = balance_minor + ?, updated_at = ?
            WHERE username = ?
            """,
            (amount_minor, _utcnow(), username),
        )
        return cursor.rowcount == 1

    def debit_if_sufficient(self, username: str, amount_minor: int) -> bool:
        cursor = self._connection.execute(
            """
            UPDATE accounts SET balance_minor = balance_minor - ?, updated_at = ?
            WHERE username = ? AND balance_minor >= ?
            """,
            (amount_minor, _utcnow(), username, amount_minor),
        )
        return cursor.rowcount == 1

    def append_transaction(self, data: Dict[str, Any]) -> None:
        placeholders = ", ".join("?" for _ in TRANSACTION_COLUMNS)
        self._connection.execute(
            f"INSERT INTO transactions ({', '.join(TRANSACTION_COLUMNS)}) VALUES ({placeholders})",
            tuple(data[column] for column in TRANSACTION_COLUMNS),
        )


class SQLiteStorage(StorageInterface):
    """
    SQLite storage implementation for persistence.

    File databases get one connection per thread in autocommit mode and
    rely on SQLite's own locking: ``atomic()`` runs ``BEGIN IMMEDIATE``,
    which takes the database write lock up front, so concurrent units are
    serialized by the store and never interleave their read-check-write
    steps. ``:memory:`` databases cannot be shared between connections and
    fall back to one connection behind a lock.
    """

    def __init__(self, db_path="kodbank.db", timeout: float = 5.0):
        self.db_path = str(db_path)
        self.timeout = timeout
        self._shared = self.db_path == ":memory:"
        self._local = threading.local()
        self._lock = threading.RLock()
        self._connections: List[sqlite3.Connection] = []
        self._closed = False

        if not self._shared:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        with self._connection() as connection:
            if not self._shared:
                # WAL lets readers proceed while a writer holds the lock
                connection.execute("PRAGMA journal_mode = WAL")
                connection.execute("PRAGMA synchronous = NORMAL")
            for statement in SCHEMA:
                connection.execute(statement)

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(
            self.db_path,
            timeout=self.timeout,
            isolation_level=None,  # explicit BEGIN/COMMIT only
            check_same_thread=False,
        )
        connection.row_factory = sqlite3.Row
        with self._lock:
            self._connections.append(connection)
        return connection

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        if self._closed:
            raise StorageError("Storage is closed")
        if self._shared:
            with self._lock:
                if not self._connections:
                    self._connect()
                yield self._connections[0]
            return
        connection = getattr(self._local, "connection", None)
        if connection is None:
            connection = self._connect()
            self._local.connection = connection
        yield connection

    @contextmanager
    def _translated_errors(self) -> Iterator[None]:
        try:
            yield
        except sqlite3.IntegrityError as e:
            message = str(e)
            for field in ("username", "email", "token"):
                if f".{field}" in message:
                    raise DuplicateKeyError(field) from e
            raise
        except sqlite3.OperationalError as e:
            if _is_busy(e):
                raise StoreBusyError(str(e)) from e
            raise

    def insert_account(self, data: Dict[str, Any]) -> None:
        """Save a new account to SQLite"""
        record = dict(data)
        record["username_key"] = _key(record["username"])
        record["email_key"] = _key(record["email"])
        placeholders = ", ".join("?" for _ in ACCOUNT_COLUMNS)
        with self._connection() as connection, self._translated_errors():
            connection.execute(
                f"INSERT INTO accounts ({', '.join(ACCOUNT_COLUMNS)}) VALUES ({placeholders})",
                tuple(record[column] for column in ACCOUNT_COLUMNS),
            )

    def get_account(self, username: str) -> Optional[Dict[str, Any]]:
        with self._connection() as connection, self._translated_errors():
            cursor = connection.execute(
                "SELECT * FROM accounts WHERE username = ?", (username,)
            )
            return _account_row(cursor.fetchone())

    def find_account_ci(self, username: str) -> Optional[Dict[str, Any]]:
        with self._connection() as connection, self._translated_errors():
            return _SQLiteUnit(connection).find_account_ci(username)

    def insert_session(self, data: Dict[str, Any]) -> None:
        with self._connection() as connection, self._translated_errors():
            connection.execute(
                """
                INSERT INTO sessions (id, token, username, created_at, expires_at, revoked)
                VALUES (?, ?, ?, ?, ?, 0)
                """,
                (data["id"], data["token"], data["username"],
                 data["created_at"], data["expires_at"]),
            )

    def get_session(self, token: str) -> Optional[Dict[str, Any]]:
        with self._connection() as connection, self._translated_errors():
            cursor = connection.execute("SELECT * FROM sessions WHERE token = ?", (token,))
            return _session_row(cursor.fetchone())

    def revoke_session(self, token: str) -> bool:
        with self._connection() as connection, self._translated_errors():
            cursor = connection.execute(
                "UPDATE sessions SET revoked = 1, revoked_at = ? WHERE token = ?",
                (_utcnow(), token),
            )
            return cursor.rowcount == 1

    def list_transactions(self, username: str, limit: int) -> List[Dict[str, Any]]:
        with self._connection() as connection, self._translated_errors():
            cursor = connection.execute(
                """
                SELECT * FROM transactions
                WHERE from_username = ? OR to_username = ?
                ORDER BY seq DESC
                LIMIT ?
                """,
                (username, username, limit),
            )
            return [_transaction_row(row) for row in cursor.fetchall()]

    def count(self, table: str) -> int:
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table}")
        with self._connection() as connection, self._translated_errors():
            cursor = connection.execute(f"SELECT COUNT(*) AS count FROM {table}")
            return cursor.fetchone()["count"]

    @contextmanager
    def atomic(self) -> Iterator[StorageUnit]:
        """Context manager for atomic operations"""
        with self._connection() as connection:
            with self._translated_errors():
                connection.execute("BEGIN IMMEDIATE")
            try:
                with self._translated_errors():
                    yield _SQLiteUnit(connection)
                    connection.execute("COMMIT")
            except BaseException:
                if connection.in_transaction:
                    connection.execute("ROLLBACK")
                raise

    def close(self) -> None:
        """Close all SQLite connections"""
        with self._lock:
            for connection in self._connections:
                connection.close()
            self._connections = []
            self._closed = True


def create_storage(database_url: str, timeout: float = 5.0) -> StorageInterface:
    """
    Build a storage backend from a database URL.

    ``memory://`` gives InMemoryStorage; ``sqlite:///path/to.db`` gives a
    file-backed SQLiteStorage; ``sqlite://`` or ``sqlite:///:memory:`` gives
    a private in-memory SQLite database.
    """
    if database_url == "memory://":
        return InMemoryStorage()
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return SQLiteStorage(":memory:", timeout=timeout)
    if database_url.startswith("sqlite:///"):
        return SQLiteStorage(database_url[len("sqlite:///"):], timeout=timeout)
    raise ValueError(f"Unsupported database URL: {database_url}")
