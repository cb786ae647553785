"""
Component wiring for the ledger service
"""

from typing import Optional

from .accounts import AccountStore
from .assistant import AssistantToolbox
from .config import KodbankConfig, get_config
from .credentials import CredentialIssuer
from .ledger import LedgerEngine
from .security import TokenSigner
from .sessions import SessionVerifier
from .storage import StorageInterface, create_storage
from .transactions import TransactionLog


class LedgerSystem:
    """Ledger service with all components initialized over one store"""
    
    def __init__(self, config: Optional[KodbankConfig] = None,
                 storage: Optional[StorageInterface] = None):
        self.config = config or get_config()
        
        # Initialize storage
        if storage is None:
            storage = create_storage(
                self.config.database_url, timeout=self.config.database_timeout_seconds
            )
        self.storage = storage
        
        # Initialize core components
        self.signer = TokenSigner(
            secret=self.config.jwt_secret,
            algorithm=self.config.jwt_algorithm,
            lifetime_hours=self.config.session_lifetime_hours,
        )
        self.accounts = AccountStore(self.storage)
        self.transaction_log = TransactionLog(self.storage)
        self.verifier = SessionVerifier(self.storage, self.signer)
        self.issuer = CredentialIssuer(
            self.storage, self.accounts, self.signer, self.verifier, self.config
        )
        self.ledger = LedgerEngine(
            self.storage, self.accounts, self.transaction_log, self.config
        )
        self.assistant = AssistantToolbox(self.verifier, self.ledger, self.config)
    
    def close(self) -> None:
        self.storage.close()
