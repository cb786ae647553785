"""
Assistant Tool Dispatch

The chat assistant may act for a logged-in customer through a closed set
of named tools. Each tool resolves the caller through the same session
verifier and calls the same ledger engine methods as the direct
endpoints, so no validation or atomicity rule is skipped. Results are
plain dicts ready to be serialized back to the model as tool output;
domain errors come back as ``{"error": ..., "code": ...}`` rather than
being raised.
"""

from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union
import json

from .config import KodbankConfig
from .errors import KodbankError, ServiceError, Unauthenticated
from .ledger import LedgerEngine
from .sessions import Identity, SessionVerifier
from .logging_config import get_logger, log_action

NOT_LOGGED_IN = "User not logged in. Please login first."
UNKNOWN_TOOL = "Unknown tool"


class AssistantTool(Enum):
    """Tools exposed to the assistant"""
    CHECK_BALANCE = "check_balance"
    DEPOSIT_MONEY = "deposit_money"
    TRANSFER_MONEY = "transfer_money"
    GET_TRANSACTIONS = "get_transactions"


def _function(name: AssistantTool, description: str,
              properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name.value,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    _function(
        AssistantTool.CHECK_BALANCE,
        "Check the current account balance of the logged-in user",
        {}, [],
    ),
    _function(
        AssistantTool.DEPOSIT_MONEY,
        "Deposit money into the logged-in user's account",
        {"amount": {"type": "number", "description": "Amount in INR to deposit"}},
        ["amount"],
    ),
    _function(
        AssistantTool.TRANSFER_MONEY,
        "Transfer money from the logged-in user's account to another user",
        {
            "to_username": {"type": "string", "description": "Recipient's username"},
            "amount": {"type": "number", "description": "Amount in INR to transfer"},
        },
        ["to_username", "amount"],
    ),
    _function(
        AssistantTool.GET_TRANSACTIONS,
        "Get the recent transaction history of the logged-in user",
        {}, [],
    ),
]


ToolHandler = Callable[[Identity, Dict[str, Any]], Dict[str, Any]]


class AssistantToolbox:
    """Authenticates and dispatches assistant tool calls"""

    def __init__(self, verifier: SessionVerifier, ledger: LedgerEngine, config: KodbankConfig):
        self.verifier = verifier
        self.ledger = ledger
        self.history_limit = config.assistant_history_limit
        self.logger = get_logger("kodbank.assistant")
        self._handlers: Dict[AssistantTool, ToolHandler] = {
            AssistantTool.CHECK_BALANCE: self._check_balance,
            AssistantTool.DEPOSIT_MONEY: self._deposit_money,
            AssistantTool.TRANSFER_MONEY: self._transfer_money,
            AssistantTool.GET_TRANSACTIONS: self._get_transactions,
        }

    @property
    def definitions(self) -> List[Dict[str, Any]]:
        return TOOL_DEFINITIONS

    def dispatch(
        self,
        credential: Optional[str],
        name: str,
        arguments: Union[str, Dict[str, Any], None] = None
    ) -> Dict[str, Any]:
        """
        Run one tool call for the holder of ``credential``.

        ``arguments`` may be a dict or the raw JSON string the model produced.
        """
        try:
            identity = self.verifier.authenticate(credential)
        except Unauthenticated as e:
            return {"error": NOT_LOGGED_IN, "code": e.code, "reason": e.reason.value}
        except KodbankError as e:
            return e.to_dict()

        try:
            tool = AssistantTool(name)
        except ValueError:
            return {"error": UNKNOWN_TOOL}

        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments or "{}")
            except ValueError:
                return {"error": "Invalid tool arguments"}
        if not isinstance(arguments, dict):
            arguments = {}

        log_action(
            self.logger, "info", f"Assistant tool call: {tool.value}",
            user_id=identity.username, action="assistant_tool", resource=tool.value
        )
        try:
            return self._handlers[tool](identity, arguments)
        except KodbankError as e:
            return e.to_dict()
        except Exception:
            self.logger.exception("Assistant tool %s failed", tool.value)
            return ServiceError().to_dict()

    def _check_balance(self, identity: Identity, arguments: Dict[str, Any]) -> Dict[str, Any]:
        return {"balance": str(self.ledger.check_balance(identity))}

    def _deposit_money(self, identity: Identity, arguments: Dict[str, Any]) -> Dict[str, Any]:
        result = self.ledger.deposit(identity, arguments.get("amount"))
        return {"success": True, **result.to_dict()}

    def _transfer_money(self, identity: Identity, arguments: Dict[str, Any]) -> Dict[str, Any]:
        result = self.ledger.transfer(
            identity, arguments.get("to_username"), arguments.get("amount")
        )
        return {"success": True, **result.to_dict()}

    def _get_transactions(self, identity: Identity, arguments: Dict[str, Any]) -> Dict[str, Any]:
        records = self.ledger.get_history(identity, self.history_limit)
        return {"transactions": [record.to_public_dict() for record in records]}
