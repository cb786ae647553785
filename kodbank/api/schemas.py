"""
Pydantic schemas for API requests
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    username: str = ""
    password: str = ""
    email: str = ""
    phone: str = ""
    role: Optional[str] = None


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""


class DepositRequest(BaseModel):
    # Left untyped so amounts reach the ledger unconverted
    amount: Any = Field(None, description="Decimal amount as string or number")


class TransferRequest(BaseModel):
    to_username: Any = None
    amount: Any = Field(None, description="Decimal amount as string or number")


class ToolCallRequest(BaseModel):
    arguments: Dict[str, Any] = Field(default_factory=dict)
