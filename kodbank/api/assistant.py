"""
Assistant tool endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .dependencies import get_credential, get_ledger_system
from .schemas import ToolCallRequest
from ..system import LedgerSystem


router = APIRouter()


@router.get("/tools")
def list_tools(system: LedgerSystem = Depends(get_ledger_system)):
    """Tool catalog offered to the assistant model"""
    return {"tools": system.assistant.definitions}


@router.post("/tools/{name}")
def call_tool(
    name: str,
    request: ToolCallRequest,
    credential: Optional[str] = Depends(get_credential),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Run one tool call on behalf of the credential holder"""
    return system.assistant.dispatch(credential, name, request.arguments)
