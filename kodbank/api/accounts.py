"""
Balance, deposit, transfer and history endpoints
"""

from fastapi import APIRouter, Depends

from .dependencies import get_identity, get_ledger_system
from .schemas import DepositRequest, TransferRequest
from ..sessions import Identity
from ..system import LedgerSystem


router = APIRouter()


@router.get("/balance")
def get_balance(
    identity: Identity = Depends(get_identity),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get the caller's balance"""
    balance = system.ledger.check_balance(identity)
    return {"success": True, "balance": str(balance), "username": identity.username}


@router.post("/deposit")
def deposit(
    request: DepositRequest,
    identity: Identity = Depends(get_identity),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Deposit into the caller's account"""
    result = system.ledger.deposit(identity, request.amount)
    return {"success": True, **result.to_dict()}


@router.post("/transfer")
def transfer(
    request: TransferRequest,
    identity: Identity = Depends(get_identity),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Transfer from the caller to another customer"""
    result = system.ledger.transfer(identity, request.to_username, request.amount)
    return {"success": True, **result.to_dict()}


@router.get("/history")
def get_history(
    identity: Identity = Depends(get_identity),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Recent transactions, newest first"""
    records = system.ledger.get_history(identity)
    return {
        "success": True,
        "transactions": [record.to_public_dict() for record in records],
    }
