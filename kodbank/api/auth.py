"""
Registration, login and logout endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Response

from .dependencies import TOKEN_COOKIE, get_credential, get_ledger_system
from .schemas import LoginRequest, RegisterRequest
from ..system import LedgerSystem


router = APIRouter()


@router.post("/register", status_code=201)
def register(
    request: RegisterRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Register a customer account"""
    account = system.issuer.register(
        username=request.username,
        password=request.password,
        email=request.email,
        phone=request.phone,
        role=request.role,
    )
    return {"success": True, "user": account.to_public_dict()}


@router.post("/login")
def login(
    request: LoginRequest,
    response: Response,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Authenticate and open a session"""
    result = system.issuer.login(request.username, request.password)
    response.set_cookie(
        TOKEN_COOKIE,
        result.token,
        max_age=system.config.session_lifetime_hours * 3600,
        httponly=True,
        secure=True,
        samesite="none",
    )
    return {"success": True, **result.to_dict()}


@router.post("/logout")
def logout(
    response: Response,
    credential: Optional[str] = Depends(get_credential),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Revoke the caller's session"""
    system.issuer.logout(credential)
    response.delete_cookie(TOKEN_COOKIE)
    return {"success": True, "message": "Logged out"}
