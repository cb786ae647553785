"""
Shared API dependencies: the ledger system and the authenticated caller
"""

from typing import Optional
import threading

from fastapi import Cookie, Depends, Header, Request

from ..sessions import Identity
from ..system import LedgerSystem

TOKEN_HEADER = "x-kodbank-token"
TOKEN_COOKIE = "kodbank_token"

_system_lock = threading.Lock()


# Dependency to get the ledger system
def get_ledger_system(request: Request) -> LedgerSystem:
    system = getattr(request.app.state, "system", None)
    if system is None:
        with _system_lock:
            system = getattr(request.app.state, "system", None)
            if system is None:
                system = LedgerSystem()
                request.app.state.system = system
    return system


def get_credential(
    x_kodbank_token: Optional[str] = Header(default=None, alias=TOKEN_HEADER),
    authorization: Optional[str] = Header(default=None),
    kodbank_token: Optional[str] = Cookie(default=None, alias=TOKEN_COOKIE),
) -> Optional[str]:
    """Bearer credential from the token header, Authorization header or cookie"""
    if x_kodbank_token:
        return x_kodbank_token
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1]
    return kodbank_token


def get_identity(
    credential: Optional[str] = Depends(get_credential),
    system: LedgerSystem = Depends(get_ledger_system),
) -> Identity:
    """Dependency that validates the session credential and returns the caller"""
    return system.verifier.authenticate(credential)
