"""Dependency injection for FastAPI endpoints"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from invest_ledger.domain.models import Principal, Role
from invest_ledger.services.wallets import AddressProvider, PlaceholderAddressProvider


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_principal(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Principal:
    """
    Caller identity, as resolved by the authentication gateway in front of
    this service and forwarded in X-User-Id / X-User-Role.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        role = Role((x_user_role or Role.INVESTOR.value).lower())
    except ValueError:
        raise HTTPException(status_code=403, detail="Unknown role")
    return Principal(user_id=x_user_id, role=role)


def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return principal


def get_address_provider() -> AddressProvider:
    """Provide deposit address issuer"""
    return PlaceholderAddressProvider()
