# waveorder/api/dependencies.py
from dataclasses import dataclass, field
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import List, Optional

from waveorder.core.constants import UserRole
from waveorder.core.security import decode_token
from waveorder.services.stripe_client import StripeClient

security = HTTPBearer(auto_error=False)


@dataclass
class Principal:
    """Caller identity taken from the bearer token"""
    user_id: str
    email: Optional[str] = None
    role: Optional[str] = None
    business_ids: List[str] = field(default_factory=list)

    @property
    def is_superadmin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN.value


def get_stripe_client(request: Request) -> StripeClient:
    """The process-wide Stripe client built at startup"""
    return request.app.state.stripe_client


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Principal:
    """Get current authenticated caller"""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    try:
        payload = decode_token(credentials.credentials)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials"
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

    return Principal(
        user_id=user_id,
        email=payload.get("email"),
        role=payload.get("role"),
        business_ids=list(payload.get("business_ids") or []),
    )


async def require_superadmin(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Only platform superadmins"""
    if not principal.is_superadmin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Superadmin access required"
        )
    return principal


async def require_business_access(
    business_id: str,
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Superadmins, or members of the business in the path"""
    if principal.is_superadmin or business_id in principal.business_ids:
        return principal
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Access to this business is not allowed"
    )
