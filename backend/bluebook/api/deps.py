"""FastAPI dependency injection — bearer-token principal and guards."""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from bluebook.config import JWT_ALGORITHM, JWT_SECRET_KEY

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    user_id: str
    organization_id: Optional[str]
    is_admin: bool = False


def decode_principal(token: str) -> Principal:
    """
    Token claims: sub (user id), org_id (organization id), and either
    is_admin or role == "admin". Raises JWTError on a bad token.
    """
    payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    user_id = payload.get("sub")
    if not user_id:
        raise JWTError("Token has no subject")
    return Principal(
        user_id=user_id,
        organization_id=payload.get("org_id") or payload.get("organization_id"),
        is_admin=bool(payload.get("is_admin")) or payload.get("role") == "admin",
    )


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Principal:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_principal(credentials.credentials)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_organization_id(principal: Principal = Depends(get_current_principal)) -> str:
    if not principal.organization_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No organization")
    return principal.organization_id


async def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin required")
    return principal
