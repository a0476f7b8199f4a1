"""Access token verification and tenant access checks"""

from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from callinsight.config import settings
from callinsight.schemas.auth import Principal, TokenPayload, UserRole

# Tokens are issued by the identity service; this API only verifies them
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> Principal:
    """Get acting principal from the bearer token"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    try:
        payload = TokenPayload(
            **jwt.decode(
                credentials.credentials,
                settings.jwt_secret_key,
                algorithms=[settings.jwt_algorithm],
            )
        )
    except (JWTError, ValidationError):
        raise credentials_exception

    if payload.type != "access":
        raise credentials_exception

    return Principal(user_id=payload.sub, tenant_id=payload.tenant_id, role=payload.role)


async def verify_tenant_access(
    tenant_id: UUID,
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Verify principal has access to the specified tenant"""
    if principal.role == UserRole.SUPER_ADMIN:
        return principal

    if principal.tenant_id != tenant_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied to this tenant",
        )

    return principal
