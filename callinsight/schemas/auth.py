"""Authentication schemas"""

import enum
from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel


class UserRole(str, enum.Enum):
    """Dashboard roles carried in access tokens"""
    SUPER_ADMIN = "super_admin"
    TENANT_ADMIN = "tenant_admin"
    TENANT_VIEWER = "tenant_viewer"


class TokenPayload(BaseModel):
    """JWT token payload"""
    sub: str  # User ID
    tenant_id: Optional[UUID] = None
    role: UserRole = UserRole.TENANT_VIEWER
    type: str = "access"
    exp: Optional[datetime] = None


class Principal(BaseModel):
    """Acting user resolved from a verified access token"""
    user_id: str
    tenant_id: Optional[UUID] = None
    role: UserRole
