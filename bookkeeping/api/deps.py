from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bookkeeping.database import get_db, async_session_factory


async def get_tenant_id(
    x_tenant_id: Annotated[Optional[str], Header(alias="X-Tenant-ID")] = None,
) -> UUID:
    """
    Tenant for the request.

    Authentication and tenant resolution happen upstream; the gateway
    forwards the resolved tenant in X-Tenant-ID.
    """
    if not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required",
        )
    try:
        return UUID(x_tenant_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID must be a valid UUID",
        )


async def get_user_id(
    x_user_id: Annotated[Optional[str], Header(alias="X-User-ID")] = None,
) -> Optional[UUID]:
    if not x_user_id:
        return None
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-ID must be a valid UUID",
        )


def get_session_factory() -> async_sessionmaker:
    """Session factory for batch operations that open one session per unit of work."""
    return async_session_factory


DB = Annotated[AsyncSession, Depends(get_db)]
TenantId = Annotated[UUID, Depends(get_tenant_id)]
UserId = Annotated[Optional[UUID], Depends(get_user_id)]
SessionFactory = Annotated[async_sessionmaker, Depends(get_session_factory)]
