"""Request dependencies (no authentication layer)"""
from typing import AsyncGenerator, Optional

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncSession

from dental_erp.db import session as db_session


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database session for one request
    """
    async with db_session.SessionLocal() as session:
        yield session


async def get_operator(x_operator: Optional[str] = Header(None)) -> str:
    """Name recorded in audit rows and workflow steps"""
    return x_operator or "system"
