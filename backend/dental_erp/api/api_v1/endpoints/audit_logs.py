"""Audit log API"""

from typing import Any, Optional
from datetime import datetime
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from dental_erp.core.deps import get_db
from dental_erp.models.audit_log import AuditLog
from dental_erp.schemas.audit_log import AuditLogResponse, AuditLogListResponse

router = APIRouter()


@router.get("/", response_model=AuditLogListResponse)
async def list_logs(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    action: Optional[str] = Query(None),
    resource_type: Optional[str] = Query(None),
    resource_id: Optional[int] = Query(None),
    operator: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None)) -> Any:
    """Audit trail, newest first"""
    conditions = []
    if action:
        conditions.append(AuditLog.action == action)
    if resource_type:
        conditions.append(AuditLog.resource_type == resource_type)
    if resource_id:
        conditions.append(AuditLog.resource_id == resource_id)
    if operator:
        conditions.append(AuditLog.operator == operator)
    if start_date:
        conditions.append(AuditLog.created_at >= datetime.strptime(start_date, "%Y-%m-%d"))
    if end_date:
        conditions.append(AuditLog.created_at <= datetime.strptime(end_date, "%Y-%m-%d"))

    query = select(AuditLog)
    count_query = select(func.count(AuditLog.id))
    if conditions:
        query = query.where(and_(*conditions))
        count_query = count_query.where(and_(*conditions))

    total = (await db.execute(count_query)).scalar() or 0

    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    result = await db.execute(query)

    return AuditLogListResponse(
        data=[AuditLogResponse.model_validate(log) for log in result.scalars().all()],
        total=total,
        page=page,
        limit=limit
    )
