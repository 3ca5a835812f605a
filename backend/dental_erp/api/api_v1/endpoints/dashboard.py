"""Front page dashboard API"""

from typing import Any
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dental_erp.core.deps import get_db
from dental_erp.services import financial

router = APIRouter()


@router.get("/stats")
async def get_dashboard_stats(*, db: AsyncSession = Depends(get_db)) -> Any:
    return {"success": True, "data": await financial.dashboard_stats(db)}


@router.get("/department-performance")
async def get_department_performance(*, db: AsyncSession = Depends(get_db)) -> Any:
    """Cases handled, hours per stage, rework rate and backlog per department"""
    return {"success": True, "data": await financial.department_performance(db)}


@router.get("/revenue")
async def get_revenue_report(
    *,
    db: AsyncSession = Depends(get_db),
    months: int = Query(6, ge=1, le=24)) -> Any:
    return {"success": True, "data": await financial.revenue_report(db, months)}


@router.get("/top-doctors")
async def get_top_doctors(
    *,
    db: AsyncSession = Depends(get_db),
    limit: int = Query(10, ge=1, le=100)) -> Any:
    return {"success": True, "data": await financial.top_doctors(db, limit)}


@router.get("/work-type-stats")
async def get_work_type_stats(*, db: AsyncSession = Depends(get_db)) -> Any:
    return {"success": True, "data": await financial.work_type_stats(db)}
