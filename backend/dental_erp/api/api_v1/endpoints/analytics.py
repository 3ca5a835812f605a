"""Cost and profitability analytics API"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dental_erp.core.deps import get_db
from dental_erp.services import financial

router = APIRouter()


@router.get("/cost-analysis")
async def get_cost_analysis(
    *,
    db: AsyncSession = Depends(get_db),
    period: Optional[str] = Query(None, description="YYYY-MM, defaults to this month")) -> Any:
    return {"success": True, "data": await financial.cost_analysis(db, period)}


@router.get("/material-profitability")
async def get_material_profitability(*, db: AsyncSession = Depends(get_db)) -> Any:
    """Profit per work type over all live invoices"""
    return {"success": True, "data": await financial.material_profitability(db)}


@router.get("/purchase-vs-sales")
async def get_purchase_vs_sales(
    *,
    db: AsyncSession = Depends(get_db),
    months: int = Query(6, ge=1, le=24)) -> Any:
    return {"success": True, "data": await financial.purchase_vs_sales(db, months)}


@router.get("/supplier-balances")
async def get_supplier_balances(*, db: AsyncSession = Depends(get_db)) -> Any:
    return {"success": True, "data": await financial.supplier_balances(db)}
