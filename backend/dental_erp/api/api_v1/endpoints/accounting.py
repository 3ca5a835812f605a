"""Accounting reports API"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dental_erp.core.deps import get_db
from dental_erp.services import financial, invoice_ledger

router = APIRouter()


@router.get("/aging")
async def get_aging_report(
    *,
    db: AsyncSession = Depends(get_db),
    doctor_id: Optional[int] = Query(None, description="Filter by doctor")) -> Any:
    """
    Receivables aging
    Buckets: 0-30, 31-60, 61-90 and 90+ days past due
    """
    buckets = await financial.aging_report(db, doctor_id=doctor_id)
    total = sum(b["total"] for b in buckets)
    return {"success": True, "data": buckets, "total_outstanding": total}


@router.get("/financial-summary")
async def get_financial_summary(
    *,
    db: AsyncSession = Depends(get_db),
    period: Optional[str] = Query(None, description="YYYY-MM, defaults to this month")) -> Any:
    return {"success": True, "data": await financial.financial_summary(db, period)}


@router.get("/payment-summary")
async def get_payment_summary(
    *,
    db: AsyncSession = Depends(get_db),
    period: Optional[str] = Query(None, description="YYYY-MM, all time when omitted")) -> Any:
    """Collections per payment method"""
    return {"success": True, "data": await financial.payment_summary(db, period)}


@router.get("/expense-summary")
async def get_expense_summary(
    *,
    db: AsyncSession = Depends(get_db),
    period: Optional[str] = Query(None, description="YYYY-MM, all time when omitted")) -> Any:
    summary = await financial.expense_summary(db, period)
    return {"success": True, **summary}


@router.get("/daily-revenue")
async def get_daily_revenue(
    *,
    db: AsyncSession = Depends(get_db),
    days: int = Query(30, ge=1, le=365)) -> Any:
    return {"success": True, "data": await financial.daily_revenue(db, days)}


@router.get("/doctor-debts")
async def get_doctor_debts(*, db: AsyncSession = Depends(get_db)) -> Any:
    return {"success": True, "data": await invoice_ledger.doctor_debts(db)}


@router.get("/doctor-statement/{doctor_id}")
async def get_doctor_statement(
    *,
    db: AsyncSession = Depends(get_db),
    doctor_id: int) -> Any:
    """Live invoices of one doctor with invoiced / paid / remaining totals"""
    return {"success": True, "data": await invoice_ledger.doctor_statement(db, doctor_id)}
