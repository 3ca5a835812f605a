"""Expense book API"""

from datetime import datetime
from typing import Any, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from dental_erp.core.deps import get_db, get_operator
from dental_erp.core.exceptions import ConflictError, NotFoundError
from dental_erp.core.money import to_money, money_sum
from dental_erp.db.session import commit_or_conflict, flush_or_conflict
from dental_erp.models.expense import Expense
from dental_erp.schemas.expense import (
    ExpenseCreate, ExpenseUpdate, ExpenseResponse, ExpenseListResponse
)
from dental_erp.services.audit import record_audit

router = APIRouter()


def build_expense_response(expense: Expense) -> ExpenseResponse:
    return ExpenseResponse(
        id=expense.id,
        category=expense.category,
        category_display=expense.category_display,
        description=expense.description,
        amount=float(expense.amount),
        date=expense.date,
        vendor=expense.vendor,
        reference=expense.reference,
        notes=expense.notes,
        purchase_order_id=expense.purchase_order_id,
        source=expense.source,
        created_by=expense.created_by,
        created_at=expense.created_at
    )


async def get_expense_or_404(db: AsyncSession, expense_id: int) -> Expense:
    result = await db.execute(select(Expense).where(Expense.id == expense_id))
    expense = result.scalar_one_or_none()
    if not expense:
        raise NotFoundError(f"Expense {expense_id} not found")
    return expense


@router.get("/", response_model=ExpenseListResponse)
async def list_expenses(
    *,
    db: AsyncSession = Depends(get_db),
    category: Optional[str] = Query(None),
    source: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD")) -> Any:
    """Expenses, newest first"""
    conditions = []
    if category:
        conditions.append(Expense.category == category)
    if source:
        conditions.append(Expense.source == source)
    if start_date:
        conditions.append(Expense.date >= datetime.strptime(start_date, "%Y-%m-%d"))
    if end_date:
        conditions.append(Expense.date <= datetime.strptime(end_date, "%Y-%m-%d").replace(hour=23, minute=59, second=59))

    query = select(Expense)
    if conditions:
        query = query.where(and_(*conditions))
    result = await db.execute(query.order_by(Expense.date.desc(), Expense.id.desc()))
    expenses = result.scalars().all()

    return ExpenseListResponse(
        data=[build_expense_response(e) for e in expenses],
        total=len(expenses),
        total_amount=float(money_sum(e.amount for e in expenses))
    )


@router.post("/", response_model=ExpenseResponse, status_code=201)
async def create_expense(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    data: ExpenseCreate) -> Any:
    """Record a manual expense"""
    values = data.model_dump()
    values["amount"] = to_money(values["amount"])
    values["date"] = values["date"] or datetime.utcnow()
    expense = Expense(**values, source="manual", created_by=operator)
    db.add(expense)
    await flush_or_conflict(db)

    record_audit(db, operator, "CREATE_EXPENSE", "expense", expense.id, expense.reference,
                 f"Created expense: {expense.description} - {expense.amount}")
    await commit_or_conflict(db)
    await db.refresh(expense)
    return build_expense_response(expense)


@router.put("/{expense_id}", response_model=ExpenseResponse)
async def update_expense(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    expense_id: int,
    data: ExpenseUpdate) -> Any:
    expense = await get_expense_or_404(db, expense_id)
    if expense.purchase_order_id:
        raise ConflictError("Expenses booked from a purchase order cannot be edited")

    for field, value in data.model_dump(exclude_unset=True).items():
        if field == "amount":
            value = to_money(value)
        setattr(expense, field, value)

    record_audit(db, operator, "UPDATE_EXPENSE", "expense", expense.id, expense.reference,
                 f"Updated expense: {expense.description}")
    await commit_or_conflict(db)
    await db.refresh(expense)
    return build_expense_response(expense)


@router.delete("/{expense_id}")
async def delete_expense(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    expense_id: int) -> Any:
    """Delete an expense (a PO expense can be re-created from its PO)"""
    expense = await get_expense_or_404(db, expense_id)

    record_audit(db, operator, "DELETE_EXPENSE", "expense", expense.id, expense.reference,
                 f"Deleted expense: {expense.description}")
    await db.delete(expense)
    await commit_or_conflict(db)
    return {"success": True, "message": "Expense deleted"}
