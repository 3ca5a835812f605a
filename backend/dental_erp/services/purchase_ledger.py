"""
Supplier purchase order ledger

Owns purchase orders, supplier payments and the supplier aggregates
(total_purchases / total_paid / balance). Status moves go through the same
TransitionTable machinery as cases; the first arrival in "received" books
the PO as a materials expense, at most once per PO.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from dental_erp.core.exceptions import (
    ConflictError, InsufficientRemainingError, NotFoundError,
    PreconditionError, ValidationError
)
from dental_erp.core.logging_config import get_logger
from dental_erp.core.money import ZERO, to_money, money_sum
from dental_erp.core.state_machine import TransitionTable
from dental_erp.db.session import commit_or_conflict, flush_or_conflict
from dental_erp.models.expense import Expense
from dental_erp.models.purchase_order import PurchaseOrder, PurchaseOrderItem, SupplierPayment
from dental_erp.models.supplier import Supplier
from dental_erp.schemas.purchase_order import PurchaseOrderCreate, SupplierPaymentCreate
from dental_erp.services.audit import record_audit
from dental_erp.services.numbering import next_number

logger = get_logger(__name__)


def require_unpaid(po: PurchaseOrder) -> None:
    if to_money(po.paid_amount) > ZERO:
        raise ConflictError(f"Cannot cancel {po.po_number}: payments already recorded")


PO_TRANSITIONS = TransitionTable(
    "purchase order",
    {
        "draft": ["sent", "cancelled"],
        "sent": ["partial", "received", "cancelled"],
        "partial": ["received", "cancelled"],
        "received": [],
        "cancelled": [],
    },
    guards={"cancelled": [require_unpaid]},
    allow_self=True,
)


async def load_supplier(db: AsyncSession, supplier_id: int) -> Supplier:
    result = await db.execute(select(Supplier).where(Supplier.id == supplier_id))
    supplier = result.scalar_one_or_none()
    if not supplier:
        raise NotFoundError(f"Supplier {supplier_id} not found")
    return supplier


async def load_purchase_order(db: AsyncSession, po_id: int) -> PurchaseOrder:
    """Fresh copy of a PO with supplier, items and payments"""
    result = await db.execute(
        select(PurchaseOrder)
        .where(PurchaseOrder.id == po_id)
        .execution_options(populate_existing=True)
    )
    po = result.scalar_one_or_none()
    if not po:
        raise NotFoundError(f"Purchase order {po_id} not found")
    return po


async def expense_for_po(db: AsyncSession, po_id: int) -> Optional[Expense]:
    result = await db.execute(select(Expense).where(Expense.purchase_order_id == po_id))
    return result.scalar_one_or_none()


async def create_purchase_order(db: AsyncSession, data: PurchaseOrderCreate, operator: str = "system") -> PurchaseOrder:
    """
    Create a draft PO

    The full amount is owed to the supplier from the moment the PO exists:
    total_purchases and balance both grow by the total.
    """
    supplier = await load_supplier(db, data.supplier_id)

    if not data.items:
        raise ValidationError("A purchase order needs at least one item")

    items = []
    for line in data.items:
        quantity = Decimal(line.quantity)
        unit_price = to_money(line.unit_price)
        items.append(PurchaseOrderItem(
            description=line.description,
            sku=line.sku,
            quantity=quantity,
            unit_price=unit_price,
            total=to_money(quantity * unit_price),
            received_qty=Decimal("0")
        ))

    subtotal = money_sum(i.total for i in items)
    discount = to_money(data.discount)
    tax = to_money(data.tax)
    total_amount = subtotal + tax - discount
    if total_amount < ZERO:
        raise ValidationError(f"Purchase order total would be negative ({total_amount})")

    po_number = await next_number(db, PurchaseOrder.po_number, "PO")
    po = PurchaseOrder(
        po_number=po_number,
        supplier=supplier,
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        total_amount=total_amount,
        paid_amount=ZERO,
        status="draft",
        order_date=datetime.utcnow(),
        expected_delivery=data.expected_delivery,
        notes=data.notes,
        created_by=operator,
        items=items,
        payments=[]
    )
    po.recalculate()
    db.add(po)
    await flush_or_conflict(db)

    supplier.total_purchases = to_money(supplier.total_purchases) + total_amount
    supplier.balance = to_money(supplier.balance) + total_amount

    record_audit(
        db, operator, "CREATE_PO", "purchase_order", po.id, po_number,
        f"Created PO {po_number} for {supplier.name} - Amount: {total_amount}"
    )
    await commit_or_conflict(db)

    logger.info(f"PO {po_number} created for supplier {supplier.id}: {total_amount}")
    return po


def _book_expense(db: AsyncSession, po: PurchaseOrder, operator: str) -> Expense:
    expense = Expense(
        category="materials",
        description=f"Purchase order {po.po_number}",
        amount=to_money(po.total_amount),
        date=datetime.utcnow(),
        vendor=po.supplier.name if po.supplier else None,
        reference=po.po_number,
        purchase_order_id=po.id,
        source="purchase_order",
        created_by=operator
    )
    db.add(expense)
    return expense


async def update_status(
    db: AsyncSession,
    po_id: int,
    new_status: str,
    operator: str = "system") -> PurchaseOrder:
    """
    Move a PO along its status graph

    Repeating the current status is accepted and changes nothing.
    Cancelling an unpaid PO takes its amount back off the supplier.
    """
    po = await load_purchase_order(db, po_id)
    old_status = po.status

    if not PO_TRANSITIONS.check(po, old_status, new_status):
        logger.info(f"PO {po.po_number} already {new_status}, nothing to do")
        return po

    po.status = new_status
    expense = None

    if new_status == "received":
        if not po.received_date:
            po.received_date = datetime.utcnow()
        for item in po.items:
            item.received_qty = item.quantity
        if to_money(po.total_amount) > ZERO and not await expense_for_po(db, po.id):
            expense = _book_expense(db, po, operator)

    elif new_status == "cancelled":
        supplier = po.supplier
        total = to_money(po.total_amount)
        supplier.total_purchases = to_money(supplier.total_purchases) - total
        supplier.balance = to_money(supplier.balance) - total

    record_audit(
        db, operator, "UPDATE_PO_STATUS", "purchase_order", po.id, po.po_number,
        f"PO {po.po_number}: {old_status} → {new_status}"
    )
    await commit_or_conflict(db)

    logger.info(f"PO {po.po_number}: {old_status} → {new_status}")
    if expense:
        logger.info(f"Expense {expense.id} booked for received PO {po.po_number}: {expense.amount}")
    return po


def apply_payment(
    db: AsyncSession,
    po: PurchaseOrder,
    data: SupplierPaymentCreate,
    operator: str = "system") -> SupplierPayment:
    """Validate and apply a supplier payment in memory; the caller commits"""
    amount = to_money(data.amount)

    if po.status == "cancelled":
        raise ConflictError(f"Purchase order {po.po_number} is cancelled")
    if amount <= ZERO:
        raise ValidationError("Payment amount must be positive")
    if amount > to_money(po.remaining_amount):
        raise InsufficientRemainingError(
            f"Payment {amount} exceeds remaining amount {po.remaining_amount}"
        )

    payment = SupplierPayment(
        amount=amount,
        method=data.method,
        reference=data.reference,
        notes=data.notes,
        paid_date=datetime.utcnow(),
        created_by=operator
    )
    po.payments.append(payment)
    po.paid_amount = to_money(po.paid_amount) + amount
    po.recalculate()

    supplier = po.supplier
    supplier.total_paid = to_money(supplier.total_paid) + amount
    supplier.balance = to_money(supplier.balance) - amount

    record_audit(
        db, operator, "PO_PAYMENT", "purchase_order", po.id, po.po_number,
        f"Paid {amount} ({data.method}) on PO {po.po_number}"
    )
    return payment


async def record_payment(
    db: AsyncSession,
    po_id: int,
    data: SupplierPaymentCreate,
    operator: str = "system") -> PurchaseOrder:
    """Pay a supplier against one PO"""
    po = await load_purchase_order(db, po_id)
    payment = apply_payment(db, po, data, operator)
    await commit_or_conflict(db)

    logger.info(f"PO {po.po_number} paid {payment.amount}, remaining {po.remaining_amount}")
    return po


async def create_expense_from_po(db: AsyncSession, po_id: int, operator: str = "system") -> Expense:
    """Book a received PO as an expense by hand"""
    po = await load_purchase_order(db, po_id)

    if po.status != "received":
        raise PreconditionError(f"PO {po.po_number} must be received before it can be expensed")
    if await expense_for_po(db, po.id):
        raise ConflictError(f"Expense already recorded for {po.po_number}")

    expense = _book_expense(db, po, operator)
    await flush_or_conflict(db)

    record_audit(
        db, operator, "PO_TO_EXPENSE", "expense", expense.id, po.po_number,
        f"Created expense from PO {po.po_number}: {po.total_amount}"
    )
    await commit_or_conflict(db)

    logger.info(f"Expense {expense.id} created from PO {po.po_number}")
    return expense


async def sweep_received_orders(db: AsyncSession) -> int:
    """Book every received PO that still has no expense; returns the count"""
    result = await db.execute(
        select(PurchaseOrder)
        .outerjoin(Expense, Expense.purchase_order_id == PurchaseOrder.id)
        .where(
            PurchaseOrder.status == "received",
            PurchaseOrder.total_amount > 0,
            Expense.id.is_(None)
        )
    )
    orders = result.scalars().all()

    for po in orders:
        _book_expense(db, po, "scheduler")
        record_audit(
            db, "scheduler", "PO_TO_EXPENSE", "purchase_order", po.id, po.po_number,
            f"Backfilled expense for received PO {po.po_number}"
        )

    if orders:
        await commit_or_conflict(db)
        logger.info(f"Expense sweep booked {len(orders)} received purchase order(s)")
    return len(orders)


async def delete_supplier(db: AsyncSession, supplier_id: int, operator: str = "system") -> None:
    """Remove a supplier that has no live purchase orders"""
    supplier = await load_supplier(db, supplier_id)

    result = await db.execute(
        select(func.count(PurchaseOrder.id)).where(PurchaseOrder.supplier_id == supplier_id)
    )
    if result.scalar():
        raise ConflictError(f"Supplier {supplier.name} has purchase orders and cannot be deleted")

    record_audit(
        db, operator, "DELETE_SUPPLIER", "supplier", supplier.id, supplier.name,
        f"Deleted supplier {supplier.name}"
    )
    await db.delete(supplier)
    await commit_or_conflict(db)
    logger.info(f"Supplier {supplier.id} deleted")


async def reconcile_supplier_aggregates(db: AsyncSession, operator: str = "system") -> List[Dict[str, Any]]:
    """
    Recompute supplier totals from their live POs and fix drift

    Returns one entry per corrected supplier.
    """
    totals: Dict[int, Dict[str, Decimal]] = {}
    result = await db.execute(select(PurchaseOrder).where(PurchaseOrder.status != "cancelled"))
    for po in result.scalars().all():
        entry = totals.setdefault(po.supplier_id, {"purchases": ZERO, "paid": ZERO})
        entry["purchases"] += to_money(po.total_amount)
        entry["paid"] += to_money(po.paid_amount)

    corrections = []
    result = await db.execute(select(Supplier).execution_options(populate_existing=True))
    for supplier in result.scalars().all():
        entry = totals.get(supplier.id, {"purchases": ZERO, "paid": ZERO})
        expected = {
            "total_purchases": entry["purchases"],
            "total_paid": entry["paid"],
            "balance": entry["purchases"] - entry["paid"],
        }
        drift = {
            name: {"was": float(to_money(getattr(supplier, name))), "now": float(value)}
            for name, value in expected.items()
            if to_money(getattr(supplier, name)) != value
        }
        if drift:
            logger.warning(f"Supplier {supplier.id} aggregate drift: {drift}")
            for name, value in expected.items():
                setattr(supplier, name, value)
            corrections.append({"supplier_id": supplier.id, **drift})

    if corrections:
        record_audit(
            db, operator, "RECONCILE", "supplier", None, None,
            f"Corrected aggregates of {len(corrections)} supplier(s)"
        )
        await commit_or_conflict(db)
    return corrections
