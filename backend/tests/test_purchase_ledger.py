from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import select

from dental_erp.core.exceptions import (
    ConflictError, InsufficientRemainingError, InvalidTransitionError, PreconditionError
)
from dental_erp.db.session import commit_or_conflict
from dental_erp.models import Expense, Supplier
from dental_erp.schemas.purchase_order import (
    PurchaseOrderCreate, PurchaseOrderItemInput, SupplierPaymentCreate
)
from dental_erp.services import purchase_ledger

from helpers import add_supplier


async def new_po(Session, supplier_id, quantity="10", unit_price="100", discount="0"):
    async with Session() as db:
        po = await purchase_ledger.create_purchase_order(db, PurchaseOrderCreate(
            supplier_id=supplier_id,
            items=[PurchaseOrderItemInput(
                description="Zirconia disc 98mm", sku="ZR-98",
                quantity=Decimal(quantity), unit_price=Decimal(unit_price)
            )],
            discount=Decimal(discount)
        ))
        return po.id


async def move(Session, po_id, *statuses):
    for status in statuses:
        async with Session() as db:
            await purchase_ledger.update_status(db, po_id, status)


async def load_supplier(db, supplier_id):
    result = await db.execute(
        select(Supplier).where(Supplier.id == supplier_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def all_expenses(db):
    return (await db.execute(select(Expense))).scalars().all()


def test_create_po_charges_supplier(run_db):
    async def scenario(Session):
        supplier_id = await add_supplier(Session)
        po_id = await new_po(Session, supplier_id)
        async with Session() as db:
            po = await purchase_ledger.load_purchase_order(db, po_id)
            supplier = await load_supplier(db, supplier_id)
            return po, supplier

    po, supplier = run_db(scenario)
    assert po.po_number == f"PO-{datetime.utcnow().year}-00001"
    assert po.status == "draft"
    assert po.total_amount == Decimal("1000.00")
    assert po.remaining_amount == Decimal("1000.00")
    assert po.payment_status == "unpaid"
    assert supplier.total_purchases == Decimal("1000.00")
    assert supplier.balance == Decimal("1000.00")


def test_receiving_books_one_expense(run_db):
    async def scenario(Session):
        supplier_id = await add_supplier(Session)
        po_id = await new_po(Session, supplier_id)
        await move(Session, po_id, "sent", "received")
        # repeating the status is a no-op
        await move(Session, po_id, "received")

        async with Session() as db:
            po = await purchase_ledger.load_purchase_order(db, po_id)
            return po, await all_expenses(db)

    po, expenses = run_db(scenario)
    assert po.status == "received"
    assert po.received_date is not None
    assert po.items[0].received_qty == po.items[0].quantity
    assert len(expenses) == 1
    assert expenses[0].amount == Decimal("1000.00")
    assert expenses[0].category == "materials"
    assert expenses[0].source == "purchase_order"
    assert expenses[0].purchase_order_id == po.id
    assert expenses[0].vendor == "Ivoclar Egypt"


def test_partial_delivery_then_received(run_db):
    async def scenario(Session):
        supplier_id = await add_supplier(Session)
        po_id = await new_po(Session, supplier_id)
        await move(Session, po_id, "sent", "partial")
        async with Session() as db:
            expenses_while_partial = len(await all_expenses(db))
        await move(Session, po_id, "received")
        async with Session() as db:
            return expenses_while_partial, len(await all_expenses(db))

    assert run_db(scenario) == (0, 1)


def test_draft_cannot_be_received(run_db):
    async def scenario(Session):
        supplier_id = await add_supplier(Session)
        po_id = await new_po(Session, supplier_id)
        async with Session() as db:
            with pytest.raises(InvalidTransitionError):
                await purchase_ledger.update_status(db, po_id, "received")
        async with Session() as db:
            return (await purchase_ledger.load_purchase_order(db, po_id)).status

    assert run_db(scenario) == "draft"


def test_cancel_reverses_supplier_totals(run_db):
    async def scenario(Session):
        supplier_id = await add_supplier(Session)
        kept = await new_po(Session, supplier_id, quantity="2", unit_price="150")
        dropped = await new_po(Session, supplier_id)
        await move(Session, dropped, "sent", "cancelled")

        async with Session() as db:
            with pytest.raises(InvalidTransitionError):
                await purchase_ledger.update_status(db, dropped, "sent")
        async with Session() as db:
            return kept, await load_supplier(db, supplier_id)

    _, supplier = run_db(scenario)
    assert supplier.total_purchases == Decimal("300.00")
    assert supplier.balance == Decimal("300.00")


def test_cancel_with_payment_conflicts(run_db):
    async def scenario(Session):
        supplier_id = await add_supplier(Session)
        po_id = await new_po(Session, supplier_id)
        async with Session() as db:
            await purchase_ledger.record_payment(db, po_id, SupplierPaymentCreate(amount=Decimal("200")))
        async with Session() as db:
            with pytest.raises(ConflictError):
                await purchase_ledger.update_status(db, po_id, "cancelled")
        async with Session() as db:
            return (await purchase_ledger.load_purchase_order(db, po_id)).status

    assert run_db(scenario) == "draft"


def test_supplier_payments(run_db):
    async def scenario(Session):
        supplier_id = await add_supplier(Session)
        po_id = await new_po(Session, supplier_id)

        async with Session() as db:
            await purchase_ledger.record_payment(
                db, po_id, SupplierPaymentCreate(amount=Decimal("400"), method="check", reference="CHK-118")
            )
        async with Session() as db:
            with pytest.raises(InsufficientRemainingError):
                await purchase_ledger.record_payment(db, po_id, SupplierPaymentCreate(amount=Decimal("600.01")))
        async with Session() as db:
            await purchase_ledger.record_payment(db, po_id, SupplierPaymentCreate(amount=Decimal("600")))

        async with Session() as db:
            po = await purchase_ledger.load_purchase_order(db, po_id)
            return po, await load_supplier(db, supplier_id)

    po, supplier = run_db(scenario)
    assert po.paid_amount == Decimal("1000.00")
    assert po.remaining_amount == Decimal("0.00")
    assert po.payment_status == "paid"
    assert [p.reference for p in po.payments] == ["CHK-118", None]
    assert supplier.total_paid == Decimal("1000.00")
    assert supplier.balance == Decimal("0.00")


def test_concurrent_supplier_payment_is_rejected(run_db):
    async def scenario(Session):
        supplier_id = await add_supplier(Session)
        po_id = await new_po(Session, supplier_id)

        async with Session() as slow, Session() as fast:
            stale = await purchase_ledger.load_purchase_order(slow, po_id)

            await purchase_ledger.record_payment(fast, po_id, SupplierPaymentCreate(amount=Decimal("800")))

            # both payments fit the remaining amount the slow session saw
            purchase_ledger.apply_payment(slow, stale, SupplierPaymentCreate(amount=Decimal("800")))
            with pytest.raises(ConflictError):
                await commit_or_conflict(slow)

        async with Session() as db:
            po = await purchase_ledger.load_purchase_order(db, po_id)
            return po, await load_supplier(db, supplier_id)

    po, supplier = run_db(scenario)
    assert po.paid_amount == Decimal("800.00")
    assert len(po.payments) == 1
    assert supplier.total_paid == Decimal("800.00")
    assert supplier.balance == Decimal("200.00")


def test_payment_on_cancelled_po(run_db):
    async def scenario(Session):
        supplier_id = await add_supplier(Session)
        po_id = await new_po(Session, supplier_id)
        await move(Session, po_id, "cancelled")
        async with Session() as db:
            with pytest.raises(ConflictError):
                await purchase_ledger.record_payment(db, po_id, SupplierPaymentCreate(amount=Decimal("1")))

    run_db(scenario)


def test_manual_expense_from_po(run_db):
    async def scenario(Session):
        supplier_id = await add_supplier(Session)
        po_id = await new_po(Session, supplier_id)

        async with Session() as db:
            with pytest.raises(PreconditionError):
                await purchase_ledger.create_expense_from_po(db, po_id)

        await move(Session, po_id, "sent", "received")
        async with Session() as db:
            with pytest.raises(ConflictError):
                await purchase_ledger.create_expense_from_po(db, po_id)

        # once the auto-booked expense is gone the PO can be booked by hand
        async with Session() as db:
            for expense in await all_expenses(db):
                await db.delete(expense)
            await db.commit()
        async with Session() as db:
            expense = await purchase_ledger.create_expense_from_po(db, po_id, operator="hana")
        return expense

    expense = run_db(scenario)
    assert expense.amount == Decimal("1000.00")
    assert expense.created_by == "hana"


def test_sweep_backfills_missing_expenses(run_db):
    async def scenario(Session):
        supplier_id = await add_supplier(Session)
        po_id = await new_po(Session, supplier_id)
        free_po = await new_po(Session, supplier_id, unit_price="0")
        await move(Session, po_id, "sent", "received")
        await move(Session, free_po, "sent", "received")

        async with Session() as db:
            for expense in await all_expenses(db):
                await db.delete(expense)
            await db.commit()

        async with Session() as db:
            booked = await purchase_ledger.sweep_received_orders(db)
        async with Session() as db:
            again = await purchase_ledger.sweep_received_orders(db)
            expenses = await all_expenses(db)
        return booked, again, expenses, po_id

    booked, again, expenses, po_id = run_db(scenario)
    assert booked == 1
    assert again == 0
    assert [(e.purchase_order_id, e.created_by) for e in expenses] == [(po_id, "scheduler")]


def test_zero_total_po_books_no_expense(run_db):
    async def scenario(Session):
        supplier_id = await add_supplier(Session)
        po_id = await new_po(Session, supplier_id, unit_price="0")
        await move(Session, po_id, "sent", "received")
        async with Session() as db:
            return await all_expenses(db)

    assert run_db(scenario) == []


def test_supplier_with_orders_cannot_be_deleted(run_db):
    async def scenario(Session):
        busy = await add_supplier(Session)
        idle = await add_supplier(Session, name="Kuraray Dental")
        po_id = await new_po(Session, busy)
        await move(Session, po_id, "cancelled")

        async with Session() as db:
            with pytest.raises(ConflictError):
                await purchase_ledger.delete_supplier(db, busy)
        async with Session() as db:
            await purchase_ledger.delete_supplier(db, idle)
        async with Session() as db:
            return [s.name for s in (await db.execute(select(Supplier))).scalars().all()]

    assert run_db(scenario) == ["Ivoclar Egypt"]


def test_reconcile_supplier_aggregates(run_db):
    async def scenario(Session):
        supplier_id = await add_supplier(Session)
        po_id = await new_po(Session, supplier_id)
        async with Session() as db:
            await purchase_ledger.record_payment(db, po_id, SupplierPaymentCreate(amount=Decimal("250")))

        async with Session() as db:
            supplier = await load_supplier(db, supplier_id)
            supplier.balance = Decimal("0")
            await db.commit()

        async with Session() as db:
            corrections = await purchase_ledger.reconcile_supplier_aggregates(db)
        async with Session() as db:
            return corrections, await load_supplier(db, supplier_id)

    corrections, supplier = run_db(scenario)
    assert corrections == [{"supplier_id": supplier.id, "balance": {"was": 0.0, "now": 750.0}}]
    assert supplier.balance == Decimal("750.00")
    assert supplier.total_purchases == Decimal("1000.00")
    assert supplier.total_paid == Decimal("250.00")
