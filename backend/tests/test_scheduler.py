from decimal import Decimal

from sqlalchemy import select

from dental_erp.core.config import settings
from dental_erp.db import session as db_session
from dental_erp.models import Doctor, Expense
from dental_erp.schemas.purchase_order import PurchaseOrderCreate, PurchaseOrderItemInput
from dental_erp.services import purchase_ledger, scheduler

from helpers import add_doctor, add_supplier


def test_disabled_scheduler_reports_not_running(monkeypatch):
    monkeypatch.setattr(settings, "SCHEDULER_ENABLED", False)
    scheduler.init_scheduler()

    status = scheduler.get_scheduler_status()
    assert status == {"enabled": False, "running": False, "jobs": []}


def test_expense_sweep_job(run_db, monkeypatch):
    async def scenario(Session):
        monkeypatch.setattr(db_session, "SessionLocal", Session)
        supplier_id = await add_supplier(Session)
        async with Session() as db:
            po = await purchase_ledger.create_purchase_order(db, PurchaseOrderCreate(
                supplier_id=supplier_id,
                items=[PurchaseOrderItemInput(description="Wax blocks", quantity=Decimal("5"), unit_price=Decimal("40"))]
            ))
            po_id = po.id
        for status in ("sent", "received"):
            async with Session() as db:
                await purchase_ledger.update_status(db, po_id, status)
        async with Session() as db:
            for expense in (await db.execute(select(Expense))).scalars().all():
                await db.delete(expense)
            await db.commit()

        booked = await scheduler.expense_sweep()
        again = await scheduler.expense_sweep()
        return booked, again

    assert run_db(scenario) == (1, 0)


def test_reconcile_job(run_db, monkeypatch):
    async def scenario(Session):
        monkeypatch.setattr(db_session, "SessionLocal", Session)
        doctor_id = await add_doctor(Session)
        async with Session() as db:
            doctor = (await db.execute(select(Doctor).where(Doctor.id == doctor_id))).scalar_one()
            doctor.total_debt = Decimal("120.00")
            await db.commit()

        return await scheduler.reconcile_aggregates()

    report = run_db(scenario)
    assert report["suppliers"] == []
    assert report["doctors"][0]["total_debt"] == {"was": 120.0, "now": 0.0}
