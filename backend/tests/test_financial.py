from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from dental_erp.core.exceptions import ValidationError
from dental_erp.models import Expense, WorkflowStep
from dental_erp.schemas.invoice import InvoiceCreate, PaymentCreate
from dental_erp.schemas.purchase_order import PurchaseOrderCreate, PurchaseOrderItemInput
from dental_erp.services import financial, invoice_ledger, purchase_ledger, workflow

from helpers import add_case, add_doctor, add_rule, add_supplier, days_ago


async def invoice_for(Session, doctor_id, due_date=None, teeth="11,12,13"):
    case_id = await add_case(Session, doctor_id, teeth=teeth, qc="pass")
    async with Session() as db:
        invoice = await invoice_ledger.create_invoice(db, InvoiceCreate(case_id=case_id, due_date=due_date))
        return invoice.id


async def month_of_activity(Session):
    """One 2250 invoice with 1000 collected, a received 1000 PO and 300 rent"""
    doctor_id = await add_doctor(Session)
    await add_rule(Session)
    invoice_id = await invoice_for(Session, doctor_id)
    async with Session() as db:
        await invoice_ledger.record_payment(db, invoice_id, PaymentCreate(amount=Decimal("1000")))

    supplier_id = await add_supplier(Session)
    async with Session() as db:
        po = await purchase_ledger.create_purchase_order(db, PurchaseOrderCreate(
            supplier_id=supplier_id,
            items=[PurchaseOrderItemInput(description="Zirconia disc", quantity=Decimal("10"), unit_price=Decimal("100"))]
        ))
        po_id = po.id
    for status in ("sent", "received"):
        async with Session() as db:
            await purchase_ledger.update_status(db, po_id, status)

    async with Session() as db:
        db.add(Expense(
            category="rent", description="Workshop rent", amount=Decimal("300"),
            date=datetime.utcnow(), source="manual"
        ))
        await db.commit()
    return doctor_id


@pytest.mark.parametrize("days, bucket", [
    (0, 0), (30, 0), (31, 1), (45, 1), (60, 1), (61, 2), (90, 2), (91, 3), (400, 3),
])
def test_aging_bucket_boundaries(run_db, days, bucket):
    async def scenario(Session):
        doctor_id = await add_doctor(Session)
        await add_rule(Session)
        due = datetime(2026, 1, 1)
        await invoice_for(Session, doctor_id, due_date=due)
        async with Session() as db:
            return await financial.aging_report(db, now=due + timedelta(days=days, hours=3))

    buckets = run_db(scenario)
    assert [b["count"] for b in buckets] == [1 if i == bucket else 0 for i in range(4)]
    assert buckets[bucket]["invoices"][0]["days_overdue"] == days
    assert buckets[bucket]["total"] == 2250.0


def test_not_yet_due_counts_as_current():
    due = datetime(2026, 3, 10)
    assert financial.days_overdue(due, due - timedelta(days=5)) == 0


def test_aging_report_45_days_overdue(run_db):
    async def scenario(Session):
        doctor_id = await add_doctor(Session)
        other_id = await add_doctor(Session, name="Dr. Karim Fathy")
        await add_rule(Session)
        invoice_id = await invoice_for(Session, doctor_id, due_date=days_ago(45))
        await invoice_for(Session, other_id, due_date=days_ago(5))
        async with Session() as db:
            await invoice_ledger.record_payment(db, invoice_id, PaymentCreate(amount=Decimal("250")))
        async with Session() as db:
            return (
                await financial.aging_report(db),
                await financial.aging_report(db, doctor_id=doctor_id),
            )

    everyone, one_doctor = run_db(scenario)
    assert [b["label"] for b in everyone] == ["جاري", "متأخر", "متأخر جداً", "متعثر"]
    assert everyone[1]["range"] == "31-60 يوم"
    assert everyone[1]["total"] == 2000.0
    assert everyone[1]["invoices"][0]["days_overdue"] == 45
    assert everyone[0]["count"] == 1
    assert [b["count"] for b in one_doctor] == [0, 1, 0, 0]


def test_aging_skips_paid_and_cancelled(run_db):
    async def scenario(Session):
        doctor_id = await add_doctor(Session)
        await add_rule(Session)
        paid = await invoice_for(Session, doctor_id, due_date=days_ago(40))
        cancelled = await invoice_for(Session, doctor_id, due_date=days_ago(40))
        async with Session() as db:
            await invoice_ledger.record_payment(db, paid, PaymentCreate(amount=Decimal("2250")))
        async with Session() as db:
            await invoice_ledger.cancel_invoice(db, cancelled)
        async with Session() as db:
            return await financial.aging_report(db)

    assert sum(b["count"] for b in run_db(scenario)) == 0


def test_financial_summary(run_db):
    async def scenario(Session):
        await month_of_activity(Session)
        async with Session() as db:
            return await financial.financial_summary(db)

    summary = run_db(scenario)
    assert summary["period"] == financial.current_period()
    assert summary["total_revenue"] == 2250.0
    assert summary["total_collected"] == 1000.0
    assert summary["total_outstanding"] == 1250.0
    assert summary["total_expenses"] == 1300.0
    assert summary["net_profit"] == -300.0
    assert summary["collection_rate"] == 44
    assert summary["invoice_count"] == 1
    assert summary["partial_invoice_count"] == 1
    assert summary["top_work_type"] == "zirconia"
    assert summary["top_doctor"] == "Dr. Amal Hassan"
    assert summary["avg_invoice_value"] == 2250


def test_summary_of_empty_month(run_db):
    async def scenario(Session):
        async with Session() as db:
            return await financial.financial_summary(db, "2020-02")

    summary = run_db(scenario)
    assert summary["total_revenue"] == 0.0
    assert summary["collection_rate"] == 0
    assert summary["avg_invoice_value"] == 0
    assert summary["top_doctor"] == ""


@pytest.mark.parametrize("period", ["2026-13", "2026-1", "26-01", "abc"])
def test_period_must_be_year_month(period):
    with pytest.raises(ValidationError):
        financial.period_bounds(period)


def test_period_bounds_december():
    _, start, end = financial.period_bounds("2025-12")
    assert start == datetime(2025, 12, 1)
    assert end == datetime(2026, 1, 1)


def test_cost_analysis_splits_purchases_and_overhead(run_db):
    async def scenario(Session):
        await month_of_activity(Session)
        async with Session() as db:
            return await financial.cost_analysis(db)

    report = run_db(scenario)
    assert report["total_sales_revenue"] == 2250.0
    assert report["total_materials_cost"] == 450.0
    assert report["total_labor_cost"] == 300.0
    assert report["total_purchases_cost"] == 1000.0
    # the PO expense is already counted as a purchase
    assert report["total_overhead"] == 300.0
    assert report["gross_profit"] == 1500.0
    assert report["gross_margin"] == 67
    assert report["net_profit"] == 950.0
    assert report["net_margin"] == 42
    assert report["avg_cost_per_case"] == 1300
    assert report["case_count"] == 1


def test_material_profitability(run_db):
    async def scenario(Session):
        await month_of_activity(Session)
        async with Session() as db:
            return await financial.material_profitability(db)

    rows = run_db(scenario)
    assert len(rows) == 1
    assert rows[0]["work_type"] == "zirconia"
    assert rows[0]["work_type_label"] == "زركونيا"
    assert rows[0]["total_cost"] == 750.0
    assert rows[0]["profit"] == 1500.0
    assert rows[0]["margin"] == 67


def test_daily_revenue_window(run_db):
    async def scenario(Session):
        await month_of_activity(Session)
        async with Session() as db:
            return await financial.daily_revenue(db, days=7)

    series = run_db(scenario)
    assert len(series) == 7
    assert series[-1]["date"] == datetime.utcnow().strftime("%Y-%m-%d")
    assert series[-1] == {
        "date": series[-1]["date"], "revenue": 2250.0, "collected": 1000.0, "expenses": 1300.0
    }
    assert all(day["revenue"] == 0.0 for day in series[:-1])


def test_daily_revenue_rejects_empty_window(run_db):
    async def scenario(Session):
        async with Session() as db:
            with pytest.raises(ValidationError):
                await financial.daily_revenue(db, days=0)

    run_db(scenario)


def test_purchase_vs_sales(run_db):
    async def scenario(Session):
        await month_of_activity(Session)
        async with Session() as db:
            return await financial.purchase_vs_sales(db)

    months = run_db(scenario)
    assert len(months) == 6
    assert months[-1]["period"] == financial.current_period()
    assert months[-1] == {"period": months[-1]["period"], "sales": 2250.0, "purchases": 1000.0, "profit": 1250.0}
    assert months[0]["sales"] == 0.0


def test_payment_and_expense_summaries(run_db):
    async def scenario(Session):
        await month_of_activity(Session)
        async with Session() as db:
            return (
                await financial.payment_summary(db),
                await financial.expense_summary(db, financial.current_period()),
                await financial.supplier_balances(db),
            )

    payments, expenses, suppliers = run_db(scenario)
    by_method = {p["method"]: p for p in payments}
    assert set(by_method) == {"cash", "bank_transfer", "check", "card"}
    assert by_method["cash"]["count"] == 1
    assert by_method["cash"]["total"] == 1000.0
    assert by_method["card"]["total"] == 0.0

    assert [c["category"] for c in expenses["data"]] == ["materials", "rent"]
    assert expenses["data"][1]["category_label"] == "إيجار"
    assert expenses["total_expenses"] == 1300.0

    assert suppliers["total_owed"] == 1000.0
    assert suppliers["suppliers"][0]["pending_pos"] == 1


def test_dashboard_stats(run_db):
    async def scenario(Session):
        doctor_id = await month_of_activity(Session)
        await add_case(Session, doctor_id, priority="rush")
        await add_case(Session, doctor_id, qc="fail")
        async with Session() as db:
            return await financial.dashboard_stats(db)

    stats = run_db(scenario)
    assert stats["total_active_cases"] == 3
    assert stats["cases_by_status"] == {"quality_control": 2, "reception": 1}
    assert stats["total_doctors"] == 1
    assert stats["today_revenue"] == 1000.0
    assert stats["month_revenue"] == 1000.0
    assert stats["overdue_payments"] == 0
    assert stats["rejection_rate"] == 50
    assert stats["rush_cases"] == 1
    assert stats["overdue_cases"] == 0
    assert stats["cases_delivered_today"] == 0
    assert stats["avg_completion_days"] == 0


def test_dashboard_counts_deliveries_and_late_invoices(run_db):
    async def scenario(Session):
        doctor_id = await add_doctor(Session)
        await add_rule(Session)
        case_id = await add_case(Session, doctor_id, qc="pass")
        async with Session() as db:
            await invoice_ledger.create_invoice(db, InvoiceCreate(case_id=case_id, due_date=days_ago(3)))
        for status in ("accounting", "ready_for_delivery", "delivered"):
            async with Session() as db:
                await workflow.transition_case(db, case_id, status)
        async with Session() as db:
            return await financial.dashboard_stats(db)

    stats = run_db(scenario)
    assert stats["total_active_cases"] == 0
    assert stats["cases_delivered_today"] == 1
    assert stats["overdue_payments"] == 1
    assert stats["avg_completion_days"] == 0.0


def test_department_performance(run_db):
    async def scenario(Session):
        doctor_id = await add_doctor(Session)
        passed = await add_case(Session, doctor_id, qc="pass")
        failed = await add_case(Session, doctor_id, qc="fail")
        async with Session() as db:
            await workflow.transition_case(db, failed, "cad_design", rejection_reason="shade too light")

        start = datetime(2026, 4, 1, 8, 0)
        async with Session() as db:
            steps = (await db.execute(
                select(WorkflowStep).where(WorkflowStep.case_id == passed)
            )).scalars().all()
            hours = {"cad": 4, "cam": 2}
            for step in steps:
                if step.department in hours:
                    step.start_time = start
                    step.end_time = start + timedelta(hours=hours[step.department])
            await db.commit()

        async with Session() as db:
            return {d["department"]: d for d in await financial.department_performance(db)}

    report = run_db(scenario)
    assert list(report) == list(financial.DEPARTMENTS)
    assert report["reception"]["total_cases_processed"] == 0
    assert report["cad"]["total_cases_processed"] == 2
    assert report["cad"]["rejection_rate"] == 50
    assert report["cad"]["current_backlog"] == 1
    assert report["cam"]["avg_processing_hours"] == 1.0
    assert report["quality_control"]["current_backlog"] == 1
    assert report["delivery"] == {
        "department": "delivery", "total_cases_processed": 0,
        "avg_processing_hours": 0, "rejection_rate": 0, "current_backlog": 0,
    }


def test_revenue_report(run_db):
    async def scenario(Session):
        await month_of_activity(Session)
        async with Session() as db:
            return await financial.revenue_report(db)

    months = run_db(scenario)
    assert len(months) == 6
    assert months[-1] == {
        "period": financial.current_period(), "revenue": 2250.0, "costs": 1300.0,
        "profit": 950.0, "cases_count": 1,
    }
    assert months[0]["revenue"] == 0.0


def test_top_doctors_and_work_types(run_db):
    async def scenario(Session):
        doctor_id = await month_of_activity(Session)
        busy_id = await add_doctor(Session, name="Dr. Karim Fathy")
        for _ in range(2):
            await add_case(Session, busy_id, work_type="emax")
        async with Session() as db:
            return (
                doctor_id, busy_id,
                await financial.top_doctors(db, limit=1),
                await financial.work_type_stats(db),
            )

    doctor_id, busy_id, top, work_types = run_db(scenario)
    assert top == [{
        "id": busy_id, "name": "Dr. Karim Fathy", "clinic": "Smile Clinic",
        "total_cases": 2, "total_debt": 0.0,
    }]
    by_type = {w["work_type"]: w for w in work_types}
    assert list(by_type) == list(financial.DASHBOARD_WORK_TYPES)
    assert by_type["zirconia"] == {
        "work_type": "zirconia", "work_type_label": "زركونيا", "count": 1, "revenue": 2250.0
    }
    assert by_type["emax"]["count"] == 2
    assert by_type["emax"]["revenue"] == 0.0
