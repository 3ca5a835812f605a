"""
Financial reports

Read-only views derived from the invoice ledger, the purchase ledger and the
expense book. Amounts are summed as Decimal and converted to float only in
the returned dicts.
"""

import re
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from dental_erp.core.exceptions import ValidationError
from dental_erp.core.money import ZERO, to_money, money_sum, percent, average
from dental_erp.models.dental_case import DentalCase, WorkflowStep
from dental_erp.models.doctor import Doctor
from dental_erp.models.expense import Expense
from dental_erp.models.invoice import Invoice, Payment
from dental_erp.models.purchase_order import PurchaseOrder
from dental_erp.models.supplier import Supplier

PERIOD_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

OVERHEAD_CATEGORIES = ("rent", "utilities", "maintenance", "salaries", "marketing", "transport")

PAYMENT_METHOD_LABELS = {
    "cash": "نقدي",
    "bank_transfer": "تحويل بنكي",
    "check": "شيك",
    "card": "بطاقة",
}

WORK_TYPE_LABELS = {
    "zirconia": "زركونيا",
    "pfm": "PFM",
    "emax": "إي ماكس",
    "implant": "زراعة",
    "ortho": "تقويم",
    "removable": "متحركة",
    "composite": "كمبوزيت",
    "other": "أخرى",
}

DASHBOARD_WORK_TYPES = ("zirconia", "pfm", "emax", "implant", "ortho", "removable", "composite")

DEPARTMENTS = ("reception", "cad", "cam", "finishing", "quality_control", "accounting", "delivery")

CLOSED_STATUSES = ("delivered", "cancelled")

# (label, range, upper bound of days overdue; None = open ended)
AGING_BUCKETS = (
    ("جاري", "0-30 يوم", 30),
    ("متأخر", "31-60 يوم", 60),
    ("متأخر جداً", "61-90 يوم", 90),
    ("متعثر", "90+ يوم", None),
)


def current_period(now: Optional[datetime] = None) -> str:
    return (now or datetime.utcnow()).strftime("%Y-%m")


def period_bounds(period: Optional[str]) -> Tuple[str, datetime, datetime]:
    """Validated YYYY-MM period and its [start, end) datetimes"""
    period = period or current_period()
    if not PERIOD_RE.match(period):
        raise ValidationError(f"Invalid period '{period}', expected YYYY-MM")
    year, month = int(period[:4]), int(period[5:7])
    start = datetime(year, month, 1)
    end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
    return period, start, end


def shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


async def _live_invoices(db: AsyncSession, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Invoice]:
    query = select(Invoice).where(Invoice.status != "cancelled")
    if start:
        query = query.where(Invoice.issued_date >= start)
    if end:
        query = query.where(Invoice.issued_date < end)
    result = await db.execute(query.order_by(Invoice.id))
    return list(result.scalars().all())


async def _expenses(db: AsyncSession, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Expense]:
    query = select(Expense)
    if start:
        query = query.where(Expense.date >= start)
    if end:
        query = query.where(Expense.date < end)
    result = await db.execute(query)
    return list(result.scalars().all())


async def _live_purchase_orders(db: AsyncSession, start: datetime, end: datetime) -> List[PurchaseOrder]:
    result = await db.execute(
        select(PurchaseOrder).where(
            PurchaseOrder.status != "cancelled",
            PurchaseOrder.order_date >= start,
            PurchaseOrder.order_date < end
        )
    )
    return list(result.scalars().all())


async def financial_summary(db: AsyncSession, period: Optional[str] = None) -> Dict[str, Any]:
    """Revenue, collections and expenses of one month"""
    period, start, end = period_bounds(period)

    invoices = await _live_invoices(db, start, end)
    expenses = await _expenses(db, start, end)

    result = await db.execute(
        select(Invoice.id).where(
            Invoice.status == "cancelled",
            Invoice.issued_date >= start,
            Invoice.issued_date < end
        )
    )
    cancelled_count = len(result.all())

    revenue = money_sum(i.total_amount for i in invoices)
    collected = money_sum(i.paid_amount for i in invoices)
    total_expenses = money_sum(e.amount for e in expenses)

    work_type_counts: Dict[str, int] = {}
    doctor_revenue: Dict[int, Dict[str, Any]] = {}
    for inv in invoices:
        if inv.case:
            work_type_counts[inv.case.work_type] = work_type_counts.get(inv.case.work_type, 0) + 1
        entry = doctor_revenue.setdefault(
            inv.doctor_id, {"name": inv.doctor.name if inv.doctor else "", "total": ZERO}
        )
        entry["total"] += to_money(inv.total_amount)

    top_work_type = max(work_type_counts.items(), key=lambda kv: kv[1])[0] if work_type_counts else ""
    top_doctor = max(doctor_revenue.values(), key=lambda d: d["total"])["name"] if doctor_revenue else ""

    return {
        "period": period,
        "total_revenue": float(revenue),
        "total_collected": float(collected),
        "total_outstanding": float(revenue - collected),
        "total_expenses": float(total_expenses),
        "net_profit": float(collected - total_expenses),
        "collection_rate": percent(collected, revenue),
        "invoice_count": len(invoices),
        "paid_invoice_count": sum(1 for i in invoices if i.payment_status == "paid"),
        "partial_invoice_count": sum(1 for i in invoices if i.payment_status == "partial"),
        "unpaid_invoice_count": sum(1 for i in invoices if i.payment_status == "unpaid"),
        "cancelled_invoice_count": cancelled_count,
        "top_work_type": top_work_type,
        "top_doctor": top_doctor,
        "avg_invoice_value": average(revenue, len(invoices)),
    }


def days_overdue(due_date: datetime, now: datetime) -> int:
    """Whole days past due, never negative"""
    return max(0, (now - due_date).days)


async def aging_report(
    db: AsyncSession,
    now: Optional[datetime] = None,
    doctor_id: Optional[int] = None) -> List[Dict[str, Any]]:
    """
    Open invoices grouped by how late they are

    Only live invoices that are not fully paid are counted; bucket totals
    are remaining amounts.
    """
    now = now or datetime.utcnow()

    query = select(Invoice).where(Invoice.status != "cancelled", Invoice.payment_status != "paid")
    if doctor_id:
        query = query.where(Invoice.doctor_id == doctor_id)
    result = await db.execute(query.order_by(Invoice.due_date))
    invoices = result.scalars().all()

    buckets = [
        {"label": label, "range": range_label, "count": 0, "total": ZERO, "invoices": []}
        for label, range_label, _ in AGING_BUCKETS
    ]

    for inv in invoices:
        days = days_overdue(inv.due_date, now)
        for bucket, (_, _, upper) in zip(buckets, AGING_BUCKETS):
            if upper is None or days <= upper:
                bucket["count"] += 1
                bucket["total"] += to_money(inv.remaining_amount)
                bucket["invoices"].append({
                    "invoice_id": inv.id,
                    "invoice_number": inv.invoice_number,
                    "doctor_id": inv.doctor_id,
                    "doctor_name": inv.doctor.name if inv.doctor else "",
                    "amount": float(inv.remaining_amount),
                    "days_overdue": days,
                })
                break

    for bucket in buckets:
        bucket["total"] = float(bucket["total"])
    return buckets


async def payment_summary(db: AsyncSession, period: Optional[str] = None) -> List[Dict[str, Any]]:
    """Customer payments per method (live invoices only)"""
    query = select(Payment).join(Invoice, Payment.invoice_id == Invoice.id).where(Invoice.status != "cancelled")
    if period:
        _, start, end = period_bounds(period)
        query = query.where(Payment.paid_date >= start, Payment.paid_date < end)
    result = await db.execute(query)
    payments = result.scalars().all()

    methods = {m: {"count": 0, "total": ZERO} for m in PAYMENT_METHOD_LABELS}
    for p in payments:
        if p.method in methods:
            methods[p.method]["count"] += 1
            methods[p.method]["total"] += to_money(p.amount)

    return [
        {
            "method": method,
            "method_label": PAYMENT_METHOD_LABELS[method],
            "count": data["count"],
            "total": float(data["total"]),
        }
        for method, data in methods.items()
    ]


async def expense_summary(db: AsyncSession, period: Optional[str] = None) -> Dict[str, Any]:
    """Expenses per category, largest first"""
    if period:
        _, start, end = period_bounds(period)
        expenses = await _expenses(db, start, end)
    else:
        expenses = await _expenses(db)

    categories: Dict[str, Dict[str, Any]] = {}
    for e in expenses:
        entry = categories.setdefault(
            e.category, {"category_label": e.category_display, "count": 0, "total": ZERO}
        )
        entry["count"] += 1
        entry["total"] += to_money(e.amount)

    data = [
        {
            "category": category,
            "category_label": entry["category_label"],
            "count": entry["count"],
            "total": float(entry["total"]),
        }
        for category, entry in sorted(categories.items(), key=lambda kv: kv[1]["total"], reverse=True)
    ]
    return {"data": data, "total_expenses": float(money_sum(e.amount for e in expenses))}


async def daily_revenue(db: AsyncSession, days: int = 30, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Per-day revenue, collections and expenses for the trailing window"""
    if days < 1:
        raise ValidationError("days must be at least 1")

    today = (now or datetime.utcnow()).replace(hour=0, minute=0, second=0, microsecond=0)
    start = today - timedelta(days=days - 1)
    end = today + timedelta(days=1)

    series = {}
    for i in range(days):
        day = (start + timedelta(days=i)).strftime("%Y-%m-%d")
        series[day] = {"revenue": ZERO, "collected": ZERO, "expenses": ZERO}

    for inv in await _live_invoices(db, start, end):
        series[inv.issued_date.strftime("%Y-%m-%d")]["revenue"] += to_money(inv.total_amount)

    result = await db.execute(
        select(Payment).join(Invoice, Payment.invoice_id == Invoice.id).where(
            Invoice.status != "cancelled",
            Payment.paid_date >= start,
            Payment.paid_date < end
        )
    )
    for p in result.scalars().all():
        series[p.paid_date.strftime("%Y-%m-%d")]["collected"] += to_money(p.amount)

    for e in await _expenses(db, start, end):
        series[e.date.strftime("%Y-%m-%d")]["expenses"] += to_money(e.amount)

    return [
        {
            "date": day,
            "revenue": float(v["revenue"]),
            "collected": float(v["collected"]),
            "expenses": float(v["expenses"]),
        }
        for day, v in series.items()
    ]


async def cost_analysis(db: AsyncSession, period: Optional[str] = None) -> Dict[str, Any]:
    """Sales against production cost, purchases and overhead for one month"""
    period, start, end = period_bounds(period)

    invoices = await _live_invoices(db, start, end)
    purchase_orders = await _live_purchase_orders(db, start, end)
    expenses = await _expenses(db, start, end)

    revenue = money_sum(i.total_amount for i in invoices)
    materials = money_sum(i.materials_cost for i in invoices)
    labor = money_sum(i.labor_cost for i in invoices)
    purchases = money_sum(po.total_amount for po in purchase_orders)
    overhead = money_sum(e.amount for e in expenses if e.category in OVERHEAD_CATEGORIES)

    total_costs = purchases + overhead
    gross_profit = revenue - materials - labor
    net_profit = revenue - total_costs
    case_count = len(invoices)

    return {
        "period": period,
        "total_sales_revenue": float(revenue),
        "total_materials_cost": float(materials),
        "total_labor_cost": float(labor),
        "total_purchases_cost": float(purchases),
        "total_overhead": float(overhead),
        "gross_profit": float(gross_profit),
        "gross_margin": percent(gross_profit, revenue),
        "net_profit": float(net_profit),
        "net_margin": percent(net_profit, revenue),
        "avg_cost_per_case": average(total_costs, case_count),
        "avg_revenue_per_case": average(revenue, case_count),
        "case_count": case_count,
    }


async def material_profitability(db: AsyncSession) -> List[Dict[str, Any]]:
    """Revenue against materials + labor per work type, most profitable first"""
    by_type: Dict[str, Dict[str, Any]] = {}
    for inv in await _live_invoices(db):
        if not inv.case:
            continue
        entry = by_type.setdefault(
            inv.case.work_type, {"case_count": 0, "revenue": ZERO, "cost": ZERO}
        )
        entry["case_count"] += 1
        entry["revenue"] += to_money(inv.total_amount)
        entry["cost"] += to_money(inv.materials_cost) + to_money(inv.labor_cost)

    data = []
    for work_type, entry in by_type.items():
        profit = entry["revenue"] - entry["cost"]
        data.append({
            "work_type": work_type,
            "work_type_label": WORK_TYPE_LABELS.get(work_type, work_type),
            "case_count": entry["case_count"],
            "total_revenue": float(entry["revenue"]),
            "total_cost": float(entry["cost"]),
            "profit": float(profit),
            "margin": percent(profit, entry["revenue"]),
            "avg_buy_price": average(entry["cost"], entry["case_count"]),
            "avg_sell_price": average(entry["revenue"], entry["case_count"]),
        })

    data.sort(key=lambda d: d["profit"], reverse=True)
    return data


async def purchase_vs_sales(db: AsyncSession, months: int = 6, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Monthly sales against purchases, oldest month first"""
    if months < 1:
        raise ValidationError("months must be at least 1")

    now = now or datetime.utcnow()
    data = []
    for back in range(months - 1, -1, -1):
        year, month = shift_month(now.year, now.month, -back)
        period, start, end = period_bounds(f"{year:04d}-{month:02d}")

        sales = money_sum(i.total_amount for i in await _live_invoices(db, start, end))
        purchases = money_sum(po.total_amount for po in await _live_purchase_orders(db, start, end))

        data.append({
            "period": period,
            "sales": float(sales),
            "purchases": float(purchases),
            "profit": float(sales - purchases),
        })
    return data


async def supplier_balances(db: AsyncSession) -> Dict[str, Any]:
    """What the lab owes each active supplier"""
    result = await db.execute(select(Supplier).where(Supplier.status == "active"))
    suppliers = result.scalars().all()

    result = await db.execute(
        select(PurchaseOrder.supplier_id, PurchaseOrder.remaining_amount).where(
            PurchaseOrder.status != "cancelled"
        )
    )
    pending: Dict[int, int] = {}
    for supplier_id, remaining in result.all():
        if remaining is not None and Decimal(remaining) > 0:
            pending[supplier_id] = pending.get(supplier_id, 0) + 1

    data = sorted(
        (
            {
                "id": s.id,
                "name": s.name,
                "total_purchases": float(s.total_purchases or 0),
                "total_paid": float(s.total_paid or 0),
                "balance": float(s.balance or 0),
                "pending_pos": pending.get(s.id, 0),
                "payment_terms": s.payment_terms,
            }
            for s in suppliers
        ),
        key=lambda d: d["balance"],
        reverse=True
    )

    return {
        "suppliers": data,
        "total_owed": float(money_sum(s.balance for s in suppliers)),
        "total_purchased": float(money_sum(s.total_purchases for s in suppliers)),
    }


async def _all_cases(db: AsyncSession) -> List[DentalCase]:
    result = await db.execute(select(DentalCase).order_by(DentalCase.id))
    return list(result.scalars().all())


async def dashboard_stats(db: AsyncSession, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Workload, collections and quality figures for the front page"""
    now = now or datetime.utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    _, month_start, month_end = period_bounds(current_period(now))

    cases = await _all_cases(db)
    active = [c for c in cases if c.current_status not in CLOSED_STATUSES]

    by_status: Dict[str, int] = {}
    for c in cases:
        by_status[c.current_status] = by_status.get(c.current_status, 0) + 1

    delivered_today = sum(
        1 for c in cases
        if c.current_status == "delivered" and c.actual_delivery_date and c.actual_delivery_date >= today
    )

    # any rework request counts as a rejection, not only a failed inspection
    inspected = [c for c in cases if c.qc_result]
    rejected = sum(
        1 for c in cases
        if c.qc_result == "fail" or any(s.rejection_reason for s in c.workflow_history)
    )

    completed = [
        c for c in cases
        if c.current_status == "delivered" and c.received_date and c.actual_delivery_date
    ]
    completion_days = [
        (c.actual_delivery_date - c.received_date).total_seconds() / 86400 for c in completed
    ]

    open_invoices = await db.execute(
        select(func.count(Invoice.id)).where(
            Invoice.status != "cancelled",
            Invoice.payment_status != "paid",
            Invoice.due_date < now
        )
    )
    doctor_count = await db.execute(select(func.count(Doctor.id)))

    return {
        "total_active_cases": len(active),
        "cases_by_status": by_status,
        "cases_delivered_today": delivered_today,
        "total_doctors": doctor_count.scalar() or 0,
        "overdue_payments": open_invoices.scalar() or 0,
        "today_revenue": float(money_sum(i.paid_amount for i in await _live_invoices(db, today))),
        "month_revenue": float(money_sum(i.paid_amount for i in await _live_invoices(db, month_start, month_end))),
        "rejection_rate": percent(Decimal(rejected), Decimal(len(inspected))),
        "avg_completion_days": round(sum(completion_days) / len(completion_days), 1) if completion_days else 0,
        "rush_cases": sum(1 for c in active if c.priority in ("rush", "urgent")),
        "overdue_cases": sum(
            1 for c in active if c.expected_delivery_date and c.expected_delivery_date < now
        ),
    }


async def department_performance(db: AsyncSession) -> List[Dict[str, Any]]:
    """Throughput, stage time, rework and backlog per department"""
    result = await db.execute(select(WorkflowStep))
    steps = result.scalars().all()

    result = await db.execute(
        select(DentalCase.current_department, func.count(DentalCase.id)).group_by(DentalCase.current_department)
    )
    backlog = dict(result.all())

    data = []
    for department in DEPARTMENTS:
        own = [s for s in steps if s.department == department]
        processed = {s.case_id for s in own}
        rejected = {s.case_id for s in own if s.rejection_reason}
        hours = [
            (s.end_time - s.start_time).total_seconds() / 3600
            for s in own if s.start_time and s.end_time
        ]
        data.append({
            "department": department,
            "total_cases_processed": len(processed),
            "avg_processing_hours": round(sum(hours) / len(hours), 1) if hours else 0,
            "rejection_rate": percent(Decimal(len(rejected)), Decimal(len(processed))),
            "current_backlog": backlog.get(department, 0),
        })
    return data


async def revenue_report(db: AsyncSession, months: int = 6, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Monthly invoiced revenue against booked expenses, oldest month first"""
    if months < 1:
        raise ValidationError("months must be at least 1")

    now = now or datetime.utcnow()
    data = []
    for back in range(months - 1, -1, -1):
        year, month = shift_month(now.year, now.month, -back)
        period, start, end = period_bounds(f"{year:04d}-{month:02d}")

        invoices = await _live_invoices(db, start, end)
        revenue = money_sum(i.total_amount for i in invoices)
        costs = money_sum(e.amount for e in await _expenses(db, start, end))

        data.append({
            "period": period,
            "revenue": float(revenue),
            "costs": float(costs),
            "profit": float(revenue - costs),
            "cases_count": len(invoices),
        })
    return data


async def top_doctors(db: AsyncSession, limit: int = 10) -> List[Dict[str, Any]]:
    """Doctors with the most cases"""
    result = await db.execute(
        select(Doctor).order_by(Doctor.total_cases.desc(), Doctor.id).limit(limit)
    )
    return [
        {
            "id": d.id,
            "name": d.name,
            "clinic": d.clinic,
            "total_cases": d.total_cases or 0,
            "total_debt": float(d.total_debt or 0),
        }
        for d in result.scalars().all()
    ]


async def work_type_stats(db: AsyncSession) -> List[Dict[str, Any]]:
    """Case count and invoiced revenue per work type"""
    result = await db.execute(
        select(DentalCase.work_type, func.count(DentalCase.id)).group_by(DentalCase.work_type)
    )
    counts = dict(result.all())

    revenue: Dict[str, Decimal] = {}
    for inv in await _live_invoices(db):
        if inv.case:
            revenue[inv.case.work_type] = revenue.get(inv.case.work_type, ZERO) + to_money(inv.total_amount)

    return [
        {
            "work_type": work_type,
            "work_type_label": WORK_TYPE_LABELS[work_type],
            "count": counts.get(work_type, 0),
            "revenue": float(revenue.get(work_type, ZERO)),
        }
        for work_type in DASHBOARD_WORK_TYPES
    ]
