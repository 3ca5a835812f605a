"""
Customer invoice ledger

Owns invoices, their payments and the doctor debt aggregate. Each mutation
updates the invoice, the doctor and the audit trail in one commit; the
version columns turn a concurrent write against the same invoice into a
ConflictError instead of a double payment.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dental_erp.core.config import settings
from dental_erp.core.exceptions import (
    ConflictError, InsufficientRemainingError, NotFoundError,
    PreconditionError, ValidationError
)
from dental_erp.core.logging_config import get_logger
from dental_erp.core.money import ZERO, to_money, money_sum
from dental_erp.db.session import commit_or_conflict, flush_or_conflict
from dental_erp.models.dental_case import DentalCase
from dental_erp.models.doctor import Doctor
from dental_erp.models.invoice import Invoice, InvoiceItem, Payment
from dental_erp.models.pricing_rule import PricingRule
from dental_erp.schemas.invoice import InvoiceCreate, InvoicePreview, PaymentCreate
from dental_erp.services.audit import record_audit
from dental_erp.services.numbering import next_number
from dental_erp.services.pricing import CostBreakdown, calculate_costs
from dental_erp.services.workflow import load_case

logger = get_logger(__name__)


async def get_pricing_rule(db: AsyncSession, work_type: str) -> Optional[PricingRule]:
    result = await db.execute(select(PricingRule).where(PricingRule.work_type == work_type))
    return result.scalar_one_or_none()


async def load_invoice(db: AsyncSession, invoice_id: int) -> Invoice:
    """Fresh copy of an invoice with items, payments, case and doctor"""
    result = await db.execute(
        select(Invoice)
        .where(Invoice.id == invoice_id)
        .execution_options(populate_existing=True)
    )
    invoice = result.scalar_one_or_none()
    if not invoice:
        raise NotFoundError(f"Invoice {invoice_id} not found")
    return invoice


def breakdown_payload(case, breakdown: CostBreakdown, discount: Any = 0, tax: Any = 0) -> Dict[str, Any]:
    """Cost breakdown as a JSON-ready dict"""
    return {
        "case_id": case.id,
        "work_type": case.work_type,
        "priority": case.priority,
        "teeth_count": breakdown.teeth_count,
        "unit_price": float(breakdown.unit_price),
        "base_price": float(breakdown.base_price),
        "materials_cost": float(breakdown.materials_cost),
        "labor_cost": float(breakdown.labor_cost),
        "rush_surcharge": float(breakdown.rush_surcharge),
        "items": [
            {
                "description": item.description,
                "quantity": item.quantity,
                "unit_price": float(item.unit_price),
                "total": float(item.total),
            }
            for item in breakdown.items
        ],
        "items_total": float(breakdown.items_total),
        "subtotal": float(breakdown.subtotal),
        "discount": float(to_money(discount)),
        "tax": float(to_money(tax)),
        "total_amount": float(breakdown.total(discount, tax)),
    }


async def preview_invoice(db: AsyncSession, data: InvoicePreview) -> Dict[str, Any]:
    """Price a case without writing anything"""
    case = await load_case(db, data.case_id)
    rule = await get_pricing_rule(db, case.work_type)
    breakdown = calculate_costs(case, rule, data)
    return breakdown_payload(case, breakdown, data.discount, data.tax)


async def create_invoice(db: AsyncSession, data: InvoiceCreate, operator: str = "system") -> Invoice:
    """
    Issue the invoice for a case

    The case must have passed QC and must not already carry an invoice.
    The doctor's debt grows by the invoice total.
    """
    case = await load_case(db, data.case_id)

    if case.qc_result != "pass":
        raise PreconditionError("Cannot create invoice - case must pass Quality Control first")
    if case.invoice_id:
        raise PreconditionError(f"Case {case.case_number} already has an invoice")

    rule = await get_pricing_rule(db, case.work_type)
    breakdown = calculate_costs(case, rule, data)

    discount = to_money(data.discount)
    tax = to_money(data.tax)
    total_amount = breakdown.total(discount, tax)
    if total_amount < ZERO:
        raise ValidationError(f"Invoice total would be negative ({total_amount})")

    invoice_number = await next_number(db, Invoice.invoice_number, "INV")
    now = datetime.utcnow()
    doctor = case.doctor

    invoice = Invoice(
        invoice_number=invoice_number,
        case=case,
        doctor=doctor,
        subtotal=breakdown.subtotal,
        materials_cost=breakdown.materials_cost,
        labor_cost=breakdown.labor_cost,
        rush_surcharge=breakdown.rush_surcharge,
        discount=discount,
        tax=tax,
        total_amount=total_amount,
        paid_amount=ZERO,
        status="issued",
        issued_date=now,
        due_date=data.due_date or now + timedelta(days=settings.DEFAULT_DUE_DAYS),
        notes=data.notes,
        created_by=operator,
        items=[
            InvoiceItem(
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total=item.total
            )
            for item in breakdown.items
        ],
        payments=[]
    )
    invoice.recalculate()
    # nothing to collect on a zero-total invoice
    if invoice.payment_status == "paid":
        invoice.status = "paid"
    db.add(invoice)
    # insert first so the case can point at the new id
    await flush_or_conflict(db)

    case.invoice_id = invoice.id
    case.total_cost = total_amount
    doctor.total_debt = to_money(doctor.total_debt) + total_amount

    record_audit(
        db, operator, "CREATE_INVOICE", "invoice", invoice.id, invoice_number,
        f"Created invoice {invoice_number} for case {case.case_number} - Amount: {total_amount}"
    )
    await commit_or_conflict(db)

    logger.info(f"Invoice {invoice_number} issued for case {case.case_number}: {total_amount}")
    return invoice


def apply_payment(
    db: AsyncSession,
    invoice: Invoice,
    data: PaymentCreate,
    operator: str = "system") -> Payment:
    """Validate and apply a payment in memory; the caller commits"""
    amount = to_money(data.amount)

    if invoice.status == "cancelled":
        raise ConflictError(f"Invoice {invoice.invoice_number} is cancelled")
    if amount <= ZERO:
        raise ValidationError("Payment amount must be positive")
    if amount > to_money(invoice.remaining_amount):
        raise InsufficientRemainingError(
            f"Payment {amount} exceeds remaining amount {invoice.remaining_amount}"
        )

    payment = Payment(
        amount=amount,
        method=data.method,
        reference=data.reference,
        notes=data.notes,
        paid_date=datetime.utcnow(),
        received_by=operator
    )
    invoice.payments.append(payment)
    invoice.paid_amount = to_money(invoice.paid_amount) + amount
    invoice.recalculate()
    if invoice.payment_status == "paid":
        invoice.status = "paid"

    doctor = invoice.doctor
    if doctor:
        doctor.total_debt = max(ZERO, to_money(doctor.total_debt) - amount)

    record_audit(
        db, operator, "RECORD_PAYMENT", "invoice", invoice.id, invoice.invoice_number,
        f"Payment {amount} ({data.method}) on invoice {invoice.invoice_number}"
    )
    return payment


async def record_payment(
    db: AsyncSession,
    invoice_id: int,
    data: PaymentCreate,
    operator: str = "system") -> Invoice:
    """Record a customer payment against one invoice"""
    invoice = await load_invoice(db, invoice_id)
    apply_payment(db, invoice, data, operator)
    await commit_or_conflict(db)

    logger.info(
        f"Invoice {invoice.invoice_number} paid {to_money(data.amount)}, "
        f"remaining {invoice.remaining_amount} ({invoice.payment_status})"
    )
    return invoice


async def cancel_invoice(db: AsyncSession, invoice_id: int, operator: str = "system") -> Invoice:
    """Cancel an unpaid invoice and release its case"""
    invoice = await load_invoice(db, invoice_id)

    if invoice.status == "cancelled":
        raise ConflictError(f"Invoice {invoice.invoice_number} is already cancelled")
    if to_money(invoice.paid_amount) > ZERO:
        raise ConflictError("Cannot cancel invoice with payments")

    invoice.status = "cancelled"
    invoice.cancelled_at = datetime.utcnow()

    case = invoice.case
    if case and case.invoice_id == invoice.id:
        case.invoice_id = None
        case.total_cost = ZERO

    doctor = invoice.doctor
    if doctor:
        doctor.total_debt = max(ZERO, to_money(doctor.total_debt) - to_money(invoice.total_amount))

    record_audit(
        db, operator, "CANCEL_INVOICE", "invoice", invoice.id, invoice.invoice_number,
        f"Cancelled invoice {invoice.invoice_number}"
    )
    await commit_or_conflict(db)

    logger.info(f"Invoice {invoice.invoice_number} cancelled")
    return invoice


async def doctor_statement(db: AsyncSession, doctor_id: int) -> Dict[str, Any]:
    """All live invoices of a doctor with totals"""
    result = await db.execute(select(Doctor).where(Doctor.id == doctor_id))
    doctor = result.scalar_one_or_none()
    if not doctor:
        raise NotFoundError(f"Doctor {doctor_id} not found")

    result = await db.execute(
        select(Invoice)
        .where(Invoice.doctor_id == doctor_id, Invoice.status != "cancelled")
        .order_by(Invoice.issued_date.desc())
    )
    invoices = result.scalars().all()

    total_invoiced = money_sum(i.total_amount for i in invoices)
    total_paid = money_sum(i.paid_amount for i in invoices)

    return {
        "doctor_id": doctor.id,
        "doctor_name": doctor.name,
        "clinic": doctor.clinic,
        "total_cases": doctor.total_cases or 0,
        "total_invoiced": float(total_invoiced),
        "total_paid": float(total_paid),
        "total_remaining": float(total_invoiced - total_paid),
        "invoices": [
            {
                "id": i.id,
                "invoice_number": i.invoice_number,
                "case_number": i.case.case_number if i.case else "",
                "issued_date": i.issued_date.isoformat(),
                "due_date": i.due_date.isoformat(),
                "total_amount": float(i.total_amount),
                "paid_amount": float(i.paid_amount),
                "remaining_amount": float(i.remaining_amount),
                "payment_status": i.payment_status,
            }
            for i in invoices
        ],
    }


async def doctor_debts(db: AsyncSession) -> List[Dict[str, Any]]:
    """Doctors that currently owe money, largest debt first"""
    result = await db.execute(
        select(Doctor).where(Doctor.total_debt > 0).order_by(Doctor.total_debt.desc())
    )
    return [
        {
            "doctor_id": d.id,
            "name": d.name,
            "clinic": d.clinic,
            "total_debt": float(d.total_debt or 0),
        }
        for d in result.scalars().all()
    ]


async def reconcile_doctor_aggregates(db: AsyncSession, operator: str = "system") -> List[Dict[str, Any]]:
    """
    Recompute total_debt and total_cases from the ledger and fix drift

    Returns one entry per corrected doctor.
    """
    debts: Dict[int, Decimal] = {}
    result = await db.execute(select(Invoice).where(Invoice.status != "cancelled"))
    for invoice in result.scalars().all():
        debts[invoice.doctor_id] = debts.get(invoice.doctor_id, ZERO) + to_money(invoice.remaining_amount)

    case_counts: Dict[int, int] = {}
    result = await db.execute(select(DentalCase.doctor_id))
    for (doctor_id,) in result.all():
        case_counts[doctor_id] = case_counts.get(doctor_id, 0) + 1

    corrections = []
    result = await db.execute(select(Doctor).execution_options(populate_existing=True))
    for doctor in result.scalars().all():
        expected_debt = max(ZERO, debts.get(doctor.id, ZERO))
        expected_cases = case_counts.get(doctor.id, 0)
        current_debt = to_money(doctor.total_debt)

        if current_debt != expected_debt or (doctor.total_cases or 0) != expected_cases:
            logger.warning(
                f"Doctor {doctor.id} aggregate drift: debt {current_debt} → {expected_debt}, "
                f"cases {doctor.total_cases} → {expected_cases}"
            )
            corrections.append({
                "doctor_id": doctor.id,
                "total_debt": {"was": float(current_debt), "now": float(expected_debt)},
                "total_cases": {"was": doctor.total_cases or 0, "now": expected_cases},
            })
            doctor.total_debt = expected_debt
            doctor.total_cases = expected_cases

    if corrections:
        record_audit(
            db, operator, "RECONCILE", "doctor", None, None,
            f"Corrected aggregates of {len(corrections)} doctor(s)"
        )
        await commit_or_conflict(db)
    return corrections
