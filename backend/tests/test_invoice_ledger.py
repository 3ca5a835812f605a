from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from dental_erp.core.exceptions import (
    ConflictError, InsufficientRemainingError, PreconditionError, ValidationError
)
from dental_erp.db.session import commit_or_conflict
from dental_erp.models import AuditLog, Doctor, Invoice
from dental_erp.schemas.invoice import InvoiceCreate, InvoicePreview, PaymentCreate
from dental_erp.services import invoice_ledger, workflow

from helpers import add_case, add_doctor, add_rule


async def issued_invoice(Session, teeth="11,12,13", priority="normal"):
    doctor_id = await add_doctor(Session)
    await add_rule(Session)
    case_id = await add_case(Session, doctor_id, teeth=teeth, priority=priority, qc="pass")
    async with Session() as db:
        invoice = await invoice_ledger.create_invoice(db, InvoiceCreate(case_id=case_id), operator="nadia")
    return doctor_id, case_id, invoice.id


async def load_doctor(db, doctor_id):
    result = await db.execute(
        select(Doctor).where(Doctor.id == doctor_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


def test_create_invoice(run_db):
    async def scenario(Session):
        doctor_id, case_id, invoice_id = await issued_invoice(Session)
        async with Session() as db:
            invoice = await invoice_ledger.load_invoice(db, invoice_id)
            case = await workflow.load_case(db, case_id)
            doctor = await load_doctor(db, doctor_id)
            return invoice, case, doctor

    invoice, case, doctor = run_db(scenario)
    assert invoice.invoice_number == f"INV-{datetime.utcnow().year}-00001"
    assert invoice.subtotal == Decimal("2250.00")
    assert invoice.materials_cost == Decimal("450.00")
    assert invoice.labor_cost == Decimal("300.00")
    assert invoice.total_amount == Decimal("2250.00")
    assert invoice.remaining_amount == Decimal("2250.00")
    assert invoice.payment_status == "unpaid"
    assert invoice.status == "issued"
    assert invoice.created_by == "nadia"
    assert len(invoice.items) == 1
    assert abs((invoice.due_date - invoice.issued_date) - timedelta(days=30)) < timedelta(seconds=1)
    assert case.invoice_id == invoice.id
    assert case.total_cost == Decimal("2250.00")
    assert doctor.total_debt == Decimal("2250.00")


def test_invoice_needs_qc_pass(run_db):
    async def scenario(Session):
        doctor_id = await add_doctor(Session)
        case_id = await add_case(Session, doctor_id, qc="conditional")
        async with Session() as db:
            with pytest.raises(PreconditionError):
                await invoice_ledger.create_invoice(db, InvoiceCreate(case_id=case_id))
        async with Session() as db:
            return (await db.execute(select(Invoice))).scalars().all()

    assert run_db(scenario) == []


def test_case_can_only_be_invoiced_once(run_db):
    async def scenario(Session):
        _, case_id, _ = await issued_invoice(Session)
        async with Session() as db:
            with pytest.raises(PreconditionError):
                await invoice_ledger.create_invoice(db, InvoiceCreate(case_id=case_id))

    run_db(scenario)


def test_negative_total_is_rejected(run_db):
    async def scenario(Session):
        doctor_id = await add_doctor(Session)
        await add_rule(Session)
        case_id = await add_case(Session, doctor_id, qc="pass")
        async with Session() as db:
            with pytest.raises(ValidationError):
                await invoice_ledger.create_invoice(
                    db, InvoiceCreate(case_id=case_id, discount=Decimal("5000"))
                )
        async with Session() as db:
            return await workflow.load_case(db, case_id)

    assert run_db(scenario).invoice_id is None


def test_zero_total_invoice_is_settled(run_db):
    async def scenario(Session):
        doctor_id = await add_doctor(Session)
        await add_rule(Session)
        case_id = await add_case(Session, doctor_id, qc="pass")
        async with Session() as db:
            invoice = await invoice_ledger.create_invoice(
                db, InvoiceCreate(case_id=case_id, discount=Decimal("2250"))
            )
            invoice_id = invoice.id
        async with Session() as db:
            return await invoice_ledger.load_invoice(db, invoice_id), await load_doctor(db, doctor_id)

    invoice, doctor = run_db(scenario)
    assert invoice.total_amount == Decimal("0.00")
    assert invoice.payment_status == "paid"
    assert invoice.status == "paid"
    assert doctor.total_debt == Decimal("0.00")


def test_preview_matches_create_and_writes_nothing(run_db):
    async def scenario(Session):
        doctor_id = await add_doctor(Session)
        await add_rule(Session)
        case_id = await add_case(Session, doctor_id, priority="rush", qc="pass")

        async with Session() as db:
            preview = await invoice_ledger.preview_invoice(
                db, InvoicePreview(case_id=case_id, tax=Decimal("100"))
            )
        async with Session() as db:
            invoices_after_preview = len((await db.execute(select(Invoice))).scalars().all())

        async with Session() as db:
            invoice = await invoice_ledger.create_invoice(
                db, InvoiceCreate(case_id=case_id, tax=Decimal("100"))
            )
        return preview, invoices_after_preview, invoice

    preview, invoices_after_preview, invoice = run_db(scenario)
    assert invoices_after_preview == 0
    assert preview["rush_surcharge"] == 300.0
    assert preview["subtotal"] == 2550.0
    assert preview["total_amount"] == 2650.0
    assert float(invoice.total_amount) == preview["total_amount"]
    assert float(invoice.subtotal) == preview["subtotal"]


def test_partial_then_full_payment(run_db):
    async def scenario(Session):
        doctor_id, _, invoice_id = await issued_invoice(Session)

        async with Session() as db:
            partial = await invoice_ledger.record_payment(
                db, invoice_id, PaymentCreate(amount=Decimal("1000"), method="bank_transfer")
            )
            partial_state = (partial.paid_amount, partial.remaining_amount, partial.payment_status, partial.status)
        async with Session() as db:
            debt_after_partial = (await load_doctor(db, doctor_id)).total_debt

        async with Session() as db:
            await invoice_ledger.record_payment(db, invoice_id, PaymentCreate(amount=Decimal("1250")))

        async with Session() as db:
            invoice = await invoice_ledger.load_invoice(db, invoice_id)
            doctor = await load_doctor(db, doctor_id)
            return partial_state, debt_after_partial, invoice, doctor

    partial_state, debt_after_partial, invoice, doctor = run_db(scenario)
    assert partial_state == (Decimal("1000.00"), Decimal("1250.00"), "partial", "issued")
    assert debt_after_partial == Decimal("1250.00")
    assert invoice.payment_status == "paid"
    assert invoice.status == "paid"
    assert invoice.remaining_amount == Decimal("0.00")
    assert [p.method for p in invoice.payments] == ["bank_transfer", "cash"]
    assert doctor.total_debt == Decimal("0.00")


def test_overpayment_leaves_ledger_unchanged(run_db):
    async def scenario(Session):
        doctor_id, _, invoice_id = await issued_invoice(Session)

        async with Session() as db:
            with pytest.raises(InsufficientRemainingError):
                await invoice_ledger.record_payment(
                    db, invoice_id, PaymentCreate(amount=Decimal("2250.01"))
                )

        async with Session() as db:
            invoice = await invoice_ledger.load_invoice(db, invoice_id)
            doctor = await load_doctor(db, doctor_id)
            return invoice, doctor

    invoice, doctor = run_db(scenario)
    assert invoice.paid_amount == Decimal("0.00")
    assert invoice.payments == []
    assert doctor.total_debt == Decimal("2250.00")


def test_cancel_unpaid_invoice(run_db):
    async def scenario(Session):
        doctor_id, case_id, invoice_id = await issued_invoice(Session)

        async with Session() as db:
            await invoice_ledger.cancel_invoice(db, invoice_id)

        async with Session() as db:
            with pytest.raises(ConflictError):
                await invoice_ledger.cancel_invoice(db, invoice_id)
        async with Session() as db:
            with pytest.raises(ConflictError):
                await invoice_ledger.record_payment(db, invoice_id, PaymentCreate(amount=Decimal("10")))

        async with Session() as db:
            invoice = await invoice_ledger.load_invoice(db, invoice_id)
            case = await workflow.load_case(db, case_id)
            doctor = await load_doctor(db, doctor_id)
            return invoice, case, doctor

    invoice, case, doctor = run_db(scenario)
    assert invoice.status == "cancelled"
    assert invoice.cancelled_at is not None
    assert case.invoice_id is None
    assert case.total_cost == Decimal("0.00")
    assert doctor.total_debt == Decimal("0.00")


def test_cancelled_case_invoice_can_be_reissued(run_db):
    async def scenario(Session):
        _, case_id, invoice_id = await issued_invoice(Session)
        async with Session() as db:
            await invoice_ledger.cancel_invoice(db, invoice_id)
        async with Session() as db:
            return await invoice_ledger.create_invoice(db, InvoiceCreate(case_id=case_id))

    invoice = run_db(scenario)
    assert invoice.invoice_number.endswith("-00002")


def test_cancel_with_payments_conflicts(run_db):
    async def scenario(Session):
        _, _, invoice_id = await issued_invoice(Session)
        async with Session() as db:
            await invoice_ledger.record_payment(db, invoice_id, PaymentCreate(amount=Decimal("500")))
        async with Session() as db:
            with pytest.raises(ConflictError):
                await invoice_ledger.cancel_invoice(db, invoice_id)
        async with Session() as db:
            return await invoice_ledger.load_invoice(db, invoice_id)

    invoice = run_db(scenario)
    assert invoice.status == "issued"
    assert invoice.paid_amount == Decimal("500.00")


def test_concurrent_payment_is_rejected(run_db):
    async def scenario(Session):
        doctor_id, _, invoice_id = await issued_invoice(Session)

        async with Session() as slow, Session() as fast:
            stale = await invoice_ledger.load_invoice(slow, invoice_id)

            await invoice_ledger.record_payment(fast, invoice_id, PaymentCreate(amount=Decimal("2000")))

            # both payments fit the remaining amount the slow session saw
            invoice_ledger.apply_payment(slow, stale, PaymentCreate(amount=Decimal("2000")))
            with pytest.raises(ConflictError):
                await commit_or_conflict(slow)

        async with Session() as db:
            invoice = await invoice_ledger.load_invoice(db, invoice_id)
            doctor = await load_doctor(db, doctor_id)
            return invoice, doctor

    invoice, doctor = run_db(scenario)
    assert invoice.paid_amount == Decimal("2000.00")
    assert len(invoice.payments) == 1
    assert doctor.total_debt == Decimal("250.00")


def test_doctor_statement_and_debts(run_db):
    async def scenario(Session):
        doctor_id, _, invoice_id = await issued_invoice(Session)
        async with Session() as db:
            await invoice_ledger.record_payment(db, invoice_id, PaymentCreate(amount=Decimal("250")))
        async with Session() as db:
            statement = await invoice_ledger.doctor_statement(db, doctor_id)
            debts = await invoice_ledger.doctor_debts(db)
        return statement, debts

    statement, debts = run_db(scenario)
    assert statement["total_invoiced"] == 2250.0
    assert statement["total_paid"] == 250.0
    assert statement["total_remaining"] == 2000.0
    assert statement["invoices"][0]["payment_status"] == "partial"
    assert debts == [{"doctor_id": statement["doctor_id"], "name": "Dr. Amal Hassan",
                      "clinic": "Smile Clinic", "total_debt": 2000.0}]


def test_reconcile_corrects_drift(run_db):
    async def scenario(Session):
        doctor_id, _, _ = await issued_invoice(Session)

        async with Session() as db:
            doctor = await load_doctor(db, doctor_id)
            doctor.total_debt = Decimal("99.00")
            doctor.total_cases = 7
            await db.commit()

        async with Session() as db:
            corrections = await invoice_ledger.reconcile_doctor_aggregates(db, operator="scheduler")
        async with Session() as db:
            second_pass = await invoice_ledger.reconcile_doctor_aggregates(db)
            doctor = await load_doctor(db, doctor_id)
            audits = (await db.execute(
                select(AuditLog).where(AuditLog.action == "RECONCILE")
            )).scalars().all()
        return corrections, second_pass, doctor, audits

    corrections, second_pass, doctor, audits = run_db(scenario)
    assert corrections[0]["total_debt"] == {"was": 99.0, "now": 2250.0}
    assert corrections[0]["total_cases"] == {"was": 7, "now": 1}
    assert second_pass == []
    assert doctor.total_debt == Decimal("2250.00")
    assert doctor.total_cases == 1
    assert [a.operator for a in audits] == ["scheduler"]
