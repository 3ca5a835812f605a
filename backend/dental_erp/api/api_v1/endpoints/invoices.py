"""Invoice API - preview, issue, payments, cancel"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from dental_erp.core.deps import get_db, get_operator
from dental_erp.models.invoice import Invoice
from dental_erp.schemas.invoice import (
    InvoicePreview, InvoiceCreate, PaymentCreate,
    InvoiceResponse, InvoiceListResponse, PaymentResponse
)
from dental_erp.schemas.pricing import CostBreakdownResponse, LineItemResponse
from dental_erp.services import invoice_ledger

router = APIRouter()


def build_invoice_response(invoice: Invoice) -> InvoiceResponse:
    return InvoiceResponse(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        case_id=invoice.case_id,
        case_number=invoice.case.case_number if invoice.case else "",
        doctor_id=invoice.doctor_id,
        doctor_name=invoice.doctor.name if invoice.doctor else "",
        items=[
            LineItemResponse(
                description=item.description,
                quantity=item.quantity,
                unit_price=float(item.unit_price),
                total=float(item.total)
            )
            for item in invoice.items
        ],
        subtotal=float(invoice.subtotal or 0),
        materials_cost=float(invoice.materials_cost or 0),
        labor_cost=float(invoice.labor_cost or 0),
        rush_surcharge=float(invoice.rush_surcharge or 0),
        discount=float(invoice.discount or 0),
        tax=float(invoice.tax or 0),
        total_amount=float(invoice.total_amount),
        paid_amount=float(invoice.paid_amount or 0),
        remaining_amount=float(invoice.remaining_amount or 0),
        status=invoice.status,
        status_display=invoice.status_display,
        payment_status=invoice.payment_status,
        payments=[
            PaymentResponse(
                id=p.id,
                amount=float(p.amount),
                method=p.method,
                reference=p.reference,
                notes=p.notes,
                paid_date=p.paid_date,
                received_by=p.received_by
            )
            for p in invoice.payments
        ],
        issued_date=invoice.issued_date,
        due_date=invoice.due_date,
        cancelled_at=invoice.cancelled_at,
        notes=invoice.notes,
        created_by=invoice.created_by,
        created_at=invoice.created_at
    )


@router.get("/", response_model=InvoiceListResponse)
async def list_invoices(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    payment_status: Optional[str] = Query(None),
    doctor_id: Optional[int] = Query(None),
    case_id: Optional[int] = Query(None)) -> Any:
    """List invoices, newest first"""
    conditions = []
    if status:
        conditions.append(Invoice.status == status)
    if payment_status:
        conditions.append(Invoice.payment_status == payment_status)
    if doctor_id:
        conditions.append(Invoice.doctor_id == doctor_id)
    if case_id:
        conditions.append(Invoice.case_id == case_id)

    query = select(Invoice)
    count_query = select(func.count(Invoice.id))
    if conditions:
        query = query.where(and_(*conditions))
        count_query = count_query.where(and_(*conditions))

    total = (await db.execute(count_query)).scalar() or 0

    query = query.order_by(Invoice.issued_date.desc(), Invoice.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    result = await db.execute(query)
    invoices = result.scalars().all()

    return InvoiceListResponse(
        data=[build_invoice_response(i) for i in invoices],
        total=total,
        page=page,
        limit=limit
    )


@router.post("/preview", response_model=CostBreakdownResponse)
async def preview_invoice(
    *,
    db: AsyncSession = Depends(get_db),
    data: InvoicePreview) -> Any:
    """Cost breakdown for a case, nothing is saved"""
    return await invoice_ledger.preview_invoice(db, data)


@router.post("/", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    data: InvoiceCreate) -> Any:
    """Issue the invoice of a QC-passed case"""
    invoice = await invoice_ledger.create_invoice(db, data, operator)
    return build_invoice_response(await invoice_ledger.load_invoice(db, invoice.id))


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    *,
    db: AsyncSession = Depends(get_db),
    invoice_id: int) -> Any:
    return build_invoice_response(await invoice_ledger.load_invoice(db, invoice_id))


@router.post("/{invoice_id}/payment", response_model=InvoiceResponse)
async def record_payment(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    invoice_id: int,
    data: PaymentCreate) -> Any:
    """Record a payment; rejected when it exceeds the remaining amount"""
    invoice = await invoice_ledger.record_payment(db, invoice_id, data, operator)
    return build_invoice_response(await invoice_ledger.load_invoice(db, invoice.id))


@router.post("/{invoice_id}/cancel", response_model=InvoiceResponse)
async def cancel_invoice(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    invoice_id: int) -> Any:
    """Cancel an invoice that has no payments"""
    invoice = await invoice_ledger.cancel_invoice(db, invoice_id, operator)
    return build_invoice_response(await invoice_ledger.load_invoice(db, invoice.id))
