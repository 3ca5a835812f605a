"""Purchase order API"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from dental_erp.core.deps import get_db, get_operator
from dental_erp.models.purchase_order import PurchaseOrder
from dental_erp.schemas.expense import ExpenseResponse
from dental_erp.schemas.purchase_order import (
    PurchaseOrderCreate, PurchaseOrderStatusUpdate, SupplierPaymentCreate,
    PurchaseOrderResponse, PurchaseOrderListResponse,
    PurchaseOrderItemResponse, SupplierPaymentResponse
)
from dental_erp.services import purchase_ledger
from dental_erp.api.api_v1.endpoints.expenses import build_expense_response

router = APIRouter()


def build_po_response(po: PurchaseOrder) -> PurchaseOrderResponse:
    return PurchaseOrderResponse(
        id=po.id,
        po_number=po.po_number,
        supplier_id=po.supplier_id,
        supplier_name=po.supplier.name if po.supplier else "",
        items=[
            PurchaseOrderItemResponse(
                id=item.id,
                description=item.description,
                sku=item.sku,
                quantity=float(item.quantity),
                unit_price=float(item.unit_price),
                total=float(item.total),
                received_qty=float(item.received_qty or 0)
            )
            for item in po.items
        ],
        subtotal=float(po.subtotal or 0),
        discount=float(po.discount or 0),
        tax=float(po.tax or 0),
        total_amount=float(po.total_amount),
        paid_amount=float(po.paid_amount or 0),
        remaining_amount=float(po.remaining_amount or 0),
        status=po.status,
        status_display=po.status_display,
        payment_status=po.payment_status,
        payments=[
            SupplierPaymentResponse(
                id=p.id,
                amount=float(p.amount),
                method=p.method,
                reference=p.reference,
                notes=p.notes,
                paid_date=p.paid_date,
                created_by=p.created_by
            )
            for p in po.payments
        ],
        order_date=po.order_date,
        expected_delivery=po.expected_delivery,
        received_date=po.received_date,
        notes=po.notes,
        created_by=po.created_by,
        created_at=po.created_at
    )


@router.get("/", response_model=PurchaseOrderListResponse)
async def list_purchase_orders(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    supplier_id: Optional[int] = Query(None)) -> Any:
    """List purchase orders, newest first"""
    conditions = []
    if status:
        conditions.append(PurchaseOrder.status == status)
    if supplier_id:
        conditions.append(PurchaseOrder.supplier_id == supplier_id)

    query = select(PurchaseOrder)
    count_query = select(func.count(PurchaseOrder.id))
    if conditions:
        query = query.where(and_(*conditions))
        count_query = count_query.where(and_(*conditions))

    total = (await db.execute(count_query)).scalar() or 0

    query = query.order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    result = await db.execute(query)

    return PurchaseOrderListResponse(
        data=[build_po_response(po) for po in result.scalars().all()],
        total=total,
        page=page,
        limit=limit
    )


@router.post("/", response_model=PurchaseOrderResponse, status_code=201)
async def create_purchase_order(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    data: PurchaseOrderCreate) -> Any:
    po = await purchase_ledger.create_purchase_order(db, data, operator)
    return build_po_response(await purchase_ledger.load_purchase_order(db, po.id))


@router.get("/{po_id}", response_model=PurchaseOrderResponse)
async def get_purchase_order(
    *,
    db: AsyncSession = Depends(get_db),
    po_id: int) -> Any:
    return build_po_response(await purchase_ledger.load_purchase_order(db, po_id))


@router.put("/{po_id}/status", response_model=PurchaseOrderResponse)
async def update_status(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    po_id: int,
    data: PurchaseOrderStatusUpdate) -> Any:
    """Move the PO along draft → sent → partial → received (or cancel)"""
    po = await purchase_ledger.update_status(db, po_id, data.status, operator)
    return build_po_response(await purchase_ledger.load_purchase_order(db, po.id))


@router.post("/{po_id}/payment", response_model=PurchaseOrderResponse)
async def record_payment(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    po_id: int,
    data: SupplierPaymentCreate) -> Any:
    po = await purchase_ledger.record_payment(db, po_id, data, operator)
    return build_po_response(await purchase_ledger.load_purchase_order(db, po.id))


@router.post("/{po_id}/create-expense", response_model=ExpenseResponse, status_code=201)
async def create_expense(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    po_id: int) -> Any:
    """Book a received PO as an expense"""
    expense = await purchase_ledger.create_expense_from_po(db, po_id, operator)
    return build_expense_response(expense)
