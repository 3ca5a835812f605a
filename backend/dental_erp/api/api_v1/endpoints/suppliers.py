"""Supplier registry API"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from dental_erp.core.deps import get_db, get_operator
from dental_erp.db.session import commit_or_conflict, flush_or_conflict
from dental_erp.models.supplier import Supplier
from dental_erp.schemas.supplier import (
    SupplierCreate, SupplierUpdate, SupplierResponse, SupplierListResponse
)
from dental_erp.services import purchase_ledger
from dental_erp.services.audit import record_audit

router = APIRouter()


def build_supplier_response(supplier: Supplier) -> SupplierResponse:
    return SupplierResponse(
        id=supplier.id,
        name=supplier.name,
        contact_person=supplier.contact_person,
        phone=supplier.phone,
        email=supplier.email,
        address=supplier.address,
        tax_number=supplier.tax_number,
        payment_terms=supplier.payment_terms,
        categories=supplier.category_list,
        rating=supplier.rating,
        notes=supplier.notes,
        status=supplier.status,
        status_display=supplier.status_display,
        total_purchases=float(supplier.total_purchases or 0),
        total_paid=float(supplier.total_paid or 0),
        balance=float(supplier.balance or 0),
        created_at=supplier.created_at,
        updated_at=supplier.updated_at
    )


@router.get("/", response_model=SupplierListResponse)
async def list_suppliers(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None)) -> Any:
    """List suppliers"""
    conditions = []
    if status:
        conditions.append(Supplier.status == status)
    if category:
        conditions.append(Supplier.categories.contains(category))
    if search:
        conditions.append(or_(
            Supplier.name.contains(search),
            Supplier.contact_person.contains(search),
            Supplier.phone.contains(search)
        ))

    query = select(Supplier)
    count_query = select(func.count(Supplier.id))
    if conditions:
        query = query.where(and_(*conditions))
        count_query = count_query.where(and_(*conditions))

    total = (await db.execute(count_query)).scalar() or 0

    query = query.order_by(Supplier.name).offset((page - 1) * limit).limit(limit)
    result = await db.execute(query)

    return SupplierListResponse(
        data=[build_supplier_response(s) for s in result.scalars().all()],
        total=total,
        page=page,
        limit=limit
    )


@router.post("/", response_model=SupplierResponse, status_code=201)
async def create_supplier(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    data: SupplierCreate) -> Any:
    values = data.model_dump()
    values["categories"] = ",".join(values["categories"])
    supplier = Supplier(**values)
    db.add(supplier)
    await flush_or_conflict(db)

    record_audit(db, operator, "CREATE_SUPPLIER", "supplier", supplier.id, supplier.name,
                 f"Created supplier {supplier.name}")
    await commit_or_conflict(db)
    await db.refresh(supplier)
    return build_supplier_response(supplier)


@router.get("/{supplier_id}", response_model=SupplierResponse)
async def get_supplier(
    *,
    db: AsyncSession = Depends(get_db),
    supplier_id: int) -> Any:
    return build_supplier_response(await purchase_ledger.load_supplier(db, supplier_id))


@router.put("/{supplier_id}", response_model=SupplierResponse)
async def update_supplier(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    supplier_id: int,
    data: SupplierUpdate) -> Any:
    supplier = await purchase_ledger.load_supplier(db, supplier_id)

    changes = data.model_dump(exclude_unset=True)
    if "categories" in changes:
        changes["categories"] = ",".join(changes["categories"] or [])
    for field, value in changes.items():
        setattr(supplier, field, value)

    record_audit(db, operator, "UPDATE_SUPPLIER", "supplier", supplier.id, supplier.name,
                 f"Updated supplier {supplier.name}")
    await commit_or_conflict(db)
    await db.refresh(supplier)
    return build_supplier_response(supplier)


@router.delete("/{supplier_id}")
async def delete_supplier(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    supplier_id: int) -> Any:
    """Delete a supplier that has never been ordered from"""
    await purchase_ledger.delete_supplier(db, supplier_id, operator)
    return {"success": True, "message": "Supplier deleted"}
