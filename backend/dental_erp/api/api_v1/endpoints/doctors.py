"""Doctor registry API"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from dental_erp.core.deps import get_db, get_operator
from dental_erp.core.exceptions import ConflictError, NotFoundError
from dental_erp.db.session import commit_or_conflict, flush_or_conflict
from dental_erp.models.dental_case import DentalCase
from dental_erp.models.doctor import Doctor
from dental_erp.schemas.doctor import (
    DoctorCreate, DoctorUpdate, DoctorResponse, DoctorListResponse
)
from dental_erp.services.audit import record_audit

router = APIRouter()


def build_doctor_response(doctor: Doctor) -> DoctorResponse:
    return DoctorResponse(
        id=doctor.id,
        name=doctor.name,
        clinic=doctor.clinic,
        phone=doctor.phone,
        email=doctor.email,
        address=doctor.address,
        specialization=doctor.specialization,
        notes=doctor.notes,
        total_cases=doctor.total_cases or 0,
        total_debt=float(doctor.total_debt or 0),
        created_at=doctor.created_at,
        updated_at=doctor.updated_at
    )


async def get_doctor_or_404(db: AsyncSession, doctor_id: int) -> Doctor:
    result = await db.execute(
        select(Doctor).where(Doctor.id == doctor_id).execution_options(populate_existing=True)
    )
    doctor = result.scalar_one_or_none()
    if not doctor:
        raise NotFoundError(f"Doctor {doctor_id} not found")
    return doctor


@router.get("/", response_model=DoctorListResponse)
async def list_doctors(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, description="Name / clinic / phone")) -> Any:
    """List doctors"""
    query = select(Doctor)
    count_query = select(func.count(Doctor.id))

    if search:
        condition = or_(
            Doctor.name.contains(search),
            Doctor.clinic.contains(search),
            Doctor.phone.contains(search)
        )
        query = query.where(condition)
        count_query = count_query.where(condition)

    total = (await db.execute(count_query)).scalar() or 0

    query = query.order_by(Doctor.name).offset((page - 1) * limit).limit(limit)
    result = await db.execute(query)
    doctors = result.scalars().all()

    return DoctorListResponse(
        data=[build_doctor_response(d) for d in doctors],
        total=total,
        page=page,
        limit=limit
    )


@router.post("/", response_model=DoctorResponse, status_code=201)
async def create_doctor(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    data: DoctorCreate) -> Any:
    """Register a doctor"""
    doctor = Doctor(**data.model_dump())
    db.add(doctor)
    await flush_or_conflict(db)

    record_audit(db, operator, "CREATE_DOCTOR", "doctor", doctor.id, doctor.name, f"Created doctor {doctor.name}")
    await commit_or_conflict(db)
    await db.refresh(doctor)
    return build_doctor_response(doctor)


@router.get("/{doctor_id}", response_model=DoctorResponse)
async def get_doctor(
    *,
    db: AsyncSession = Depends(get_db),
    doctor_id: int) -> Any:
    return build_doctor_response(await get_doctor_or_404(db, doctor_id))


@router.put("/{doctor_id}", response_model=DoctorResponse)
async def update_doctor(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    doctor_id: int,
    data: DoctorUpdate) -> Any:
    """Update contact details"""
    doctor = await get_doctor_or_404(db, doctor_id)

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(doctor, field, value)

    record_audit(db, operator, "UPDATE_DOCTOR", "doctor", doctor.id, doctor.name, f"Updated doctor {doctor.name}")
    await commit_or_conflict(db)
    await db.refresh(doctor)
    return build_doctor_response(doctor)


@router.delete("/{doctor_id}")
async def delete_doctor(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    doctor_id: int) -> Any:
    """Delete a doctor without cases"""
    doctor = await get_doctor_or_404(db, doctor_id)

    result = await db.execute(select(func.count(DentalCase.id)).where(DentalCase.doctor_id == doctor_id))
    if result.scalar():
        raise ConflictError(f"Doctor {doctor.name} has cases and cannot be deleted")

    record_audit(db, operator, "DELETE_DOCTOR", "doctor", doctor.id, doctor.name, f"Deleted doctor {doctor.name}")
    await db.delete(doctor)
    await commit_or_conflict(db)
    return {"success": True, "message": "Doctor deleted"}
