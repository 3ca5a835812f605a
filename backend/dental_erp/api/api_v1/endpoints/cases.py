"""Case API - reception, workflow transfers, QC"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from dental_erp.core.deps import get_db, get_operator
from dental_erp.models.dental_case import DentalCase
from dental_erp.models.doctor import Doctor
from dental_erp.schemas.case import (
    CaseCreate, CaseUpdate, CaseTransfer, QCInspection,
    CADDataUpdate, CAMDataUpdate, FinishingDataUpdate,
    CaseResponse, CaseListResponse, WorkflowStepResponse
)
from dental_erp.services import workflow

router = APIRouter()


def build_case_response(case: DentalCase) -> CaseResponse:
    return CaseResponse(
        id=case.id,
        case_number=case.case_number,
        doctor_id=case.doctor_id,
        doctor_name=case.doctor.name if case.doctor else "",
        patient_name=case.patient_name,
        work_type=case.work_type,
        teeth_numbers=case.teeth_numbers,
        shade_color=case.shade_color,
        material=case.material,
        priority=case.priority,
        current_status=case.current_status,
        current_department=case.current_department,
        qc_result=case.qc_result,
        qc_notes=case.qc_notes,
        qc_data=case.qc_data,
        cad_data=case.cad_data,
        cam_data=case.cam_data,
        finishing_data=case.finishing_data,
        invoice_id=case.invoice_id,
        total_cost=float(case.total_cost or 0),
        doctor_notes=case.doctor_notes,
        internal_notes=case.internal_notes,
        received_date=case.received_date,
        expected_delivery_date=case.expected_delivery_date,
        actual_delivery_date=case.actual_delivery_date,
        allowed_transitions=list(workflow.CASE_TRANSITIONS.allowed(case.current_status)),
        workflow_history=[WorkflowStepResponse.model_validate(s) for s in case.workflow_history],
        created_by=case.created_by,
        created_at=case.created_at,
        updated_at=case.updated_at
    )


@router.get("/", response_model=CaseListResponse)
async def list_cases(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    department: Optional[str] = Query(None),
    doctor_id: Optional[int] = Query(None),
    work_type: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Case number / patient / doctor")) -> Any:
    """List cases, newest first"""
    conditions = []
    if status:
        conditions.append(DentalCase.current_status == status)
    if department:
        conditions.append(DentalCase.current_department == department)
    if doctor_id:
        conditions.append(DentalCase.doctor_id == doctor_id)
    if work_type:
        conditions.append(DentalCase.work_type == work_type)
    if priority:
        conditions.append(DentalCase.priority == priority)
    if search:
        conditions.append(or_(
            DentalCase.case_number.contains(search),
            DentalCase.patient_name.contains(search),
            DentalCase.doctor_id.in_(select(Doctor.id).where(Doctor.name.contains(search)))
        ))

    query = select(DentalCase)
    count_query = select(func.count(DentalCase.id))
    if conditions:
        query = query.where(and_(*conditions))
        count_query = count_query.where(and_(*conditions))

    total = (await db.execute(count_query)).scalar() or 0

    query = query.order_by(DentalCase.created_at.desc(), DentalCase.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    result = await db.execute(query)
    cases = result.scalars().all()

    return CaseListResponse(
        data=[build_case_response(c) for c in cases],
        total=total,
        page=page,
        limit=limit
    )


@router.post("/", response_model=CaseResponse, status_code=201)
async def create_case(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    data: CaseCreate) -> Any:
    """Register a case at reception"""
    case = await workflow.create_case(db, data, operator)
    return build_case_response(await workflow.load_case(db, case.id))


@router.get("/{case_key}", response_model=CaseResponse)
async def get_case(
    *,
    db: AsyncSession = Depends(get_db),
    case_key: str) -> Any:
    """Case by id or case number"""
    return build_case_response(await workflow.find_case(db, case_key))


@router.put("/{case_id}", response_model=CaseResponse)
async def update_case(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    case_id: int,
    data: CaseUpdate) -> Any:
    case = await workflow.update_case(db, case_id, data, operator)
    return build_case_response(await workflow.load_case(db, case.id))


@router.delete("/{case_id}")
async def delete_case(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    case_id: int) -> Any:
    await workflow.delete_case(db, case_id, operator)
    return {"success": True, "message": "Case deleted"}


@router.post("/{case_id}/transfer", response_model=CaseResponse)
async def transfer_case(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    case_id: int,
    data: CaseTransfer) -> Any:
    """Move a case to the next (or a rework) stage"""
    case = await workflow.transition_case(
        db, case_id, data.to_status, operator,
        notes=data.notes,
        assigned_to=data.assigned_to,
        rejection_reason=data.rejection_reason
    )
    return build_case_response(await workflow.load_case(db, case.id))


@router.put("/{case_id}/qc", response_model=CaseResponse)
async def record_qc(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    case_id: int,
    data: QCInspection) -> Any:
    """Record the quality control inspection"""
    case = await workflow.record_qc(db, case_id, data, operator)
    return build_case_response(await workflow.load_case(db, case.id))


@router.put("/{case_id}/cad", response_model=CaseResponse)
async def update_cad_data(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    case_id: int,
    data: CADDataUpdate) -> Any:
    """Merge into the CAD design record"""
    case = await workflow.update_stage_data(db, case_id, "cad", data, operator)
    return build_case_response(await workflow.load_case(db, case.id))


@router.put("/{case_id}/cam", response_model=CaseResponse)
async def update_cam_data(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    case_id: int,
    data: CAMDataUpdate) -> Any:
    case = await workflow.update_stage_data(db, case_id, "cam", data, operator)
    return build_case_response(await workflow.load_case(db, case.id))


@router.put("/{case_id}/finishing", response_model=CaseResponse)
async def update_finishing_data(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    case_id: int,
    data: FinishingDataUpdate) -> Any:
    case = await workflow.update_stage_data(db, case_id, "finishing", data, operator)
    return build_case_response(await workflow.load_case(db, case.id))
