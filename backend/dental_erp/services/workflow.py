"""
Case workflow engine

Moves cases between production stages. Every accepted move appends a
WorkflowStep and re-derives the department from the new status; the step,
the case row and the audit entry are committed together.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from dental_erp.core.exceptions import ConflictError, NotFoundError, PreconditionError, ValidationError
from dental_erp.core.logging_config import get_logger
from dental_erp.core.state_machine import TransitionTable
from dental_erp.db.session import commit_or_conflict, flush_or_conflict
from dental_erp.models.dental_case import DentalCase, WorkflowStep
from dental_erp.models.doctor import Doctor
from dental_erp.models.invoice import Invoice
from dental_erp.schemas.case import CaseCreate, CaseUpdate, QCInspection
from dental_erp.services.audit import record_audit
from dental_erp.services.numbering import next_number

logger = get_logger(__name__)

STATUS_DEPARTMENT_MAP = {
    "reception": "reception",
    "cad_design": "cad",
    "cam_milling": "cam",
    "finishing": "finishing",
    "quality_control": "quality_control",
    "accounting": "accounting",
    "ready_for_delivery": "delivery",
    "delivered": "delivery",
    "returned": "reception",
    "cancelled": "reception",
}


def require_qc_pass(case: DentalCase) -> None:
    if case.qc_result != "pass":
        raise PreconditionError("Cannot proceed to accounting - QC must pass first")


CASE_TRANSITIONS = TransitionTable(
    "case",
    {
        "reception": ["cad_design", "cancelled"],
        "cad_design": ["cam_milling", "reception", "cancelled"],
        "cam_milling": ["finishing", "cad_design", "cancelled"],
        "finishing": ["quality_control", "cam_milling", "cancelled"],
        "quality_control": ["accounting", "finishing", "cam_milling", "cad_design", "cancelled"],
        "accounting": ["ready_for_delivery"],
        "ready_for_delivery": ["delivered"],
        "delivered": ["returned"],
        "returned": ["reception"],
        "cancelled": [],
    },
    guards={"accounting": [require_qc_pass]},
)


async def load_case(db: AsyncSession, case_id: int) -> DentalCase:
    """Fresh copy of a case with doctor and history, or NotFoundError"""
    result = await db.execute(
        select(DentalCase)
        .where(DentalCase.id == case_id)
        .execution_options(populate_existing=True)
    )
    case = result.scalar_one_or_none()
    if not case:
        raise NotFoundError(f"Case {case_id} not found")
    return case


async def find_case(db: AsyncSession, key: str) -> DentalCase:
    """Look a case up by numeric id or by case number"""
    if key.isdigit():
        return await load_case(db, int(key))
    result = await db.execute(
        select(DentalCase)
        .where(DentalCase.case_number == key)
        .execution_options(populate_existing=True)
    )
    case = result.scalar_one_or_none()
    if not case:
        raise NotFoundError(f"Case {key} not found")
    return case


def apply_transition(
    case: DentalCase,
    to_status: str,
    operator: str = "system",
    notes: Optional[str] = None,
    assigned_to: Optional[str] = None,
    rejection_reason: Optional[str] = None) -> WorkflowStep:
    """Validate and apply a move in memory; the caller commits"""
    from_status = case.current_status
    CASE_TRANSITIONS.check(case, from_status, to_status)

    now = datetime.utcnow()
    if case.workflow_history and case.workflow_history[-1].end_time is None:
        case.workflow_history[-1].end_time = now

    department = STATUS_DEPARTMENT_MAP[to_status]
    step = WorkflowStep(
        from_status=from_status,
        to_status=to_status,
        department=department,
        assigned_to=assigned_to,
        notes=notes,
        rejection_reason=rejection_reason,
        start_time=now,
        created_by=operator
    )
    case.workflow_history.append(step)
    case.current_status = to_status
    case.current_department = department
    if to_status == "delivered":
        case.actual_delivery_date = now
    return step


async def transition_case(
    db: AsyncSession,
    case_id: int,
    to_status: str,
    operator: str = "system",
    notes: Optional[str] = None,
    assigned_to: Optional[str] = None,
    rejection_reason: Optional[str] = None) -> DentalCase:
    """Move a case to ``to_status`` and persist the step"""
    case = await load_case(db, case_id)
    from_status = case.current_status

    apply_transition(case, to_status, operator, notes, assigned_to, rejection_reason)

    record_audit(
        db, operator, "TRANSFER_CASE", "case", case.id, case.case_number,
        f"Transferred case {case.case_number} from {from_status} to {to_status}"
    )
    await commit_or_conflict(db)

    logger.info(f"Case {case.case_number}: {from_status} → {to_status} by {operator}")
    return case


async def create_case(db: AsyncSession, data: CaseCreate, operator: str = "system") -> DentalCase:
    """Register a case at reception and bump the doctor's case count"""
    result = await db.execute(select(Doctor).where(Doctor.id == data.doctor_id))
    doctor = result.scalar_one_or_none()
    if not doctor:
        raise NotFoundError(f"Doctor {data.doctor_id} not found")

    case_number = await next_number(db, DentalCase.case_number, "L")
    case = DentalCase(
        case_number=case_number,
        doctor=doctor,
        patient_name=data.patient_name,
        work_type=data.work_type,
        teeth_numbers=data.teeth_numbers,
        shade_color=data.shade_color,
        material=data.material,
        priority=data.priority,
        current_status="reception",
        current_department=STATUS_DEPARTMENT_MAP["reception"],
        doctor_notes=data.doctor_notes,
        internal_notes=data.internal_notes,
        received_date=datetime.utcnow(),
        expected_delivery_date=data.expected_delivery_date,
        total_cost=Decimal("0.00"),
        created_by=operator,
        workflow_history=[]
    )
    db.add(case)
    await flush_or_conflict(db)

    doctor.total_cases = (doctor.total_cases or 0) + 1

    record_audit(
        db, operator, "CREATE_CASE", "case", case.id, case_number,
        f"Created case {case_number} for {case.patient_name}"
    )
    await commit_or_conflict(db)

    logger.info(f"Case {case_number} created for doctor {doctor.id}")
    return case


async def update_case(db: AsyncSession, case_id: int, data: CaseUpdate, operator: str = "system") -> DentalCase:
    case = await load_case(db, case_id)

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(case, field, value)

    record_audit(
        db, operator, "UPDATE_CASE", "case", case.id, case.case_number,
        f"Updated case {case.case_number}"
    )
    await commit_or_conflict(db)
    return case


STAGE_DATA_COLUMNS = {
    "cad": "cad_data",
    "cam": "cam_data",
    "finishing": "finishing_data",
}


async def update_stage_data(
    db: AsyncSession,
    case_id: int,
    stage: str,
    data: BaseModel,
    operator: str = "system") -> DentalCase:
    """Merge the sent fields into a stage's work record"""
    column = STAGE_DATA_COLUMNS.get(stage)
    if column is None:
        raise ValidationError(f"Unknown production stage '{stage}'")

    case = await load_case(db, case_id)

    # a new dict so the JSON column is flagged dirty
    merged = dict(getattr(case, column) or {})
    merged.update(data.model_dump(exclude_unset=True, mode="json"))
    setattr(case, column, merged)

    record_audit(
        db, operator, f"UPDATE_{stage.upper()}_DATA", "case", case.id, case.case_number,
        f"Updated {stage} record of case {case.case_number}"
    )
    await commit_or_conflict(db)
    return case


async def record_qc(
    db: AsyncSession,
    case_id: int,
    inspection: QCInspection,
    operator: str = "system") -> DentalCase:
    """Store the quality control record; its overall result gates invoicing"""
    case = await load_case(db, case_id)
    now = datetime.utcnow()

    record = inspection.model_dump(mode="json")
    record["inspector_name"] = operator
    record["inspection_date"] = now.isoformat()

    case.qc_data = record
    case.qc_result = inspection.overall_result
    case.qc_notes = inspection.notes
    case.qc_inspected_at = now

    record_audit(
        db, operator, "QC_INSPECTION", "case", case.id, case.case_number,
        f"QC {inspection.overall_result} for case {case.case_number}"
    )
    await commit_or_conflict(db)

    logger.info(f"Case {case.case_number} QC result: {inspection.overall_result}")
    return case


async def delete_case(db: AsyncSession, case_id: int, operator: str = "system") -> None:
    """Delete a case that has never been invoiced"""
    case = await load_case(db, case_id)

    if case.invoice_id:
        raise ConflictError(
            f"Case {case.case_number} is linked to invoice {case.invoice_id}; cancel the invoice first"
        )

    # cancelled invoices still reference the case
    result = await db.execute(select(func.count(Invoice.id)).where(Invoice.case_id == case.id))
    if result.scalar():
        raise ConflictError(f"Case {case.case_number} has invoice history and cannot be deleted")

    doctor = case.doctor
    if doctor and doctor.total_cases:
        doctor.total_cases -= 1

    record_audit(
        db, operator, "DELETE_CASE", "case", case.id, case.case_number,
        f"Deleted case {case.case_number}"
    )
    await db.delete(case)
    await commit_or_conflict(db)

    logger.info(f"Case {case.case_number} deleted")
