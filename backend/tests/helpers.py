"""Test data builders for the service-level tests"""

from datetime import datetime, timedelta
from decimal import Decimal

from dental_erp.models import Doctor, PricingRule, Supplier
from dental_erp.schemas.case import CaseCreate, QCInspection
from dental_erp.services import workflow

PRODUCTION_PATH = ["cad_design", "cam_milling", "finishing", "quality_control"]


async def add_doctor(Session, name="Dr. Amal Hassan") -> int:
    async with Session() as db:
        doctor = Doctor(name=name, clinic="Smile Clinic")
        db.add(doctor)
        await db.commit()
        return doctor.id


async def add_supplier(Session, name="Ivoclar Egypt") -> int:
    async with Session() as db:
        supplier = Supplier(name=name, payment_terms="Net 30")
        db.add(supplier)
        await db.commit()
        return supplier.id


async def add_rule(Session, work_type="zirconia", base="500", multiplier="1.3", labor="50", rush="20"):
    async with Session() as db:
        db.add(PricingRule(
            work_type=work_type,
            base_price_per_unit=Decimal(base),
            material_cost_multiplier=Decimal(multiplier),
            labor_cost_per_hour=Decimal(labor),
            profit_margin_percent=Decimal("0"),
            rush_surcharge_percent=Decimal(rush)
        ))
        await db.commit()


async def add_case(Session, doctor_id, teeth="11,12,13", work_type="zirconia", priority="normal", qc=None) -> int:
    """Create a case; with ``qc`` it is walked to quality control and inspected"""
    async with Session() as db:
        case = await workflow.create_case(db, CaseCreate(
            doctor_id=doctor_id,
            patient_name="Mona Ali",
            work_type=work_type,
            teeth_numbers=teeth,
            priority=priority
        ))
        case_id = case.id

    if qc:
        for status in PRODUCTION_PATH:
            async with Session() as db:
                await workflow.transition_case(db, case_id, status)
        async with Session() as db:
            await workflow.record_qc(db, case_id, QCInspection(overall_result=qc))
    return case_id


def days_ago(days: int) -> datetime:
    return datetime.utcnow() - timedelta(days=days)
