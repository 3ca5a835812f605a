"""
Case model - one production job tracked from reception to delivery

Status path:
reception → cad_design → cam_milling → finishing → quality_control
→ accounting → ready_for_delivery → delivered (→ returned → reception)
Any production stage can be cancelled; QC can send work back.
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import relationship
from dental_erp.db.base import Base


class DentalCase(Base):
    """Production case"""
    __tablename__ = "lab_cases"

    id = Column(Integer, primary_key=True, index=True)

    # L-2026-00001
    case_number = Column(String(30), unique=True, nullable=False, index=True, comment="Case number")

    doctor_id = Column(Integer, ForeignKey("lab_doctors.id"), nullable=False, index=True)
    patient_name = Column(String(100), nullable=False, comment="Patient")

    # zirconia / pfm / emax / implant / ortho / removable / composite / ...
    work_type = Column(String(30), nullable=False, index=True, comment="Work type")
    # "11,12,13" or "upper full"
    teeth_numbers = Column(String(100), nullable=False, comment="Teeth")
    shade_color = Column(String(20), comment="Shade")
    material = Column(String(50), comment="Material")

    # normal / urgent / rush
    priority = Column(String(10), nullable=False, default="normal", index=True, comment="Priority")

    current_status = Column(String(30), nullable=False, default="reception", index=True, comment="Status")
    current_department = Column(String(30), nullable=False, default="reception", index=True, comment="Department")

    # quality control outcome: pass / fail / conditional
    qc_result = Column(String(20), comment="QC result")
    qc_notes = Column(Text, comment="QC notes")
    qc_inspected_at = Column(DateTime, comment="QC time")
    # full inspection record: per-check results, inspector, return department
    qc_data = Column(JSON, comment="QC record")

    # per-stage work records, merged on each update
    cad_data = Column(JSON, comment="CAD design record")
    cam_data = Column(JSON, comment="CAM milling record")
    finishing_data = Column(JSON, comment="Finishing record")

    # at most one live invoice; plain column to avoid a cyclic FK with invoices
    invoice_id = Column(Integer, index=True, comment="Linked invoice")
    total_cost = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="Invoiced amount")

    doctor_notes = Column(Text, comment="Doctor notes")
    internal_notes = Column(Text, comment="Internal notes")

    received_date = Column(DateTime, default=datetime.utcnow, comment="Received")
    expected_delivery_date = Column(DateTime, comment="Expected delivery")
    actual_delivery_date = Column(DateTime, comment="Delivered")

    version = Column(Integer, nullable=False)

    created_by = Column(String(50), default="system")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    doctor = relationship("Doctor", back_populates="cases", lazy="selectin")
    workflow_history = relationship(
        "WorkflowStep",
        back_populates="case",
        order_by="WorkflowStep.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<DentalCase {self.case_number} ({self.current_status})>"

    @property
    def qc_passed(self) -> bool:
        return self.qc_result == "pass"


class WorkflowStep(Base):
    """One recorded status change of a case (append only)"""
    __tablename__ = "lab_workflow_steps"

    id = Column(Integer, primary_key=True, index=True)

    case_id = Column(Integer, ForeignKey("lab_cases.id"), nullable=False, index=True)

    from_status = Column(String(30), nullable=False, comment="From")
    to_status = Column(String(30), nullable=False, comment="To")
    department = Column(String(30), nullable=False, comment="Receiving department")

    assigned_to = Column(String(100), comment="Assignee")
    notes = Column(Text, comment="Notes")
    # why work was sent back, if it was
    rejection_reason = Column(Text, comment="Rejection reason")

    start_time = Column(DateTime, default=datetime.utcnow, comment="Entered the stage")
    # set when the case moves on
    end_time = Column(DateTime, comment="Left the stage")
    created_by = Column(String(50), default="system")
    created_at = Column(DateTime, default=datetime.utcnow)

    case = relationship("DentalCase", back_populates="workflow_history")

    def __repr__(self):
        return f"<WorkflowStep {self.case_id}: {self.from_status} → {self.to_status}>"
