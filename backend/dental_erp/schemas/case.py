"""Case and workflow schemas"""

from datetime import datetime
from typing import Any, Dict, Optional, List
from pydantic import BaseModel, Field, field_validator

PRIORITY_PATTERN = "^(normal|urgent|rush)$"


class CaseCreate(BaseModel):
    """Register a case at reception"""
    doctor_id: int
    patient_name: str = Field(..., min_length=1, max_length=100)
    work_type: str = Field(..., min_length=1, max_length=30)
    teeth_numbers: str = Field(..., min_length=1, max_length=100)
    shade_color: Optional[str] = None
    material: Optional[str] = None
    priority: str = Field(default="normal", pattern=PRIORITY_PATTERN)
    doctor_notes: Optional[str] = None
    internal_notes: Optional[str] = None
    expected_delivery_date: Optional[datetime] = None

    class Config:
        extra = "forbid"


class CaseUpdate(BaseModel):
    """Descriptive fields only; status moves through /transfer"""
    patient_name: Optional[str] = Field(None, min_length=1, max_length=100)
    work_type: Optional[str] = Field(None, min_length=1, max_length=30)
    teeth_numbers: Optional[str] = Field(None, min_length=1, max_length=100)
    shade_color: Optional[str] = None
    material: Optional[str] = None
    priority: Optional[str] = Field(None, pattern=PRIORITY_PATTERN)
    doctor_notes: Optional[str] = None
    internal_notes: Optional[str] = None
    expected_delivery_date: Optional[datetime] = None

    @field_validator("patient_name", "work_type", "teeth_numbers", "priority")
    @classmethod
    def reject_null(cls, v: Any) -> Any:
        """Required columns may be left out but not cleared"""
        if v is None:
            raise ValueError("must not be null")
        return v

    class Config:
        extra = "forbid"


class CaseTransfer(BaseModel):
    """Move a case to another status"""
    to_status: str
    notes: Optional[str] = None
    assigned_to: Optional[str] = None
    rejection_reason: Optional[str] = None

    class Config:
        extra = "forbid"


STAGE_STATUS = "^(pending|in_progress|completed|rejected|on_hold)$"
CHECK_RESULT = "^(pass|fail|conditional)$"


class CADDataUpdate(BaseModel):
    """CAD design record; only the fields sent are merged"""
    designer_name: Optional[str] = None
    status: Optional[str] = Field(None, pattern=STAGE_STATUS)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    design_files: Optional[List[str]] = None
    software: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        extra = "forbid"


class CAMDataUpdate(BaseModel):
    """CAM milling record"""
    operator_name: Optional[str] = None
    status: Optional[str] = Field(None, pattern=STAGE_STATUS)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    block_type: Optional[str] = None
    block_id: Optional[str] = None
    machine_name: Optional[str] = None
    # minutes
    milling_duration: Optional[int] = Field(None, ge=0)
    material_deducted: Optional[bool] = None
    errors: Optional[List[str]] = None
    notes: Optional[str] = None

    class Config:
        extra = "forbid"


class ColoringStage(BaseModel):
    stage_name: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    notes: Optional[str] = None

    class Config:
        extra = "forbid"


class FinishingDataUpdate(BaseModel):
    """Finishing record (coloring, firing, final score)"""
    technician_name: Optional[str] = None
    status: Optional[str] = Field(None, pattern=STAGE_STATUS)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    coloring_stages: Optional[List[ColoringStage]] = None
    furnace_name: Optional[str] = None
    firing_cycles: Optional[int] = Field(None, ge=0)
    quality_score: Optional[int] = Field(None, ge=1, le=10)
    notes: Optional[str] = None

    class Config:
        extra = "forbid"


class QCInspection(BaseModel):
    """Quality control inspection; ``overall_result`` gates invoicing"""
    overall_result: str = Field(..., pattern=CHECK_RESULT)
    dimension_check: Optional[str] = Field(None, pattern=CHECK_RESULT)
    color_check: Optional[str] = Field(None, pattern=CHECK_RESULT)
    occlusion_check: Optional[str] = Field(None, pattern=CHECK_RESULT)
    margin_check: Optional[str] = Field(None, pattern=CHECK_RESULT)
    rejection_reason: Optional[str] = None
    return_to_department: Optional[str] = Field(None, pattern="^(cad|cam|finishing)$")
    notes: Optional[str] = None

    class Config:
        extra = "forbid"


class WorkflowStepResponse(BaseModel):
    id: int
    from_status: str
    to_status: str
    department: str
    assigned_to: Optional[str]
    notes: Optional[str]
    rejection_reason: Optional[str]
    start_time: datetime
    end_time: Optional[datetime] = None
    created_by: Optional[str]

    class Config:
        from_attributes = True


class CaseResponse(BaseModel):
    id: int
    case_number: str
    doctor_id: int
    doctor_name: str = ""
    patient_name: str
    work_type: str
    teeth_numbers: str
    shade_color: Optional[str]
    material: Optional[str]
    priority: str
    current_status: str
    current_department: str
    qc_result: Optional[str]
    qc_notes: Optional[str]
    qc_data: Optional[Dict[str, Any]] = None
    cad_data: Optional[Dict[str, Any]] = None
    cam_data: Optional[Dict[str, Any]] = None
    finishing_data: Optional[Dict[str, Any]] = None
    invoice_id: Optional[int]
    total_cost: float = 0
    doctor_notes: Optional[str]
    internal_notes: Optional[str]
    received_date: Optional[datetime]
    expected_delivery_date: Optional[datetime]
    actual_delivery_date: Optional[datetime] = None
    allowed_transitions: List[str] = []
    workflow_history: List[WorkflowStepResponse] = []
    created_by: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]


class CaseListResponse(BaseModel):
    data: List[CaseResponse]
    total: int
    page: int
    limit: int
