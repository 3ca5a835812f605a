"""Doctor schemas"""

from datetime import datetime
from typing import Any, Optional, List
from pydantic import BaseModel, Field, field_validator


class DoctorCreate(BaseModel):
    """Create doctor"""
    name: str = Field(..., min_length=1, max_length=100)
    clinic: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    specialization: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        extra = "forbid"


class DoctorUpdate(BaseModel):
    """Update doctor (aggregates are not editable)"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    clinic: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    specialization: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("name")
    @classmethod
    def reject_null(cls, v: Any) -> Any:
        """Required columns may be left out but not cleared"""
        if v is None:
            raise ValueError("must not be null")
        return v

    class Config:
        extra = "forbid"


class DoctorResponse(BaseModel):
    id: int
    name: str
    clinic: Optional[str]
    phone: Optional[str]
    email: Optional[str]
    address: Optional[str]
    specialization: Optional[str]
    notes: Optional[str]
    total_cases: int = 0
    total_debt: float = 0
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class DoctorListResponse(BaseModel):
    data: List[DoctorResponse]
    total: int
    page: int
    limit: int
