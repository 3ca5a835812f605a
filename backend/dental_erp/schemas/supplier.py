"""Supplier schemas"""

from datetime import datetime
from typing import Any, Optional, List
from pydantic import BaseModel, Field, field_validator


class SupplierCreate(BaseModel):
    """Create supplier"""
    name: str = Field(..., min_length=1, max_length=100)
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    tax_number: Optional[str] = None
    payment_terms: Optional[str] = None
    categories: List[str] = []
    rating: Optional[int] = Field(None, ge=1, le=5)
    notes: Optional[str] = None
    status: str = Field(default="active", pattern="^(active|inactive|blocked)$")

    class Config:
        extra = "forbid"


class SupplierUpdate(BaseModel):
    """Update supplier (balances are not editable)"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    tax_number: Optional[str] = None
    payment_terms: Optional[str] = None
    categories: Optional[List[str]] = None
    rating: Optional[int] = Field(None, ge=1, le=5)
    notes: Optional[str] = None
    status: Optional[str] = Field(None, pattern="^(active|inactive|blocked)$")

    @field_validator("name", "categories", "status")
    @classmethod
    def reject_null(cls, v: Any) -> Any:
        """Required columns may be left out but not cleared"""
        if v is None:
            raise ValueError("must not be null")
        return v

    class Config:
        extra = "forbid"


class SupplierResponse(BaseModel):
    id: int
    name: str
    contact_person: Optional[str]
    phone: Optional[str]
    email: Optional[str]
    address: Optional[str]
    tax_number: Optional[str]
    payment_terms: Optional[str]
    categories: List[str] = []
    rating: Optional[int]
    notes: Optional[str]
    status: str
    status_display: str
    total_purchases: float = 0
    total_paid: float = 0
    balance: float = 0
    created_at: datetime
    updated_at: Optional[datetime]


class SupplierListResponse(BaseModel):
    data: List[SupplierResponse]
    total: int
    page: int
    limit: int
