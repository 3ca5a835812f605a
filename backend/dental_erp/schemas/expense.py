"""Expense schemas"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, List
from pydantic import BaseModel, Field, field_validator

CATEGORY_PATTERN = "^(materials|equipment|maintenance|rent|utilities|salaries|marketing|transport|other)$"


class ExpenseCreate(BaseModel):
    category: str = Field(..., pattern=CATEGORY_PATTERN)
    description: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0)
    date: Optional[datetime] = None
    vendor: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        extra = "forbid"


class ExpenseUpdate(BaseModel):
    category: Optional[str] = Field(None, pattern=CATEGORY_PATTERN)
    description: Optional[str] = Field(None, min_length=1, max_length=200)
    amount: Optional[Decimal] = Field(None, gt=0)
    date: Optional[datetime] = None
    vendor: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("category", "description", "amount", "date")
    @classmethod
    def reject_null(cls, v: Any) -> Any:
        """Required columns may be left out but not cleared"""
        if v is None:
            raise ValueError("must not be null")
        return v

    class Config:
        extra = "forbid"


class ExpenseResponse(BaseModel):
    id: int
    category: str
    category_display: str
    description: str
    amount: float
    date: datetime
    vendor: Optional[str]
    reference: Optional[str]
    notes: Optional[str]
    purchase_order_id: Optional[int]
    source: str
    created_by: Optional[str]
    created_at: datetime


class ExpenseListResponse(BaseModel):
    data: List[ExpenseResponse]
    total: int
    total_amount: float = 0
