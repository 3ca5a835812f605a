"""Invoice and payment schemas"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field

from dental_erp.schemas.pricing import CostOverrides, LineItemResponse

PAYMENT_METHOD_PATTERN = "^(cash|bank_transfer|check|card)$"


class InvoicePreview(CostOverrides):
    """Price a case without saving anything"""
    case_id: int
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    tax: Decimal = Field(default=Decimal("0"), ge=0)


class InvoiceCreate(InvoicePreview):
    """Issue the invoice for a QC-passed case"""
    due_date: Optional[datetime] = None
    notes: Optional[str] = None


class PaymentCreate(BaseModel):
    """Record a payment"""
    amount: Decimal = Field(..., gt=0)
    method: str = Field(default="cash", pattern=PAYMENT_METHOD_PATTERN)
    reference: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        extra = "forbid"


class PaymentResponse(BaseModel):
    id: int
    amount: float
    method: str
    reference: Optional[str]
    notes: Optional[str]
    paid_date: datetime
    received_by: Optional[str]


class InvoiceResponse(BaseModel):
    id: int
    invoice_number: str
    case_id: int
    case_number: str = ""
    doctor_id: int
    doctor_name: str = ""
    items: List[LineItemResponse] = []
    subtotal: float
    materials_cost: float
    labor_cost: float
    rush_surcharge: float
    discount: float
    tax: float
    total_amount: float
    paid_amount: float
    remaining_amount: float
    status: str
    status_display: str
    payment_status: str
    payments: List[PaymentResponse] = []
    issued_date: datetime
    due_date: datetime
    cancelled_at: Optional[datetime]
    notes: Optional[str]
    created_by: Optional[str]
    created_at: datetime


class InvoiceListResponse(BaseModel):
    data: List[InvoiceResponse]
    total: int
    page: int
    limit: int
