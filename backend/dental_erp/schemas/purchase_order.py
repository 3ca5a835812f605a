"""Purchase order schemas"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field

from dental_erp.schemas.invoice import PAYMENT_METHOD_PATTERN, PaymentCreate


class PurchaseOrderItemInput(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    sku: Optional[str] = None
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)

    class Config:
        extra = "forbid"


class PurchaseOrderCreate(BaseModel):
    supplier_id: int
    items: List[PurchaseOrderItemInput] = Field(..., min_length=1)
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    tax: Decimal = Field(default=Decimal("0"), ge=0)
    expected_delivery: Optional[datetime] = None
    notes: Optional[str] = None

    class Config:
        extra = "forbid"


class PurchaseOrderStatusUpdate(BaseModel):
    status: str = Field(..., pattern="^(draft|sent|partial|received|cancelled)$")

    class Config:
        extra = "forbid"


class SupplierPaymentCreate(PaymentCreate):
    """Pay a supplier against one PO"""


class PurchaseOrderItemResponse(BaseModel):
    id: int
    description: str
    sku: Optional[str]
    quantity: float
    unit_price: float
    total: float
    received_qty: float = 0


class SupplierPaymentResponse(BaseModel):
    id: int
    amount: float
    method: str
    reference: Optional[str]
    notes: Optional[str]
    paid_date: datetime
    created_by: Optional[str]


class PurchaseOrderResponse(BaseModel):
    id: int
    po_number: str
    supplier_id: int
    supplier_name: str = ""
    items: List[PurchaseOrderItemResponse] = []
    subtotal: float
    discount: float
    tax: float
    total_amount: float
    paid_amount: float
    remaining_amount: float
    status: str
    status_display: str
    payment_status: str
    payments: List[SupplierPaymentResponse] = []
    order_date: datetime
    expected_delivery: Optional[datetime]
    received_date: Optional[datetime]
    notes: Optional[str]
    created_by: Optional[str]
    created_at: datetime


class PurchaseOrderListResponse(BaseModel):
    data: List[PurchaseOrderResponse]
    total: int
    page: int
    limit: int
