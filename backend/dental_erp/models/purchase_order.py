"""
Supplier purchase order ledger models

Mirrors the invoice ledger on the supplier side. status tracks delivery
(draft → sent → partial → received, or cancelled); payment progress is
derived from paid_amount / remaining_amount.
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship
from dental_erp.db.base import Base


class PurchaseOrder(Base):
    """Purchase order"""
    __tablename__ = "lab_purchase_orders"

    id = Column(Integer, primary_key=True, index=True)

    # PO-2026-00001
    po_number = Column(String(30), unique=True, nullable=False, index=True, comment="PO number")

    supplier_id = Column(Integer, ForeignKey("lab_suppliers.id"), nullable=False, index=True)

    subtotal = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="Items total")
    discount = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="Discount")
    tax = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="Tax")
    total_amount = Column(DECIMAL(12, 2), nullable=False, comment="Total")

    paid_amount = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="Paid")
    remaining_amount = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="Remaining")

    # draft / sent / partial / received / cancelled
    status = Column(String(20), nullable=False, default="draft", index=True, comment="Status")

    order_date = Column(DateTime, default=datetime.utcnow, index=True, comment="Ordered")
    expected_delivery = Column(DateTime, comment="Expected delivery")
    received_date = Column(DateTime, comment="Received")

    notes = Column(Text, comment="Notes")

    version = Column(Integer, nullable=False)

    created_by = Column(String(50), default="system")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    supplier = relationship("Supplier", back_populates="purchase_orders", lazy="selectin")
    items = relationship(
        "PurchaseOrderItem", back_populates="purchase_order", order_by="PurchaseOrderItem.id",
        cascade="all, delete-orphan", lazy="selectin"
    )
    payments = relationship(
        "SupplierPayment", back_populates="purchase_order", order_by="SupplierPayment.id",
        cascade="all, delete-orphan", lazy="selectin"
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<PurchaseOrder {self.po_number}: {self.total_amount} ({self.status})>"

    @property
    def payment_status(self) -> str:
        if (self.remaining_amount or Decimal("0")) <= Decimal("0"):
            return "paid"
        if (self.paid_amount or Decimal("0")) > Decimal("0"):
            return "partial"
        return "unpaid"

    @property
    def status_display(self) -> str:
        status_map = {
            "draft": "Draft",
            "sent": "Sent",
            "partial": "Partially received",
            "received": "Received",
            "cancelled": "Cancelled"
        }
        return status_map.get(self.status, self.status)

    def recalculate(self):
        self.remaining_amount = self.total_amount - self.paid_amount


class PurchaseOrderItem(Base):
    """PO line"""
    __tablename__ = "lab_purchase_order_items"

    id = Column(Integer, primary_key=True, index=True)
    purchase_order_id = Column(Integer, ForeignKey("lab_purchase_orders.id"), nullable=False, index=True)

    description = Column(String(200), nullable=False, comment="Description")
    sku = Column(String(50), comment="SKU")
    quantity = Column(DECIMAL(12, 2), nullable=False, default=1, comment="Quantity")
    unit_price = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="Buy price")
    total = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="quantity × unit price")
    received_qty = Column(DECIMAL(12, 2), default=0, comment="Received quantity")

    purchase_order = relationship("PurchaseOrder", back_populates="items")

    def __repr__(self):
        return f"<PurchaseOrderItem {self.description} x {self.quantity} @ {self.unit_price}>"


class SupplierPayment(Base):
    """Payment to a supplier against one PO (immutable)"""
    __tablename__ = "lab_supplier_payments"

    id = Column(Integer, primary_key=True, index=True)
    purchase_order_id = Column(Integer, ForeignKey("lab_purchase_orders.id"), nullable=False, index=True)

    amount = Column(DECIMAL(12, 2), nullable=False, comment="Amount")
    method = Column(String(20), nullable=False, default="cash", comment="Method")
    reference = Column(String(100), comment="Reference")
    notes = Column(Text, comment="Notes")

    paid_date = Column(DateTime, default=datetime.utcnow, index=True, comment="Paid at")
    created_by = Column(String(50), default="system")

    purchase_order = relationship("PurchaseOrder", back_populates="payments")

    def __repr__(self):
        return f"<SupplierPayment {self.purchase_order_id}: {self.amount} ({self.method})>"
