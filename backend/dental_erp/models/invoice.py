"""
Customer invoice ledger models

Invariants kept by Invoice.recalculate():
- remaining_amount = total_amount - paid_amount
- payment_status: paid when nothing remains, partial once anything is paid, else unpaid
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship
from dental_erp.db.base import Base


class Invoice(Base):
    """Invoice for exactly one case"""
    __tablename__ = "lab_invoices"

    id = Column(Integer, primary_key=True, index=True)

    # INV-2026-00001
    invoice_number = Column(String(30), unique=True, nullable=False, index=True, comment="Invoice number")

    case_id = Column(Integer, ForeignKey("lab_cases.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("lab_doctors.id"), nullable=False, index=True)

    # cost breakdown
    subtotal = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="Items + materials + labor + rush")
    materials_cost = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="Materials")
    labor_cost = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="Labor")
    rush_surcharge = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="Rush surcharge")
    discount = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="Discount")
    tax = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="Tax")
    total_amount = Column(DECIMAL(12, 2), nullable=False, comment="Total")

    paid_amount = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="Paid")
    remaining_amount = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="Remaining")

    # issued / paid / cancelled
    status = Column(String(20), nullable=False, default="issued", index=True, comment="Status")
    # unpaid / partial / paid
    payment_status = Column(String(20), nullable=False, default="unpaid", index=True, comment="Payment status")

    issued_date = Column(DateTime, default=datetime.utcnow, index=True, comment="Issued")
    due_date = Column(DateTime, nullable=False, comment="Due")
    cancelled_at = Column(DateTime, comment="Cancelled")

    notes = Column(Text, comment="Notes")

    version = Column(Integer, nullable=False)

    created_by = Column(String(50), default="system")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    case = relationship("DentalCase", lazy="selectin")
    doctor = relationship("Doctor", lazy="selectin")
    items = relationship(
        "InvoiceItem", back_populates="invoice", order_by="InvoiceItem.id",
        cascade="all, delete-orphan", lazy="selectin"
    )
    payments = relationship(
        "Payment", back_populates="invoice", order_by="Payment.id",
        cascade="all, delete-orphan", lazy="selectin"
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Invoice {self.invoice_number}: {self.total_amount} ({self.status}/{self.payment_status})>"

    @property
    def status_display(self) -> str:
        status_map = {
            "issued": "Issued",
            "paid": "Paid",
            "cancelled": "Cancelled"
        }
        return status_map.get(self.status, self.status)

    def recalculate(self):
        """Derive remaining amount and payment status from total and paid"""
        self.remaining_amount = self.total_amount - self.paid_amount

        if self.remaining_amount <= Decimal("0"):
            self.payment_status = "paid"
        elif self.paid_amount > Decimal("0"):
            self.payment_status = "partial"
        else:
            self.payment_status = "unpaid"


class InvoiceItem(Base):
    """Invoice line"""
    __tablename__ = "lab_invoice_items"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("lab_invoices.id"), nullable=False, index=True)

    description = Column(String(200), nullable=False, default="", comment="Description")
    quantity = Column(Integer, nullable=False, default=1, comment="Quantity")
    unit_price = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="Unit price")
    total = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="quantity × unit price")

    invoice = relationship("Invoice", back_populates="items")

    def __repr__(self):
        return f"<InvoiceItem {self.description} x {self.quantity} @ {self.unit_price}>"


class Payment(Base):
    """Customer payment against one invoice (immutable)"""
    __tablename__ = "lab_payments"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("lab_invoices.id"), nullable=False, index=True)

    amount = Column(DECIMAL(12, 2), nullable=False, comment="Amount")
    # cash / bank_transfer / check / card
    method = Column(String(20), nullable=False, default="cash", comment="Method")
    reference = Column(String(100), comment="Transfer / cheque reference")
    notes = Column(Text, comment="Notes")

    paid_date = Column(DateTime, default=datetime.utcnow, index=True, comment="Paid at")
    received_by = Column(String(50), default="system")

    invoice = relationship("Invoice", back_populates="payments")

    def __repr__(self):
        return f"<Payment {self.invoice_id}: {self.amount} ({self.method})>"
