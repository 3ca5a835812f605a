"""
Expense model - lab running costs
Expenses created from a received purchase order carry purchase_order_id;
the unique constraint keeps it to one expense per PO.
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship
from dental_erp.db.base import Base


class Expense(Base):
    """Expense entry"""
    __tablename__ = "lab_expenses"

    id = Column(Integer, primary_key=True, index=True)

    # materials / equipment / maintenance / rent / utilities / salaries / marketing / transport / other
    category = Column(String(20), nullable=False, index=True, comment="Category")
    description = Column(String(200), nullable=False, default="", comment="Description")
    amount = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="Amount")
    date = Column(DateTime, nullable=False, default=datetime.utcnow, index=True, comment="Expense date")

    vendor = Column(String(100), comment="Vendor")
    reference = Column(String(50), comment="Reference (PO number, receipt...)")
    notes = Column(Text, comment="Notes")

    purchase_order_id = Column(Integer, ForeignKey("lab_purchase_orders.id"), unique=True, comment="Source PO")
    # manual / purchase_order
    source = Column(String(20), nullable=False, default="manual", comment="Origin")

    created_by = Column(String(50), default="system")
    created_at = Column(DateTime, default=datetime.utcnow)

    purchase_order = relationship("PurchaseOrder")

    def __repr__(self):
        return f"<Expense {self.category}: {self.amount}>"

    @property
    def category_display(self) -> str:
        category_map = {
            "materials": "مواد خام",
            "equipment": "معدات",
            "maintenance": "صيانة",
            "rent": "إيجار",
            "utilities": "مرافق",
            "salaries": "رواتب",
            "marketing": "تسويق",
            "transport": "نقل",
            "other": "أخرى"
        }
        return category_map.get(self.category, self.category)
