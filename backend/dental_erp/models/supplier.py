"""
Supplier model
total_purchases / total_paid / balance are maintained by the purchase ledger
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, DECIMAL
from sqlalchemy.orm import relationship
from dental_erp.db.base import Base


class Supplier(Base):
    """Material / equipment supplier"""
    __tablename__ = "lab_suppliers"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(100), nullable=False, index=True, comment="Name")
    contact_person = Column(String(100), comment="Contact person")
    phone = Column(String(30), comment="Phone")
    email = Column(String(100), comment="Email")
    address = Column(String(200), comment="Address")
    tax_number = Column(String(50), comment="Tax number")
    payment_terms = Column(String(50), comment="Payment terms, e.g. Net 30 / COD")
    # comma separated: blocks,raw_materials,consumables
    categories = Column(String(200), default="", comment="Supply categories")
    rating = Column(Integer, comment="Rating 1-5")
    notes = Column(Text, comment="Notes")

    # active / inactive / blocked
    status = Column(String(20), default="active", index=True, comment="Status")

    # running aggregates
    total_purchases = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="Total ordered")
    total_paid = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="Total paid")
    balance = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="Amount owed")

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    purchase_orders = relationship("PurchaseOrder", back_populates="supplier")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Supplier {self.id}: {self.name} balance={self.balance}>"

    @property
    def category_list(self) -> list:
        return [c for c in (self.categories or "").split(",") if c]

    @property
    def status_display(self) -> str:
        status_map = {
            "active": "Active",
            "inactive": "Inactive",
            "blocked": "Blocked"
        }
        return status_map.get(self.status, self.status)
