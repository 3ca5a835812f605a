"""
Doctor model - the lab's customers
total_debt is maintained by the invoice ledger, never edited directly
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, DECIMAL
from sqlalchemy.orm import relationship
from dental_erp.db.base import Base


class Doctor(Base):
    """Referring doctor / clinic"""
    __tablename__ = "lab_doctors"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(100), nullable=False, index=True, comment="Name")
    clinic = Column(String(150), comment="Clinic")
    phone = Column(String(30), comment="Phone")
    email = Column(String(100), comment="Email")
    address = Column(String(200), comment="Address")
    specialization = Column(String(100), comment="Specialization")
    notes = Column(Text, comment="Notes")

    # running aggregates
    total_cases = Column(Integer, default=0, comment="Cases received")
    total_debt = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="Outstanding invoice amount")

    # optimistic concurrency token
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    cases = relationship("DentalCase", back_populates="doctor")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Doctor {self.id}: {self.name} debt={self.total_debt}>"
