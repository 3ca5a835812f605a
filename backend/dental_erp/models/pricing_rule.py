"""
Pricing rule model - automatic invoice pricing per work type
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, DateTime, DECIMAL
from dental_erp.db.base import Base


class PricingRule(Base):
    """Per work type price parameters"""
    __tablename__ = "lab_pricing_rules"

    id = Column(Integer, primary_key=True, index=True)

    work_type = Column(String(30), unique=True, nullable=False, index=True, comment="Work type")

    base_price_per_unit = Column(DECIMAL(12, 2), nullable=False, default=Decimal("500.00"), comment="Price per tooth/unit")
    # total-over-base ratio: 1.3 means materials add 30% of the base price
    material_cost_multiplier = Column(DECIMAL(6, 3), nullable=False, default=Decimal("1.000"), comment="Material multiplier")
    labor_cost_per_hour = Column(DECIMAL(12, 2), nullable=False, default=Decimal("50.00"), comment="Labor per hour")
    profit_margin_percent = Column(DECIMAL(5, 2), default=Decimal("0.00"), comment="Target margin %")
    rush_surcharge_percent = Column(DECIMAL(5, 2), nullable=False, default=Decimal("20.00"), comment="Rush surcharge %")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<PricingRule {self.work_type} @ {self.base_price_per_unit}>"
