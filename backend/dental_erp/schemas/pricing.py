"""Pricing rule and cost breakdown schemas"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, List
from pydantic import BaseModel, Field, field_validator


class PricingRuleCreate(BaseModel):
    work_type: str = Field(..., min_length=1, max_length=30)
    base_price_per_unit: Decimal = Field(..., ge=0)
    material_cost_multiplier: Decimal = Field(default=Decimal("1.0"), ge=1)
    labor_cost_per_hour: Decimal = Field(default=Decimal("50"), ge=0)
    profit_margin_percent: Decimal = Field(default=Decimal("0"), ge=0)
    rush_surcharge_percent: Decimal = Field(default=Decimal("20"), ge=0)

    class Config:
        extra = "forbid"


class PricingRuleUpdate(BaseModel):
    base_price_per_unit: Optional[Decimal] = Field(None, ge=0)
    material_cost_multiplier: Optional[Decimal] = Field(None, ge=1)
    labor_cost_per_hour: Optional[Decimal] = Field(None, ge=0)
    profit_margin_percent: Optional[Decimal] = Field(None, ge=0)
    rush_surcharge_percent: Optional[Decimal] = Field(None, ge=0)

    @field_validator("base_price_per_unit", "material_cost_multiplier", "labor_cost_per_hour", "profit_margin_percent", "rush_surcharge_percent")
    @classmethod
    def reject_null(cls, v: Any) -> Any:
        """Required columns may be left out but not cleared"""
        if v is None:
            raise ValueError("must not be null")
        return v

    class Config:
        extra = "forbid"


class PricingRuleResponse(BaseModel):
    id: int
    work_type: str
    base_price_per_unit: float
    material_cost_multiplier: float
    labor_cost_per_hour: float
    profit_margin_percent: float
    rush_surcharge_percent: float
    updated_at: Optional[datetime]


class LineItemInput(BaseModel):
    """Custom invoice line"""
    description: str = ""
    quantity: int = Field(default=1, ge=1)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)

    class Config:
        extra = "forbid"


class CostOverrides(BaseModel):
    """Values that replace the rule-derived amounts"""
    unit_price: Optional[Decimal] = Field(None, ge=0)
    materials_cost: Optional[Decimal] = Field(None, ge=0)
    labor_cost: Optional[Decimal] = Field(None, ge=0)
    custom_items: Optional[List[LineItemInput]] = None

    class Config:
        extra = "forbid"


class LineItemResponse(BaseModel):
    description: str
    quantity: int
    unit_price: float
    total: float


class CostBreakdownResponse(BaseModel):
    case_id: int
    work_type: str
    priority: str
    teeth_count: int
    unit_price: float
    base_price: float
    materials_cost: float
    labor_cost: float
    rush_surcharge: float
    items: List[LineItemResponse]
    items_total: float
    subtotal: float
    discount: float = 0
    tax: float = 0
    total_amount: float
