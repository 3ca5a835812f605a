"""
Invoice pricing

calculate_costs() is pure: the invoice preview and the invoice create path
both call it and must get the same numbers for the same inputs.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional

from dental_erp.core.money import ZERO, to_money, money_sum

DEFAULT_UNIT_PRICE = Decimal("500")
DEFAULT_MATERIAL_MULTIPLIER = Decimal("1.0")
DEFAULT_LABOR_PER_HOUR = Decimal("50")
DEFAULT_RUSH_PERCENT = Decimal("20")

# fixed assumption: two labor hours per unit
LABOR_HOURS_PER_UNIT = 2
FULL_ARCH_UNITS = 14


@dataclass
class LineItem:
    description: str
    quantity: int
    unit_price: Decimal
    total: Decimal


@dataclass
class CostBreakdown:
    teeth_count: int
    unit_price: Decimal
    base_price: Decimal
    materials_cost: Decimal
    labor_cost: Decimal
    rush_surcharge: Decimal
    items: List[LineItem] = field(default_factory=list)
    items_total: Decimal = ZERO
    subtotal: Decimal = ZERO

    def total(self, discount: Any = 0, tax: Any = 0) -> Decimal:
        return self.subtotal - to_money(discount) + to_money(tax)


def count_teeth(teeth_numbers: Optional[str]) -> int:
    """14 for a full arch, else the number of comma separated entries"""
    teeth = teeth_numbers or ""
    if "full" in teeth:
        return FULL_ARCH_UNITS
    return len([t for t in teeth.split(",") if t.strip()])


def _rule_value(rule, attr: str, default: Decimal) -> Decimal:
    if rule is None:
        return default
    value = getattr(rule, attr, None)
    return default if value is None else Decimal(value)


def calculate_costs(case, rule=None, overrides=None) -> CostBreakdown:
    """
    Cost breakdown for a case

    Args:
        case: anything with work_type, teeth_numbers and priority
        rule: PricingRule for the work type, or None for the defaults
        overrides: CostOverrides (unit_price, materials_cost, labor_cost, custom_items)
    """
    unit_override = getattr(overrides, "unit_price", None)
    materials_override = getattr(overrides, "materials_cost", None)
    labor_override = getattr(overrides, "labor_cost", None)
    custom_items = getattr(overrides, "custom_items", None)

    teeth_count = count_teeth(case.teeth_numbers)

    if unit_override is not None:
        unit_price = to_money(unit_override)
    else:
        unit_price = to_money(_rule_value(rule, "base_price_per_unit", DEFAULT_UNIT_PRICE))
    base_price = to_money(unit_price * teeth_count)

    if materials_override is not None:
        materials_cost = to_money(materials_override)
    else:
        multiplier = _rule_value(rule, "material_cost_multiplier", DEFAULT_MATERIAL_MULTIPLIER)
        materials_cost = to_money(base_price * (multiplier - 1))

    if labor_override is not None:
        labor_cost = to_money(labor_override)
    else:
        per_hour = _rule_value(rule, "labor_cost_per_hour", DEFAULT_LABOR_PER_HOUR)
        labor_cost = to_money(per_hour * teeth_count * LABOR_HOURS_PER_UNIT)

    rush_percent = _rule_value(rule, "rush_surcharge_percent", DEFAULT_RUSH_PERCENT)
    full_rush = base_price * rush_percent / 100
    if case.priority == "rush":
        rush_surcharge = to_money(full_rush)
    elif case.priority == "urgent":
        rush_surcharge = to_money(full_rush / 2)
    else:
        rush_surcharge = ZERO

    if custom_items:
        items = []
        for line in custom_items:
            quantity = line.quantity or 1
            line_price = to_money(line.unit_price)
            items.append(LineItem(
                description=line.description or "",
                quantity=quantity,
                unit_price=line_price,
                total=to_money(line_price * quantity)
            ))
    else:
        items = [LineItem(
            description=f"{case.work_type} - {teeth_count} unit(s)",
            quantity=teeth_count,
            unit_price=unit_price,
            total=base_price
        )]

    items_total = money_sum(i.total for i in items)
    subtotal = items_total + materials_cost + labor_cost + rush_surcharge

    return CostBreakdown(
        teeth_count=teeth_count,
        unit_price=unit_price,
        base_price=base_price,
        materials_cost=materials_cost,
        labor_cost=labor_cost,
        rush_surcharge=rush_surcharge,
        items=items,
        items_total=items_total,
        subtotal=subtotal
    )
