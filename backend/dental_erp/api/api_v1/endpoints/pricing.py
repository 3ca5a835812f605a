"""Pricing rule administration"""

from typing import Any, List
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dental_erp.core.deps import get_db, get_operator
from dental_erp.core.exceptions import ConflictError, NotFoundError
from dental_erp.core.logging_config import get_logger
from dental_erp.db.session import commit_or_conflict, flush_or_conflict
from dental_erp.models.pricing_rule import PricingRule
from dental_erp.schemas.pricing import (
    PricingRuleCreate, PricingRuleUpdate, PricingRuleResponse
)
from dental_erp.services.audit import record_audit

router = APIRouter()
logger = get_logger(__name__)


def build_rule_response(rule: PricingRule) -> PricingRuleResponse:
    return PricingRuleResponse(
        id=rule.id,
        work_type=rule.work_type,
        base_price_per_unit=float(rule.base_price_per_unit),
        material_cost_multiplier=float(rule.material_cost_multiplier),
        labor_cost_per_hour=float(rule.labor_cost_per_hour),
        profit_margin_percent=float(rule.profit_margin_percent or 0),
        rush_surcharge_percent=float(rule.rush_surcharge_percent),
        updated_at=rule.updated_at
    )


@router.get("/", response_model=List[PricingRuleResponse])
async def list_rules(*, db: AsyncSession = Depends(get_db)) -> Any:
    result = await db.execute(select(PricingRule).order_by(PricingRule.work_type))
    return [build_rule_response(r) for r in result.scalars().all()]


@router.post("/", response_model=PricingRuleResponse, status_code=201)
async def create_rule(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    data: PricingRuleCreate) -> Any:
    """Add a rule for a new work type"""
    result = await db.execute(select(PricingRule).where(PricingRule.work_type == data.work_type))
    if result.scalar_one_or_none():
        raise ConflictError(f"Pricing rule for {data.work_type} already exists")

    rule = PricingRule(**data.model_dump())
    db.add(rule)
    await flush_or_conflict(db)

    record_audit(db, operator, "CREATE_PRICING", "pricing", rule.id, rule.work_type,
                 f"Created pricing rule {rule.work_type}")
    await commit_or_conflict(db)
    await db.refresh(rule)
    return build_rule_response(rule)


@router.put("/{rule_id}", response_model=PricingRuleResponse)
async def update_rule(
    *,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(get_operator),
    rule_id: int,
    data: PricingRuleUpdate) -> Any:
    """Change rule parameters (existing invoices keep their amounts)"""
    result = await db.execute(select(PricingRule).where(PricingRule.id == rule_id))
    rule = result.scalar_one_or_none()
    if not rule:
        raise NotFoundError(f"Pricing rule {rule_id} not found")

    changes = data.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(rule, field, value)

    record_audit(db, operator, "UPDATE_PRICING", "pricing", rule.id, rule.work_type,
                 f"Updated pricing rule {rule.work_type}: {', '.join(changes) or 'no changes'}")
    await commit_or_conflict(db)
    await db.refresh(rule)

    logger.info(f"Pricing rule {rule.work_type} updated by {operator}")
    return build_rule_response(rule)
