import asyncio
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from dental_erp.db import session as db_session
from dental_erp.db.base import Base
from dental_erp.core.logging_config import get_logger

# import every model so the tables get created
from dental_erp.models import (
    Doctor, Supplier, DentalCase, WorkflowStep, PricingRule,
    Invoice, InvoiceItem, Payment, PurchaseOrder, PurchaseOrderItem,
    SupplierPayment, Expense, AuditLog
)

logger = get_logger(__name__)

# work_type: (base price per unit, material multiplier, labor per hour, margin %, rush %)
DEFAULT_PRICING_RULES = {
    "zirconia": ("600", "1.2", "50", "30", "25"),
    "pfm": ("400", "1.1", "45", "25", "20"),
    "emax": ("700", "1.3", "55", "35", "30"),
    "implant": ("900", "1.4", "60", "35", "25"),
    "ortho": ("500", "1.0", "40", "20", "15"),
    "removable": ("800", "1.1", "50", "25", "20"),
    "composite": ("350", "1.0", "35", "20", "15"),
}


async def init_db() -> None:
    """
    Create all tables
    """
    async with db_session.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ensure_tables_exist() -> None:
    """
    Create missing tables (called at startup)
    """
    async with db_session.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def seed_pricing_rules(db: AsyncSession) -> int:
    """Insert the default pricing rules when the table is empty"""
    result = await db.execute(select(func.count(PricingRule.id)))
    if result.scalar():
        return 0

    for work_type, (base, multiplier, labor, margin, rush) in DEFAULT_PRICING_RULES.items():
        db.add(PricingRule(
            work_type=work_type,
            base_price_per_unit=Decimal(base),
            material_cost_multiplier=Decimal(multiplier),
            labor_cost_per_hour=Decimal(labor),
            profit_margin_percent=Decimal(margin),
            rush_surcharge_percent=Decimal(rush)
        ))
    await db.commit()
    logger.info(f"Seeded {len(DEFAULT_PRICING_RULES)} default pricing rules")
    return len(DEFAULT_PRICING_RULES)


if __name__ == "__main__":
    asyncio.run(init_db())
