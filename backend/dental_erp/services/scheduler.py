"""
Scheduled jobs (APScheduler)

- expense sweep: books received purchase orders that still have no expense
- reconcile: recomputes doctor / supplier aggregates from the ledgers
"""

import logging
from typing import Any, Dict, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from dental_erp.core.config import settings
from dental_erp.db import session as db_session
from dental_erp.services.invoice_ledger import reconcile_doctor_aggregates
from dental_erp.services.purchase_ledger import reconcile_supplier_aggregates, sweep_received_orders

logger = logging.getLogger(__name__)

# global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


async def expense_sweep() -> int:
    """Book missing expenses for received POs"""
    try:
        async with db_session.SessionLocal() as db:
            return await sweep_received_orders(db)
    except Exception as e:
        logger.error(f"Expense sweep failed: {e}")
        return 0


async def reconcile_aggregates() -> Dict[str, Any]:
    """Compare running aggregates with the ledgers and correct any drift"""
    try:
        async with db_session.SessionLocal() as db:
            doctors = await reconcile_doctor_aggregates(db, operator="scheduler")
            suppliers = await reconcile_supplier_aggregates(db, operator="scheduler")
    except Exception as e:
        logger.error(f"Aggregate reconciliation failed: {e}")
        return {"doctors": [], "suppliers": [], "error": str(e)}

    if doctors or suppliers:
        logger.warning(f"Reconciliation corrected {len(doctors)} doctor(s) and {len(suppliers)} supplier(s)")
    else:
        logger.info("Reconciliation: aggregates match the ledgers")
    return {"doctors": doctors, "suppliers": suppliers}


def init_scheduler():
    """Create and start the scheduler"""
    global scheduler

    if not settings.SCHEDULER_ENABLED:
        logger.info("Scheduler disabled")
        return

    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        expense_sweep,
        trigger=IntervalTrigger(minutes=settings.EXPENSE_SWEEP_INTERVAL_MINUTES),
        id="expense_sweep",
        name="Received PO expense sweep",
        replace_existing=True
    )

    # nightly by default
    scheduler.add_job(
        reconcile_aggregates,
        trigger=CronTrigger(
            hour=settings.RECONCILE_HOUR,
            minute=settings.RECONCILE_MINUTE
        ),
        id="reconcile_aggregates",
        name="Ledger aggregate reconciliation",
        replace_existing=True
    )

    scheduler.start()
    logger.info(
        f"Scheduler started - expense sweep every {settings.EXPENSE_SWEEP_INTERVAL_MINUTES} min, "
        f"reconcile daily at {settings.RECONCILE_HOUR:02d}:{settings.RECONCILE_MINUTE:02d}"
    )


def shutdown_scheduler():
    """Stop the scheduler"""
    global scheduler
    if scheduler:
        scheduler.shutdown()
        scheduler = None
        logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    """Scheduler state for the health endpoint"""
    global scheduler
    if not scheduler:
        return {
            "enabled": settings.SCHEDULER_ENABLED,
            "running": False,
            "jobs": []
        }

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None
        })

    return {
        "enabled": settings.SCHEDULER_ENABLED,
        "running": scheduler.running,
        "jobs": jobs
    }
