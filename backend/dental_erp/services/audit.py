"""Audit trail writer"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from dental_erp.models.audit_log import AuditLog


def record_audit(
    db: AsyncSession,
    operator: str,
    action: str,
    resource_type: str,
    resource_id: Optional[int] = None,
    resource_name: Optional[str] = None,
    description: Optional[str] = None) -> AuditLog:
    """Add an audit row to the current unit of work (committed with it)"""
    log = AuditLog(
        operator=operator or "system",
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        resource_name=resource_name,
        description=description
    )
    db.add(log)
    return log
