"""
Audit log model - who changed what
Rows are written in the same transaction as the change they describe
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime
from dental_erp.db.base import Base


class AuditLog(Base):
    """Audit trail entry

    Actions: CREATE_CASE, TRANSFER_CASE, QC_INSPECTION, CREATE_INVOICE,
    RECORD_PAYMENT, CANCEL_INVOICE, CREATE_PO, UPDATE_PO_STATUS, PO_PAYMENT,
    PO_TO_EXPENSE, RECONCILE, ...
    """
    __tablename__ = "lab_audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    operator = Column(String(50), nullable=False, default="system", index=True, comment="Operator")
    action = Column(String(30), nullable=False, index=True, comment="Action")
    # case / invoice / purchase_order / expense / doctor / supplier / pricing
    resource_type = Column(String(30), nullable=False, index=True, comment="Resource type")
    resource_id = Column(Integer, index=True, comment="Resource ID")
    resource_name = Column(String(100), comment="Resource number / name")
    description = Column(String(500), comment="Description")

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<AuditLog {self.action} {self.resource_type}:{self.resource_id}>"
