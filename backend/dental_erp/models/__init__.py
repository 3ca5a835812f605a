# models package: import everything so Base.metadata sees every table

from dental_erp.models.doctor import Doctor
from dental_erp.models.supplier import Supplier
from dental_erp.models.dental_case import DentalCase, WorkflowStep
from dental_erp.models.pricing_rule import PricingRule
from dental_erp.models.invoice import Invoice, InvoiceItem, Payment
from dental_erp.models.purchase_order import PurchaseOrder, PurchaseOrderItem, SupplierPayment
from dental_erp.models.expense import Expense
from dental_erp.models.audit_log import AuditLog

__all__ = [
    "Doctor",
    "Supplier",
    "DentalCase",
    "WorkflowStep",
    "PricingRule",
    "Invoice",
    "InvoiceItem",
    "Payment",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "SupplierPayment",
    "Expense",
    "AuditLog",
]
