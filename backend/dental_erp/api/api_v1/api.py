"""API v1 router"""
from fastapi import APIRouter

from dental_erp.api.api_v1.endpoints import (
    doctors, cases, pricing, invoices, suppliers, purchase_orders,
    expenses, accounting, analytics, dashboard, audit_logs
)

api_router = APIRouter()

# production
api_router.include_router(doctors.router, prefix="/doctors", tags=["Doctors"])
api_router.include_router(cases.router, prefix="/cases", tags=["Cases"])

# billing
api_router.include_router(pricing.router, prefix="/pricing", tags=["Pricing"])
api_router.include_router(invoices.router, prefix="/invoices", tags=["Invoices"])

# purchasing
api_router.include_router(suppliers.router, prefix="/suppliers", tags=["Suppliers"])
api_router.include_router(purchase_orders.router, prefix="/purchase-orders", tags=["Purchase orders"])
api_router.include_router(expenses.router, prefix="/expenses", tags=["Expenses"])

# reports
api_router.include_router(accounting.router, prefix="/accounting", tags=["Accounting"])
api_router.include_router(analytics.router, prefix="/analytics", tags=["Analytics"])
api_router.include_router(dashboard.router, prefix="/dashboard", tags=["Dashboard"])
api_router.include_router(audit_logs.router, prefix="/audit-logs", tags=["Audit logs"])
