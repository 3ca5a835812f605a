"""Audit log schemas"""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel


class AuditLogResponse(BaseModel):
    id: int
    operator: str
    action: str
    resource_type: str
    resource_id: Optional[int]
    resource_name: Optional[str]
    description: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class AuditLogListResponse(BaseModel):
    data: List[AuditLogResponse]
    total: int
    page: int
    limit: int
