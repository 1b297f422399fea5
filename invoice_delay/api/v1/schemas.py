"""Pydantic schemas for API responses"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class SummaryResponse(BaseModel):
    """Response for GET /v1/summary"""

    current_time: str
    timezone: str
    daily_volume: str
    volume_limit: str
    currency: str
    unpaid_invoices_count: int
    limit_reached: bool
    total_charges: int
    possibly_truncated: bool
    invoices_possibly_truncated: bool = False


class RunResponse(BaseModel):
    """Response for POST /v1/runs"""

    status: str  # processed | not_needed | failed
    reason: Optional[str] = None
    error: Optional[str] = None
    session_id: Optional[str] = None
    total_unpaid_invoices: Optional[int] = None
    total_transferred: Optional[int] = None
    audit_location: Optional[str] = None


class SessionListResponse(BaseModel):
    """Response for GET /v1/sessions"""

    sessions: List[Dict[str, Any]]
