"""GET /v1/sessions - Recent audit records"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from invoice_delay.api.dependencies import get_audit_sink
from invoice_delay.api.v1.schemas import SessionListResponse
from invoice_delay.domain.exceptions import PersistenceError
from invoice_delay.domain.ports import AuditSink

router = APIRouter()


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(
    limit: int = Query(20, ge=1, le=100, description="Maximum number of sessions"),
    audit_sink: AuditSink = Depends(get_audit_sink),
):
    """Retrieve the most recent processing sessions, newest first"""
    try:
        sessions = audit_sink.list_recent(limit)
    except PersistenceError as e:
        logging.error(f"Audit storage error: {e}")
        raise HTTPException(status_code=503, detail="Audit storage unavailable")

    return SessionListResponse(sessions=sessions)
