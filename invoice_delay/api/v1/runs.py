"""POST /v1/runs - Trigger one check-and-process cycle"""

import asyncio

from fastapi import APIRouter, Depends, HTTPException

from invoice_delay.api.dependencies import get_processing_session
from invoice_delay.api.v1.schemas import RunResponse
from invoice_delay.processing.jobs import run_once
from invoice_delay.processing.session import ProcessingSession

router = APIRouter()

# Runs against one account must not overlap
_run_lock = asyncio.Lock()


@router.post("/runs", response_model=RunResponse)
async def trigger_run(session: ProcessingSession = Depends(get_processing_session)):
    """
    Run the volume gate and, if open, delay unpaid invoices.

    Returns:
        processed / not_needed / failed with counts or the reason
    """
    if _run_lock.locked():
        raise HTTPException(status_code=409, detail="A run is already in progress")

    async with _run_lock:
        outcome = await run_once(session)

    return RunResponse(**outcome.to_dict())
