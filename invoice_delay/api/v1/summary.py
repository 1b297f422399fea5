"""GET /v1/summary - Today's volume against the limit and the unpaid backlog"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from invoice_delay.api.dependencies import get_processing_session
from invoice_delay.api.v1.schemas import SummaryResponse
from invoice_delay.domain.exceptions import SourceFetchError
from invoice_delay.processing.session import ProcessingSession

router = APIRouter()


@router.get("/summary", response_model=SummaryResponse)
async def get_summary(session: ProcessingSession = Depends(get_processing_session)):
    """
    Read-only status of the current business day.

    Returns:
        Daily volume, configured limit, whether it is reached, and how many
        open invoices would be processed
    """
    try:
        summary = await session.summarize()
    except SourceFetchError as e:
        logging.error(f"Payment provider error: {e}")
        raise HTTPException(status_code=503, detail="Payment provider unavailable")

    return SummaryResponse(**summary.to_dict())
