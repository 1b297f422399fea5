"""Stripe REST client: charge source, invoice source and invoice mutator"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx

from invoice_delay.domain.exceptions import SourceFetchError, UpdateError
from invoice_delay.domain.models import Charge, ChargeBatch, Invoice, InvoiceBatch
from invoice_delay.infrastructure.observability.metrics import (
    provider_latency_histogram,
    source_fetch_failures_counter,
)

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.stripe.com"


def _from_epoch(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _error_kind(response: httpx.Response) -> Tuple[str, str]:
    """Map a provider error response to (kind, message)"""
    try:
        error = response.json().get("error", {})
    except ValueError:
        error = {}
    message = error.get("message") or response.reason_phrase or "request failed"

    if response.status_code == 404:
        return "not_found", message
    if response.status_code == 429:
        return "rate_limited", message
    if response.status_code in (401, 403):
        return "auth", message
    if response.status_code >= 500:
        return "provider_error", message
    return error.get("code") or "invalid_request", message


class StripeClient:
    """Client for the Stripe charges and invoices API"""

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        timeout: float = 10.0,
        page_size: int = 100,
        max_pages: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = (base_url or DEFAULT_API_BASE).rstrip("/")
        self.timeout = timeout
        self.page_size = page_size
        self.max_pages = max_pages
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Authorization": f"Bearer {self.api_key}"},
            transport=self.transport,
        )

    async def _list(self, source: str, path: str, params: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], bool]:
        """
        Follow the list cursor up to max_pages.

        Returns:
            (objects, truncated) where truncated means the provider still
            reported more results when the page cap was hit

        Raises:
            SourceFetchError: On timeout, HTTP errors, or invalid response
        """
        objects: List[Dict[str, Any]] = []
        has_more = False
        query = {**params, "limit": self.page_size}

        async with self._client() as client:
            try:
                for _ in range(self.max_pages):
                    with provider_latency_histogram.labels(operation=f"list_{source}").time():
                        response = await client.get(path, params=query)
                    response.raise_for_status()
                    page = response.json()

                    data = page["data"]
                    objects.extend(data)
                    has_more = bool(page.get("has_more")) and bool(data)
                    if not has_more:
                        break
                    query["starting_after"] = data[-1]["id"]

            except httpx.TimeoutException as e:
                source_fetch_failures_counter.labels(source=source).inc()
                raise SourceFetchError(source, f"timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                source_fetch_failures_counter.labels(source=source).inc()
                kind, message = _error_kind(e.response)
                raise SourceFetchError(source, f"HTTP {e.response.status_code} ({kind}): {message}") from e
            except httpx.RequestError as e:
                source_fetch_failures_counter.labels(source=source).inc()
                raise SourceFetchError(source, f"network error: {e}") from e
            except (KeyError, ValueError, TypeError) as e:
                source_fetch_failures_counter.labels(source=source).inc()
                raise SourceFetchError(source, f"invalid response: {e}") from e

        if has_more:
            logger.warning(
                "Listing truncated at page cap",
                extra={"source": source, "max_pages": self.max_pages, "fetched": len(objects)},
            )
        return objects, has_more

    async def list_charges(self, created_gte: int, created_lte: int) -> ChargeBatch:
        """Fetch charges created within the inclusive epoch-second range"""
        logger.debug(
            "Fetching charges",
            extra={"created_gte": created_gte, "created_lte": created_lte},
        )
        objects, truncated = await self._list(
            "charges",
            "/v1/charges",
            {"created[gte]": created_gte, "created[lte]": created_lte},
        )
        try:
            charges = [
                Charge(
                    id=obj["id"],
                    amount_cents=int(obj["amount"]),
                    currency=obj["currency"],
                    status=obj["status"],
                    created_at=_from_epoch(obj["created"]),
                )
                for obj in objects
            ]
        except (KeyError, ValueError, TypeError) as e:
            source_fetch_failures_counter.labels(source="charges").inc()
            raise SourceFetchError("charges", f"invalid charge data: {e}") from e

        return ChargeBatch(charges=charges, truncated=truncated)

    async def list_open_invoices(self, currency: str) -> InvoiceBatch:
        """Fetch open invoices, keeping only those billed in currency"""
        logger.debug("Fetching unpaid invoices")
        objects, truncated = await self._list("invoices", "/v1/invoices", {"status": "open"})
        wanted = currency.lower()
        try:
            invoices = [
                Invoice(
                    id=obj["id"],
                    amount_due_cents=int(obj["amount_due"]),
                    currency=obj["currency"],
                    customer_ref=obj.get("customer"),
                    created_at=_from_epoch(obj["created"]),
                    current_due_date=_from_epoch(obj.get("due_date")),
                )
                for obj in objects
                if obj["currency"].lower() == wanted
            ]
        except (KeyError, ValueError, TypeError) as e:
            source_fetch_failures_counter.labels(source="invoices").inc()
            raise SourceFetchError("invoices", f"invalid invoice data: {e}") from e

        logger.info(
            f"Found {len(invoices)} unpaid invoices in {currency.upper()}",
            extra={"open_invoices": len(objects), "truncated": truncated},
        )
        return InvoiceBatch(invoices=invoices, truncated=truncated)

    async def update_invoice_due_date(self, invoice_id: str, due_date: int) -> Dict[str, Any]:
        """
        Set an invoice's due date.

        Raises:
            UpdateError: With kind not_found, rate_limited, auth, provider_error,
                timeout, network, or the provider's error code
        """
        async with self._client() as client:
            try:
                with provider_latency_histogram.labels(operation="update_invoice").time():
                    response = await client.post(f"/v1/invoices/{invoice_id}", data={"due_date": due_date})
                response.raise_for_status()
                return response.json()

            except httpx.TimeoutException as e:
                raise UpdateError(invoice_id, "timeout", f"no response after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                kind, message = _error_kind(e.response)
                raise UpdateError(invoice_id, kind, message) from e
            except httpx.RequestError as e:
                raise UpdateError(invoice_id, "network", str(e)) from e
            except ValueError as e:
                raise UpdateError(invoice_id, "invalid_response", str(e)) from e
