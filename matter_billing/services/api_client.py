import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from matter_billing.config import BillingAppConfig
from matter_billing.modules.errors import ApiError
from matter_billing.modules.models import Invoice, Payment, TimesheetSummary

logger = logging.getLogger(__name__)


class BillingApiClient:
    """Thin client for the practice-management invoice endpoints.

    Every endpoint answers with {success, data, message}. Payloads are
    turned into models here, so callers only ever see normalised data.
    """

    def __init__(self, base_url: str, timeout: float = 15.0, verify: bool = True,
                 client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            verify=verify,
            headers={"Content-Type": "application/json"},
        )

    @classmethod
    def from_config(cls, config: BillingAppConfig) -> "BillingApiClient":
        api = config.business_rules.api
        return cls(config.base_url, timeout=api.timeout, verify=api.verify_ssl)

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self._client.request(method, url, json=json)
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise ApiError(f"Could not reach billing backend: {e}", url=url) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            # Gateways sometimes answer with a bare JSON value
            body = {}

        if response.is_error or not body.get("success", False):
            message = body.get("message") or f"HTTP {response.status_code}"
            logger.error(f"{method} {url} rejected: {message}")
            raise ApiError(message, status_code=response.status_code, url=url)

        return body.get("data")

    # --- Reads ---

    def get_invoice(self, invoice_id: int) -> Invoice:
        return Invoice.model_validate(self._request("GET", f"/api/invoices/{invoice_id}"))

    def get_timesheet_summary(self, invoice_id: int) -> TimesheetSummary:
        data = self._request("GET", f"/api/invoices/{invoice_id}/timesheet-summary")
        return TimesheetSummary.model_validate(data or {})

    def get_payments(self, invoice_id: int) -> List[Payment]:
        data = self._request("GET", f"/api/invoices/{invoice_id}/payments") or []
        return [Payment.model_validate(p) for p in data]

    def get_splits(self, invoice_id: int) -> List[Invoice]:
        data = self._request("GET", f"/api/invoices/{invoice_id}/splits") or []
        return [Invoice.model_validate(s) for s in data]

    # --- Writes ---

    def update_timesheet(
        self,
        invoice_id: int,
        timesheet_id: int,
        billed_hours: Optional[Decimal] = None,
        hourly_rate: Optional[Decimal] = None,
    ) -> Dict[str, Any]:
        """Persists billed hours (given in hours, sent as minutes) and/or hourly rate."""
        payload: Dict[str, Any] = {}
        if billed_hours is not None:
            payload["billedHours"] = int((Decimal(str(billed_hours)) * 60).to_integral_value())
        if hourly_rate is not None:
            payload["hourlyRate"] = float(hourly_rate)
        if not payload:
            raise ValueError("Nothing to update: pass billed_hours and/or hourly_rate")

        logger.info(f"Updating timesheet {timesheet_id} on invoice {invoice_id}: {payload}")
        return self._request("PUT", f"/api/invoices/{invoice_id}/timesheets/{timesheet_id}", json=payload) or {}
