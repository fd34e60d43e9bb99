import logging
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, Union

from pydantic import BaseModel

from matter_billing.modules.currency import CurrencyConverter, to_dec
from matter_billing.modules.errors import ApiError, BillingIssue, MissingIdentifierError
from matter_billing.modules.models import TimesheetRow

logger = logging.getLogger(__name__)

# Stable timesheet id, or ("local", position) for rows the backend sent without one
EditKey = Union[int, Tuple[str, int]]


class EditDraft(BaseModel):
    billed_hours: Optional[Decimal] = None
    hourly_rate: Optional[Decimal] = None

    @property
    def is_empty(self) -> bool:
        return self.billed_hours is None and self.hourly_rate is None


class TimesheetEditSession:
    """Pending billed-hours / hourly-rate edits on a draft invoice.

    Drafts are keyed by timesheet id. Rows without an id are still editable
    locally under a private key, but saving them records a
    MissingIdentifierError instead of calling the backend.
    """

    def __init__(self, invoice_id: int, rows: List[TimesheetRow], api_client=None,
                 converter: Optional[CurrencyConverter] = None, invoice_currency: Optional[str] = None):
        self.invoice_id = invoice_id
        self.api_client = api_client
        self.converter = converter
        self.invoice_currency = invoice_currency
        self.rows: Dict[EditKey, TimesheetRow] = {}
        for position, row in enumerate(rows):
            self.rows[self.key_for(row, position)] = row
        self.drafts: Dict[EditKey, EditDraft] = {}
        self.issues: List[BillingIssue] = []

    @classmethod
    def for_invoice(cls, financials, summary=None, api_client=None) -> "TimesheetEditSession":
        invoice = financials.invoice
        rates = (summary.exchange_rates if summary else {}) or invoice.exchange_rates
        converter = CurrencyConverter(rates, is_draft=invoice.is_draft)
        return cls(invoice.id, financials.timesheet_rows, api_client, converter, financials.currency)

    @staticmethod
    def key_for(row: TimesheetRow, position: int) -> EditKey:
        return row.timesheet_id if row.timesheet_id is not None else ("local", position)

    def keys(self) -> List[EditKey]:
        return list(self.rows)

    def is_saveable(self, key: EditKey) -> bool:
        return isinstance(key, int)

    def _draft(self, key: EditKey) -> EditDraft:
        if key not in self.rows:
            raise KeyError(f"No timesheet row {key!r} on invoice {self.invoice_id}")
        return self.drafts.setdefault(key, EditDraft())

    def set_billed_hours(self, key: EditKey, hours):
        hours = to_dec(hours)
        if hours < 0:
            raise ValueError("Billed hours cannot be negative")
        self._draft(key).billed_hours = hours

    def set_hourly_rate(self, key: EditKey, rate):
        rate = to_dec(rate)
        if rate < 0:
            raise ValueError("Hourly rate cannot be negative")
        self._draft(key).hourly_rate = rate

    def discard(self, key: Optional[EditKey] = None):
        if key is None:
            self.drafts.clear()
        else:
            self.drafts.pop(key, None)

    @property
    def pending(self) -> Dict[EditKey, EditDraft]:
        return {k: d for k, d in self.drafts.items() if not d.is_empty}

    def preview_rows(self) -> List[TimesheetRow]:
        """Rows with pending edits applied; fees recomputed as hours * rate."""
        preview = []
        for key, row in self.rows.items():
            draft = self.drafts.get(key)
            if draft is None or draft.is_empty:
                preview.append(row)
                continue
            hours = draft.billed_hours if draft.billed_hours is not None else row.hours
            rate = draft.hourly_rate if draft.hourly_rate is not None else row.hourly_rate
            fees = hours * rate
            preview.append(
                row.model_copy(update={
                    "hours": hours,
                    "hourly_rate": rate,
                    "fees": fees,
                    "converted_fees": self._converted(row, fees),
                })
            )
        return preview

    def _converted(self, row: TimesheetRow, fees: Decimal) -> Decimal:
        if self.converter is not None and self.invoice_currency:
            return self.converter.convert(fees, row.currency, self.invoice_currency)
        # No rate table: reuse the conversion already applied to this row
        if row.fees:
            return fees * row.converted_fees / row.fees
        return fees

    def save(self, key: EditKey) -> bool:
        """Persists one row's draft. Returns False when it could not be saved."""
        draft = self.drafts.get(key)
        if draft is None or draft.is_empty:
            return True

        row = self.rows[key]
        if not self.is_saveable(key):
            issue = MissingIdentifierError(row.lawyer_name, row.date)
            logger.warning(str(issue))
            self.issues.append(issue)
            return False

        if self.api_client is None:
            raise ValueError("TimesheetEditSession.save needs an api_client")

        self.api_client.update_timesheet(
            self.invoice_id, key, billed_hours=draft.billed_hours, hourly_rate=draft.hourly_rate
        )
        del self.drafts[key]
        return True

    def save_all(self) -> Dict[EditKey, bool]:
        results = {}
        for key in list(self.pending):
            try:
                results[key] = self.save(key)
            except ApiError as e:
                logger.error(f"Saving timesheet {key} failed: {e}")
                results[key] = False
        return results
