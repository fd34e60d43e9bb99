import logging
from decimal import Decimal
from typing import List, Dict, Tuple, Optional, Iterable

from matter_billing.modules.currency import CurrencyConverter
from matter_billing.modules.errors import BillingIssue, MissingIdentifierError
from matter_billing.modules.models import (
    AggregationMode,
    TimesheetEntry,
    TimesheetRow,
)

logger = logging.getLogger(__name__)

UNKNOWN_DATE = "Unknown"


class TimesheetAggregator:
    """Turns raw timesheet entries into the fee rows of an invoice.

    Draft invoices get one editable row per entry in its own currency.
    Finalized invoices get one row per (lawyer, role), with fees converted
    into the invoice currency and a weighted-average hourly rate.
    """

    def __init__(self, converter: CurrencyConverter, fallback_currency: Optional[str] = None):
        self.converter = converter
        self.fallback_currency = fallback_currency
        self.issues: List[BillingIssue] = []

    def entry_currency(self, entry: TimesheetEntry, invoice_currency: str) -> str:
        return entry.original_currency or entry.currency or self.fallback_currency or invoice_currency

    def aggregate(
        self,
        entries: Iterable[TimesheetEntry],
        invoice_currency: str,
        mode: AggregationMode,
    ) -> List[TimesheetRow]:
        if mode == AggregationMode.DRAFT:
            return self._draft_rows(entries, invoice_currency)
        return self._grouped_rows(entries, invoice_currency)

    def _draft_rows(self, entries, invoice_currency: str) -> List[TimesheetRow]:
        rows = []
        for entry in entries:
            currency = self.entry_currency(entry, invoice_currency)
            fees = entry.effective_fees
            if entry.timesheet_id is None:
                issue = MissingIdentifierError(entry.lawyer_name, entry.date)
                logger.warning(str(issue))
                self.issues.append(issue)
            rows.append(
                TimesheetRow(
                    lawyer_name=entry.lawyer_name,
                    lawyer_role=entry.lawyer_role,
                    hours=entry.hours,
                    hourly_rate=entry.hourly_rate,
                    fees=fees,
                    currency=currency,
                    converted_fees=self.converter.convert(fees, currency, invoice_currency),
                    timesheet_id=entry.timesheet_id,
                    invoice_timesheet_id=entry.invoice_timesheet_id,
                    date=entry.date,
                    original_hours=entry.original_hours,
                    original_fees=entry.original_fees,
                    billed_hours=entry.billed_hours,
                    description=entry.description,
                )
            )
        return rows

    def _grouped_rows(self, entries, invoice_currency: str) -> List[TimesheetRow]:
        # Exact name + role match, first-seen order
        groups: Dict[Tuple[str, str], TimesheetRow] = {}

        for entry in entries:
            key = (entry.lawyer_name, entry.lawyer_role)
            row = groups.get(key)
            if row is None:
                row = TimesheetRow(
                    lawyer_name=entry.lawyer_name,
                    lawyer_role=entry.lawyer_role,
                    currency=invoice_currency,
                    entry_count=0,
                )
                groups[key] = row

            currency = self.entry_currency(entry, invoice_currency)
            converted = self.converter.convert(entry.effective_fees, currency, invoice_currency)

            row.hours += entry.hours
            row.fees += converted
            row.entry_count += 1

        for row in groups.values():
            row.converted_fees = row.fees
            if row.hours > 0:
                row.hourly_rate = row.fees / row.hours

        return list(groups.values())


def group_by_date(entries: Iterable[TimesheetEntry]) -> Dict[str, List[TimesheetEntry]]:
    """Itemised view: entries bucketed by date, undated ones under 'Unknown'."""
    buckets: Dict[str, List[TimesheetEntry]] = {}
    for entry in entries:
        buckets.setdefault(entry.date or UNKNOWN_DATE, []).append(entry)
    return {date: buckets[date] for date in sorted(buckets)}


def total_hours(rows: Iterable[TimesheetRow]) -> Decimal:
    return sum((row.hours for row in rows), Decimal("0"))
