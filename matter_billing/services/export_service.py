import csv
import io
from typing import Iterable, List, Optional

from matter_billing.modules.currency import to_dec
from matter_billing.modules.models import ExpenseEntry, TimesheetEntry

TIMESHEET_HEADERS = [
    "Date",
    "Matter",
    "Lawyer Name",
    "Role",
    "Hours",
    "Hourly Rate",
    "Fees",
    "Currency",
    "Original Hours",
    "Original Fees",
    "Description",
    "Activity Type",
]

PLAIN_HEADERS = ["Date", "Matter", "Lawyer Name", "Role", "Hours", "Hourly Rate", "Fees", "Currency", "Description"]

EXPENSE_HEADERS = [
    "Category",
    "Sub-Category",
    "Description",
    "Original Amount",
    "Original Currency",
    "Billed Amount",
    "Invoice Currency",
    "Exchange Rate",
]


def format_matter_id(client_code: Optional[str], matter_id: Optional[int]) -> str:
    """CCCC-MMMM, zero padded; N/A when neither part is known."""
    if not client_code and not matter_id:
        return "N/A"
    client_part = str(client_code).zfill(4) if client_code else "0000"
    matter_part = str(matter_id).zfill(4) if matter_id else "0000"
    return f"{client_part}-{matter_part}"


def _fmt(value, places: int = 2) -> str:
    return "{:.{p}f}".format(to_dec(value), p=places)


class ExportService:
    """Copy-paste friendly exports of the itemised timesheet and expense tables."""

    def __init__(self, default_currency: str = "INR"):
        self.default_currency = default_currency

    def _matter(self, entry: TimesheetEntry) -> str:
        matter_id = format_matter_id(entry.client_code, entry.matter_id)
        return f"{matter_id} - {entry.matter_title}" if entry.matter_title else matter_id

    def _timesheet_row(self, entry: TimesheetEntry) -> List[str]:
        fees = entry.effective_fees
        return [
            entry.date or "",
            self._matter(entry),
            entry.lawyer_name,
            entry.lawyer_role,
            _fmt(entry.hours),
            _fmt(entry.hourly_rate),
            _fmt(fees),
            entry.currency or entry.original_currency or self.default_currency,
            _fmt(entry.original_hours if entry.original_hours is not None else entry.hours),
            _fmt(entry.original_fees if entry.original_fees is not None else fees),
            entry.description or "",
            entry.activity_type or "",
        ]

    def _expense_row(self, entry: ExpenseEntry) -> List[str]:
        billed = entry.billed_amount if entry.billed_amount is not None else entry.original_amount
        return [
            entry.category,
            entry.sub_category or "",
            entry.description or "",
            _fmt(entry.original_amount),
            entry.original_currency,
            _fmt(billed),
            entry.currency or entry.original_currency,
            _fmt(entry.exchange_rate, 4) if entry.exchange_rate is not None else "1.0000",
        ]

    @staticmethod
    def _write(headers: List[str], rows: Iterable[List[str]], dialect: str) -> str:
        buf = io.StringIO()
        if dialect == "csv":
            writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
        else:
            writer = csv.writer(buf, delimiter="\t", quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
        writer.writerow(headers)
        writer.writerows(rows)
        return buf.getvalue().rstrip("\n")

    def timesheets_csv(self, entries: Iterable[TimesheetEntry]) -> str:
        return self._write(TIMESHEET_HEADERS, (self._timesheet_row(e) for e in entries), "csv")

    def timesheets_tsv(self, entries: Iterable[TimesheetEntry]) -> str:
        return self._write(TIMESHEET_HEADERS, (self._timesheet_row(e) for e in entries), "tsv")

    def expenses_csv(self, entries: Iterable[ExpenseEntry]) -> str:
        return self._write(EXPENSE_HEADERS, (self._expense_row(e) for e in entries), "csv")

    def expenses_tsv(self, entries: Iterable[ExpenseEntry]) -> str:
        return self._write(EXPENSE_HEADERS, (self._expense_row(e) for e in entries), "tsv")

    def timesheets_plain(self, entries: Iterable[TimesheetEntry]) -> str:
        """Fixed-width table, columns at least 8 wide plus padding."""
        table = [row[:7] + [row[7], row[10]] for row in (self._timesheet_row(e) for e in entries)]

        widths = []
        for idx, header in enumerate(PLAIN_HEADERS):
            data_width = max((len(r[idx]) for r in table), default=0)
            widths.append(max(len(header), data_width, 8) + 2)

        def fmt_row(cells):
            return " | ".join(str(cell).ljust(widths[i]) for i, cell in enumerate(cells))

        lines = [fmt_row(PLAIN_HEADERS), "-+-".join("-" * w for w in widths)]
        lines.extend(fmt_row(r) for r in table)
        return "\n".join(lines)

    def export(self, kind: str, fmt: str, entries) -> str:
        if kind == "timesheets":
            handlers = {"csv": self.timesheets_csv, "tsv": self.timesheets_tsv, "plain": self.timesheets_plain}
        elif kind == "expenses":
            handlers = {"csv": self.expenses_csv, "tsv": self.expenses_tsv}
        else:
            raise ValueError(f"Unknown export kind: {kind}")
        if fmt not in handlers:
            raise ValueError(f"Unsupported format for {kind}: {fmt}")
        return handlers[fmt](entries)
