from decimal import Decimal
from typing import Dict, Any, List

from matter_billing.modules.currency import format_currency, format_qty
from matter_billing.modules.models import InvoiceFinancials, TimesheetEntry
from matter_billing.modules.timesheet_aggregator import group_by_date, total_hours


class ViewModelService:
    """Prepares the final dictionary for template rendering."""

    def __init__(self, config):
        self.config = config
        self.currency_rules = config.business_rules.currency

    def money(self, value, currency: str) -> str:
        return format_currency(value, currency, self.currency_rules)

    def build_context(self, financials: InvoiceFinancials, entries: List[TimesheetEntry] = ()) -> Dict[str, Any]:
        """Maps computed financials to a template-friendly dictionary."""
        invoice = financials.invoice
        totals = financials.totals
        currency = financials.currency

        rows = [
            {
                "lawyer": row.lawyer_name,
                "role": row.lawyer_role,
                "date": row.date,
                "hours": format_qty(row.hours),
                "rate": self.money(row.hourly_rate, row.currency),
                "fees": self.money(row.fees, row.currency),
                "converted": self.money(row.converted_fees, currency),
                "timesheet_id": row.timesheet_id,
                "editable": row.timesheet_id is not None,
            }
            for row in financials.timesheet_rows
        ]

        expenses = [
            {
                "category": line.category,
                "description": line.description or "",
                "original": self.money(line.original_amount, line.original_currency),
                "billed": self.money(line.billed_amount, line.currency),
            }
            for line in financials.expense_totals.lines
        ]

        itemized = {
            date: [
                {
                    "lawyer": e.lawyer_name,
                    "hours": format_qty(e.hours),
                    "fees": self.money(e.effective_fees, e.currency or currency),
                    "description": e.description or "",
                }
                for e in day_entries
            ]
            for date, day_entries in group_by_date(entries).items()
        }

        return {
            "invoice": {
                "id": invoice.id,
                "number": invoice.invoice_number or f"#{invoice.id}",
                "status": invoice.status.value,
                "mode": financials.mode.value,
                "currency": currency,
                "period": self._period(financials),
                "is_parent": invoice.has_splits,
            },
            "rows": rows,
            "total_hours": format_qty(total_hours(financials.timesheet_rows)),
            "expenses": expenses,
            "itemized": itemized,
            "totals": {
                "timesheets": self.money(totals.timesheet_subtotal, currency),
                "expenses": self.money(totals.expense_subtotal, currency),
                "subtotal": self.money(totals.subtotal, currency),
                "discount": self._discount_label(financials),
                "discount_amount": self.money(totals.discount_amount, currency),
                "has_discount": totals.discount_amount > 0,
                "final": self.money(totals.final_amount, currency),
                "paid": self.money(totals.amount_paid, currency),
                "remaining": self.money(totals.remaining, currency),
                "progress": "{:.1f}".format(totals.display_progress),
                "raw_progress": "{:.1f}".format(totals.payment_progress),
                "overpaid": totals.is_overpaid,
                "discount_exceeds_subtotal": totals.discount_exceeds_subtotal,
                "reconciles": totals.reconciles,
                "stored_final": self.money(totals.stored_final_amount, currency)
                if totals.stored_final_amount is not None
                else None,
            },
            "partners": [
                {
                    "name": p.user_name or f"User {p.user_id}",
                    "percentage": "{:.2f}".format(p.percentage),
                    "amount": self.money(p.amount, p.currency),
                }
                for p in financials.partner_allocations
            ],
            "partner_total": "{:.2f}".format(sum((p.percentage for p in financials.partner_allocations), Decimal("0"))),
            "splits": [
                {
                    "number": s.invoice_number or f"#{s.invoice_id}",
                    "status": s.status.value,
                    "final": self.money(s.final_amount, s.currency),
                    "paid": self.money(s.amount_paid, s.currency),
                    "due": self.money(s.amount_due, s.currency),
                }
                for s in financials.splits
            ],
            "payments": [
                {
                    "date": p.payment_date or "--",
                    "amount": self.money(p.amount, currency),
                    "method": p.payment_method or "--",
                    "reference": p.transaction_ref or "",
                    "split": p.split_invoice_number,
                }
                for p in financials.payments
            ],
            "issues": [issue.to_dict() for issue in financials.issues],
        }

    def _period(self, financials: InvoiceFinancials) -> str:
        if not financials.period_from:
            return "--"
        if financials.period_to and financials.period_to != financials.period_from:
            return f"{financials.period_from} to {financials.period_to}"
        return financials.period_from

    def _discount_label(self, financials: InvoiceFinancials) -> str:
        totals = financials.totals
        if totals.discount_type is None:
            return ""
        if totals.discount_type.value == "percentage":
            return f"{format_qty(totals.discount_value)}%"
        return "Fixed"
