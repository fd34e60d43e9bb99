import logging
from typing import Iterable, List, Tuple

from matter_billing.config import BillingAppConfig
from matter_billing.modules.currency import CurrencyConverter
from matter_billing.modules.expense_aggregator import ExpenseAggregator
from matter_billing.modules.invoice_totals import InvoiceTotals, summarize_splits
from matter_billing.modules.models import (
    AggregationMode,
    Invoice,
    InvoiceFinancials,
    Payment,
    TimesheetSummary,
)
from matter_billing.modules.partner_shares import PartnerShareCalculator
from matter_billing.modules.timesheet_aggregator import TimesheetAggregator

logger = logging.getLogger(__name__)


class FinancialsService:
    """Runs the invoice money pipeline: rows -> expenses -> totals -> partner split."""

    def __init__(self, config: BillingAppConfig, api_client=None):
        self.config = config
        self.api_client = api_client
        self.rules = config.business_rules
        self.totals = InvoiceTotals(self.rules.discount, self.rules.reconciliation)
        self.partners = PartnerShareCalculator()

    def calculate(
        self,
        invoice: Invoice,
        summary: TimesheetSummary,
        splits: Iterable[Invoice] = (),
        payments: Iterable[Payment] = (),
    ) -> InvoiceFinancials:
        """The core math engine. Pure over its arguments."""
        default_currency = self.rules.currency.default_currency
        currency = summary.invoice_currency or invoice.resolve_currency(default_currency)
        rates = summary.exchange_rates or invoice.exchange_rates
        mode = AggregationMode.DRAFT if invoice.is_draft else AggregationMode.FINALIZED
        splits = list(splits) or list(invoice.split_invoices)

        converter = CurrencyConverter(rates, is_draft=invoice.is_draft)
        timesheets = TimesheetAggregator(converter, fallback_currency=invoice.matter_currency)
        expenses = ExpenseAggregator(base_currency=self.rules.currency.expense_base_currency)

        rows = timesheets.aggregate(summary.timesheet_entries, currency, mode)
        expense_totals = expenses.aggregate(summary.expense_entries, currency, rates)

        # Totals are expressed in the currency the rows were converted into
        priced_invoice = invoice.model_copy(update={"invoice_currency": currency})
        totals = self.totals.compute(priced_invoice, rows, expense_totals, splits)

        shares = self.partners.shares_for(invoice, splits)
        allocations = self.partners.distribute(totals.final_amount, shares, currency)

        issues = converter.issues + timesheets.issues + expenses.issues
        if issues:
            logger.warning(f"Invoice {invoice.id}: {len(issues)} billing issue(s) need review")

        return InvoiceFinancials(
            invoice=invoice,
            mode=mode,
            currency=currency,
            timesheet_rows=rows,
            expense_totals=expense_totals,
            totals=totals,
            partner_allocations=allocations,
            splits=summarize_splits(splits, currency),
            payments=list(payments),
            period_from=summary.period_from,
            period_to=summary.period_to,
            issues=issues,
        )

    def load(self, invoice_id: int) -> InvoiceFinancials:
        """Fetches a fresh snapshot of the invoice and computes its financials."""
        return self.calculate(*self.fetch(invoice_id))

    def fetch(self, invoice_id: int) -> Tuple[Invoice, TimesheetSummary, List[Invoice], List[Payment]]:
        if self.api_client is None:
            raise ValueError("FinancialsService needs an api_client to fetch")

        invoice = self.api_client.get_invoice(invoice_id)

        # Split invoices carry the parent's timesheets
        source_id = invoice.parent_invoice_id if invoice.is_split and invoice.parent_invoice_id else invoice_id
        summary = self.api_client.get_timesheet_summary(source_id)

        splits: List[Invoice] = []
        if invoice.is_parent:
            splits = self.api_client.get_splits(invoice_id)
        payments = self.api_client.get_payments(invoice_id)

        logger.info(f"Loaded invoice {invoice_id} ({invoice.status.value}), {len(summary.timesheet_entries)} timesheet entries")
        return invoice, summary, splits, payments
