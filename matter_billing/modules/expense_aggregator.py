import logging
from decimal import Decimal
from typing import List, Dict, Optional, Iterable, Any

from matter_billing.modules.currency import to_dec
from matter_billing.modules.errors import (
    BillingIssue,
    MissingExchangeRateError,
    InvalidExchangeRateError,
)
from matter_billing.modules.models import ExpenseEntry, ExpenseLine, ExpenseTotals

logger = logging.getLogger(__name__)


class ExpenseAggregator:
    """Sums invoice expenses and bills them in the invoice currency.

    Expenses are always recorded in the base currency (INR). The billed
    amount uses the invoice's saved base-currency rate; when that rate is
    missing or unusable the expense is billed unconverted and an issue is
    recorded, whatever the invoice status.
    """

    def __init__(self, base_currency: str = "INR"):
        self.base_currency = base_currency
        self.issues: List[BillingIssue] = []

    def _billing_rate(self, invoice_currency: str, rates: Dict[str, Any]) -> Optional[Decimal]:
        if invoice_currency == self.base_currency:
            return Decimal("1")

        raw = (rates or {}).get(self.base_currency)
        if raw is None:
            issue = MissingExchangeRateError(self.base_currency, invoice_currency)
        else:
            rate = to_dec(raw)
            if rate > 0:
                return rate
            issue = InvalidExchangeRateError(self.base_currency, rate, invoice_currency)

        logger.warning("%s; billing expenses unconverted", issue)
        self.issues.append(issue)
        return None

    def aggregate(
        self,
        entries: Iterable[ExpenseEntry],
        invoice_currency: str,
        rates: Optional[Dict[str, Any]] = None,
    ) -> ExpenseTotals:
        entries = list(entries)
        totals = ExpenseTotals(currency=invoice_currency)
        if not entries:
            return totals

        rate = self._billing_rate(invoice_currency, rates)

        for entry in entries:
            original = entry.original_amount
            if entry.original_currency != self.base_currency:
                logger.warning(
                    "Expense %s recorded in %s; treating it as %s",
                    entry.expense_id, entry.original_currency, self.base_currency,
                )

            billed = original * rate if rate is not None else original
            totals.total_original += original
            totals.total_billed += billed
            totals.lines.append(
                ExpenseLine(
                    category=entry.category,
                    sub_category=entry.sub_category,
                    description=entry.description,
                    original_amount=original,
                    original_currency=self.base_currency,
                    billed_amount=billed,
                    currency=invoice_currency if rate is not None else self.base_currency,
                    exchange_rate=rate,
                )
            )

        return totals
