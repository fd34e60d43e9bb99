import logging
from decimal import Decimal
from typing import List, Dict, Iterable, Optional

from matter_billing.modules.config_models import DiscountRules, ReconciliationRules
from matter_billing.modules.currency import to_dec
from matter_billing.modules.models import (
    DiscountType,
    ExpenseTotals,
    Invoice,
    Payment,
    SplitSummary,
    TimesheetRow,
    Totals,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class InvoiceTotals:
    """Single source of truth for subtotal, discount, final amount and balance.

    Pure: compute() reads its arguments only, so the same inputs always give
    the same Totals.
    """

    def __init__(
        self,
        discount_rules: Optional[DiscountRules] = None,
        reconciliation_rules: Optional[ReconciliationRules] = None,
    ):
        self.discount_rules = discount_rules or DiscountRules()
        self.reconciliation_rules = reconciliation_rules or ReconciliationRules()

    def discount_for(self, subtotal: Decimal, discount_type: Optional[DiscountType], value) -> Decimal:
        value = to_dec(value)
        if not discount_type or not value:
            return ZERO
        if discount_type == DiscountType.PERCENTAGE:
            return subtotal * value / HUNDRED
        return value

    def compute(
        self,
        invoice: Invoice,
        timesheet_rows: Iterable[TimesheetRow],
        expense_totals: Optional[ExpenseTotals] = None,
        splits: Optional[Iterable[Invoice]] = None,
    ) -> Totals:
        currency = invoice.currency
        timesheet_subtotal = sum((row.converted_fees for row in timesheet_rows), ZERO)
        expense_subtotal = expense_totals.total_billed if expense_totals else ZERO
        subtotal = timesheet_subtotal + expense_subtotal

        discount_amount = self.discount_for(subtotal, invoice.discount_type, invoice.discount_value)
        exceeds = discount_amount > subtotal
        if exceeds:
            logger.warning(
                "Invoice %s: discount %s exceeds subtotal %s", invoice.id, discount_amount, subtotal
            )
            if self.discount_rules.clamp_to_subtotal:
                discount_amount = subtotal

        final_amount = subtotal - discount_amount

        splits = list(splits) if splits is not None else list(invoice.split_invoices)
        if invoice.has_splits and splits:
            amount_paid = sum((split.amount_paid for split in splits), ZERO)
        else:
            amount_paid = invoice.amount_paid
        remaining = final_amount - amount_paid

        progress = ZERO if final_amount == 0 else amount_paid / final_amount * HUNDRED
        overpaid = final_amount > 0 and amount_paid > final_amount
        if overpaid:
            logger.warning("Invoice %s is overpaid: %s of %s", invoice.id, amount_paid, final_amount)

        stored = invoice.stored_final_amount
        reconciles = True
        if stored is not None and not invoice.is_draft:
            tolerance = to_dec(self.reconciliation_rules.tolerance)
            if abs(stored - final_amount) > tolerance:
                reconciles = False
                logger.warning(
                    "Invoice %s: stored final amount %s does not match computed %s",
                    invoice.id, stored, final_amount,
                )

        return Totals(
            currency=currency,
            timesheet_subtotal=timesheet_subtotal,
            expense_subtotal=expense_subtotal,
            subtotal=subtotal,
            discount_type=invoice.discount_type,
            discount_value=invoice.discount_value,
            discount_amount=discount_amount,
            final_amount=final_amount,
            amount_paid=amount_paid,
            remaining=remaining,
            payment_progress=progress,
            is_overpaid=overpaid,
            discount_exceeds_subtotal=exceeds,
            stored_final_amount=stored,
            reconciles=reconciles,
        )


def summarize_splits(splits: Iterable[Invoice], default_currency: str = "INR") -> List[SplitSummary]:
    summaries = []
    for split in splits:
        final_amount = split.stored_final_amount or ZERO
        summaries.append(
            SplitSummary(
                invoice_id=split.id,
                invoice_number=split.invoice_number,
                final_amount=final_amount,
                amount_paid=split.amount_paid,
                amount_due=final_amount - split.amount_paid,
                currency=split.resolve_currency(default_currency),
                status=split.status,
            )
        )
    return summaries


def payments_by_split(payments: Iterable[Payment]) -> Dict[Optional[int], List[Payment]]:
    """Groups payments by originating split; the parent's own payments sit under None."""
    grouped: Dict[Optional[int], List[Payment]] = {}
    for payment in payments:
        key = payment.split_invoice_id if payment.is_split_payment or payment.split_invoice_id else None
        grouped.setdefault(key, []).append(payment)
    return grouped
