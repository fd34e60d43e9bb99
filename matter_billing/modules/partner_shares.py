import logging
from decimal import Decimal
from typing import List, Dict, Iterable

from matter_billing.modules.currency import to_dec
from matter_billing.modules.models import Invoice, PartnerShare, PartnerAllocation

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


class PartnerShareCalculator:
    def distribute(self, final_amount, shares: Iterable[PartnerShare], currency: str) -> List[PartnerAllocation]:
        """Each partner gets final_amount * percentage / 100, computed independently.

        Percentages are not normalised: a total other than 100 is a data-entry
        problem and is only logged.
        """
        final_amount = to_dec(final_amount)
        shares = list(shares)
        allocations = [
            PartnerAllocation(
                user_id=share.user_id,
                user_name=share.user_name,
                user_email=share.user_email,
                percentage=share.percentage,
                amount=final_amount * share.percentage / HUNDRED,
                currency=currency,
            )
            for share in shares
        ]

        total = total_percentage(shares)
        if shares and total != HUNDRED:
            logger.warning("Partner shares total %s%%, not 100%%", total)
        return allocations

    def merge_split_shares(self, splits: Iterable[Invoice]) -> List[PartnerShare]:
        """Combines the shares of every split, summing percentages per user."""
        merged: Dict[int, PartnerShare] = {}
        for split in splits:
            for share in split.partner_shares:
                if share.user_id in merged:
                    merged[share.user_id].percentage += share.percentage
                else:
                    merged[share.user_id] = share.model_copy()
        return list(merged.values())

    def shares_for(self, invoice: Invoice, splits: Iterable[Invoice] = ()) -> List[PartnerShare]:
        splits = list(splits) or list(invoice.split_invoices)
        if invoice.has_splits and splits:
            return self.merge_split_shares(splits)
        return list(invoice.partner_shares)


def total_percentage(shares: Iterable[PartnerShare]) -> Decimal:
    return sum((s.percentage for s in shares), Decimal("0"))
