import logging
from decimal import Decimal
from typing import Dict, List, Optional, Any

from matter_billing.modules.config_models import CurrencyRules
from matter_billing.modules.errors import (
    BillingIssue,
    MissingExchangeRateError,
    InvalidExchangeRateError,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


# ==========================================
# HELPERS
# ==========================================


def to_dec(v):
    if v is None:
        return Decimal("0.00")
    if isinstance(v, Decimal):
        return v
    if isinstance(v, (int, float)):
        return Decimal(str(v))
    return Decimal(str(v).replace(",", ""))


def format_currency(value, currency: Optional[str] = None, rules: Optional[CurrencyRules] = None, show_code: bool = False):
    """Formats an amount with its currency symbol, e.g. ₹1,250.00 or ¥5,000."""
    rules = rules or CurrencyRules()
    try:
        val = to_dec(value)
    except (ValueError, TypeError, ArithmeticError):
        return str(value)

    places = rules.decimals_for(currency) if currency else 2
    number = "{:,.{p}f}".format(val, p=places)
    if not currency:
        return number

    info = rules.symbols.get(currency)
    if info is None:
        text = f"{currency} {number}"
    elif info.position == "before":
        text = f"-{info.symbol}{number[1:]}" if number.startswith("-") else f"{info.symbol}{number}"
    else:
        text = f"{number} {info.symbol}"
    if show_code and info is not None:
        text = f"{text} {currency}"
    return text


def format_qty(value):
    try:
        val = to_dec(value)
        if val % 1 == 0:
            return "{:.0f}".format(val)
        return "{:.2f}".format(val)
    except (ValueError, TypeError, ArithmeticError):
        return str(value)


# ==========================================
# CONVERTER
# ==========================================


class CurrencyConverter:
    """Converts amounts into a target currency using a saved rate table.

    rates maps a source currency to the number of target-currency units one
    unit of it is worth. A missing rate is tolerated on draft invoices (the
    amount passes through unconverted) and is an issue otherwise, where the
    converted amount is 0 so a wrong total can never look plausible.
    """

    def __init__(
        self,
        rates: Optional[Dict[str, Any]] = None,
        is_draft: bool = False,
        raise_on_error: bool = False,
    ):
        self.rates = {str(k).upper(): to_dec(v) for k, v in (rates or {}).items() if v is not None}
        self.is_draft = is_draft
        self.raise_on_error = raise_on_error
        self.issues: List[BillingIssue] = []

    def _signal(self, issue: BillingIssue):
        logger.warning(str(issue))
        if self.raise_on_error:
            raise issue
        self.issues.append(issue)

    def convert(self, amount, from_currency: str, to_currency: str) -> Decimal:
        amount = to_dec(amount)
        if amount == 0 or from_currency == to_currency:
            return amount

        rate = self.rates.get(from_currency)
        if rate is None:
            if self.is_draft:
                logger.info(
                    "No %s->%s rate yet on draft invoice; leaving %s unconverted",
                    from_currency, to_currency, amount,
                )
                return amount
            self._signal(MissingExchangeRateError(from_currency, to_currency, amount))
            return ZERO

        if rate <= 0:
            self._signal(InvalidExchangeRateError(from_currency, rate, to_currency))
            return ZERO

        return amount * rate


def convert(amount, from_currency: str, to_currency: str, rates: Optional[Dict[str, Any]], is_draft: bool = False,
            issues: Optional[List[BillingIssue]] = None) -> Decimal:
    """One-shot conversion; issues found are appended to `issues` when given."""
    converter = CurrencyConverter(rates, is_draft=is_draft)
    result = converter.convert(amount, from_currency, to_currency)
    if issues is not None:
        issues.extend(converter.issues)
    return result
