from typing import Optional


class BillingIssue(Exception):
    """A recoverable anomaly in billing data.

    Issues are recorded on the component that found them and logged; the
    computation carries on with a safe substitute value (0 or pass-through).
    """

    code = "billing_issue"

    def to_dict(self):
        return {"code": self.code, "message": str(self)}


class MissingExchangeRateError(BillingIssue):
    code = "missing_exchange_rate"

    def __init__(self, from_currency: str, to_currency: str, amount=None):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.amount = amount
        super().__init__(f"Missing exchange rate for {from_currency} to {to_currency}")


class InvalidExchangeRateError(BillingIssue):
    code = "invalid_exchange_rate"

    def __init__(self, from_currency: str, rate, to_currency: Optional[str] = None):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.rate = rate
        super().__init__(f"Invalid exchange rate for {from_currency}: {rate}")


class MissingIdentifierError(BillingIssue):
    code = "missing_identifier"

    def __init__(self, lawyer_name: Optional[str] = None, date: Optional[str] = None):
        self.lawyer_name = lawyer_name
        self.date = date
        who = lawyer_name or "unknown lawyer"
        super().__init__(f"Timesheet row for {who} ({date or 'no date'}) has no identifier and cannot be saved")


class ApiError(Exception):
    """Raised when the billing backend cannot be reached or rejects a request."""

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None):
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class ConfigurationError(Exception):
    pass
