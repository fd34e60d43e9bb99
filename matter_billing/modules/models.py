import re
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, model_validator

from matter_billing.modules.errors import BillingIssue

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def parse_decimal(v, default=None):
    if v is None or v == "":
        return default
    if isinstance(v, Decimal):
        return v
    if isinstance(v, bool):
        raise ValueError("Boolean is not an amount")
    if isinstance(v, (int, float)):
        return Decimal(str(v))
    try:
        return Decimal(str(v).replace(",", "").strip())
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {v!r}")


def parse_rates(v) -> Dict[str, Decimal]:
    if not v:
        return {}
    rates = {}
    for code, rate in dict(v).items():
        parsed = parse_decimal(rate)
        if parsed is not None:
            rates[str(code).upper()] = parsed
    return rates


def parse_currency(v) -> Optional[str]:
    """ISO code, upper-cased; blank means unknown."""
    if v is None:
        return None
    code = str(v).strip().upper()
    return code or None


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    FINALIZED = "finalized"
    INVOICE_UPLOADED = "invoice_uploaded"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    NEW = "new"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class AggregationMode(str, Enum):
    DRAFT = "draft"
    FINALIZED = "finalized"


# --- Wire Models ---

class WireModel(BaseModel):
    """Base for payloads from the billing backend.

    The backend mixes camelCase and snake_case between endpoints; keys are
    normalised to snake_case here so nothing downstream has to care.
    """

    @model_validator(mode='before')
    @classmethod
    def normalise_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        out = {}
        for key, value in data.items():
            snake = to_snake(key) if isinstance(key, str) else key
            if out.get(snake) is None:
                out[snake] = value
        return cls.remap_fields(out)

    @classmethod
    def remap_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        """Hook for endpoint-specific aliases, applied to the snake_case keys."""
        return data


class TimesheetEntry(WireModel):
    timesheet_id: Optional[int] = None
    invoice_timesheet_id: Optional[int] = None
    lawyer_name: str = ""
    lawyer_role: str = ""
    date: Optional[str] = None
    hours: Decimal = Decimal("0")
    hourly_rate: Decimal = Decimal("0")
    fees: Decimal = Decimal("0")
    currency: Optional[str] = None
    original_currency: Optional[str] = None
    original_hours: Optional[Decimal] = None
    original_fees: Optional[Decimal] = None
    billed_hours: Optional[Decimal] = None  # minutes
    description: Optional[str] = None
    activity_type: Optional[str] = None
    matter_title: Optional[str] = None
    matter_id: Optional[int] = None
    client_code: Optional[str] = None

    @classmethod
    def remap_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        # timesheetId -> timesheet_id -> id
        if data.get("timesheet_id") is None and data.get("id") is not None:
            data["timesheet_id"] = data["id"]
        return data

    @field_validator('hours', 'hourly_rate', 'fees', mode='before')
    @classmethod
    def parse_amount(cls, v):
        return parse_decimal(v, Decimal("0"))

    @field_validator('original_hours', 'original_fees', 'billed_hours', mode='before')
    @classmethod
    def parse_optional_amount(cls, v):
        return parse_decimal(v)

    @field_validator('lawyer_name', 'lawyer_role', mode='before')
    @classmethod
    def blank_if_missing(cls, v):
        return "" if v is None else str(v)

    @field_validator('client_code', mode='before')
    @classmethod
    def stringify(cls, v):
        return None if v in (None, "") else str(v)

    @field_validator('currency', 'original_currency', mode='before')
    @classmethod
    def currency_code(cls, v):
        return parse_currency(v)

    @field_validator('date', mode='before')
    @classmethod
    def date_only(cls, v):
        if not v:
            return None
        return str(v)[:10]

    @property
    def effective_fees(self) -> Decimal:
        """hours * hourly_rate when both are positive, otherwise the supplied fee."""
        if self.hours > 0 and self.hourly_rate > 0:
            return self.hours * self.hourly_rate
        if self.fees:
            return self.fees
        return self.original_fees or Decimal("0")


class ExpenseEntry(WireModel):
    expense_id: Optional[int] = None
    category: str = ""
    sub_category: Optional[str] = None
    description: Optional[str] = None
    original_amount: Decimal = Decimal("0")
    original_currency: str = "INR"
    billed_amount: Optional[Decimal] = None
    currency: Optional[str] = None
    exchange_rate: Optional[Decimal] = None

    @classmethod
    def remap_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        amount = data.pop("amount", None)
        if data.get("billed_amount") is None and amount is not None:
            data["billed_amount"] = amount
        if not data.get("original_amount") and amount is not None:
            data["original_amount"] = amount
        if data.get("expense_id") is None and data.get("id") is not None:
            data["expense_id"] = data["id"]
        return data

    @field_validator('original_amount', mode='before')
    @classmethod
    def parse_amount(cls, v):
        return parse_decimal(v, Decimal("0"))

    @field_validator('billed_amount', 'exchange_rate', mode='before')
    @classmethod
    def parse_optional_amount(cls, v):
        return parse_decimal(v)

    @field_validator('original_currency', mode='before')
    @classmethod
    def default_currency(cls, v):
        return parse_currency(v) or "INR"

    @field_validator('currency', mode='before')
    @classmethod
    def currency_code(cls, v):
        return parse_currency(v)

    @field_validator('category', mode='before')
    @classmethod
    def blank_if_missing(cls, v):
        return v or ""


class Payment(WireModel):
    id: Optional[int] = None
    invoice_id: Optional[int] = None
    payment_date: Optional[str] = None
    amount: Decimal = Decimal("0")
    payment_method: Optional[str] = None
    transaction_ref: Optional[str] = None
    notes: Optional[str] = None
    is_split_payment: bool = False
    split_invoice_id: Optional[int] = None
    split_invoice_number: Optional[str] = None

    @classmethod
    def remap_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        if data.get("id") is None and data.get("payment_id") is not None:
            data["id"] = data["payment_id"]
        return data

    @field_validator('amount', mode='before')
    @classmethod
    def parse_amount(cls, v):
        return parse_decimal(v, Decimal("0"))

    @field_validator('payment_date', mode='before')
    @classmethod
    def date_only(cls, v):
        return str(v)[:10] if v else None


class PartnerShare(WireModel):
    user_id: int
    user_name: str = ""
    user_email: Optional[str] = None
    percentage: Decimal = Decimal("0")

    @field_validator('percentage', mode='before')
    @classmethod
    def parse_amount(cls, v):
        return parse_decimal(v, Decimal("0"))


class Invoice(WireModel):
    id: Optional[int] = None
    invoice_number: Optional[str] = None
    invoice_currency: Optional[str] = None
    matter_currency: Optional[str] = None
    exchange_rates: Dict[str, Decimal] = {}
    subtotal: Optional[Decimal] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Decimal = Decimal("0")
    discount_amount: Optional[Decimal] = None
    final_amount: Optional[Decimal] = None
    invoice_amount: Optional[Decimal] = None
    amount_paid: Decimal = Decimal("0")
    status: InvoiceStatus = InvoiceStatus.DRAFT
    parent_invoice_id: Optional[int] = None
    is_parent: bool = False
    is_split: bool = False
    split_invoices: List["Invoice"] = []
    partner_shares: List[PartnerShare] = []

    @classmethod
    def remap_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        if data.get("id") is None and data.get("invoice_id") is not None:
            data["id"] = data["invoice_id"]
        return data

    @field_validator('exchange_rates', mode='before')
    @classmethod
    def parse_exchange_rates(cls, v):
        return parse_rates(v)

    @field_validator('invoice_currency', 'matter_currency', mode='before')
    @classmethod
    def currency_code(cls, v):
        return parse_currency(v)

    @field_validator('discount_value', 'amount_paid', mode='before')
    @classmethod
    def parse_amount(cls, v):
        return parse_decimal(v, Decimal("0"))

    @field_validator('subtotal', 'discount_amount', 'final_amount', 'invoice_amount', mode='before')
    @classmethod
    def parse_optional_amount(cls, v):
        return parse_decimal(v)

    @field_validator('discount_type', mode='before')
    @classmethod
    def known_discount_type(cls, v):
        if v in ("percentage", "fixed"):
            return v
        return None

    @field_validator('split_invoices', 'partner_shares', mode='before')
    @classmethod
    def empty_if_null(cls, v):
        return v or []

    @field_validator('status', mode='before')
    @classmethod
    def default_status(cls, v):
        return v or InvoiceStatus.DRAFT

    def resolve_currency(self, default: str = "INR") -> str:
        return self.invoice_currency or self.matter_currency or default

    @property
    def currency(self) -> str:
        return self.resolve_currency()

    @property
    def is_draft(self) -> bool:
        return self.status == InvoiceStatus.DRAFT

    @property
    def has_splits(self) -> bool:
        return self.is_parent or bool(self.split_invoices)

    @property
    def stored_final_amount(self) -> Optional[Decimal]:
        return self.final_amount if self.final_amount is not None else self.invoice_amount


Invoice.model_rebuild()


class TimesheetSummary(WireModel):
    timesheet_entries: List[TimesheetEntry] = []
    expense_entries: List[ExpenseEntry] = []
    exchange_rates: Dict[str, Decimal] = {}
    invoice_currency: Optional[str] = None
    period_from: Optional[str] = None
    period_to: Optional[str] = None
    is_single_date: bool = False

    @field_validator('exchange_rates', mode='before')
    @classmethod
    def parse_exchange_rates(cls, v):
        return parse_rates(v)

    @field_validator('invoice_currency', mode='before')
    @classmethod
    def currency_code(cls, v):
        return parse_currency(v)

    @field_validator('timesheet_entries', 'expense_entries', mode='before')
    @classmethod
    def empty_if_null(cls, v):
        return v or []


# --- Result Models ---

class TimesheetRow(BaseModel):
    lawyer_name: str
    lawyer_role: str
    hours: Decimal = Decimal("0")
    hourly_rate: Decimal = Decimal("0")
    fees: Decimal = Decimal("0")  # in `currency`
    currency: str
    converted_fees: Decimal = Decimal("0")  # in the invoice currency
    timesheet_id: Optional[int] = None
    invoice_timesheet_id: Optional[int] = None
    date: Optional[str] = None
    original_hours: Optional[Decimal] = None
    original_fees: Optional[Decimal] = None
    billed_hours: Optional[Decimal] = None
    description: Optional[str] = None
    entry_count: int = 1


class ExpenseLine(BaseModel):
    category: str
    sub_category: Optional[str] = None
    description: Optional[str] = None
    original_amount: Decimal
    original_currency: str
    billed_amount: Decimal
    currency: str
    exchange_rate: Optional[Decimal] = None


class ExpenseTotals(BaseModel):
    currency: str
    total_original: Decimal = Decimal("0")
    total_billed: Decimal = Decimal("0")
    lines: List[ExpenseLine] = []


class Totals(BaseModel):
    currency: str
    timesheet_subtotal: Decimal
    expense_subtotal: Decimal
    subtotal: Decimal
    discount_type: Optional[DiscountType] = None
    discount_value: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    final_amount: Decimal
    amount_paid: Decimal
    remaining: Decimal
    payment_progress: Decimal
    is_overpaid: bool = False
    discount_exceeds_subtotal: bool = False
    stored_final_amount: Optional[Decimal] = None
    reconciles: bool = True

    @property
    def display_progress(self) -> Decimal:
        return max(Decimal("0"), min(Decimal("100"), self.payment_progress))


class PartnerAllocation(BaseModel):
    user_id: int
    user_name: str = ""
    user_email: Optional[str] = None
    percentage: Decimal
    amount: Decimal
    currency: str


class SplitSummary(BaseModel):
    invoice_id: Optional[int] = None
    invoice_number: Optional[str] = None
    final_amount: Decimal
    amount_paid: Decimal
    amount_due: Decimal
    currency: str
    status: InvoiceStatus


class InvoiceFinancials(BaseModel):
    """Everything computed for one invoice in one run."""
    invoice: Invoice
    mode: AggregationMode
    currency: str
    timesheet_rows: List[TimesheetRow] = []
    expense_totals: ExpenseTotals
    totals: Totals
    partner_allocations: List[PartnerAllocation] = []
    splits: List[SplitSummary] = []
    payments: List[Payment] = []
    period_from: Optional[str] = None
    period_to: Optional[str] = None
    issues: List[BillingIssue] = Field(default_factory=list)

    class Config:
        arbitrary_types_allowed = True
