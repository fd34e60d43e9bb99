from pydantic import BaseModel, Field
from typing import List, Dict

# --- Currency Rules ---

class CurrencySymbol(BaseModel):
    symbol: str
    name: str
    position: str = "before"

DEFAULT_SYMBOLS = {
    "INR": CurrencySymbol(symbol="₹", name="Indian Rupee"),
    "USD": CurrencySymbol(symbol="$", name="US Dollar"),
    "EUR": CurrencySymbol(symbol="€", name="Euro"),
    "GBP": CurrencySymbol(symbol="£", name="British Pound"),
    "AED": CurrencySymbol(symbol="د.إ", name="UAE Dirham"),
    "JPY": CurrencySymbol(symbol="¥", name="Japanese Yen"),
}

class CurrencyRules(BaseModel):
    default_currency: str = "INR"
    expense_base_currency: str = Field(default="INR", description="Currency all expenses are recorded in")
    zero_decimal_currencies: List[str] = ["JPY"]
    symbols: Dict[str, CurrencySymbol] = Field(default_factory=lambda: dict(DEFAULT_SYMBOLS))

    def decimals_for(self, currency: str) -> int:
        return 0 if currency in self.zero_decimal_currencies else 2

# --- Totals Rules ---

class DiscountRules(BaseModel):
    # An oversized discount is only flagged unless this is set
    clamp_to_subtotal: bool = False

class ReconciliationRules(BaseModel):
    tolerance: float = 0.01

# --- API Settings ---

class ApiSettings(BaseModel):
    base_url: str = "http://localhost:5000"
    timeout: float = 15.0
    verify_ssl: bool = True

class BusinessRulesConfig(BaseModel):
    currency: CurrencyRules = Field(default_factory=CurrencyRules)
    discount: DiscountRules = Field(default_factory=DiscountRules)
    reconciliation: ReconciliationRules = Field(default_factory=ReconciliationRules)
    api: ApiSettings = Field(default_factory=ApiSettings)
