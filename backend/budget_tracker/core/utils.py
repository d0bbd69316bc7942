"""
Utility functions for the application.
"""
from typing import Any, Dict, Optional
from decimal import Decimal, ROUND_HALF_UP

# Currencies without a minor unit
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW", "VND", "CLP", "ISK"}


def currency_exponent(currency: Optional[str]) -> int:
    """Number of decimal places of the smallest unit of a currency."""
    if currency and currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return 0
    return 2


def quantize_money(amount: Any, currency: Optional[str] = None) -> Decimal:
    """Round an amount half-up to the smallest unit of its currency."""
    exponent = currency_exponent(currency)
    quantum = Decimal(1).scaleb(-exponent)
    return Decimal(str(amount)).quantize(quantum, rounding=ROUND_HALF_UP)


def round_half_up(value: Decimal) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def paginate(page: int, limit: int, total: int) -> Dict[str, int]:
    """Build pagination metadata for list responses."""
    pages = (total + limit - 1) // limit if limit > 0 else 0
    return {"page": page, "limit": limit, "total": total, "pages": pages}


def format_error(message: str, code: str = None, details: Any = None) -> Dict[str, Any]:
    """Format error response."""
    response = {"detail": message}
    if code:
        response["code"] = code
    if details:
        response["details"] = details
    return response
