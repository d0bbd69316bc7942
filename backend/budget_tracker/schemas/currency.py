"""
Pydantic schemas for currency endpoints.
"""
from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime
from decimal import Decimal


class CurrencyInfo(BaseModel):
    code: str
    name: str
    symbol: str
    rate: Optional[Decimal] = None


class RatesResponse(BaseModel):
    """Current rate table (1 base currency = rate units)."""
    base_currency: str
    rates: Dict[str, Decimal]
    source: str
    last_updated: Optional[datetime] = None


class ConversionResponse(BaseModel):
    amount: Decimal
    from_currency: str
    to_currency: str
    rate: Decimal
    converted_amount: Decimal
    formatted: str


class SupportedCurrenciesResponse(BaseModel):
    base_currency: str
    currencies: List[CurrencyInfo]


class RateResponse(BaseModel):
    from_currency: str
    to_currency: str
    rate: Decimal
    inverse_rate: Decimal
    source: str
    last_updated: Optional[datetime] = None


class BulkConversionItem(BaseModel):
    id: Optional[str] = None
    amount: Decimal = Field(..., ge=0)
    from_currency: str = Field(..., min_length=3, max_length=3)


class BulkConversionRequest(BaseModel):
    """Several amounts converted into one target currency."""
    conversions: List[BulkConversionItem] = Field(..., min_length=1, max_length=100)
    target_currency: str = Field(..., min_length=3, max_length=3)


class BulkConversionResult(BaseModel):
    id: str
    success: bool
    amount: Decimal
    from_currency: str
    converted_amount: Optional[Decimal] = None
    rate: Optional[Decimal] = None
    formatted: Optional[str] = None
    error: Optional[str] = None


class BulkConversionSummary(BaseModel):
    total: int
    successful: int
    failed: int
    target_currency: str


class BulkConversionResponse(BaseModel):
    results: List[BulkConversionResult]
    summary: BulkConversionSummary
