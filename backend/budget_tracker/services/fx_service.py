"""
Foreign exchange service for currency conversion.

The CurrencyNormalizer owns the exchange-rate table. It is created once per
application, refreshed periodically in the background and passed to the
code that needs conversions (it is never reached through module globals).
"""
import asyncio
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

import httpx

from budget_tracker.core.config import Settings
from budget_tracker.core.exceptions import DependencyError
from budget_tracker.core.utils import quantize_money

logger = logging.getLogger(__name__)

SUPPORTED_CURRENCIES = [
    {"code": "USD", "name": "US Dollar", "symbol": "$"},
    {"code": "EUR", "name": "Euro", "symbol": "€"},
    {"code": "GBP", "name": "British Pound", "symbol": "£"},
    {"code": "JPY", "name": "Japanese Yen", "symbol": "¥"},
    {"code": "CAD", "name": "Canadian Dollar", "symbol": "C$"},
    {"code": "AUD", "name": "Australian Dollar", "symbol": "A$"},
    {"code": "CHF", "name": "Swiss Franc", "symbol": "CHF"},
    {"code": "CNY", "name": "Chinese Yuan", "symbol": "¥"},
    {"code": "INR", "name": "Indian Rupee", "symbol": "₹"},
    {"code": "BRL", "name": "Brazilian Real", "symbol": "R$"},
]

SUPPORTED_CODES = {c["code"] for c in SUPPORTED_CURRENCIES}

# Fallback rates, 1 USD = rate units of currency
DEFAULT_RATES: Dict[str, Decimal] = {
    "USD": Decimal("1.0"),
    "EUR": Decimal("0.85"),
    "GBP": Decimal("0.73"),
    "JPY": Decimal("110.0"),
    "CAD": Decimal("1.25"),
    "AUD": Decimal("1.35"),
    "CHF": Decimal("0.92"),
    "CNY": Decimal("6.45"),
    "INR": Decimal("74.5"),
    "BRL": Decimal("5.2"),
}


def is_supported_currency(code: Optional[str]) -> bool:
    return bool(code) and code.upper() in SUPPORTED_CODES


def get_currency_symbol(code: str) -> str:
    for currency in SUPPORTED_CURRENCIES:
        if currency["code"] == code.upper():
            return currency["symbol"]
    return code


def format_currency(amount: Decimal, code: str) -> str:
    """Format an amount with its currency symbol, e.g. ``$1,250.00``."""
    value = quantize_money(amount, code)
    return f"{get_currency_symbol(code)}{value:,}"


class CurrencyNormalizer:
    """
    Converts amounts between currencies using a periodically refreshed
    rate table.

    Rates are stored relative to ``base_currency`` (1 base = rate units).
    A failed refresh keeps the last-known rates; a currency missing from the
    table raises ``DependencyError`` with code ``RateUnavailable``.
    """

    def __init__(
        self,
        base_currency: str = "USD",
        api_url: str = "https://api.exchangerate-api.com/v4/latest",
        api_key: str = "",
        refresh_interval: float = 3600,
        timeout: float = 5.0,
        rates: Optional[Dict[str, Decimal]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_currency = base_currency.upper()
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.refresh_interval = refresh_interval
        self.timeout = timeout
        self._transport = transport
        self._rates: Dict[str, Decimal] = dict(rates if rates is not None else DEFAULT_RATES)
        self._rates[self.base_currency] = Decimal("1")
        self.last_updated: Optional[datetime] = None
        self.source = "DEFAULT"
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "CurrencyNormalizer":
        return cls(
            base_currency=settings.FX_BASE_CURRENCY,
            api_url=settings.FX_API_URL,
            api_key=settings.FX_API_KEY,
            refresh_interval=settings.FX_REFRESH_INTERVAL_SECONDS,
            timeout=settings.FX_REQUEST_TIMEOUT,
            **kwargs
        )

    @property
    def rates(self) -> Dict[str, Decimal]:
        return dict(self._rates)

    def get_rate(self, from_currency: str, to_currency: str) -> Decimal:
        """Rate such that 1 ``from_currency`` = rate ``to_currency``."""
        from_upper = from_currency.upper()
        to_upper = to_currency.upper()
        if from_upper == to_upper:
            return Decimal("1")

        from_rate = self._rates.get(from_upper)
        to_rate = self._rates.get(to_upper)
        if not from_rate or not to_rate:
            missing = from_upper if not from_rate else to_upper
            raise DependencyError(
                f"Exchange rate not available for {missing}",
                code="RateUnavailable"
            )
        return to_rate / from_rate

    def convert(self, amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
        """Convert an amount, rounded to the target currency's smallest unit."""
        if from_currency.upper() == to_currency.upper():
            return quantize_money(amount, to_currency)
        rate = self.get_rate(from_currency, to_currency)
        return quantize_money(Decimal(str(amount)) * rate, to_currency)

    def supported_currencies(self) -> List[dict]:
        return [
            {**currency, "rate": self._rates.get(currency["code"])}
            for currency in SUPPORTED_CURRENCIES
        ]

    async def fetch_rates(self) -> Dict[str, Decimal]:
        """Fetch the latest rate table for the base currency from the provider."""
        url = f"{self.api_url}/{self.base_currency}"
        params = {"access_key": self.api_key} if self.api_key else None

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(url, params=params)
            response.raise_for_status()
            data = response.json()

        raw_rates = data.get("rates") if isinstance(data, dict) else None
        if not raw_rates:
            raise ValueError("Invalid response format from currency API")

        rates = {}
        for code, value in raw_rates.items():
            try:
                rate = Decimal(str(value))
            except InvalidOperation:
                logger.warning(f"Skipping unparsable rate for {code}: {value!r}")
                continue
            if rate > 0:
                rates[code.upper()] = rate
        return rates

    async def refresh(self) -> bool:
        """
        Refresh the rate table. Returns True on success.

        On any provider failure the last-known rates stay in place.
        """
        logger.info(f"Fetching exchange rates for base currency: {self.base_currency}")
        try:
            rates = await self.fetch_rates()
        except httpx.HTTPStatusError as e:
            logger.warning(f"Currency API returned HTTP {e.response.status_code}; keeping last-known rates")
            return False
        except httpx.HTTPError as e:
            logger.warning(f"Currency API network error: {e}; keeping last-known rates")
            return False
        except ValueError as e:
            logger.warning(f"Currency API response rejected: {e}; keeping last-known rates")
            return False

        rates[self.base_currency] = Decimal("1")
        self._rates = rates
        self.last_updated = datetime.utcnow()
        self.source = "API"
        logger.info(f"Exchange rates updated ({len(rates)} currencies)")
        return True

    async def _refresh_loop(self):
        while True:
            await asyncio.sleep(self.refresh_interval)
            await self.refresh()

    async def start(self, refresh_now: bool = True):
        """Load initial rates and schedule periodic refreshes."""
        if refresh_now:
            await self.refresh()
        if self._task is None:
            self._task = asyncio.create_task(self._refresh_loop())
            logger.info(f"Currency refresh scheduled every {self.refresh_interval}s")

    async def stop(self):
        """Cancel the periodic refresh task."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Currency refresh stopped")
