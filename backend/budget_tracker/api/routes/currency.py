"""
Currency routes: rate table, supported currencies and conversion.
"""
import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status

from budget_tracker.api.dependencies import get_current_user, get_currency_normalizer, require_roles
from budget_tracker.core.exceptions import DependencyError
from budget_tracker.models.user import User, UserRole
from budget_tracker.schemas.currency import (
    BulkConversionRequest, BulkConversionResponse, BulkConversionResult, BulkConversionSummary,
    ConversionResponse, RateResponse, RatesResponse, SupportedCurrenciesResponse
)
from budget_tracker.services.fx_service import CurrencyNormalizer, format_currency, is_supported_currency

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/currency", tags=["currency"])

RATE_QUANTUM = Decimal("0.00000001")


def require_supported(*codes: str):
    for code in codes:
        if not is_supported_currency(code):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unsupported currency: {code}"
            )


@router.get("/rates", response_model=RatesResponse)
async def get_rates(
    current_user: User = Depends(get_current_user),
    normalizer: CurrencyNormalizer = Depends(get_currency_normalizer)
):
    """Current rate table relative to the base currency."""
    return RatesResponse(
        base_currency=normalizer.base_currency,
        rates=normalizer.rates,
        source=normalizer.source,
        last_updated=normalizer.last_updated
    )


@router.get("/supported", response_model=SupportedCurrenciesResponse)
async def get_supported_currencies(
    current_user: User = Depends(get_current_user),
    normalizer: CurrencyNormalizer = Depends(get_currency_normalizer)
):
    return SupportedCurrenciesResponse(
        base_currency=normalizer.base_currency,
        currencies=normalizer.supported_currencies()
    )


@router.get("/convert", response_model=ConversionResponse)
async def convert_amount(
    amount: Decimal = Query(..., ge=0),
    from_currency: str = Query(..., alias="from", min_length=3, max_length=3),
    to_currency: str = Query(..., alias="to", min_length=3, max_length=3),
    current_user: User = Depends(get_current_user),
    normalizer: CurrencyNormalizer = Depends(get_currency_normalizer)
):
    """Convert an amount between two supported currencies."""
    from_currency = from_currency.upper()
    to_currency = to_currency.upper()
    require_supported(from_currency, to_currency)

    rate = normalizer.get_rate(from_currency, to_currency)
    converted = normalizer.convert(amount, from_currency, to_currency)
    return ConversionResponse(
        amount=amount,
        from_currency=from_currency,
        to_currency=to_currency,
        rate=rate,
        converted_amount=converted,
        formatted=format_currency(converted, to_currency)
    )


@router.get("/rate/{from_currency}/{to_currency}", response_model=RateResponse)
async def get_exchange_rate(
    from_currency: str,
    to_currency: str,
    current_user: User = Depends(get_current_user),
    normalizer: CurrencyNormalizer = Depends(get_currency_normalizer)
):
    """Rate between two currencies plus its inverse."""
    from_currency = from_currency.upper()
    to_currency = to_currency.upper()
    require_supported(from_currency, to_currency)

    rate = normalizer.get_rate(from_currency, to_currency)
    return RateResponse(
        from_currency=from_currency,
        to_currency=to_currency,
        rate=rate.quantize(RATE_QUANTUM),
        inverse_rate=(Decimal("1") / rate).quantize(RATE_QUANTUM),
        source=normalizer.source,
        last_updated=normalizer.last_updated
    )


@router.post("/convert/bulk", response_model=BulkConversionResponse)
async def convert_bulk(
    request: BulkConversionRequest,
    current_user: User = Depends(get_current_user),
    normalizer: CurrencyNormalizer = Depends(get_currency_normalizer)
):
    """
    Convert several amounts into one target currency.

    Each conversion succeeds or fails on its own; a missing rate for one
    item is reported in that item's result.
    """
    target = request.target_currency.upper()
    require_supported(target)

    results = []
    for index, item in enumerate(request.conversions):
        source = item.from_currency.upper()
        item_id = item.id if item.id is not None else str(index)
        if not is_supported_currency(source):
            results.append(BulkConversionResult(
                id=item_id, success=False, amount=item.amount, from_currency=source,
                error=f"Unsupported currency: {source}"
            ))
            continue
        try:
            rate = normalizer.get_rate(source, target)
            converted = normalizer.convert(item.amount, source, target)
        except DependencyError as e:
            results.append(BulkConversionResult(
                id=item_id, success=False, amount=item.amount, from_currency=source, error=e.message
            ))
            continue
        results.append(BulkConversionResult(
            id=item_id,
            success=True,
            amount=item.amount,
            from_currency=source,
            converted_amount=converted,
            rate=rate.quantize(RATE_QUANTUM),
            formatted=format_currency(converted, target)
        ))

    successful = sum(1 for r in results if r.success)
    logger.info(f"Bulk conversion to {target}: {successful} successful, {len(results) - successful} failed")
    return BulkConversionResponse(
        results=results,
        summary=BulkConversionSummary(
            total=len(results),
            successful=successful,
            failed=len(results) - successful,
            target_currency=target
        )
    )


@router.post("/refresh", response_model=RatesResponse)
async def refresh_rates(
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
    normalizer: CurrencyNormalizer = Depends(get_currency_normalizer)
):
    """Fetch fresh rates from the provider. Last-known rates stay in place on failure."""
    refreshed = await normalizer.refresh()
    if not refreshed:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Currency provider unavailable; keeping last-known rates"
        )
    return RatesResponse(
        base_currency=normalizer.base_currency,
        rates=normalizer.rates,
        source=normalizer.source,
        last_updated=normalizer.last_updated
    )
