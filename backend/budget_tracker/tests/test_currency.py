"""
Tests for the currency normalizer and the currency routes.
"""
import asyncio
from decimal import Decimal

import httpx
import pytest

from budget_tracker.core.exceptions import DependencyError
from budget_tracker.services.fx_service import CurrencyNormalizer, format_currency

RATES = {"USD": Decimal("1"), "EUR": Decimal("1.1"), "JPY": Decimal("150")}


def normalizer_with(handler, **kwargs):
    return CurrencyNormalizer(
        api_url="https://rates.test/latest",
        rates=RATES,
        transport=httpx.MockTransport(handler),
        **kwargs
    )


def test_convert_rounds_to_target_currency():
    normalizer = CurrencyNormalizer(rates=RATES)

    assert normalizer.convert(Decimal("100"), "USD", "EUR") == Decimal("110.00")
    assert normalizer.convert(Decimal("10.99"), "USD", "JPY") == Decimal("1649")
    assert normalizer.convert(Decimal("5"), "EUR", "EUR") == Decimal("5.00")


def test_cross_rate_goes_through_base():
    normalizer = CurrencyNormalizer(rates=RATES)

    assert normalizer.get_rate("EUR", "JPY") == Decimal("150") / Decimal("1.1")


def test_unknown_currency_raises_rate_unavailable():
    normalizer = CurrencyNormalizer(rates=RATES)

    with pytest.raises(DependencyError) as exc_info:
        normalizer.get_rate("USD", "BRL")
    assert exc_info.value.code == "RateUnavailable"


def test_format_currency():
    assert format_currency(Decimal("1250"), "USD") == "$1,250.00"
    assert format_currency(Decimal("1250.4"), "JPY") == "¥1,250"


def test_refresh_replaces_rates():
    def handler(request):
        assert request.url.path == "/latest/USD"
        return httpx.Response(200, json={"base": "USD", "rates": {"USD": 1, "EUR": 0.9, "GBP": "0.75"}})

    normalizer = normalizer_with(handler)

    assert asyncio.run(normalizer.refresh()) is True
    assert normalizer.source == "API"
    assert normalizer.last_updated is not None
    assert normalizer.rates["GBP"] == Decimal("0.75")
    assert "JPY" not in normalizer.rates


def test_refresh_sends_access_key():
    seen = {}

    def handler(request):
        seen["access_key"] = request.url.params.get("access_key")
        return httpx.Response(200, json={"rates": {"EUR": 0.9}})

    asyncio.run(normalizer_with(handler, api_key="secret").refresh())

    assert seen["access_key"] == "secret"


def test_failed_refresh_keeps_last_known_rates():
    normalizer = normalizer_with(lambda request: httpx.Response(500, json={"error": "down"}))

    assert asyncio.run(normalizer.refresh()) is False
    assert normalizer.source == "DEFAULT"
    assert normalizer.rates["EUR"] == Decimal("1.1")


def test_network_error_keeps_last_known_rates():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    normalizer = normalizer_with(handler)

    assert asyncio.run(normalizer.refresh()) is False
    assert normalizer.rates == {**RATES}


def test_malformed_payload_is_rejected():
    normalizer = normalizer_with(lambda request: httpx.Response(200, json={"result": "error"}))

    assert asyncio.run(normalizer.refresh()) is False
    assert normalizer.rates["JPY"] == Decimal("150")


def test_convert_endpoint(client, headers):
    response = client.get(
        "/api/currency/convert",
        params={"amount": "100", "from": "usd", "to": "EUR"},
        headers=headers["user"]
    )

    assert response.status_code == 200
    data = response.json()
    assert Decimal(str(data["converted_amount"])) == Decimal("110.00")
    assert data["formatted"] == "€110.00"


def test_convert_endpoint_missing_rate_is_503(client, headers):
    response = client.get(
        "/api/currency/convert",
        params={"amount": "10", "from": "USD", "to": "CHF"},
        headers=headers["user"]
    )

    assert response.status_code == 503
    assert response.json()["code"] == "RateUnavailable"


def test_supported_and_rates_endpoints(client, headers):
    supported = client.get("/api/currency/supported", headers=headers["user"]).json()
    assert supported["base_currency"] == "USD"
    assert "CHF" in [c["code"] for c in supported["currencies"]]

    rates = client.get("/api/currency/rates", headers=headers["user"]).json()
    assert rates["source"] == "DEFAULT"


def test_refresh_endpoint_is_admin_only(client, headers):
    response = client.post("/api/currency/refresh", headers=headers["manager"])

    assert response.status_code == 403


def test_rate_endpoint_returns_rate_and_inverse(client, headers):
    response = client.get("/api/currency/rate/usd/GBP", headers=headers["user"])

    assert response.status_code == 200
    data = response.json()
    assert data["from_currency"] == "USD"
    assert data["to_currency"] == "GBP"
    assert Decimal(str(data["rate"])) == Decimal("0.8")
    assert Decimal(str(data["inverse_rate"])) == Decimal("1.25")


def test_rate_endpoint_rejects_unknown_currency(client, headers):
    response = client.get("/api/currency/rate/USD/XYZ", headers=headers["user"])

    assert response.status_code == 400


def test_bulk_convert_reports_each_item(client, headers):
    response = client.post(
        "/api/currency/convert/bulk",
        json={
            "target_currency": "eur",
            "conversions": [
                {"id": "hotel", "amount": "100", "from_currency": "USD"},
                {"amount": "80", "from_currency": "GBP"},
                {"amount": "10", "from_currency": "CHF"},
                {"amount": "10", "from_currency": "XYZ"},
            ],
        },
        headers=headers["user"]
    )

    assert response.status_code == 200
    data = response.json()
    results = data["results"]
    assert [r["id"] for r in results] == ["hotel", "1", "2", "3"]
    assert Decimal(str(results[0]["converted_amount"])) == Decimal("110.00")
    assert Decimal(str(results[1]["converted_amount"])) == Decimal("110.00")
    assert results[2]["success"] is False
    assert "CHF" in results[2]["error"]
    assert results[3]["error"] == "Unsupported currency: XYZ"
    assert data["summary"] == {"total": 4, "successful": 2, "failed": 2, "target_currency": "EUR"}
