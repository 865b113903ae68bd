"""
Tests for CoinBankClient - wire format and failure degradation
"""
import json

import httpx
import pytest

from cardpay.modules.billing.domain.billing.coin_client_impl import CoinBankClient
from cardpay.shared.core.exceptions import ConfigurationError
from tests.utils import COIN_API_BASE, NOW


def _json_body(route):
    return json.loads(route.calls.last.request.content)


class TestConstruction:
    def test_missing_base_url_raises(self):
        with pytest.raises(ConfigurationError):
            CoinBankClient("   ")

    def test_base_url_defaults_to_settings(self):
        client = CoinBankClient()
        assert client.base_url == "https://coin.test/api"

    def test_trailing_slash_stripped(self):
        assert CoinBankClient("https://x.test/api/").base_url == "https://x.test/api"


class TestDirectCharge:
    async def test_posts_truncated_amount(self, coin_api, coin_client):
        route = coin_api.post(f"{COIN_API_BASE}/card/pay").mock(
            return_value=httpx.Response(200, json={"success": True, "txId": "tx1"})
        )

        payload = await coin_client.charge_direct("SRC", "DST", "0.123456789")

        assert payload == {"success": True, "txId": "tx1"}
        assert _json_body(route) == {
            "fromCard": "SRC",
            "toCard": "DST",
            "amount": 0.12345678,
        }

    async def test_transport_error_degrades_to_failure(self, coin_api, coin_client):
        coin_api.post(f"{COIN_API_BASE}/card/pay").mock(
            side_effect=httpx.ConnectError("connection refused")
        )

        payload = await coin_client.charge_direct("SRC", "DST", "1")

        assert payload == {"success": False, "error": "connection refused"}

    async def test_timeout_degrades_to_failure(self, coin_api, coin_client):
        coin_api.post(f"{COIN_API_BASE}/card/pay").mock(
            side_effect=httpx.ReadTimeout("timed out")
        )

        payload = await coin_client.charge_direct("SRC", "DST", "1")

        assert payload["success"] is False
        assert payload["error"] == "timed out"

    async def test_non_2xx_with_body_returns_body(self, coin_api, coin_client):
        coin_api.post(f"{COIN_API_BASE}/card/pay").mock(
            return_value=httpx.Response(400, json={"error": "insufficient_funds"})
        )

        payload = await coin_client.charge_direct("SRC", "DST", "1")

        assert payload == {"error": "insufficient_funds"}

    async def test_non_2xx_without_body_is_structured_failure(self, coin_api, coin_client):
        coin_api.post(f"{COIN_API_BASE}/card/pay").mock(return_value=httpx.Response(502))

        payload = await coin_client.charge_direct("SRC", "DST", "1")

        assert payload == {"success": False, "error": "http_502"}

    async def test_empty_2xx_is_failure(self, coin_api, coin_client):
        coin_api.post(f"{COIN_API_BASE}/card/pay").mock(return_value=httpx.Response(200))

        payload = await coin_client.charge_direct("SRC", "DST", "1")

        assert payload == {"success": False, "error": "empty_response"}

    async def test_markup_body_returned_as_text(self, coin_api, coin_client):
        coin_api.post(f"{COIN_API_BASE}/card/pay").mock(
            return_value=httpx.Response(200, text="<!DOCTYPE html><p>success</p>")
        )

        payload = await coin_client.charge_direct("SRC", "DST", "1")

        assert payload == "<!DOCTYPE html><p>success</p>"


class TestBillCharge:
    async def test_create_then_redeem(self, coin_api, coin_client):
        create = coin_api.post(f"{COIN_API_BASE}/bill/create/card").mock(
            return_value=httpx.Response(200, json={"billId": "b1"})
        )
        pay = coin_api.post(f"{COIN_API_BASE}/bill/pay/card").mock(
            return_value=httpx.Response(200, json={"success": True, "txId": "tx2"})
        )

        payload = await coin_client.charge_via_bill("SRC", "DST", "0.05")

        assert payload == {"success": True, "txId": "tx2"}
        assert _json_body(create) == {
            "fromCard": "SRC",
            "toCard": "DST",
            "amount": 0.05,
            "time": NOW * 1000,
        }
        assert _json_body(pay) == {"cardCode": "SRC", "billId": "b1"}

    async def test_create_without_bill_id_stops(self, coin_api, coin_client):
        coin_api.post(f"{COIN_API_BASE}/bill/create/card").mock(
            return_value=httpx.Response(200, json={"error": "card_not_found"})
        )
        pay = coin_api.post(f"{COIN_API_BASE}/bill/pay/card")

        payload = await coin_client.charge_via_bill("SRC", "DST", "1")

        assert payload == {
            "success": False,
            "error": "card_not_found",
            "raw": {"error": "card_not_found"},
        }
        assert not pay.called

    async def test_create_failure_without_error_text(self, coin_api, coin_client):
        coin_api.post(f"{COIN_API_BASE}/bill/create/card").mock(
            return_value=httpx.Response(200, json={"ok": True})
        )

        payload = await coin_client.charge_via_bill("SRC", "DST", "1")

        assert payload["error"] == "create_failed"

    async def test_empty_redemption_counts_as_paid(self, coin_api, coin_client):
        coin_api.post(f"{COIN_API_BASE}/bill/create/card").mock(
            return_value=httpx.Response(200, json={"billId": "b1"})
        )
        coin_api.post(f"{COIN_API_BASE}/bill/pay/card").mock(
            return_value=httpx.Response(204)
        )

        payload = await coin_client.charge_via_bill("SRC", "DST", "1")

        assert payload == {"success": True, "raw": None}


class TestLookup:
    async def test_returns_body_on_success(self, coin_api, coin_client):
        coin_api.get(f"{COIN_API_BASE}/tx/tx1").mock(
            return_value=httpx.Response(200, json={"status": "confirmed"})
        )

        body = await coin_client.lookup_transaction("tx/{txid}", "tx1")

        assert body == {"status": "confirmed"}

    async def test_non_2xx_is_none(self, coin_api, coin_client):
        coin_api.get(f"{COIN_API_BASE}/tx/tx1").mock(
            return_value=httpx.Response(404, json={"error": "not found"})
        )

        assert await coin_client.lookup_transaction("tx/{txid}", "tx1") is None

    async def test_transport_error_is_none(self, coin_api, coin_client):
        coin_api.get(f"{COIN_API_BASE}/txs/tx1").mock(
            side_effect=httpx.ConnectError("down")
        )

        assert await coin_client.lookup_transaction("txs/{txid}", "tx1") is None
