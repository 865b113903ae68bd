"""Coin bank API client implementation."""

from __future__ import annotations

import time
from decimal import Decimal
from typing import Any, Callable, Optional
from urllib.parse import quote

import httpx

from cardpay.shared.core.amounts import truncate_amount
from cardpay.shared.core.config import get_settings
from cardpay.shared.core.exceptions import ConfigurationError
from cardpay.shared.core.http import get_http_client

from . import coin_shared as shared
from .coin_shared import CoinPayload


class CoinBankClient:
    """
    Async wrapper for coin bank card operations.

    Every call degrades to a payload: remote failures (timeouts, network
    errors, non-2xx without a body) come back as
    ``{"success": False, "error": ...}`` and are never raised.
    """

    DIRECT_CHARGE_ENDPOINT = "card/pay"
    BILL_CREATE_ENDPOINT = "bill/create/card"
    BILL_PAY_ENDPOINT = "bill/pay/card"
    # Lookup order is fixed; the first path with a usable body wins.
    TRANSACTION_LOOKUP_PATHS = (
        "tx/{txid}",
        "transaction/{txid}",
        "transactions/{txid}",
        "txs/{txid}",
    )

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        http_client_factory: Callable[[], httpx.AsyncClient] | None = None,
        clock_ms: Callable[[], int] | None = None,
    ) -> None:
        resolved = (
            base_url if base_url is not None else get_settings().coin_api_base_url
        )
        if not resolved or not resolved.strip():
            raise ConfigurationError("COIN_API_URL not configured")

        self.base_url = resolved.strip().rstrip("/")
        self._http_client_factory = http_client_factory or get_http_client
        self._clock_ms = clock_ms or (lambda: int(time.time() * 1000))

    @staticmethod
    def _decode_body(response: httpx.Response) -> CoinPayload:
        text = response.text
        if not text or not text.strip():
            return None
        try:
            return response.json()
        except ValueError:
            return text

    @staticmethod
    def _wire_amount(amount: Any) -> float:
        truncated: Decimal = truncate_amount(amount)
        return float(truncated)

    async def _send(
        self,
        method: str,
        endpoint: str,
        data: dict[str, Any] | None = None,
    ) -> tuple[Optional[httpx.Response], CoinPayload]:
        client = self._http_client_factory()
        try:
            response = await client.request(
                method,
                f"{self.base_url}/{endpoint}",
                json=data,
            )
        except httpx.HTTPError as exc:
            error = str(exc) or type(exc).__name__
            shared.logger.warning(
                "coin_api_transport_error", endpoint=endpoint, error=error
            )
            return None, shared.transport_failure(error)
        return response, self._decode_body(response)

    async def _post(self, endpoint: str, data: dict[str, Any]) -> CoinPayload:
        response, body = await self._send("POST", endpoint, data)
        if response is None or response.is_success:
            return body
        if body is None:
            shared.logger.warning(
                "coin_api_empty_error_response",
                endpoint=endpoint,
                status_code=response.status_code,
            )
            return shared.transport_failure(f"http_{response.status_code}")
        # Error responses that carry a body are handed to the verifier as-is.
        shared.logger.info(
            "coin_api_error_response",
            endpoint=endpoint,
            status_code=response.status_code,
        )
        return body

    async def charge_direct(
        self, source: str, destination: str, amount: Any
    ) -> CoinPayload:
        """Strategy A: a single card-to-card payment."""
        payload = await self._post(
            self.DIRECT_CHARGE_ENDPOINT,
            {
                "fromCard": source,
                "toCard": destination,
                "amount": self._wire_amount(amount),
            },
        )
        if payload is None:
            return shared.transport_failure("empty_response")
        return payload

    async def charge_via_bill(
        self, source: str, destination: str, amount: Any
    ) -> CoinPayload:
        """Strategy B: create a bill for the payer, then redeem it with the payer card."""
        created = await self._post(
            self.BILL_CREATE_ENDPOINT,
            {
                "fromCard": source,
                "toCard": destination,
                "amount": self._wire_amount(amount),
                "time": self._clock_ms(),
            },
        )
        bill_id = created.get("billId") if isinstance(created, dict) else None
        if not bill_id:
            shared.logger.info("coin_bill_create_failed", error=shared.extract_error(created))
            return {
                "success": False,
                "error": shared.extract_error(created) or "create_failed",
                "raw": created,
            }

        paid = await self._post(
            self.BILL_PAY_ENDPOINT, {"cardCode": source, "billId": bill_id}
        )
        if paid is None:
            # 2xx redemption without a body counts as paid.
            return {"success": True, "raw": None}
        return paid

    async def lookup_transaction(self, path_template: str, txid: str) -> CoinPayload:
        """Fetch one lookup path; None when it errors, is non-2xx, or has no body."""
        endpoint = path_template.format(txid=quote(str(txid), safe=""))
        response, body = await self._send("GET", endpoint)
        if response is None or not response.is_success:
            return None
        return body
