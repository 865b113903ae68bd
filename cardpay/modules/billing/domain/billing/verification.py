"""
Outcome verification for coin bank charge responses.

The upstream is only partially self-consistent, so the verdict comes from a
fixed decision table:

1. Markup body (HTML error page) -> failure.
2. ``success is True`` and no error -> success. A transaction id is probed
   for confirmation, but an inconclusive probe still keeps the upstream
   success (a flaky lookup side-channel must not reject real payments).
3. No success flag, transaction id present, no error -> success only if the
   probe confirms it.
4. Anything else -> failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from . import coin_shared as shared
from .coin_client_impl import CoinBankClient
from .coin_shared import CoinPayload

CONFIRMED_STATUSES = {"confirmed", "success"}
CONFIRMATION_MARKERS = ("confirmed", "success")


@dataclass(frozen=True)
class Verification:
    success: bool
    txid: Optional[str] = None


def body_confirms(body: CoinPayload) -> bool:
    """True when a lookup body reports the transaction as settled."""
    if isinstance(body, dict):
        if body.get("success") is True or body.get("confirmed") is True:
            return True
        if body.get("status") in CONFIRMED_STATUSES:
            return True
        if body.get("state") == "confirmed":
            return True
    # Nested shapes such as {"tx": {"status": "confirmed"}}
    text = shared.safe_json(body).lower()
    return any(marker in text for marker in CONFIRMATION_MARKERS)


class OutcomeVerifier:
    """Turns a raw strategy payload into a success/failure verification."""

    def __init__(self, client: CoinBankClient) -> None:
        self.client = client

    async def confirm_transaction(self, txid: str) -> bool:
        """
        Probe the lookup paths in order and judge the first usable body.
        Paths that error, come back empty or serve markup are skipped, not
        negative.
        """
        if not txid:
            return False
        for path in self.client.TRANSACTION_LOOKUP_PATHS:
            body = await self.client.lookup_transaction(path, txid)
            if body is None or body == "" or shared.looks_like_markup(body):
                continue
            confirmed = body_confirms(body)
            shared.logger.info(
                "coin_tx_lookup_result",
                txid=txid,
                path=path,
                confirmed=confirmed,
            )
            return confirmed
        shared.logger.info("coin_tx_lookup_inconclusive", txid=txid)
        return False

    async def verify(self, payload: CoinPayload) -> Verification:
        if shared.looks_like_markup(payload):
            return Verification(success=False)
        if not isinstance(payload, dict):
            return Verification(success=False)

        txid = shared.extract_txid(payload)
        has_error = bool(payload.get("error"))

        if payload.get("success") is True and not has_error:
            if txid is None:
                return Verification(success=True)
            if not await self.confirm_transaction(txid):
                shared.logger.info("coin_tx_unconfirmed_trusting_upstream", txid=txid)
            return Verification(success=True, txid=txid)

        if txid is not None and not has_error:
            if await self.confirm_transaction(txid):
                return Verification(success=True, txid=txid)

        return Verification(success=False)
