"""Charge orchestration: direct charge, bill fallback, one audit row per attempt."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardpay.models.payment_attempt import PaymentAttempt

from . import coin_shared as shared
from .coin_client_impl import CoinBankClient
from .verification import OutcomeVerifier

STRATEGY_DIRECT = "direct"
STRATEGY_BILL = "bill"


@dataclass
class ChargeVerdict:
    success: bool
    txid: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def error_message(self) -> str:
        """Upstream error text, most recent strategy first."""
        for strategy in (STRATEGY_BILL, STRATEGY_DIRECT):
            error = shared.extract_error(self.raw.get(strategy))
            if error:
                return error
        if not self.raw:
            return "unknown"
        return shared.safe_json(self.raw)


class ChargeService:
    """
    Composes the coin client and verifier into one charge attempt.

    The bill strategy runs only when the direct charge did not verify, so a
    successful first strategy is never paid twice. Entitlement state is left
    to the caller.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        client: CoinBankClient | None = None,
        verifier: OutcomeVerifier | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.session_maker = session_maker
        self.client = client or CoinBankClient()
        self.verifier = verifier or OutcomeVerifier(self.client)
        self._clock = clock or shared.now_ts

    async def attempt_charge(
        self,
        source: str,
        destination: str,
        amount: str,
        *,
        tenant_id: Optional[str] = None,
        subscriber_id: Optional[str] = None,
    ) -> ChargeVerdict:
        started_at = self._clock()

        direct = await self.client.charge_direct(source, destination, amount)
        verification = await self.verifier.verify(direct)

        bill: Any = None
        if not verification.success:
            shared.logger.info(
                "charge_direct_failed_trying_bill",
                tenant_id=tenant_id,
                subscriber_id=subscriber_id,
                error=shared.extract_error(direct),
            )
            bill = await self.client.charge_via_bill(source, destination, amount)
            verification = await self.verifier.verify(bill)

        verdict = ChargeVerdict(
            success=verification.success,
            txid=verification.txid if verification.success else None,
            raw={STRATEGY_DIRECT: direct, STRATEGY_BILL: bill},
        )

        await self._record_attempt(
            verdict,
            source=source,
            destination=destination,
            amount=amount,
            tenant_id=tenant_id,
            subscriber_id=subscriber_id,
            created_at=started_at,
        )

        shared.logger.info(
            "charge_attempt_completed",
            tenant_id=tenant_id,
            subscriber_id=subscriber_id,
            amount=amount,
            success=verdict.success,
            txid=verdict.txid,
            strategy=STRATEGY_DIRECT if bill is None else STRATEGY_BILL,
        )
        return verdict

    async def _record_attempt(
        self,
        verdict: ChargeVerdict,
        *,
        source: str,
        destination: str,
        amount: str,
        tenant_id: Optional[str],
        subscriber_id: Optional[str],
        created_at: int,
    ) -> None:
        """Best-effort audit write; a failure here never changes the verdict."""
        try:
            async with self.session_maker() as db:
                db.add(
                    PaymentAttempt(
                        tenant_id=tenant_id,
                        subscriber_id=subscriber_id,
                        source_account=str(source),
                        destination_account=str(destination),
                        amount=str(amount),
                        success=verdict.success,
                        txid=verdict.txid,
                        raw=shared.safe_json(verdict.raw),
                        created_at=created_at,
                    )
                )
                await db.commit()
        except Exception as exc:
            shared.logger.error(
                "charge_attempt_record_failed",
                tenant_id=tenant_id,
                subscriber_id=subscriber_id,
                error=str(exc),
            )
