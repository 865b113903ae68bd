"""
Payer registration: bind a subscriber's card to a tenant and charge it now.

Registering (or re-registering) always resets the subscription to inactive
and triggers an immediate charge outside the sweep cadence. The verdict of
that charge decides activation; the reply text is returned synchronously.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardpay.models.subscription import Subscription
from cardpay.models.tenant import Tenant
from cardpay.modules.entitlements.domain.sink import EntitlementGateway
from cardpay.modules.notifications.domain.notification_queue import NotificationQueue
from cardpay.shared.core.amounts import require_price
from cardpay.shared.core.config import Settings, get_settings
from cardpay.shared.core.exceptions import InvalidPayerAccountError, TenantInactiveError

from . import coin_shared as shared
from .charge_service import ChargeService
from .tenant_admin import upsert_statement

MAX_PAYER_ACCOUNT_LENGTH = 128


@dataclass(frozen=True)
class RegistrationResult:
    success: bool
    message: str
    txid: Optional[str] = None
    error: Optional[str] = None


class RegistrationService:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        charge_service: ChargeService,
        gateway: EntitlementGateway,
        notifications: NotificationQueue,
        *,
        settings: Settings | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.session_maker = session_maker
        self.charge_service = charge_service
        self.gateway = gateway
        self.notifications = notifications
        self.settings = settings or get_settings()
        self._clock = clock or shared.now_ts

    async def register_payer_account(
        self, tenant_id: str, subscriber_id: str, payer_account: str
    ) -> RegistrationResult:
        card = (payer_account or "").strip()
        if not card or len(card) > MAX_PAYER_ACCOUNT_LENGTH:
            raise InvalidPayerAccountError("A valid card code is required.")

        async with self.session_maker() as db:
            result = await db.execute(select(Tenant).where(Tenant.id == tenant_id))
            tenant = result.scalar_one_or_none()
        if tenant is None or not tenant.active:
            raise TenantInactiveError(tenant_id)

        price = require_price(tenant.price or self.settings.DEFAULT_TENANT_PRICE)
        now = self._clock()
        await self._store_registration(tenant_id, subscriber_id, card, now)
        shared.logger.info(
            "subscription_registered",
            tenant_id=tenant_id,
            subscriber_id=subscriber_id,
            payer_account=card,
        )
        verdict = await self.charge_service.attempt_charge(
            card,
            tenant.receiving_account or self.settings.MASTER_RECEIVER_CARD,
            price,
            tenant_id=tenant_id,
            subscriber_id=subscriber_id,
        )

        if verdict.success:
            async with self.session_maker() as db:
                await db.execute(
                    update(Subscription)
                    .where(
                        Subscription.tenant_id == tenant_id,
                        Subscription.subscriber_id == subscriber_id,
                    )
                    .values(active=True, last_renewed_at=self._clock())
                )
                await db.commit()
            await self.gateway.grant(tenant_id, subscriber_id, tenant.role_id)
            await self.gateway.post_log(
                tenant.log_channel_id,
                "Subscription Payment",
                f"<@{subscriber_id}> paid {price} coins. TX: {verdict.txid or 'n/a'}",
            )
            shared.logger.info(
                "subscription_activated",
                tenant_id=tenant_id,
                subscriber_id=subscriber_id,
                txid=verdict.txid,
            )
            return RegistrationResult(
                success=True,
                txid=verdict.txid,
                message="Initial payment succeeded. Your subscription is active.",
            )

        error = verdict.error_message
        await self.gateway.post_log(
            tenant.log_channel_id,
            "Subscription Payment Failed",
            f"Initial payment from <@{subscriber_id}> failed.\nError: {error}",
        )
        self.notifications.enqueue(
            subscriber_id,
            f"Your initial payment in {tenant_id} failed. Error: {error}",
            tenant.log_channel_id,
        )
        shared.logger.info(
            "subscription_activation_failed",
            tenant_id=tenant_id,
            subscriber_id=subscriber_id,
            error=error,
        )
        return RegistrationResult(
            success=False,
            error=error,
            message="Initial payment failed. Update your card and try again.",
        )

    async def _store_registration(
        self, tenant_id: str, subscriber_id: str, card: str, now: int
    ) -> None:
        async with self.session_maker() as db:
            stmt = upsert_statement(db, Subscription).values(
                tenant_id=tenant_id,
                subscriber_id=subscriber_id,
                payer_account=card,
                subscribed_at=now,
                last_renewed_at=now,
                active=False,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[Subscription.tenant_id, Subscription.subscriber_id],
                set_={"payer_account": card, "subscribed_at": now, "active": False},
            )
            await db.execute(stmt)
            await db.commit()
