"""
Renewal Service - periodic tenant and subscriber billing sweep.

Sweep flow, per tenant:
1. No receiving card: force inactive with an already-elapsed deadline, skip.
   A malformed price skips the tenant untouched.
2. Tenant cycle elapsed: charge the tenant card into the master card.
   Failure deactivates the tenant, bulk-revokes the role and skips its
   subscribers for this sweep.
3. Each subscriber whose cycle elapsed is charged into the tenant card;
   the verdict activates or deactivates it and grants or revokes the role.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardpay.models.subscription import Subscription
from cardpay.models.tenant import Tenant
from cardpay.modules.entitlements.domain.sink import EntitlementGateway
from cardpay.modules.notifications.domain.notification_queue import NotificationQueue
from cardpay.shared.core.amounts import require_price
from cardpay.shared.core.config import Settings, get_settings
from cardpay.shared.core.exceptions import InvalidPriceError

from .charge_service import ChargeService
from .coin_shared import now_ts

logger = structlog.get_logger()


class TenantSweepStatus(str, Enum):
    MISSING = "missing"
    UNCONFIGURED = "unconfigured"
    CHARGED = "charged"
    CHARGE_FAILED = "charge_failed"
    NOT_DUE = "not_due"
    INVALID_PRICE = "invalid_price"


class RenewalStatus(str, Enum):
    RENEWED = "renewed"
    FAILED = "failed"
    MISSING_CARD = "missing_card"


@dataclass
class TenantSweepResult:
    tenant_id: str
    status: TenantSweepStatus
    renewals: dict[str, RenewalStatus] = field(default_factory=dict)

    @property
    def processed_subscribers(self) -> bool:
        return self.status in {TenantSweepStatus.CHARGED, TenantSweepStatus.NOT_DUE}


@dataclass
class SweepReport:
    started_at: int
    tenants: list[TenantSweepResult] = field(default_factory=list)
    errors: int = 0

    def count(self, status: TenantSweepStatus) -> int:
        return sum(1 for t in self.tenants if t.status == status)

    def renewal_count(self, status: RenewalStatus) -> int:
        return sum(
            1 for t in self.tenants for s in t.renewals.values() if s == status
        )

    def summary(self) -> dict[str, Any]:
        return {
            "tenants": len(self.tenants),
            "tenants_charged": self.count(TenantSweepStatus.CHARGED),
            "tenants_failed": self.count(TenantSweepStatus.CHARGE_FAILED),
            "tenants_unconfigured": self.count(TenantSweepStatus.UNCONFIGURED),
            "tenants_invalid_price": self.count(TenantSweepStatus.INVALID_PRICE),
            "renewed": self.renewal_count(RenewalStatus.RENEWED),
            "renewal_failed": self.renewal_count(RenewalStatus.FAILED),
            "missing_card": self.renewal_count(RenewalStatus.MISSING_CARD),
            "errors": self.errors,
        }


class RenewalService:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        charge_service: ChargeService,
        gateway: EntitlementGateway,
        notifications: NotificationQueue,
        *,
        settings: Settings | None = None,
        clock: Callable[[], int] | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self.session_maker = session_maker
        self.charge_service = charge_service
        self.gateway = gateway
        self.notifications = notifications
        self.settings = settings or get_settings()
        self._clock = clock or now_ts
        self._sleep = sleep or asyncio.sleep

    @property
    def cycle_seconds(self) -> int:
        return self.settings.CYCLE_SECONDS

    async def run_sweep(self, now: Optional[int] = None) -> SweepReport:
        now = self._clock() if now is None else now
        async with self.session_maker() as db:
            result = await db.execute(select(Tenant.id).order_by(Tenant.id))
            tenant_ids = list(result.scalars().all())

        report = SweepReport(started_at=now)
        logger.info("renewal_sweep_started", tenants=len(tenant_ids), now=now)

        async def _sweep_one(tenant_id: str) -> None:
            try:
                report.tenants.append(await self.process_tenant(tenant_id, now))
            except Exception as exc:
                report.errors += 1
                logger.error(
                    "renewal_tenant_failed", tenant_id=tenant_id, error=str(exc)
                )

        concurrency = self.settings.TENANT_SWEEP_CONCURRENCY
        if concurrency <= 1:
            for tenant_id in tenant_ids:
                await _sweep_one(tenant_id)
        else:
            semaphore = asyncio.Semaphore(concurrency)

            async def _bounded(tenant_id: str) -> None:
                async with semaphore:
                    await _sweep_one(tenant_id)

            await asyncio.gather(*(_bounded(t) for t in tenant_ids))

        logger.info("renewal_sweep_completed", **report.summary())
        return report

    async def process_tenant(self, tenant_id: str, now: int) -> TenantSweepResult:
        async with self.session_maker() as db:
            result = await db.execute(select(Tenant).where(Tenant.id == tenant_id))
            tenant = result.scalar_one_or_none()
        if tenant is None:
            return TenantSweepResult(tenant_id, TenantSweepStatus.MISSING)

        if not tenant.is_billable:
            await self._update_tenant(
                tenant_id, active=False, last_payment_at=now - self.cycle_seconds
            )
            logger.info("renewal_tenant_unconfigured", tenant_id=tenant_id)
            return TenantSweepResult(tenant_id, TenantSweepStatus.UNCONFIGURED)

        try:
            price = require_price(tenant.price or self.settings.DEFAULT_TENANT_PRICE)
        except InvalidPriceError:
            logger.warning(
                "renewal_tenant_invalid_price", tenant_id=tenant_id, price=tenant.price
            )
            return TenantSweepResult(tenant_id, TenantSweepStatus.INVALID_PRICE)

        status = TenantSweepStatus.NOT_DUE

        last_payment_at = int(tenant.last_payment_at or 0)
        if last_payment_at == 0 or (now - last_payment_at) >= self.cycle_seconds:
            if not await self._charge_tenant(tenant, price, now):
                return TenantSweepResult(tenant_id, TenantSweepStatus.CHARGE_FAILED)
            status = TenantSweepStatus.CHARGED

        sweep = TenantSweepResult(tenant_id, status)
        async with self.session_maker() as db:
            result = await db.execute(
                select(Subscription)
                .where(Subscription.tenant_id == tenant_id)
                .order_by(Subscription.subscribed_at, Subscription.subscriber_id)
            )
            subscriptions = list(result.scalars().all())

        for subscription in subscriptions:
            try:
                renewal = await self.renew_subscription(tenant, subscription, price, now)
            except Exception as exc:
                logger.error(
                    "renewal_subscription_error",
                    tenant_id=tenant_id,
                    subscriber_id=subscription.subscriber_id,
                    error=str(exc),
                )
                continue
            if renewal is not None:
                sweep.renewals[subscription.subscriber_id] = renewal
        return sweep

    async def _charge_tenant(self, tenant: Tenant, price: str, now: int) -> bool:
        verdict = await self.charge_service.attempt_charge(
            tenant.receiving_account or "",
            self.settings.MASTER_RECEIVER_CARD,
            price,
            tenant_id=tenant.id,
        )
        if verdict.success:
            await self._update_tenant(tenant.id, last_payment_at=now, active=True)
            logger.info("tenant_payment_succeeded", tenant_id=tenant.id, txid=verdict.txid)
            await self.gateway.post_log(
                tenant.log_channel_id,
                "Tenant Payment",
                f"Tenant payment succeeded for {price} coins. TX: {verdict.txid or 'n/a'}",
            )
            return True

        await self._update_tenant(tenant.id, active=False)
        logger.warning(
            "tenant_payment_failed", tenant_id=tenant.id, error=verdict.error_message
        )
        await self.gateway.post_log(
            tenant.log_channel_id,
            "Tenant Payment Failed",
            f"Tenant payment failed for {price} coins. Premium features are blocked "
            f"until fixed.\nError: {verdict.error_message}",
        )
        await self.gateway.revoke_from_all(tenant.id, tenant.role_id, tenant.log_channel_id)
        return False

    async def renew_subscription(
        self, tenant: Tenant, subscription: Subscription, price: str, now: int
    ) -> Optional[RenewalStatus]:
        """Renew one subscriber if its cycle elapsed; None when not due."""
        if not subscription.is_due(now, self.cycle_seconds):
            return None

        subscriber_id = subscription.subscriber_id
        if not subscription.payer_account:
            await self._update_subscription(tenant.id, subscriber_id, active=False)
            await self.gateway.revoke(tenant.id, subscriber_id, tenant.role_id)
            self.notifications.enqueue(
                subscriber_id,
                f"Renewing your subscription in {tenant.id} failed: no card is "
                "registered. Register your card to subscribe again.",
                tenant.log_channel_id,
            )
            logger.info(
                "subscription_missing_card", tenant_id=tenant.id, subscriber_id=subscriber_id
            )
            return RenewalStatus.MISSING_CARD

        verdict = await self.charge_service.attempt_charge(
            subscription.payer_account,
            tenant.receiving_account or self.settings.MASTER_RECEIVER_CARD,
            price,
            tenant_id=tenant.id,
            subscriber_id=subscriber_id,
        )
        try:
            if verdict.success:
                await self._update_subscription(
                    tenant.id, subscriber_id, active=True, last_renewed_at=now
                )
                await self.gateway.grant(tenant.id, subscriber_id, tenant.role_id)
                logger.info(
                    "subscription_renewed",
                    tenant_id=tenant.id,
                    subscriber_id=subscriber_id,
                    txid=verdict.txid,
                )
                await self.gateway.post_log(
                    tenant.log_channel_id,
                    "Subscription Renewed",
                    f"<@{subscriber_id}> renewed the subscription. TX: {verdict.txid or 'n/a'}",
                )
                return RenewalStatus.RENEWED

            await self._update_subscription(tenant.id, subscriber_id, active=False)
            await self.gateway.revoke(tenant.id, subscriber_id, tenant.role_id)
            self.notifications.enqueue(
                subscriber_id,
                f"We could not renew your subscription in {tenant.id}. Access was "
                f"removed. Error: {verdict.error_message}",
                tenant.log_channel_id,
            )
            logger.info(
                "subscription_renewal_failed",
                tenant_id=tenant.id,
                subscriber_id=subscriber_id,
                error=verdict.error_message,
            )
            return RenewalStatus.FAILED
        finally:
            # Throttle between charges against the same upstream.
            await self._sleep(self.settings.SUBSCRIBER_CHARGE_DELAY_SECONDS)

    async def _update_tenant(self, tenant_id: str, **values: Any) -> None:
        async with self.session_maker() as db:
            await db.execute(update(Tenant).where(Tenant.id == tenant_id).values(**values))
            await db.commit()

    async def _update_subscription(
        self, tenant_id: str, subscriber_id: str, **values: Any
    ) -> None:
        async with self.session_maker() as db:
            await db.execute(
                update(Subscription)
                .where(
                    Subscription.tenant_id == tenant_id,
                    Subscription.subscriber_id == subscriber_id,
                )
                .values(**values)
            )
            await db.commit()
