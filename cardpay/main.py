"""
cardpay runtime entry point.

Wires settings, logging, the shared HTTP client, the database and the billing
services, then either serves the renewal scheduler until interrupted or runs a
single sweep.
"""

import argparse
import asyncio
import signal
import sys
from typing import Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardpay.modules.billing.domain.billing.charge_service import ChargeService
from cardpay.modules.billing.domain.billing.coin_client_impl import CoinBankClient
from cardpay.modules.billing.domain.billing.registration_service import (
    RegistrationService,
)
from cardpay.modules.billing.domain.billing.renewal_service import (
    RenewalService,
    SweepReport,
)
from cardpay.modules.billing.domain.billing.tenant_admin import TenantAdminService
from cardpay.modules.billing.domain.scheduler import RenewalScheduler
from cardpay.modules.entitlements.domain.sink import (
    EntitlementGateway,
    EntitlementSink,
    LogOnlyEntitlementSink,
)
from cardpay.modules.notifications.domain.notification_queue import NotificationQueue
from cardpay.shared.core.config import Settings, get_settings
from cardpay.shared.core.http import close_http_client, init_http_client
from cardpay.shared.core.logging import setup_logging
from cardpay.shared.db.session import dispose_db_runtime, get_session_maker, init_db

logger = structlog.get_logger()


class BillingRuntime:
    """Owns every long-lived billing component and their start/stop order."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        sink: EntitlementSink | None = None,
        session_maker: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.session_maker = session_maker or get_session_maker()
        self.gateway = EntitlementGateway(sink or LogOnlyEntitlementSink())
        self.notifications = NotificationQueue(
            self.gateway, delay_seconds=self.settings.NOTIFICATION_DELAY_SECONDS
        )
        self.client = CoinBankClient(self.settings.coin_api_base_url)
        self.charge_service = ChargeService(self.session_maker, client=self.client)
        self.tenant_admin = TenantAdminService(self.session_maker, settings=self.settings)
        self.registration = RegistrationService(
            self.session_maker,
            self.charge_service,
            self.gateway,
            self.notifications,
            settings=self.settings,
        )
        self.renewals = RenewalService(
            self.session_maker,
            self.charge_service,
            self.gateway,
            self.notifications,
            settings=self.settings,
        )
        self.scheduler = RenewalScheduler(self.renewals, settings=self.settings)

    async def start(self, *, schedule: bool = True) -> None:
        await init_http_client()
        await init_db()
        self.notifications.start()
        if schedule:
            self.scheduler.start()
        logger.info(
            "billing_runtime_started",
            app=self.settings.APP_NAME,
            version=self.settings.VERSION,
            scheduled=schedule,
        )

    async def stop(self) -> None:
        await self.scheduler.shutdown()
        await self.notifications.stop()
        await close_http_client()
        await dispose_db_runtime()
        logger.info("billing_runtime_stopped")

    async def sweep_once(self) -> SweepReport:
        await self.start(schedule=False)
        try:
            report = await self.renewals.run_sweep()
            # Let queued notices go out before shutting the worker down.
            await self.notifications.join()
            return report
        finally:
            await self.stop()


async def _serve(runtime: BillingRuntime) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops.
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))

    await runtime.start()
    try:
        await stop_event.wait()
        logger.info("shutdown_signal_received")
    finally:
        await runtime.stop()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cardpay", description="Recurring coin bank billing service."
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="Serve the renewal scheduler until interrupted.")
    sub.add_parser("sweep-once", help="Run a single renewal sweep and exit.")
    sub.add_parser("init-db", help="Create any missing tables and exit.")
    return parser


async def _init_db_only() -> None:
    try:
        await init_db()
    finally:
        await dispose_db_runtime()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()

    if args.command == "init-db":
        asyncio.run(_init_db_only())
        return 0

    runtime = BillingRuntime()
    if args.command == "sweep-once":
        report = asyncio.run(runtime.sweep_once())
        logger.info("sweep_once_completed", **report.summary())
        return 1 if report.errors else 0

    asyncio.run(_serve(runtime))
    return 0


if __name__ == "__main__":
    sys.exit(main())
