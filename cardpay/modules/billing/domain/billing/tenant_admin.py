"""
Tenant provisioning and administrative configuration.

Each administrative change is a single-row upsert that only touches its own
column, so configuring the price never clobbers the receiving card, role or
log channel that are already set.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardpay.models.tenant import Tenant
from cardpay.shared.core.amounts import is_valid_price
from cardpay.shared.core.config import Settings, get_settings
from cardpay.shared.core.exceptions import BillingError, InvalidPriceError

from . import coin_shared as shared


def upsert_statement(db: AsyncSession, model: Any) -> Any:
    """Dialect-specific INSERT supporting ON CONFLICT DO UPDATE."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise BillingError(f"Upserts are not supported on dialect {dialect!r}")


class TenantAdminService:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        settings: Settings | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.session_maker = session_maker
        self.settings = settings or get_settings()
        self._clock = clock or shared.now_ts

    def _provisional_values(self, tenant_id: str) -> dict[str, Any]:
        # Deadline already a full cycle in the past: billable as soon as a card is set.
        return {
            "id": tenant_id,
            "price": self.settings.DEFAULT_TENANT_PRICE,
            "last_payment_at": self._clock() - self.settings.CYCLE_SECONDS,
            "active": False,
        }

    async def _upsert(self, tenant_id: str, values: dict[str, Any]) -> None:
        async with self.session_maker() as db:
            stmt = upsert_statement(db, Tenant).values(
                **{**self._provisional_values(tenant_id), **values}
            )
            stmt = stmt.on_conflict_do_update(index_elements=[Tenant.id], set_=values)
            await db.execute(stmt)
            await db.commit()

    async def provision_tenant(self, tenant_id: str) -> None:
        """First contact with a community: create it provisional, or re-provision it."""
        provisional = self._provisional_values(tenant_id)
        async with self.session_maker() as db:
            stmt = upsert_statement(db, Tenant).values(**provisional)
            await db.execute(stmt.on_conflict_do_nothing(index_elements=[Tenant.id]))
            await db.execute(
                update(Tenant)
                .where(
                    Tenant.id == tenant_id,
                    or_(Tenant.receiving_account.is_(None), Tenant.receiving_account == ""),
                )
                .values(last_payment_at=provisional["last_payment_at"], active=False)
            )
            await db.commit()
        shared.logger.info("tenant_provisioned", tenant_id=tenant_id)

    async def provision_tenants(self, tenant_ids: Iterable[str]) -> int:
        count = 0
        for tenant_id in tenant_ids:
            await self.provision_tenant(tenant_id)
            count += 1
        return count

    async def set_receiving_account(self, tenant_id: str, account: str) -> None:
        """Activate billing; the next sweep charges the tenant immediately."""
        card = (account or "").strip()
        if not card:
            raise BillingError("A server card is required.", code="invalid_receiving_account")
        await self._upsert(
            tenant_id, {"receiving_account": card, "active": True, "last_payment_at": 0}
        )
        shared.logger.info("tenant_receiving_account_set", tenant_id=tenant_id, card=card)

    async def set_price(self, tenant_id: str, price: str) -> str:
        normalized = (price or "").strip()
        if not is_valid_price(normalized):
            raise InvalidPriceError(price)
        await self._upsert(tenant_id, {"price": normalized})
        shared.logger.info("tenant_price_set", tenant_id=tenant_id, price=normalized)
        return normalized

    async def set_entitlement_role(self, tenant_id: str, role_id: str) -> None:
        await self._upsert(tenant_id, {"role_id": role_id})
        shared.logger.info("tenant_role_set", tenant_id=tenant_id, role_id=role_id)

    async def set_log_channel(self, tenant_id: str, channel_id: str) -> None:
        await self._upsert(tenant_id, {"log_channel_id": channel_id})
        shared.logger.info("tenant_log_channel_set", tenant_id=tenant_id, channel_id=channel_id)

    async def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        async with self.session_maker() as db:
            result = await db.execute(select(Tenant).where(Tenant.id == tenant_id))
            return result.scalar_one_or_none()

    async def is_tenant_active(self, tenant_id: str) -> bool:
        """Guard for premium (non-admin) operations."""
        tenant = await self.get_tenant(tenant_id)
        return bool(tenant is not None and tenant.active)
