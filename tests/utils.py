"""Shared test constants, fakes and data helpers."""
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import httpx
import respx
from sqlalchemy import select

COIN_API_BASE = "https://coin.test/api"
MASTER_CARD = "MASTER-CARD-0001"
NOW = 1_800_000_000
CYCLE = 30 * 24 * 3600


def unreachable_lookups(router: respx.Router) -> respx.Route:
    """Catch-all 404 for transaction lookups; register after specific routes."""
    return router.get(url__startswith=f"{COIN_API_BASE}/").mock(
        return_value=httpx.Response(404)
    )


class FakeEntitlementSink:
    """In-memory EntitlementSink that records every call."""

    def __init__(self) -> None:
        self.holders: Dict[Tuple[str, str], Set[str]] = {}
        self.grants: List[Tuple[str, str, str]] = []
        self.revokes: List[Tuple[str, str, str]] = []
        self.direct_messages: List[Tuple[str, str]] = []
        self.log_posts: List[Tuple[str, str, str]] = []
        self.fail_on: Set[str] = set()

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise RuntimeError(f"{operation} unavailable")

    async def grant_role(self, tenant_id: str, subscriber_id: str, role_id: str) -> None:
        self._maybe_fail("grant_role")
        self.grants.append((tenant_id, subscriber_id, role_id))
        self.holders.setdefault((tenant_id, role_id), set()).add(subscriber_id)

    async def revoke_role(self, tenant_id: str, subscriber_id: str, role_id: str) -> None:
        self._maybe_fail("revoke_role")
        self.revokes.append((tenant_id, subscriber_id, role_id))
        self.holders.get((tenant_id, role_id), set()).discard(subscriber_id)

    async def list_role_holders(self, tenant_id: str, role_id: str) -> Sequence[str]:
        self._maybe_fail("list_role_holders")
        return sorted(self.holders.get((tenant_id, role_id), set()))

    async def send_direct_message(self, recipient_id: str, message: str) -> None:
        self._maybe_fail("send_direct_message")
        self.direct_messages.append((recipient_id, message))

    async def post_to_log_channel(self, channel_id: str, title: str, description: str) -> None:
        self._maybe_fail("post_to_log_channel")
        self.log_posts.append((channel_id, title, description))

    def titles(self) -> List[str]:
        return [title for _, title, _ in self.log_posts]


async def add_tenant(session_maker, tenant_id: str = "guild-1", **values: Any):
    from cardpay.models.tenant import Tenant

    defaults: Dict[str, Any] = {
        "receiving_account": "TENANT-CARD",
        "price": "0.05000000",
        "role_id": "role-1",
        "log_channel_id": "log-1",
        "last_payment_at": NOW - 60,
        "active": True,
    }
    defaults.update(values)
    async with session_maker() as session:
        tenant = Tenant(id=tenant_id, **defaults)
        session.add(tenant)
        await session.commit()
        return tenant


async def add_subscription(
    session_maker,
    tenant_id: str = "guild-1",
    subscriber_id: str = "user-1",
    payer_account: Optional[str] = "PAYER-CARD",
    **values: Any,
):
    """Subscription that is due by default (last renewed over a cycle ago)."""
    from cardpay.models.subscription import Subscription

    defaults: Dict[str, Any] = {
        "subscribed_at": NOW - CYCLE - 10,
        "last_renewed_at": NOW - CYCLE - 10,
        "active": True,
    }
    defaults.update(values)
    async with session_maker() as session:
        sub = Subscription(
            tenant_id=tenant_id,
            subscriber_id=subscriber_id,
            payer_account=payer_account,
            **defaults,
        )
        session.add(sub)
        await session.commit()
        return sub


async def fetch_one(session_maker, model, *criteria):
    async with session_maker() as session:
        result = await session.execute(select(model).where(*criteria))
        return result.scalar_one_or_none()


async def fetch_all(session_maker, model, *criteria):
    async with session_maker() as session:
        result = await session.execute(select(model).where(*criteria))
        return list(result.scalars().all())
