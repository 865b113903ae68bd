"""
Entitlement sink: the chat-platform side of billing.

Role grants, revocations, direct messages and log-channel posts all go
through an ``EntitlementSink``. ``EntitlementGateway`` wraps a sink with
best-effort semantics: any failure is logged and swallowed so it can never
reverse a billing verdict.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

import structlog

logger = structlog.get_logger()


class EntitlementSink(Protocol):
    async def grant_role(self, tenant_id: str, subscriber_id: str, role_id: str) -> None: ...

    async def revoke_role(self, tenant_id: str, subscriber_id: str, role_id: str) -> None: ...

    async def list_role_holders(self, tenant_id: str, role_id: str) -> Sequence[str]: ...

    async def send_direct_message(self, recipient_id: str, message: str) -> None: ...

    async def post_to_log_channel(
        self, channel_id: str, title: str, description: str
    ) -> None: ...


class LogOnlyEntitlementSink:
    """Default sink when no chat gateway is attached: records intent in the log."""

    async def grant_role(self, tenant_id: str, subscriber_id: str, role_id: str) -> None:
        logger.info(
            "entitlement_grant_logged",
            tenant_id=tenant_id,
            subscriber_id=subscriber_id,
            role_id=role_id,
        )

    async def revoke_role(self, tenant_id: str, subscriber_id: str, role_id: str) -> None:
        logger.info(
            "entitlement_revoke_logged",
            tenant_id=tenant_id,
            subscriber_id=subscriber_id,
            role_id=role_id,
        )

    async def list_role_holders(self, tenant_id: str, role_id: str) -> Sequence[str]:
        return ()

    async def send_direct_message(self, recipient_id: str, message: str) -> None:
        logger.info("direct_message_logged", recipient_id=recipient_id, message=message)

    async def post_to_log_channel(
        self, channel_id: str, title: str, description: str
    ) -> None:
        logger.info(
            "log_channel_post_logged",
            channel_id=channel_id,
            title=title,
            description=description,
        )


class EntitlementGateway:
    """Best-effort facade over an EntitlementSink."""

    def __init__(self, sink: EntitlementSink) -> None:
        self.sink = sink

    async def grant(self, tenant_id: str, subscriber_id: str, role_id: Optional[str]) -> bool:
        if not role_id:
            return False
        try:
            await self.sink.grant_role(tenant_id, subscriber_id, role_id)
            return True
        except Exception as exc:
            # The next paid cycle grants again; nothing retries in between.
            logger.warning(
                "entitlement_grant_failed",
                tenant_id=tenant_id,
                subscriber_id=subscriber_id,
                role_id=role_id,
                error=str(exc),
            )
            return False

    async def revoke(self, tenant_id: str, subscriber_id: str, role_id: Optional[str]) -> bool:
        if not role_id:
            return False
        try:
            await self.sink.revoke_role(tenant_id, subscriber_id, role_id)
            return True
        except Exception as exc:
            logger.warning(
                "entitlement_revoke_failed",
                tenant_id=tenant_id,
                subscriber_id=subscriber_id,
                role_id=role_id,
                error=str(exc),
            )
            return False

    async def revoke_from_all(
        self,
        tenant_id: str,
        role_id: Optional[str],
        log_channel_id: Optional[str] = None,
    ) -> int:
        """Remove the role from every current holder; returns how many were revoked."""
        if not role_id:
            return 0
        try:
            holders = list(await self.sink.list_role_holders(tenant_id, role_id))
        except Exception as exc:
            logger.warning(
                "entitlement_list_holders_failed",
                tenant_id=tenant_id,
                role_id=role_id,
                error=str(exc),
            )
            return 0

        revoked = 0
        for subscriber_id in holders:
            if await self.revoke(tenant_id, subscriber_id, role_id):
                revoked += 1

        logger.info(
            "entitlement_bulk_revoked",
            tenant_id=tenant_id,
            role_id=role_id,
            holders=len(holders),
            revoked=revoked,
        )
        await self.post_log(
            log_channel_id,
            "Tenant Deactivated",
            "Role removed from all members due to tenant payment failure.",
        )
        return revoked

    async def post_log(
        self, channel_id: Optional[str], title: str, description: str
    ) -> None:
        if not channel_id:
            return
        try:
            await self.sink.post_to_log_channel(channel_id, title, description)
        except Exception as exc:
            logger.warning(
                "log_channel_post_failed",
                channel_id=channel_id,
                title=title,
                error=str(exc),
            )

    async def send_direct_message(self, recipient_id: str, message: str) -> bool:
        try:
            await self.sink.send_direct_message(recipient_id, message)
            return True
        except Exception as exc:
            logger.warning(
                "direct_message_failed", recipient_id=recipient_id, error=str(exc)
            )
            return False
