"""
Async HTTP Client Shared Infrastructure

Keeps a single httpx.AsyncClient for the renewal scheduler, registrations
and transaction lookups so every coin bank call shares one connection pool.
"""

import inspect
from typing import Optional
import httpx
import structlog

from cardpay.shared.core.config import get_settings

logger = structlog.get_logger()

# Singleton instance
_client: Optional[httpx.AsyncClient] = None


def _build_client(timeout: float) -> httpx.AsyncClient:
    settings = get_settings()
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout, connect=min(timeout, 10.0)),
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
        headers={
            "Content-Type": "application/json",
            "User-Agent": f"{settings.APP_NAME}/{settings.VERSION}",
        },
    )


def get_http_client() -> httpx.AsyncClient:
    """
    Returns the global shared httpx.AsyncClient.
    Lazily creates it when init_http_client() was not called (scripts, tests).
    """
    global _client

    if _client is None:
        logger.warning(
            "http_client_lazy_initialized",
            msg="Client was not pre-initialized",
        )
        _client = _build_client(get_settings().COIN_API_TIMEOUT_SECONDS)
    return _client


async def init_http_client() -> None:
    """Initializes the global httpx.AsyncClient with the configured coin bank timeout."""
    global _client
    if _client is not None:
        logger.warning("http_client_already_initialized")
        return

    timeout = get_settings().COIN_API_TIMEOUT_SECONDS
    _client = _build_client(timeout)
    logger.info("http_client_initialized", timeout_seconds=timeout)


async def close_http_client() -> None:
    """Gracefully shuts down the global client, flushing the connection pool."""
    global _client

    client = _client
    _client = None
    if client is None:
        return

    close_result = client.aclose()
    if inspect.isawaitable(close_result):
        await close_result
    logger.info("http_client_closed")
