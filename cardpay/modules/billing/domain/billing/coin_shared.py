"""Shared primitives for the coin bank billing modules."""

from __future__ import annotations

import json
import time
from typing import Any, Optional, Union

import structlog

logger = structlog.get_logger()

# Raw upstream outcome: decoded JSON, a raw text body, or None when empty.
CoinPayload = Union[dict[str, Any], list[Any], str, int, float, bool, None]

TXID_KEYS = ("txId", "tx_id", "txid", "tx")


def now_ts() -> int:
    """Current time in epoch seconds."""
    return int(time.time())


def safe_json(value: Any) -> str:
    try:
        return json.dumps(value, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def transport_failure(error: str) -> dict[str, Any]:
    """Structured failure used whenever the upstream gave no usable body."""
    return {"success": False, "error": error or "request_error"}


def looks_like_markup(payload: CoinPayload) -> bool:
    """HTML error pages served in place of a JSON payload."""
    if not isinstance(payload, str):
        return False
    head = payload.strip().lower()
    return head.startswith("<!doctype") or head.startswith("<html")


def extract_txid(payload: CoinPayload) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    for key in TXID_KEYS:
        value = payload.get(key)
        if value:
            return str(value)
    return None


def extract_error(payload: CoinPayload) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if not error:
        return None
    return error if isinstance(error, str) else safe_json(error)
