import sys
import structlog
import logging
from typing import Any, cast
from cardpay.shared.core.config import get_settings


def card_redactor(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Recursively mask card codes and secrets before rendering.
    A card code is a bearer credential for the coin bank, so only a short
    suffix is kept to correlate log lines.
    """
    import re

    card_fields = {
        "card",
        "card_code",
        "payer_account",
        "receiving_account",
        "source",
        "destination",
    }
    secret_fields = {"password", "token", "secret", "authorization", "api_key"}
    card_suffixes = ("_card",)
    secret_suffixes = ("_token", "_secret", "_password", "_key")

    def mask_card(value: Any) -> Any:
        if value is None:
            return None
        text = str(value)
        if len(text) <= 4:
            return "****"
        return f"****{text[-4:]}"

    def classify(key: Any) -> str | None:
        key_norm = str(key).lower().strip().replace("-", "_")
        if key_norm in secret_fields or key_norm.endswith(secret_suffixes):
            return "secret"
        if key_norm in card_fields or key_norm.endswith(card_suffixes):
            return "card"
        tokens = [t for t in re.split(r"[^a-z0-9]+", key_norm) if t]
        if any(t in secret_fields for t in tokens):
            return "secret"
        return None

    def redact_recursive(data: Any) -> Any:
        if isinstance(data, dict):
            redacted: dict[Any, Any] = {}
            for k, v in data.items():
                kind = classify(k)
                if kind == "secret":
                    redacted[k] = "[REDACTED]"
                elif kind == "card":
                    redacted[k] = mask_card(v)
                else:
                    redacted[k] = redact_recursive(v)
            return redacted
        elif isinstance(data, list):
            return [redact_recursive(item) for item in data]
        return data

    redacted = redact_recursive(event_dict)
    if isinstance(redacted, dict):
        return cast(dict[str, Any], redacted)
    return {}


def setup_logging() -> None:
    settings = get_settings()

    base_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        card_redactor,
    ]

    if settings.DEBUG:
        renderer: Any = structlog.dev.ConsoleRenderer()
        processors = base_processors + [renderer]
        min_level = logging.DEBUG
    else:
        renderer = structlog.processors.JSONRenderer()
        processors = base_processors + [structlog.processors.dict_tracebacks, renderer]
        min_level = logging.INFO

    structlog.configure(
        processors=cast(Any, processors),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Route library logs (httpx, apscheduler, sqlalchemy) to the same stream.
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=min_level,
    )
