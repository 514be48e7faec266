from __future__ import annotations

import logging
import re
from typing import Any

MASK = "***"

# Query strings may carry RPC or Jupiter credentials; scheme, host and path are kept.
URL_QUERY_RE = re.compile(r"(?i)(https?://[^\s\"'<>?#]+)[?#][^\s\"'<>]*")
SECRET_ASSIGNMENT_RE = re.compile(r"(?i)((?:api|private)[-_]?key\s*[:=]\s*)(\[[^\]]*\]|[^\s,;\"'&]+)")

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

_registered_secrets: set[str] = set()


def register_secret(value: str) -> None:
    """Mask every later occurrence of ``value`` in log output."""
    value = (value or "").strip()
    if len(value) >= 8:
        _registered_secrets.add(value)


def redact_text(value: str) -> str:
    masked = URL_QUERY_RE.sub(r"\1", value)
    masked = SECRET_ASSIGNMENT_RE.sub(rf"\1{MASK}", masked)
    for secret in _registered_secrets:
        if secret in masked:
            masked = masked.replace(secret, MASK)
    return masked


def redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        return {key: redact_value(child) for key, child in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(redact_value(item) for item in value)
    return value


def log_event(
    logger: logging.Logger,
    *,
    level: str,
    event: str,
    message: str,
    **fields: Any,
) -> None:
    """Emit one structured record; ``fields`` end up as top-level JSON keys."""
    extra = {"event": event}
    extra.update({key: redact_value(value) for key, value in fields.items()})
    safe_message = redact_text(message)

    if level == "exception":
        logger.exception(safe_message, extra=extra)
        return

    logger.log(LOG_LEVELS.get(level, logging.INFO), safe_message, extra=extra)
