from .async_utils import best_effort, close_all, sleep_ms
from .logging import log_event, redact_text, redact_value, register_secret

__all__ = [
    "best_effort",
    "close_all",
    "log_event",
    "redact_text",
    "redact_value",
    "register_secret",
    "sleep_ms",
]
