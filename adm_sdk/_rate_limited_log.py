"""
Thread-safe rate-limited logging utilities.

Transport retries against an unreachable node would otherwise emit the same
warning for every request; this keeps one line per message per TTL window.
"""
import logging
import threading
from typing import Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)

# One entry per distinct message; the TTL is the suppression window
_log_cache = TTLCache(maxsize=100, ttl=60)
_log_cache_lock = threading.RLock()


def rate_limited_log(
    message: str,
    level: str = "warning",
    logger_instance: Optional[logging.Logger] = None,
) -> bool:
    """
    Log a message at most once per suppression window, in a thread-safe manner.

    Args:
        message: Message to log
        level: Log level (debug, info, warning, error, critical)
        logger_instance: Logger to use (defaults to module logger)

    Returns:
        True if the message was emitted, False if it was suppressed
    """
    log_instance = logger_instance or logger
    log_method = getattr(log_instance, level.lower(), log_instance.warning)
    key = f"{log_instance.name}:{level}:{message}"

    with _log_cache_lock:
        if key in _log_cache:
            return False
        log_method(message)
        _log_cache[key] = True
    return True


def reset_rate_limits() -> None:
    """Forget every suppressed message."""
    with _log_cache_lock:
        _log_cache.clear()
