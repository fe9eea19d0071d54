"""
Telemetry Counters

In-process counters for processed messages, external API calls, errors
and rate-limit hits. Tracking is fire-and-forget: a failure to record a
metric is logged and never reaches the caller.
"""

import logging
import time
from collections import Counter
from typing import Any, Dict, Optional

log = logging.getLogger(__name__)


class Telemetry:
    """
    Counters keyed by kind ("openai", "weather", "gptimage", ...).

    Example:
        telemetry = get_telemetry()
        telemetry.track_api_call("weather")
        telemetry.get_stats()["api_calls"]["weather"]  # 1
    """

    def __init__(self):
        self.started = time.time()
        self.messages = 0
        self.api_calls: Counter = Counter()
        self.errors: Counter = Counter()
        self.rate_limits: Counter = Counter()
        self.last_rate_limited_at: Dict[str, float] = {}

    def track_message(self) -> None:
        try:
            self.messages += 1
        except Exception as e:
            log.debug(f"Failed to track message: {e}")

    def track_api_call(self, kind: str) -> None:
        try:
            self.api_calls[kind] += 1
        except Exception as e:
            log.debug(f"Failed to track API call {kind}: {e}")

    def track_error(self, kind: str) -> None:
        try:
            self.errors[kind] += 1
        except Exception as e:
            log.debug(f"Failed to track error {kind}: {e}")

    def track_rate_limit(self, user_id: str) -> None:
        try:
            user_id = str(user_id)
            self.rate_limits[user_id] += 1
            self.last_rate_limited_at[user_id] = time.time()
        except Exception as e:
            log.debug(f"Failed to track rate limit for {user_id}: {e}")

    def get_stats(self) -> Dict[str, Any]:
        """Snapshot of every counter plus uptime."""
        return {
            "uptime_seconds": int(time.time() - self.started),
            "messages": self.messages,
            "api_calls": dict(self.api_calls),
            "errors": dict(self.errors),
            "rate_limits": {
                "total": sum(self.rate_limits.values()),
                "users": dict(self.rate_limits),
            },
        }

    def reset(self) -> None:
        self.__init__()


# Global telemetry instance
_global_telemetry: Optional[Telemetry] = None


def get_telemetry() -> Telemetry:
    """Get the global telemetry instance."""
    global _global_telemetry
    if _global_telemetry is None:
        _global_telemetry = Telemetry()
    return _global_telemetry
