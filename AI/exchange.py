"""
Per-message state threaded through dispatch, execution and synthesis.
"""

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional

from AI.base_client import TokenUsage


@dataclass
class Exchange:
    """
    One inbound message on its way to a reply.

    Attributes:
        user_id: Discord ID of the author
        content: Raw message content
        ack: Acknowledgment handle (the single reply message)
        user_display_name: Display name used in prompts and annotations
        started_at: Monotonic start time, used by the footer
        usage: Token usage summed over every completion call
        api_calls: Successful external calls per telemetry kind
        generation_started_at: Set when image generation begins
    """
    user_id: str
    content: str
    ack: Any = None
    user_display_name: str = ""
    started_at: float = field(default_factory=time.monotonic)
    usage: TokenUsage = field(default_factory=TokenUsage)
    api_calls: Counter = field(default_factory=Counter)
    generation_started_at: Optional[float] = None

    def elapsed_ms(self, since: Optional[float] = None) -> int:
        start = self.started_at if since is None else since
        return int((time.monotonic() - start) * 1000)

    def add_usage(self, usage: Optional[TokenUsage]) -> None:
        if usage is not None:
            self.usage = self.usage + usage

    def record_api_call(self, kind: str) -> None:
        self.api_calls[kind] += 1
