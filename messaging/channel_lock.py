"""
Channel Lock Manager

At most one pipeline runs per channel. A message arriving while its channel
is busy is dropped, not queued.
"""

import logging
from collections import Counter
from typing import Set

log = logging.getLogger(__name__)


class ChannelLockManager:
    """
    Non-reentrant, non-blocking per-channel marker set.

    ``acquire`` never awaits, so the check and the insert cannot be
    interleaved with another coroutine. Pipelines report when they start
    and stop running so the number actually in flight per channel can be
    observed independently of the markers.
    """

    def __init__(self):
        self._active: Set[str] = set()
        self._running: Counter = Counter()
        self._peaks: Counter = Counter()

    def acquire(self, channel_id: str) -> bool:
        channel_id = str(channel_id)
        if channel_id in self._active:
            log.debug(f"Channel {channel_id} is busy; dropping message")
            return False
        self._active.add(channel_id)
        return True

    def release(self, channel_id: str) -> None:
        channel_id = str(channel_id)
        if channel_id not in self._active:
            log.warning(f"Release of channel {channel_id} that was not held")
            return
        self._active.discard(channel_id)

    def is_locked(self, channel_id: str) -> bool:
        return str(channel_id) in self._active

    @property
    def active_count(self) -> int:
        return len(self._active)

    def pipeline_started(self, channel_id: str) -> None:
        channel_id = str(channel_id)
        self._running[channel_id] += 1
        self._peaks[channel_id] = max(self._peaks[channel_id], self._running[channel_id])

    def pipeline_finished(self, channel_id: str) -> None:
        channel_id = str(channel_id)
        if self._running[channel_id] <= 0:
            log.warning(f"Pipeline finished in channel {channel_id} without having started")
            return
        self._running[channel_id] -= 1

    def running(self, channel_id: str) -> int:
        """Pipelines currently processing a message in ``channel_id``."""
        return self._running[str(channel_id)]

    def peak_active(self, channel_id: str) -> int:
        """Most pipelines ever running at once in ``channel_id``."""
        return self._peaks[str(channel_id)]
