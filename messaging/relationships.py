"""
Relationship Tracker

Remembers which bot message answered which user message, so that when the
user deletes their message the bot reply can be replaced with a short
annotation of what was asked. Each relationship is consumed at most once.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

log = logging.getLogger(__name__)


MAX_RELATIONSHIPS = 1000
EVICTION_BATCH = 100
DEFAULT_MAX_AGE = 24 * 60 * 60
SNIPPET_LENGTH = 100


class ContextType(str, Enum):
    IMAGE = "image"
    WEATHER = "weather"
    TIME = "time"
    KNOWLEDGE = "knowledge"
    ARENA_STATS = "arena_stats"
    GENERIC = "generic"


ANNOTATIONS: Dict[ContextType, str] = {
    ContextType.IMAGE: "🎨 **{name}** requested an image but removed their request.\n*Theme: {snippet}*",
    ContextType.WEATHER: "🌦️ **{name}** asked about the Weather but removed their message.\n*Context: {snippet}*",
    ContextType.TIME: "🕐 **{name}** asked about the Time but removed their message.\n*Context: {snippet}*",
    ContextType.KNOWLEDGE: "💭 **{name}** asked a question but removed it.\n*Context: {snippet}*",
    ContextType.ARENA_STATS: "🎮 **{name}** asked about Quake server stats but removed their message.\n*Context: {snippet}*",
    ContextType.GENERIC: "💨 **{name}** removed their message.\n*Context: {snippet}*",
}


def make_snippet(text: str, limit: int = SNIPPET_LENGTH) -> str:
    text = " ".join((text or "").split())
    if len(text) <= limit:
        return text
    return text[:limit - 3] + "..."


@dataclass
class Relationship:
    original_message_id: str
    bot_message_id: str
    context_type: ContextType
    context_snippet: str
    user_display_name: str
    user_id: Optional[str] = None
    bot_message: Any = None
    created_at: float = 0.0


class RelationshipTracker:
    """
    In-memory map of original message id to Relationship.

    Example:
        tracker.store("111", bot_message, ContextType.WEATHER, "weather in Auckland?",
                      {"id": "42", "display_name": "Sam"})
        relationship = tracker.consume("111")   # Relationship
        tracker.consume("111")                  # None
    """

    def __init__(self, max_size: int = MAX_RELATIONSHIPS, clock: Callable[[], float] = time.time):
        self.max_size = max_size
        self._clock = clock
        self._relationships: Dict[str, Relationship] = {}

    def store(
        self,
        original_message_id: str,
        bot_message: Any,
        context_type: ContextType,
        snippet: str,
        user_info: Dict[str, Any]
    ) -> Relationship:
        relationship = Relationship(
            original_message_id=str(original_message_id),
            bot_message_id=str(getattr(bot_message, "id", "")),
            context_type=ContextType(context_type),
            context_snippet=make_snippet(snippet),
            user_display_name=user_info.get("display_name") or user_info.get("name") or "Someone",
            user_id=str(user_info["id"]) if user_info.get("id") is not None else None,
            bot_message=bot_message,
            created_at=self._clock(),
        )
        # Re-storing moves the entry to the newest position
        self._relationships.pop(relationship.original_message_id, None)
        self._relationships[relationship.original_message_id] = relationship

        if len(self._relationships) > self.max_size:
            self._evict_oldest(EVICTION_BATCH)

        log.debug(
            f"Tracked {relationship.original_message_id} -> {relationship.bot_message_id} "
            f"({relationship.context_type.value})"
        )
        return relationship

    def get(self, original_message_id: str) -> Optional[Relationship]:
        return self._relationships.get(str(original_message_id))

    def consume(self, original_message_id: str) -> Optional[Relationship]:
        """Read and delete the relationship in one step."""
        return self._relationships.pop(str(original_message_id), None)

    @staticmethod
    def annotation(relationship: Relationship) -> str:
        template = ANNOTATIONS.get(relationship.context_type, ANNOTATIONS[ContextType.GENERIC])
        return template.format(
            name=relationship.user_display_name,
            snippet=relationship.context_snippet or "no text",
        )

    def cleanup(self, max_age: float = DEFAULT_MAX_AGE) -> int:
        """Drop relationships older than ``max_age`` seconds; returns how many."""
        cutoff = self._clock() - max_age
        expired = [key for key, rel in self._relationships.items() if rel.created_at < cutoff]
        for key in expired:
            del self._relationships[key]
        if expired:
            log.info(f"Cleaned up {len(expired)} expired message relationships")
        return len(expired)

    def _evict_oldest(self, count: int) -> None:
        for key in list(self._relationships)[:count]:
            del self._relationships[key]
        log.debug(f"Evicted {count} oldest relationships")

    def __len__(self) -> int:
        return len(self._relationships)

    def __contains__(self, original_message_id: object) -> bool:
        return str(original_message_id) in self._relationships
