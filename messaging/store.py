"""
Conversation Store - Per-channel conversation history

Keeps the recent user/assistant exchange for each channel so the dispatcher
has context, and keeps that history consistent when users edit or delete
their messages.

Key Features:
- Bounded history per channel
- Lookup, update and removal by Discord message ID
- Debounced JSON persistence
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

import utils.func as func
from utils.persistence import PersistenceManager

log = logging.getLogger(__name__)


@dataclass
class Message:
    """Represents a single message in conversation history."""
    role: str  # "user" or "assistant"
    content: str
    timestamp: float
    discord_id: Optional[str] = None
    author_id: Optional[str] = None
    author_display_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            role=data.get("role", "user"),
            content=data.get("content", ""),
            timestamp=data.get("timestamp", 0.0),
            discord_id=data.get("discord_id"),
            author_id=data.get("author_id"),
            author_display_name=data.get("author_display_name"),
        )

    def to_api(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


class ConversationStore:
    """
    Conversation history keyed by channel.

    Example:
        store = ConversationStore("data/conversations.json")
        await store.load()

        store.add_user_message("123", "What's the weather?", "456", author_id="42")
        store.add_assistant_message("123", "Sunny, 21°C", "789")

        history = store.get_history("123")
    """

    def __init__(
        self,
        file_path: Optional[str] = None,
        history_limit: Optional[int] = None,
        persist: bool = True
    ):
        """
        Initialize the conversation store.

        Args:
            file_path: Path to the conversations file
            history_limit: Messages kept per channel
            persist: Write changes to disk
        """
        self.file_path = file_path or func.get_conversations_file()
        self.history_limit = history_limit or int(func.get_setting("Pipeline", "history_limit", 20))
        self.persist = persist
        self._channels: Dict[str, List[Message]] = {}
        self._lock = asyncio.Lock()
        self._persistence = PersistenceManager(self.file_path)

    async def load(self) -> None:
        """Load conversations from file."""
        if not self.persist:
            return
        data = await self._persistence.load()
        try:
            self._channels = {
                str(channel_id): [Message.from_dict(m) for m in messages][-self.history_limit:]
                for channel_id, messages in data.items()
                if isinstance(messages, list)
            }
        except (AttributeError, TypeError) as e:
            log.error(f"Error loading conversations: {e}")
            self._channels = {}
            return
        log.info(f"Loaded history for {len(self._channels)} channels")

    def _snapshot(self) -> Dict[str, Any]:
        return {
            channel_id: [m.to_dict() for m in messages]
            for channel_id, messages in self._channels.items()
        }

    def schedule_save(self) -> None:
        """Schedule a debounced save."""
        if self.persist:
            self._persistence.schedule_save(self._snapshot())

    async def save_immediate(self) -> bool:
        """Save conversations to file immediately."""
        if not self.persist:
            return True
        return await self._persistence.save_immediate(self._snapshot())

    def _append(self, channel_id: str, message: Message) -> None:
        messages = self._channels.setdefault(str(channel_id), [])
        messages.append(message)
        if len(messages) > self.history_limit:
            del messages[:len(messages) - self.history_limit]
        self.schedule_save()

    def add_user_message(
        self,
        channel_id: str,
        content: str,
        discord_id: str,
        author_id: Optional[str] = None,
        author_display_name: Optional[str] = None
    ) -> None:
        self._append(channel_id, Message(
            role="user",
            content=content,
            timestamp=time.time(),
            discord_id=str(discord_id),
            author_id=author_id,
            author_display_name=author_display_name,
        ))

    def add_assistant_message(self, channel_id: str, content: str, discord_id: Optional[str] = None) -> None:
        self._append(channel_id, Message(
            role="assistant",
            content=content,
            timestamp=time.time(),
            discord_id=str(discord_id) if discord_id else None,
        ))

    def get_history(self, channel_id: str, limit: Optional[int] = None) -> List[Dict[str, str]]:
        """Recent history as API messages, oldest first."""
        messages = self._channels.get(str(channel_id), [])
        if limit is not None:
            messages = messages[-limit:]
        return [m.to_api() for m in messages]

    def get_message(self, channel_id: str, discord_id: str) -> Optional[Message]:
        for message in self._channels.get(str(channel_id), []):
            if message.discord_id == str(discord_id):
                return message
        return None

    async def update_message_by_discord_id(self, channel_id: str, discord_id: str, new_content: str) -> bool:
        """
        Update the content of a message by discord_id.

        Returns:
            True if found and updated, False otherwise
        """
        async with self._lock:
            message = self.get_message(channel_id, discord_id)
            if message is None:
                log.debug(f"Edited message {discord_id} is not in history for channel {channel_id}")
                return False
            message.content = new_content
            self.schedule_save()
            log.debug(f"Updated message {discord_id} in channel {channel_id} history")
            return True

    async def delete_message_by_discord_id(self, channel_id: str, discord_id: str) -> bool:
        """
        Remove a message from history by discord_id.

        Returns:
            True if found and deleted, False otherwise
        """
        async with self._lock:
            messages = self._channels.get(str(channel_id), [])
            for index, message in enumerate(messages):
                if message.discord_id == str(discord_id):
                    del messages[index]
                    self.schedule_save()
                    log.debug(f"Removed message {discord_id} from channel {channel_id} history")
                    return True
            return False

    def clear(self, channel_id: str) -> None:
        self._channels.pop(str(channel_id), None)
        self.schedule_save()
