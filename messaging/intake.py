"""
Message Intake - Message Validation and Filtering

Handles initial validation and filtering of incoming Discord messages.
The gate is an ordered chain, cheapest checks first, that stops at the
first check a message fails.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

import discord

import utils.func as func
from utils.blocklist import BlockedUserRegistry

log = logging.getLogger(__name__)


@dataclass
class InboundMessage:
    """An inbound chat message as the pipeline sees it."""
    id: str
    channel_id: str
    author_id: str
    content: str
    created_at: float
    is_bot_author: bool
    is_direct: bool
    referenced_message_id: Optional[str] = None
    author_name: str = ""
    author_display_name: str = ""
    channel: Any = None
    raw_message: Any = None

    @classmethod
    def from_discord(cls, message: discord.Message) -> "InboundMessage":
        """
        Build an InboundMessage from a Discord message.

        Webhook messages count as bot messages.
        """
        author = message.author
        reference = getattr(message, "reference", None)
        return cls(
            id=str(message.id),
            channel_id=str(message.channel.id),
            author_id=str(author.id),
            content=message.content or "",
            created_at=message.created_at.timestamp(),
            is_bot_author=bool(author.bot) or getattr(message, "webhook_id", None) is not None,
            is_direct=message.guild is None,
            referenced_message_id=str(reference.message_id) if reference and reference.message_id else None,
            author_name=author.name,
            author_display_name=getattr(author, "display_name", None) or author.name,
            channel=message.channel,
            raw_message=message,
        )


class MessageIntake:
    """
    Decides whether a message should be processed at all.

    Checks, in order: bot author, direct message, ignore prefix, channel
    allow-list, blocked user. Rejections are only logged.

    Example:
        intake = MessageIntake()
        if await intake.should_process(InboundMessage.from_discord(message)):
            ...
    """

    def __init__(
        self,
        allowed_channels: Optional[Iterable[str]] = None,
        ignored_prefixes: Optional[List[str]] = None,
        blocklist: Optional[BlockedUserRegistry] = None
    ):
        """
        Initialize the message intake.

        Args:
            allowed_channels: Channel IDs the bot answers in (defaults to config)
            ignored_prefixes: Content prefixes that mark a message as not for the bot
            blocklist: Blocked user registry
        """
        if allowed_channels is None:
            allowed_channels = func.get_allowed_channels()
        self._allowed_channels = {str(channel_id) for channel_id in allowed_channels}

        if ignored_prefixes is None:
            prefix = func.get_setting("Discord", "ignore_prefix", "..")
            ignored_prefixes = prefix if isinstance(prefix, list) else [prefix]
        self._ignored_prefixes = [p for p in ignored_prefixes if p]

        self.blocklist = blocklist or BlockedUserRegistry()

        if not self._allowed_channels:
            log.warning("No allowed channels configured; every channel message will be ignored")

    def _has_ignored_prefix(self, content: str) -> bool:
        """
        Check if message starts with an ignored prefix.

        Args:
            content: Message content

        Returns:
            True if message has ignored prefix
        """
        return any(content.startswith(prefix) for prefix in self._ignored_prefixes)

    def is_allowed_channel(self, channel_id: str) -> bool:
        return str(channel_id) in self._allowed_channels

    async def check(self, message: InboundMessage) -> Optional[str]:
        """
        Run the gate.

        Args:
            message: Inbound message

        Returns:
            The rejection reason, or None if the message should be processed
        """
        if message.is_bot_author:
            reason = "bot author"
        elif message.is_direct:
            reason = "direct message"
        elif self._has_ignored_prefix(message.content):
            reason = "ignore prefix"
        elif not self.is_allowed_channel(message.channel_id):
            reason = "channel not allowed"
        elif await self.blocklist.is_blocked(message.author_id):
            log.info(f"Ignoring message {message.id} from blocked user {message.author_id}")
            return "blocked user"
        else:
            return None

        log.debug(f"Skipping message {message.id}: {reason}")
        return reason

    async def should_process(self, message: InboundMessage) -> bool:
        return await self.check(message) is None

    def set_ignored_prefixes(self, prefixes: List[str]) -> None:
        """
        Set custom ignored prefixes.

        Args:
            prefixes: List of prefixes to ignore
        """
        self._ignored_prefixes = prefixes
        log.info(f"Updated ignored prefixes: {prefixes}")
