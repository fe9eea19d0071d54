"""
Acknowledgment - The single reply slot

One bot message is sent per processed inbound message and then edited in
place as the pipeline progresses. Edits only move forward through the
stages, and nothing may touch the message after the final edit.
"""

import asyncio
import io
import logging
from enum import IntEnum
from typing import Any, Optional

import discord

import utils.func as func

log = logging.getLogger(__name__)


class AckStage(IntEnum):
    PROVISIONAL = 0
    STATUS = 1
    FINAL = 2


class Acknowledgment:
    """
    Handle to the reply message.

    The initial send runs as a task; every operation awaits it first. If the
    send failed the handle is dead and all operations are no-ops.
    Platform failures (message deleted, missing permissions, HTTP errors)
    are logged and reported as False, never raised.
    """

    def __init__(self, send_task: "asyncio.Future", content: str = ""):
        self._send_task = send_task
        self.content = content
        self.stage = AckStage.PROVISIONAL
        self.message: Optional[discord.Message] = None
        self.gone = False

    async def resolve(self) -> Optional[discord.Message]:
        """Wait for the initial send; None if it failed."""
        if self.message is not None or self.gone:
            return self.message
        try:
            self.message = await self._send_task
        except discord.HTTPException as e:
            log.error(f"Failed to send acknowledgment: {e}")
            self.gone = True
        except Exception as e:
            log.error(f"Unexpected error sending acknowledgment: {e}")
            self.gone = True
        return self.message

    @property
    def is_final(self) -> bool:
        return self.stage is AckStage.FINAL

    @property
    def message_id(self) -> Optional[str]:
        return str(self.message.id) if self.message is not None else None

    async def edit(self, content: str, attachment: Any = None, stage: AckStage = AckStage.STATUS) -> bool:
        """
        Edit the reply message.

        Args:
            content: New message text
            attachment: Object with ``data`` (bytes) and ``filename``
            stage: Pipeline stage making the edit

        Returns:
            True if Discord accepted the edit
        """
        if self.stage is AckStage.FINAL:
            log.warning("Refusing to edit acknowledgment after its final edit")
            return False
        if stage < self.stage:
            log.warning(f"Refusing {stage.name} edit after {self.stage.name}")
            return False
        # Claim the stage before awaiting so a late lower-stage edit is refused
        self.stage = stage

        message = await self.resolve()
        if message is None:
            return False

        kwargs = {"content": content}
        if attachment is not None:
            kwargs["attachments"] = [
                discord.File(io.BytesIO(attachment.data), filename=attachment.filename)
            ]

        try:
            await message.edit(**kwargs)
        except discord.NotFound:
            log.warning(f"Acknowledgment {message.id} was deleted, cannot edit")
            self.gone = True
            return False
        except discord.Forbidden:
            log.error(f"No permission to edit acknowledgment {message.id}")
            return False
        except discord.HTTPException as e:
            log.error(f"Failed to edit acknowledgment {message.id}: {e}")
            return False

        self.content = content
        return True

    async def status(self, content: str) -> bool:
        return await self.edit(content, stage=AckStage.STATUS)

    async def finalize(self, content: str, attachment: Any = None) -> bool:
        return await self.edit(content, attachment=attachment, stage=AckStage.FINAL)

    async def delete(self) -> bool:
        message = await self.resolve()
        if message is None:
            return False
        try:
            await message.delete()
        except discord.NotFound:
            log.debug(f"Acknowledgment {message.id} already deleted")
            self.gone = True
            return False
        except discord.HTTPException as e:
            log.error(f"Failed to delete acknowledgment {message.id}: {e}")
            return False

        self.gone = True
        self.stage = AckStage.FINAL
        return True


class AcknowledgmentEmitter:
    """Starts the provisional reply without waiting for Discord."""

    def __init__(self, provisional_text: Optional[str] = None):
        if provisional_text is None:
            emoji = func.get_setting("Discord", "loading_emoji", "⏳")
            provisional_text = f"{emoji} Thinking..."
        self.provisional_text = provisional_text

    def send(self, channel, text: Optional[str] = None) -> Acknowledgment:
        """
        Schedule the initial send and return the handle immediately.

        Must be called from a running event loop.
        """
        content = text or self.provisional_text
        task = asyncio.ensure_future(channel.send(content))
        return Acknowledgment(task, content)
