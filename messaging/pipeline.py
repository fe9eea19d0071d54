"""
Message Pipeline - Main Orchestrator

Ties the messaging components together:
Discord → Intake → Channel Lock → Acknowledgment → Rate Limiter → Dispatcher
→ (Function Executor) → Synthesizer → Relationship Tracker → Lock release.

Delete and edit events take a shorter path over the relationship tracker
and the conversation store.
"""

import logging
from typing import Any, Dict, List, Optional

import discord

import utils.func as func
from AI.base_client import BaseAIClient
from AI.dispatcher import Dispatcher, FunctionCall, PlainMessage
from AI.error_types import GENERIC_APOLOGY
from AI.exchange import Exchange
from AI.openai_client import OpenAIClient
from AI.synthesizer import ResponseSynthesizer, SynthesizedResponse
from AI.tool_executor import ExecutionStatus, FunctionExecutor
from AI.tools import FunctionName
from messaging.acknowledgment import AcknowledgmentEmitter
from messaging.channel_lock import ChannelLockManager
from messaging.intake import InboundMessage, MessageIntake
from messaging.rate_limiter import RateLimitPolicy
from messaging.relationships import ContextType, RelationshipTracker
from messaging.store import ConversationStore
from services import (
    ArenaStatsLookup,
    ImageGenerator,
    TimeLookup,
    VersionLookup,
    WeatherLookup,
    WolframLookup,
)
from utils.stats import Telemetry, get_telemetry

log = logging.getLogger(__name__)


DEFAULT_SYSTEM_PROMPT = (
    "You are {bot_name}, a helpful and witty assistant in a Discord server. "
    "Keep answers short and conversational. Use the available functions for "
    "weather, forecasts, local time, factual questions, Quake Live server "
    "stats, image generation and your own version."
)

RATE_LIMIT_MESSAGE = "⏱️ You've reached the rate limit. Please wait {seconds} seconds before trying again."

CONTEXT_TYPES: Dict[FunctionName, ContextType] = {
    FunctionName.LOOKUP_WEATHER: ContextType.WEATHER,
    FunctionName.LOOKUP_EXTENDED_FORECAST: ContextType.WEATHER,
    FunctionName.LOOKUP_TIME: ContextType.TIME,
    FunctionName.GET_WOLFRAM_SHORT_ANSWER: ContextType.KNOWLEDGE,
    FunctionName.QUAKE_LOOKUP: ContextType.ARENA_STATS,
    FunctionName.GENERATE_IMAGE: ContextType.IMAGE,
    FunctionName.GET_VERSION: ContextType.GENERIC,
}


def default_lookups(client: BaseAIClient):
    """The standard collaborator per function, configured from config.yml."""
    lookups = {
        FunctionName.LOOKUP_WEATHER: WeatherLookup(),
        FunctionName.LOOKUP_EXTENDED_FORECAST: WeatherLookup(extended=True),
        FunctionName.LOOKUP_TIME: TimeLookup(),
        FunctionName.GET_WOLFRAM_SHORT_ANSWER: WolframLookup(),
        FunctionName.QUAKE_LOOKUP: ArenaStatsLookup(),
        FunctionName.GET_VERSION: VersionLookup(),
    }
    return lookups, ImageGenerator(client)


class MessagePipeline:
    """
    Main orchestrator for one bot process.

    Every collaborator can be injected; anything left out is built from
    config.yml. State that outlives a message (locks, limiter windows,
    relationships, history) is owned by the pipeline instance.
    """

    def __init__(
        self,
        client: Optional[BaseAIClient] = None,
        intake: Optional[MessageIntake] = None,
        locks: Optional[ChannelLockManager] = None,
        emitter: Optional[AcknowledgmentEmitter] = None,
        rate_limits: Optional[RateLimitPolicy] = None,
        dispatcher: Optional[Dispatcher] = None,
        executor: Optional[FunctionExecutor] = None,
        synthesizer: Optional[ResponseSynthesizer] = None,
        relationships: Optional[RelationshipTracker] = None,
        store: Optional[ConversationStore] = None,
        telemetry: Optional[Telemetry] = None,
        system_prompt: Optional[str] = None
    ):
        """Initialize the message pipeline with optional component overrides."""
        self.telemetry = telemetry or get_telemetry()
        self.intake = intake or MessageIntake()
        self.locks = locks or ChannelLockManager()
        self.emitter = emitter or AcknowledgmentEmitter()
        self.rate_limits = rate_limits or RateLimitPolicy.from_config()
        self.relationships = relationships or RelationshipTracker()
        self.store = store or ConversationStore()

        if client is None and (dispatcher is None or executor is None or synthesizer is None):
            client = OpenAIClient()
        self.client = client

        self.dispatcher = dispatcher or Dispatcher(client, telemetry=self.telemetry)
        if executor is None:
            lookups, image_generator = default_lookups(client)
            executor = FunctionExecutor(
                self.rate_limits, lookups, image_generator, telemetry=self.telemetry
            )
        self.executor = executor
        self.synthesizer = synthesizer or ResponseSynthesizer(client, telemetry=self.telemetry)

        bot_name = func.get_setting("Pipeline", "bot_name", "ChimpGPT")
        self.system_prompt = (
            system_prompt
            or func.get_setting("Pipeline", "system_prompt")
            or DEFAULT_SYSTEM_PROMPT
        ).format(bot_name=bot_name)

    async def initialize(self) -> None:
        """Load persisted state."""
        await self.store.load()
        await self.intake.blocklist.load()

    def build_context(self, channel_id: str) -> List[Dict[str, Any]]:
        return [{"role": "system", "content": self.system_prompt}, *self.store.get_history(channel_id)]

    # =========================================================================
    # New messages
    # =========================================================================

    async def handle_message(self, message: InboundMessage) -> None:
        """
        Process an incoming message end to end.

        Never raises. The channel lock is released on every path.
        """
        if not await self.intake.should_process(message):
            return

        if not self.locks.acquire(message.channel_id):
            return

        exchange: Optional[Exchange] = None
        try:
            self.telemetry.track_message()
            ack = self.emitter.send(message.channel)
            exchange = Exchange(
                user_id=message.author_id,
                content=message.content,
                ack=ack,
                user_display_name=message.author_display_name,
            )
            self.locks.pipeline_started(message.channel_id)
            try:
                await self._process(message, exchange)
            finally:
                self.locks.pipeline_finished(message.channel_id)
        except Exception as e:
            log.error(
                f"Unhandled error processing message {message.id} in channel {message.channel_id}: {e}",
                exc_info=True
            )
        finally:
            try:
                await self._apologize(message, exchange)
            finally:
                self.locks.release(message.channel_id)

    async def _process(self, message: InboundMessage, exchange: Exchange) -> None:
        # Image commands are charged against the generation budget only
        decision = self.dispatcher.prefilter(message.content)
        if decision is None:
            limit = self.rate_limits.charge(message.author_id, "message")
            if limit.limited:
                self.telemetry.track_rate_limit(message.author_id)
                await exchange.ack.finalize(RATE_LIMIT_MESSAGE.format(seconds=limit.seconds_before_next))
                self._log_timing(message, exchange, "rate_limited")
                return

        self.store.add_user_message(
            message.channel_id,
            message.content,
            message.id,
            author_id=message.author_id,
            author_display_name=message.author_display_name,
        )
        context = self.build_context(message.channel_id)

        if decision is None:
            decision = await self.dispatcher.dispatch(context, message.content, exchange)

        if isinstance(decision, PlainMessage):
            response = await self.synthesizer.finalize_plain(decision, exchange)
            await self._record(message, exchange, response, ContextType.GENERIC)
            self._log_timing(message, exchange, "plain", response.used_fallback)
            return

        if decision.failed:
            await self.synthesizer.finalize_failure(decision, exchange)
            self._log_timing(message, exchange, "dispatch_error", True)
            return

        await self._run_function(message, exchange, decision, context)

    async def _run_function(
        self,
        message: InboundMessage,
        exchange: Exchange,
        call: FunctionCall,
        context: List[Dict[str, Any]]
    ) -> None:
        outcome = await self.executor.execute(call, exchange)
        function = FunctionName.parse(call.name)
        context_type = CONTEXT_TYPES.get(function, ContextType.GENERIC)

        if outcome.status is ExecutionStatus.NEEDS_SYNTHESIS:
            response = await self.synthesizer.synthesize(outcome.result, context, exchange)
            await self._record(message, exchange, response, context_type)
            self._log_timing(message, exchange, f"function:{call.name}", response.used_fallback)
        elif outcome.status is ExecutionStatus.ATTACHMENT:
            prompt = outcome.result.parameters.get("prompt", message.content)
            response = SynthesizedResponse(text=outcome.message, body=f"[Generated image: {prompt}]")
            await self._record(message, exchange, response, context_type, snippet=prompt)
            self._log_timing(message, exchange, f"function:{call.name}")
        else:
            self._log_timing(message, exchange, f"function:{call.name}:{outcome.status.value}", True)

    async def _record(
        self,
        message: InboundMessage,
        exchange: Exchange,
        response: SynthesizedResponse,
        context_type: ContextType,
        snippet: Optional[str] = None
    ) -> None:
        """Remember the reply for history and for delete handling."""
        bot_message = await exchange.ack.resolve()
        if bot_message is None:
            return

        self.store.add_assistant_message(message.channel_id, response.body or response.text, str(bot_message.id))
        self.relationships.store(
            message.id,
            bot_message,
            context_type,
            snippet if snippet is not None else message.content,
            {"id": message.author_id, "display_name": message.author_display_name},
        )

    def _log_timing(
        self,
        message: InboundMessage,
        exchange: Exchange,
        decision_type: str,
        used_fallback: bool = False
    ) -> None:
        log.info(
            f"Message {message.id} handled: decision={decision_type} "
            f"fallback={used_fallback} total_duration_ms={exchange.elapsed_ms()}"
        )

    async def _apologize(self, message: InboundMessage, exchange: Optional[Exchange]) -> None:
        """Finalize the reply with an apology unless something already did."""
        if exchange is not None and exchange.ack is not None:
            if not exchange.ack.is_final:
                log.warning(f"Message {message.id} left its reply unfinished; apologizing")
                await exchange.ack.finalize(GENERIC_APOLOGY)
            return
        if message.channel is None:
            return
        try:
            await message.channel.send(GENERIC_APOLOGY)
        except discord.HTTPException as e:
            log.error(f"Could not send apology to channel {message.channel_id}: {e}")

    # =========================================================================
    # Deletes and edits
    # =========================================================================

    async def handle_delete(self, channel_id: str, message_id: str, author_is_bot: bool = False) -> bool:
        """
        A user deleted a message: drop it from history and replace the bot's
        reply with an annotation of what was asked.

        Returns:
            True if a bot reply was annotated
        """
        try:
            if author_is_bot or not self.intake.is_allowed_channel(channel_id):
                return False

            await self.store.delete_message_by_discord_id(channel_id, message_id)

            relationship = self.relationships.consume(message_id)
            if relationship is None or relationship.bot_message is None:
                return False

            annotation = self.relationships.annotation(relationship)
            try:
                await relationship.bot_message.edit(content=annotation, attachments=[])
            except discord.NotFound:
                log.debug(f"Bot reply {relationship.bot_message_id} already gone")
                return False
            except discord.HTTPException as e:
                log.error(f"Failed to annotate bot reply {relationship.bot_message_id}: {e}")
                return False

            log.info(
                f"Annotated reply {relationship.bot_message_id} after message {message_id} "
                f"was deleted ({relationship.context_type.value})"
            )
            return True
        except Exception as e:
            log.error(f"Error handling deletion of message {message_id}: {e}", exc_info=True)
            return False

    async def handle_edit(self, message: InboundMessage) -> bool:
        """
        A user edited a message: update the history record.
        The relationship tracker is left alone.

        Returns:
            True if a history record was updated
        """
        try:
            if message.is_bot_author or not self.intake.is_allowed_channel(message.channel_id):
                return False
            return await self.store.update_message_by_discord_id(
                message.channel_id, message.id, message.content
            )
        except Exception as e:
            log.error(f"Error handling edit of message {message.id}: {e}", exc_info=True)
            return False

    def cleanup(self) -> int:
        """Drop expired relationships."""
        return self.relationships.cleanup()

    def get_stats(self) -> Dict[str, Any]:
        """Get pipeline statistics."""
        return {
            "telemetry": self.telemetry.get_stats(),
            "active_channels": self.locks.active_count,
            "relationships": len(self.relationships),
        }

    async def shutdown(self) -> None:
        """Shutdown the pipeline gracefully."""
        await self.store.save_immediate()
        log.debug("MessagePipeline shutdown complete")


# Global pipeline instance
_global_pipeline: Optional[MessagePipeline] = None


def get_pipeline() -> MessagePipeline:
    """Get the global message pipeline instance."""
    global _global_pipeline
    if _global_pipeline is None:
        _global_pipeline = MessagePipeline()
    return _global_pipeline


async def init_pipeline(**overrides) -> MessagePipeline:
    """
    Initialize the global message pipeline and load persisted state.

    Returns:
        The initialized pipeline
    """
    global _global_pipeline
    _global_pipeline = MessagePipeline(**overrides)
    await _global_pipeline.initialize()
    return _global_pipeline
