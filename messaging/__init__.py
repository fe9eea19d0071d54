"""
Messaging System - Message Pipeline

Components:
- MessageIntake: Decides whether a message is processed at all
- ChannelLockManager: One pipeline per channel at a time
- AcknowledgmentEmitter: The single reply message, edited in place
- RateLimitPolicy: Per-user point budgets
- RelationshipTracker: User message → bot reply, for delete handling
- ConversationStore: Per-channel conversation history
- MessagePipeline: Main orchestrator

Usage:
    from messaging import get_pipeline, InboundMessage

    pipeline = get_pipeline()
    await pipeline.handle_message(InboundMessage.from_discord(discord_message))
"""

__version__ = '1.4.0'

from messaging.intake import InboundMessage, MessageIntake
from messaging.pipeline import MessagePipeline, get_pipeline, init_pipeline

__all__ = ['InboundMessage', 'MessageIntake', 'MessagePipeline', 'get_pipeline', 'init_pipeline']
