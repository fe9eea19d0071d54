"""Test doubles for Discord objects, the completion client and collaborators."""

import asyncio
import itertools
import time
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import discord

from AI.base_client import BaseAIClient, CompletionResult, TokenUsage
from AI.tools import FunctionName
from messaging.intake import InboundMessage, MessageIntake
from messaging.rate_limiter import RateLimitPolicy, RateLimiter
from messaging.store import ConversationStore
from services.image_generation import GeneratedImage
from utils.stats import Telemetry

_ids = itertools.count(900000)


def not_found() -> discord.NotFound:
    return discord.NotFound(SimpleNamespace(status=404, reason="Not Found"), "Unknown Message")


class FakeBotMessage:
    """Stands in for a discord.Message sent by the bot."""

    def __init__(self, content: str, channel: "FakeChannel"):
        self.id = next(_ids)
        self.content = content
        self.channel = channel
        self.attachments: List[Any] = []
        self.edits: List[Dict[str, Any]] = []
        self.deleted = False
        self.fail_with: Optional[Exception] = None

    async def edit(self, content=None, attachments=None, **kwargs):
        if self.fail_with is not None:
            raise self.fail_with
        self.edits.append({"content": content, "attachments": attachments})
        self.content = content
        if attachments is not None:
            self.attachments = attachments

    async def delete(self):
        if self.fail_with is not None:
            raise self.fail_with
        self.deleted = True


class FakeChannel:
    def __init__(self, channel_id: str = "100", send_error: Optional[Exception] = None, send_delay: float = 0):
        self.id = int(channel_id)
        self.sent: List[FakeBotMessage] = []
        self.send_error = send_error
        self.send_delay = send_delay

    async def send(self, content=None, **kwargs):
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.send_error is not None:
            raise self.send_error
        message = FakeBotMessage(content, self)
        self.sent.append(message)
        return message

    @property
    def last(self) -> FakeBotMessage:
        return self.sent[-1]


def make_inbound(
    content: str,
    channel: Optional[FakeChannel] = None,
    author_id: str = "42",
    display_name: str = "Sam",
    message_id: Optional[str] = None,
    is_bot: bool = False,
    is_direct: bool = False
) -> InboundMessage:
    channel = channel or FakeChannel()
    return InboundMessage(
        id=message_id or str(next(_ids)),
        channel_id=str(channel.id),
        author_id=author_id,
        content=content,
        created_at=time.time(),
        is_bot_author=is_bot,
        is_direct=is_direct,
        author_name=display_name.lower(),
        author_display_name=display_name,
        channel=channel,
    )


class FakeCompletionClient(BaseAIClient):
    """
    Scripted completion client.

    Each queued item is a CompletionResult, an exception to raise, or a
    ``(delay, item)`` tuple to wait first.
    """

    provider_name = "Fake"

    def __init__(self, *responses):
        super().__init__()
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []
        self.image_calls: List[Dict[str, Any]] = []

    async def complete(self, messages, tools=None, model=None, **kwargs):
        self.calls.append({"messages": messages, "tools": tools, "model": model})
        item = self.responses.pop(0) if self.responses else CompletionResult(text="ok")
        if isinstance(item, tuple):
            delay, item = item
            await asyncio.sleep(delay)
        if isinstance(item, BaseException):
            raise item
        return item

    async def generate_image(self, prompt, size="1024x1024", model=None):
        self.image_calls.append({"prompt": prompt, "size": size, "model": model})
        return {"b64_json": "aW1hZ2U=", "url": None, "revised_prompt": None}


def function_result(name: str, usage: Optional[TokenUsage] = None, **arguments) -> CompletionResult:
    return CompletionResult(function_name=name, arguments=arguments, usage=usage or TokenUsage(10, 5, 15))


class FakeLookup:
    def __init__(self, kind: str, result: Any = None, error: Optional[Exception] = None):
        self.kind = kind
        self.result = result
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def execute(self, parameters):
        self.calls.append(parameters)
        if self.error is not None:
            raise self.error
        return self.result


class FakeImageGenerator:
    def __init__(self, error: Optional[Exception] = None, delay: float = 0):
        self.error = error
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, prompt, size=None):
        self.calls.append({"prompt": prompt, "size": size})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return GeneratedImage(
            data=b"\x89PNG fake",
            prompt=prompt,
            model="gpt-image-1",
            size=size or "1024x1024",
            duration_ms=1200,
        )


class StaticBlocklist:
    def __init__(self, blocked=()):
        self.blocked = {str(b) for b in blocked}
        self.checked: List[str] = []

    async def load(self):
        pass

    async def is_blocked(self, user_id):
        self.checked.append(str(user_id))
        return str(user_id) in self.blocked


AUCKLAND_WEATHER = {
    "location": {"name": "Auckland", "country": "New Zealand", "localtime": "2024-05-01 10:00"},
    "current": {"temp_c": 18, "condition": {"text": "Cloudy"}, "humidity": 77, "wind_kph": 14.4, "wind_dir": "SW"},
}


def make_lookups(**overrides) -> Dict[FunctionName, FakeLookup]:
    lookups = {
        FunctionName.LOOKUP_WEATHER: FakeLookup("weather", AUCKLAND_WEATHER),
        FunctionName.LOOKUP_EXTENDED_FORECAST: FakeLookup("weather", AUCKLAND_WEATHER),
        FunctionName.LOOKUP_TIME: FakeLookup("time", {"location": {"name": "Tokyo", "tz_id": "Asia/Tokyo", "localtime": "2024-05-01 07:00"}}),
        FunctionName.GET_WOLFRAM_SHORT_ANSWER: FakeLookup("wolfram", {"query": "2+2", "answer": "4"}),
        FunctionName.QUAKE_LOOKUP: FakeLookup("quake", {"servers": []}),
        FunctionName.GET_VERSION: FakeLookup("version", {"name": "ChimpGPT", "version": "1.4.0"}),
    }
    for name, lookup in overrides.items():
        lookups[FunctionName(name)] = lookup
    return lookups


def make_policy(clock=None, **kwargs) -> RateLimitPolicy:
    limiter = RateLimiter(clock=clock) if clock else RateLimiter()
    return RateLimitPolicy(limiter=limiter, **kwargs)


def make_intake(channel_ids=("100",), blocked=()) -> MessageIntake:
    return MessageIntake(
        allowed_channels=channel_ids,
        ignored_prefixes=[".."],
        blocklist=StaticBlocklist(blocked),
    )


def make_store() -> ConversationStore:
    return ConversationStore(file_path="unused.json", history_limit=20, persist=False)


def fresh_telemetry() -> Telemetry:
    return Telemetry()


def build_pipeline(
    client: FakeCompletionClient,
    lookups=None,
    image_generator=None,
    policy: Optional[RateLimitPolicy] = None,
    intake: Optional[MessageIntake] = None,
    dispatch_timeout: float = 5,
    synthesis_timeout: float = 5
):
    from AI.dispatcher import Dispatcher
    from AI.synthesizer import ResponseSynthesizer
    from AI.tool_executor import FunctionExecutor
    from messaging.acknowledgment import AcknowledgmentEmitter
    from messaging.pipeline import MessagePipeline
    from messaging.relationships import RelationshipTracker

    telemetry = fresh_telemetry()
    policy = policy or make_policy()
    return MessagePipeline(
        client=client,
        intake=intake or make_intake(),
        emitter=AcknowledgmentEmitter("⏳ Thinking..."),
        rate_limits=policy,
        dispatcher=Dispatcher(client, timeout=dispatch_timeout, telemetry=telemetry),
        executor=FunctionExecutor(
            policy,
            lookups if lookups is not None else make_lookups(),
            image_generator or FakeImageGenerator(),
            telemetry=telemetry,
            loading_emoji="⏳",
            max_length=2000,
        ),
        synthesizer=ResponseSynthesizer(
            client,
            timeout=synthesis_timeout,
            home_timezone="Pacific/Auckland",
            max_length=2000,
            telemetry=telemetry,
        ),
        relationships=RelationshipTracker(),
        store=make_store(),
        telemetry=telemetry,
        system_prompt="You are a test bot.",
    )
