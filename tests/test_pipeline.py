import asyncio

from AI.base_client import CompletionResult
from AI.error_types import GENERIC_APOLOGY
from AI.synthesizer import FALLBACK_APOLOGY
from messaging.pipeline import RATE_LIMIT_MESSAGE
from messaging.rate_limiter import RateLimitRule
from tests.fakes import (
    FakeChannel,
    FakeCompletionClient,
    FakeLookup,
    build_pipeline,
    function_result,
    make_inbound,
    make_intake,
    make_lookups,
    make_policy,
)


def weather_client(answer="It's 18°C and cloudy in Auckland"):
    return FakeCompletionClient(
        function_result("lookup_weather", location="Auckland"),
        CompletionResult(text=answer),
    )


def test_weather_question_is_answered_with_lookup_result():
    lookup = FakeLookup("weather", {"location": {"name": "Auckland"}, "current": {"temp_c": 18, "condition": {"text": "Cloudy"}}})
    client = weather_client()
    pipeline = build_pipeline(client, lookups=make_lookups(lookup_weather=lookup))
    channel = FakeChannel()

    asyncio.run(pipeline.handle_message(make_inbound("What's the weather in Auckland?", channel)))

    assert len(channel.sent) == 1
    final = channel.last.content
    assert "Auckland" in final and "18" in final
    assert "\n\n-# " in final
    assert lookup.calls == [{"location": "Auckland"}]
    assert len(client.calls) == 2
    assert pipeline.telemetry.messages == 1
    assert pipeline.telemetry.api_calls == {"openai": 2, "weather": 1}


def test_weather_answer_survives_synthesis_failure():
    client = FakeCompletionClient(
        function_result("lookup_weather", location="Auckland"),
        RuntimeError("synthesis exploded"),
    )
    pipeline = build_pipeline(client)
    channel = FakeChannel()

    asyncio.run(pipeline.handle_message(make_inbound("What's the weather in Auckland?", channel)))

    assert channel.last.content.startswith("Current weather in Auckland: Cloudy, 18°C")


def test_exhausted_budget_gets_wait_message_and_no_calls():
    policy = make_policy(general=RateLimitRule(points=1, duration=30))
    policy.charge("42", "message")
    client = FakeCompletionClient()
    lookups = make_lookups()
    pipeline = build_pipeline(client, lookups=lookups, policy=policy)
    channel = FakeChannel()

    asyncio.run(pipeline.handle_message(make_inbound("What's the weather in Auckland?", channel)))

    assert channel.last.content.startswith("⏱️ You've reached the rate limit. Please wait ")
    assert channel.last.content == RATE_LIMIT_MESSAGE.format(seconds=30)
    assert client.calls == []
    assert all(lookup.calls == [] for lookup in lookups.values())
    assert pipeline.telemetry.rate_limits["42"] == 1
    assert pipeline.store.get_history(str(channel.id)) == []


def test_deleted_question_turns_reply_into_annotation():
    client = weather_client()
    pipeline = build_pipeline(client)
    channel = FakeChannel()
    inbound = make_inbound("What's the weather in Auckland?", channel, display_name="Sam")

    async def scenario():
        await pipeline.handle_message(inbound)
        first = await pipeline.handle_delete(inbound.channel_id, inbound.id)
        second = await pipeline.handle_delete(inbound.channel_id, inbound.id)
        return first, second

    first, second = asyncio.run(scenario())

    assert first and not second
    annotation = channel.last.content
    assert "Sam" in annotation and "Weather" in annotation
    assert "What's the weather in Auckland?" in annotation
    assert channel.last.attachments == []
    history = pipeline.store.get_history(inbound.channel_id)
    assert [m["role"] for m in history] == ["assistant"]


def test_deleting_a_bot_message_is_ignored():
    pipeline = build_pipeline(weather_client())
    channel = FakeChannel()
    inbound = make_inbound("What's the weather in Auckland?", channel)

    async def scenario():
        await pipeline.handle_message(inbound)
        return await pipeline.handle_delete(inbound.channel_id, inbound.id, author_is_bot=True)

    assert not asyncio.run(scenario())
    assert inbound.id in pipeline.relationships


def test_delete_after_reply_vanished_is_handled():
    pipeline = build_pipeline(weather_client())
    channel = FakeChannel()
    inbound = make_inbound("What's the weather in Auckland?", channel)

    async def scenario():
        await pipeline.handle_message(inbound)
        from tests.fakes import not_found
        channel.last.fail_with = not_found()
        return await pipeline.handle_delete(inbound.channel_id, inbound.id)

    assert not asyncio.run(scenario())
    assert inbound.id not in pipeline.relationships


def test_edit_updates_history_and_keeps_relationship():
    pipeline = build_pipeline(FakeCompletionClient(CompletionResult(text="Hello Sam!")))
    channel = FakeChannel()
    inbound = make_inbound("helo", channel)

    async def scenario():
        await pipeline.handle_message(inbound)
        inbound.content = "hello"
        return await pipeline.handle_edit(inbound)

    assert asyncio.run(scenario())
    assert pipeline.store.get_message(inbound.channel_id, inbound.id).content == "hello"
    assert inbound.id in pipeline.relationships
    assert channel.last.content.startswith("Hello Sam!")


def test_image_command_goes_straight_to_generation():
    client = FakeCompletionClient()
    policy = make_policy(general=RateLimitRule(points=1, duration=30))
    policy.charge("42", "message")
    pipeline = build_pipeline(client, policy=policy)
    channel = FakeChannel()
    inbound = make_inbound("draw me a red fox", channel)

    async def scenario():
        await pipeline.handle_message(inbound)
        return await pipeline.handle_delete(inbound.channel_id, inbound.id)

    annotated = asyncio.run(scenario())

    assert client.calls == []
    edits = channel.last.edits
    assert any(edit["attachments"] for edit in edits)
    assert annotated
    assert channel.last.content == "🎨 **Sam** requested an image but removed their request.\n*Theme: a red fox*"


def test_gate_stops_at_first_failing_check():
    intake = make_intake(channel_ids=("100",), blocked=("42",))
    client = FakeCompletionClient()
    pipeline = build_pipeline(client, intake=intake)
    allowed, elsewhere = FakeChannel("100"), FakeChannel("999")

    async def scenario():
        await pipeline.handle_message(make_inbound("hi", allowed, is_bot=True))
        await pipeline.handle_message(make_inbound("hi", allowed, is_direct=True))
        await pipeline.handle_message(make_inbound("..hi", allowed))
        await pipeline.handle_message(make_inbound("hi", elsewhere))
        await pipeline.handle_message(make_inbound("hi", allowed))

    asyncio.run(scenario())

    assert intake.blocklist.checked == ["42"]
    assert allowed.sent == [] and elsewhere.sent == []
    assert client.calls == []
    assert pipeline.telemetry.messages == 0


def test_dispatch_timeout_gets_friendly_reply():
    client = FakeCompletionClient((1.0, CompletionResult(text="too late")))
    pipeline = build_pipeline(client, dispatch_timeout=0.05)
    channel = FakeChannel()

    asyncio.run(pipeline.handle_message(make_inbound("hello", channel)))

    assert channel.last.content.startswith("I'm taking too long to think.")
    assert not pipeline.locks.is_locked(str(channel.id))


def test_unexpected_error_apologizes_and_releases_lock():
    pipeline = build_pipeline(FakeCompletionClient(CompletionResult(text="hi")))
    channel = FakeChannel()

    def explode(*args, **kwargs):
        raise RuntimeError("store unavailable")

    pipeline.store.add_user_message = explode

    asyncio.run(pipeline.handle_message(make_inbound("hello", channel)))

    assert channel.last.content == GENERIC_APOLOGY
    assert not pipeline.locks.is_locked(str(channel.id))


def test_slow_synthesis_falls_back_to_raw_result():
    client = FakeCompletionClient(
        function_result("get_wolfram_short_answer", query="distance to the moon"),
        (1.0, CompletionResult(text="too late")),
    )
    lookup = FakeLookup("wolfram", {"query": "distance to the moon", "answer": "about 384400 km"})
    pipeline = build_pipeline(client, lookups=make_lookups(get_wolfram_short_answer=lookup), synthesis_timeout=0.05)
    channel = FakeChannel()

    asyncio.run(pipeline.handle_message(make_inbound("how far away is the moon?", channel)))

    final = channel.last.content
    assert final.startswith(FALLBACK_APOLOGY)
    assert "about 384400 km" in final
    assert "```json" in final
    assert not pipeline.locks.is_locked(str(channel.id))
