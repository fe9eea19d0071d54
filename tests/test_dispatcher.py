import asyncio

from AI.base_client import CompletionResult, TokenUsage
from AI.dispatcher import Dispatcher, FunctionCall, PlainMessage
from AI.error_types import DispatchTimeout, DownstreamFailure
from AI.exchange import Exchange
from AI.image_intent import ImageIntentDetector
from tests.fakes import FakeCompletionClient, fresh_telemetry, function_result

CONTEXT = [
    {"role": "system", "content": "You are a test bot."},
    {"role": "user", "content": "hello"},
]


def dispatch(client, content="hello", timeout=5, exchange=None):
    telemetry = fresh_telemetry()
    dispatcher = Dispatcher(client, timeout=timeout, telemetry=telemetry)
    decision = asyncio.run(dispatcher.dispatch(CONTEXT, content, exchange))
    return decision, telemetry


def test_text_answer_is_a_plain_message():
    client = FakeCompletionClient(CompletionResult(text="Hi there!", usage=TokenUsage(12, 4, 16)))
    exchange = Exchange(user_id="42", content="hello")

    decision, telemetry = dispatch(client, exchange=exchange)

    assert isinstance(decision, PlainMessage)
    assert decision.text == "Hi there!"
    assert exchange.usage == TokenUsage(12, 4, 16)
    assert exchange.api_calls["openai"] == 1
    assert telemetry.api_calls["openai"] == 1


def test_context_and_declared_functions_are_offered():
    client = FakeCompletionClient(CompletionResult(text="Hi"))

    dispatch(client)

    call = client.calls[0]
    assert call["messages"] == CONTEXT
    names = {tool["function"]["name"] for tool in call["tools"]}
    assert names == {
        "lookup_weather",
        "lookup_extended_forecast",
        "lookup_time",
        "get_wolfram_short_answer",
        "quake_lookup",
        "generate_image",
        "get_version",
    }


def test_tool_call_becomes_function_call():
    client = FakeCompletionClient(function_result("lookup_time", location="Tokyo"))

    decision, _ = dispatch(client, "what time is it in Tokyo?")

    assert isinstance(decision, FunctionCall)
    assert not decision.failed
    assert decision.name == "lookup_time"
    assert decision.parameters == {"location": "Tokyo"}


def test_image_command_skips_the_completion_call():
    client = FakeCompletionClient()

    decision, telemetry = dispatch(client, "draw me a red fox")

    assert decision == FunctionCall(name="generate_image", parameters={"prompt": "a red fox"})
    assert client.calls == []
    assert telemetry.api_calls["openai"] == 0


def test_prefilter_can_be_disabled():
    client = FakeCompletionClient(CompletionResult(text="I can't draw, sorry"))
    dispatcher = Dispatcher(client, image_detector=None, timeout=5, telemetry=fresh_telemetry())

    decision = asyncio.run(dispatcher.dispatch(CONTEXT, "draw me a red fox"))

    assert isinstance(decision, PlainMessage)
    assert len(client.calls) == 1


def test_timeout_degrades_to_failed_function_call():
    client = FakeCompletionClient((1.0, CompletionResult(text="too late")))

    decision, telemetry = dispatch(client, timeout=0.05)

    assert isinstance(decision, FunctionCall)
    assert decision.failed
    assert decision.name is None
    assert isinstance(decision.error, DispatchTimeout)
    assert telemetry.errors["openai"] == 1


def test_provider_error_degrades_to_failed_function_call():
    client = FakeCompletionClient(DownstreamFailure("openai", "500 Internal Server Error"))

    decision, telemetry = dispatch(client)

    assert decision.failed
    assert decision.error.kind == "openai"
    assert "500" not in decision.error.to_friendly_string()
    assert telemetry.errors["openai"] == 1


def test_unexpected_error_is_wrapped():
    client = FakeCompletionClient(RuntimeError("socket closed"))

    decision, _ = dispatch(client)

    assert decision.failed
    assert isinstance(decision.error, DownstreamFailure)
    assert "RuntimeError" in decision.error.detail


def test_each_dispatcher_builds_its_own_detector():
    first = Dispatcher(FakeCompletionClient(), timeout=5, telemetry=fresh_telemetry())
    second = Dispatcher(FakeCompletionClient(), timeout=5, telemetry=fresh_telemetry())

    assert isinstance(first.image_detector, ImageIntentDetector)
    assert first.image_detector is not second.image_detector
    assert Dispatcher(FakeCompletionClient(), image_detector=None, timeout=5).image_detector is None
