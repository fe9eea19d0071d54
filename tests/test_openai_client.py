import asyncio
from types import SimpleNamespace

import httpx
import openai
import pytest

from AI.base_client import BaseAIClient, TokenUsage
from AI.error_types import ContentPolicyViolation, EmptyResponse
from AI.openai_client import OpenAIClient


@pytest.fixture(autouse=True)
def clean_circuits():
    BaseAIClient.reset_circuit_breakers()
    yield
    BaseAIClient.reset_circuit_breakers()


class StubCompletions:
    def __init__(self, response):
        self.response = response
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        return self.response


class StubImages:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    async def generate(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


class StubAsyncOpenAI:
    def __init__(self, completion=None, images=None):
        self.chat = SimpleNamespace(completions=StubCompletions(completion))
        self.images = images or StubImages()
        self.closed = False

    async def close(self):
        self.closed = True


def tool_call(name, arguments):
    return SimpleNamespace(function=SimpleNamespace(name=name, arguments=arguments))


def chat_response(content=None, tool_calls=None):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content, tool_calls=tool_calls))],
        usage=SimpleNamespace(prompt_tokens=12, completion_tokens=3, total_tokens=15),
    )


def make_client(monkeypatch, stub):
    client = OpenAIClient(api_key="sk-test", base_url="https://api.example.test/v1", model="gpt-test")
    monkeypatch.setattr(client, "create_client", lambda: stub)
    return client


def content_policy_error():
    request = httpx.Request("POST", "https://api.example.test/v1/images/generations")
    return openai.BadRequestError(
        "Your request was rejected as a result of our safety system.",
        response=httpx.Response(400, request=request),
        body={"code": "content_policy_violation", "message": "Rejected by the safety system."},
    )


def test_complete_honors_only_the_first_tool_call(monkeypatch):
    stub = StubAsyncOpenAI(completion=chat_response(tool_calls=[
        tool_call("lookup_weather", '{"location": "Auckland"}'),
        tool_call("lookup_time", '{"location": "Tokyo"}'),
    ]))
    client = make_client(monkeypatch, stub)
    tools = [{"type": "function", "function": {"name": "lookup_weather"}}]

    result = asyncio.run(client.complete([{"role": "user", "content": "weather?"}], tools=tools))

    assert result.function_name == "lookup_weather"
    assert result.arguments == {"location": "Auckland"}
    assert result.usage == TokenUsage(12, 3, 15)
    assert stub.chat.completions.requests[0]["tool_choice"] == "auto"
    assert stub.closed


def test_complete_accepts_dict_arguments_from_compatible_providers(monkeypatch):
    stub = StubAsyncOpenAI(completion=chat_response(tool_calls=[
        tool_call("get_version", {"verbose": True}),
    ]))
    client = make_client(monkeypatch, stub)

    result = asyncio.run(client.complete([], tools=[{"type": "function"}]))

    assert result.arguments == {"verbose": True}


def test_complete_returns_text_when_no_tool_is_requested(monkeypatch):
    stub = StubAsyncOpenAI(completion=chat_response(content="Kia ora!"))
    client = make_client(monkeypatch, stub)

    result = asyncio.run(client.complete([{"role": "user", "content": "hi"}]))

    assert result.text == "Kia ora!"
    assert result.function_name is None
    assert "tools" not in stub.chat.completions.requests[0]


def test_blank_completion_raises_empty_response(monkeypatch):
    stub = StubAsyncOpenAI(completion=chat_response(content="   "))
    client = make_client(monkeypatch, stub)

    with pytest.raises(EmptyResponse):
        asyncio.run(client.complete([{"role": "user", "content": "hi"}]))
    assert stub.closed


def test_image_refusal_raises_content_policy_violation(monkeypatch):
    images = StubImages(error=content_policy_error())
    stub = StubAsyncOpenAI(images=images)
    client = make_client(monkeypatch, stub)

    with pytest.raises(ContentPolicyViolation):
        asyncio.run(client.generate_image("something nasty"))
    assert len(images.requests) == 1
    assert stub.closed


def test_generate_image_returns_first_image(monkeypatch):
    images = StubImages(response=SimpleNamespace(data=[
        SimpleNamespace(b64_json="aGVsbG8=", url=None, revised_prompt="a red fox at dusk"),
    ]))
    client = make_client(monkeypatch, StubAsyncOpenAI(images=images))

    image = asyncio.run(client.generate_image("a red fox", size="1024x1536"))

    assert image == {"b64_json": "aGVsbG8=", "url": None, "revised_prompt": "a red fox at dusk"}
    assert images.requests[0]["size"] == "1024x1536"
    assert images.requests[0]["n"] == 1
