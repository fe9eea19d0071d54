import json
from typing import Any, Dict, List, Optional

from openai import (
    AsyncOpenAI,
    APIConnectionError,
    APIError,
    APITimeoutError,
    BadRequestError,
    RateLimitError,
)

import utils.func as func
from AI.base_client import BaseAIClient, CompletionResult, TokenUsage
from AI.error_types import ContentPolicyViolation, DownstreamFailure, EmptyResponse


class OpenAIClient(BaseAIClient):
    """OpenAI API client for tool-calling chat completions and image generation."""

    provider_name = "OpenAI"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        image_model: Optional[str] = None
    ):
        super().__init__()
        self.api_key = api_key or func.get_setting("OpenAI", "api_key", "")
        self.base_url = base_url or func.get_setting("OpenAI", "base_url")
        self.model = model or func.get_setting("OpenAI", "model", "gpt-4.1-nano")
        self.image_model = image_model or func.get_setting("OpenAI", "image_model", "gpt-image-1")

        if not self.api_key:
            func.log.error("No API key found for OpenAI! Add api_key under OpenAI in config.yml")

    def create_client(self) -> AsyncOpenAI:
        """Creates an AsyncOpenAI client with optional custom endpoint."""
        client_kwargs = {
            "api_key": self.api_key,
            "timeout": 60.0,
        }

        if self.base_url:
            client_kwargs["base_url"] = self.base_url

        return AsyncOpenAI(**client_kwargs)

    @staticmethod
    def _parse_arguments(raw_arguments: Any) -> Dict[str, Any]:
        # Arguments come as a JSON string from OpenAI, but some compatible
        # providers already hand back a dict
        if isinstance(raw_arguments, dict):
            return raw_arguments
        if isinstance(raw_arguments, str) and raw_arguments.strip():
            try:
                parsed = json.loads(raw_arguments)
            except json.JSONDecodeError as e:
                func.log.error(f"Failed to parse tool arguments: {e}")
                return {}
            return parsed if isinstance(parsed, dict) else {}
        return {}

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
        **kwargs
    ) -> CompletionResult:
        """Request a chat completion, honoring only the first tool call."""
        client = self.create_client()

        api_params = {
            "model": model or self.model,
            "messages": messages,
        }
        if kwargs.get("max_tokens"):
            api_params["max_tokens"] = kwargs["max_tokens"]
        if kwargs.get("temperature") is not None:
            api_params["temperature"] = kwargs["temperature"]
        if tools:
            api_params["tools"] = tools
            api_params["tool_choice"] = "auto"

        try:
            async def make_request():
                return await client.chat.completions.create(**api_params)

            response = await self.retry_with_backoff(
                make_request,
                max_retries=2,
                base_delay=2,
                circuit_breaker_key="openai_api"
            )

            message = response.choices[0].message
            usage = TokenUsage.from_openai(getattr(response, "usage", None))

            tool_calls = getattr(message, "tool_calls", None)
            if tools and tool_calls:
                if len(tool_calls) > 1:
                    func.log.info(
                        f"Completion requested {len(tool_calls)} tool calls; "
                        f"only '{tool_calls[0].function.name}' will run"
                    )
                first = tool_calls[0]
                return CompletionResult(
                    function_name=first.function.name,
                    arguments=self._parse_arguments(first.function.arguments),
                    usage=usage,
                )

            text = message.content or ""
            if not text or text.isspace():
                func.log.warning("Received empty response from API")
                raise EmptyResponse("openai", "The API returned an empty response")

            return CompletionResult(text=text, usage=usage)

        except DownstreamFailure:
            raise

        except (APIConnectionError, APITimeoutError) as e:
            func.log.error(f"Connection error: {e}")
            raise DownstreamFailure.from_exception("openai", e)

        except RateLimitError as e:
            func.log.error(f"Rate limit error: {e}")
            raise DownstreamFailure(
                "openai", str(e),
                "I'm receiving too many requests. Please wait a moment and try again."
            )

        except APIError as e:
            func.log.error(f"API error: {e}")
            raise DownstreamFailure.from_exception("openai", e)

        except Exception as e:
            func.log.error(f"Error generating AI response: {str(e)}")
            raise DownstreamFailure.from_exception("openai", e)

        finally:
            try:
                await client.close()
            except Exception as e:
                func.log.error(f"Error closing client session: {str(e)}")

    @staticmethod
    def _is_content_policy_error(error: APIError) -> bool:
        code = getattr(error, "code", None) or ""
        message = str(error).lower()
        return (
            code in ("content_policy_violation", "moderation_blocked")
            or "content policy" in message
            or "safety system" in message
        )

    async def generate_image(
        self,
        prompt: str,
        size: str = "1024x1024",
        model: Optional[str] = None
    ) -> Dict[str, Any]:
        """Generate one image; refusals surface as ContentPolicyViolation."""
        client = self.create_client()

        try:
            async def make_request():
                return await client.images.generate(
                    model=model or self.image_model,
                    prompt=prompt,
                    size=size,
                    n=1,
                )

            # Refusals are deterministic, so image requests are not retried
            response = await self.retry_with_backoff(
                make_request,
                max_retries=1,
                circuit_breaker_key="openai_images"
            )

            if not response.data:
                raise EmptyResponse("gptimage", "The image API returned no images")

            image = response.data[0]
            return {
                "b64_json": getattr(image, "b64_json", None),
                "url": getattr(image, "url", None),
                "revised_prompt": getattr(image, "revised_prompt", None),
            }

        except DownstreamFailure:
            raise

        except BadRequestError as e:
            if self._is_content_policy_error(e):
                func.log.warning(f"Image prompt refused by content policy: {e}")
                raise ContentPolicyViolation("gptimage", str(e))
            func.log.error(f"Image request rejected: {e}")
            raise DownstreamFailure.from_exception("gptimage", e)

        except Exception as e:
            func.log.error(f"Error generating image: {str(e)}")
            raise DownstreamFailure.from_exception("gptimage", e)

        finally:
            try:
                await client.close()
            except Exception as e:
                func.log.error(f"Error closing client session: {str(e)}")
