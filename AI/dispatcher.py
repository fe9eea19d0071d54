"""
Dispatcher - Decide how to answer a message

Calls the completion service with the conversation context and the declared
functions, and turns the answer into a DispatchDecision: either a plain
message or a single function call.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import utils.func as func
from AI.base_client import BaseAIClient, TokenUsage
from AI.error_types import DispatchTimeout, DownstreamFailure
from AI.exchange import Exchange
from AI.image_intent import ImageIntentDetector
from AI.tools import FunctionName, get_function_definitions
from utils.stats import Telemetry, get_telemetry

log = logging.getLogger(__name__)


@dataclass
class PlainMessage:
    """The completion service answered in text."""
    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass
class FunctionCall:
    """
    The completion service (or the image pre-filter) asked for a function.

    When dispatch itself failed, ``error`` is set and ``name`` is None.
    """
    name: Optional[str]
    parameters: Dict[str, Any] = field(default_factory=dict)
    usage: TokenUsage = field(default_factory=TokenUsage)
    error: Optional[DownstreamFailure] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


DispatchDecision = Union[PlainMessage, FunctionCall]

_DEFAULT_DETECTOR: Any = object()


class Dispatcher:
    """
    Routes a message to a plain answer or a function call.

    Args:
        client: Completion client
        image_detector: Pre-filter strategy; None disables it; a fresh
            ImageIntentDetector when omitted
        timeout: Deadline for the completion call, in seconds
        telemetry: Telemetry collaborator
        function_definitions: Declared functions offered to the model
    """

    def __init__(
        self,
        client: BaseAIClient,
        image_detector: Optional[ImageIntentDetector] = _DEFAULT_DETECTOR,
        timeout: Optional[float] = None,
        telemetry: Optional[Telemetry] = None,
        function_definitions: Optional[List[Dict[str, Any]]] = None
    ):
        self.client = client
        self.image_detector = ImageIntentDetector() if image_detector is _DEFAULT_DETECTOR else image_detector
        self.timeout = timeout if timeout is not None else float(
            func.get_setting("Pipeline", "dispatch_timeout", 20)
        )
        self.telemetry = telemetry or get_telemetry()
        self.function_definitions = function_definitions or get_function_definitions()

    def prefilter(self, content: str) -> Optional[FunctionCall]:
        """Image command short-circuit; None when the message needs the model."""
        if self.image_detector is None:
            return None
        prompt = self.image_detector.extract_prompt(content)
        if prompt is None:
            return None
        return FunctionCall(
            name=FunctionName.GENERATE_IMAGE.value,
            parameters={"prompt": prompt},
        )

    async def dispatch(
        self,
        context_messages: List[Dict[str, Any]],
        content: str,
        exchange: Optional[Exchange] = None
    ) -> DispatchDecision:
        """
        Decide how to answer ``content``.

        Args:
            context_messages: System prompt plus conversation history, ending
                with the current user message
            content: Raw text of the current message, for the pre-filter
            exchange: Per-message state; usage and call counts are recorded on it

        Returns:
            DispatchDecision: never raises; failures come back as a
            FunctionCall with ``error`` set
        """
        shortcut = self.prefilter(content)
        if shortcut is not None:
            log.debug("Image pre-filter matched; skipping dispatch completion")
            return shortcut

        try:
            result = await BaseAIClient.first_settled(
                self.client.complete(context_messages, tools=self.function_definitions),
                self.timeout,
                label="dispatch completion",
            )
        except asyncio.TimeoutError:
            error = DispatchTimeout("openai", f"no answer within {self.timeout}s")
            log.warning(f"Dispatch completion timed out after {self.timeout}s")
            self.telemetry.track_error("openai")
            return FunctionCall(name=None, error=error)
        except DownstreamFailure as e:
            log.error(f"Dispatch completion failed: {e.to_detailed_string()}")
            self.telemetry.track_error("openai")
            return FunctionCall(name=None, error=e)
        except Exception as e:
            log.error(f"Unexpected dispatch error: {e}", exc_info=True)
            self.telemetry.track_error("openai")
            return FunctionCall(name=None, error=DownstreamFailure.from_exception("openai", e))

        self.telemetry.track_api_call("openai")
        if exchange is not None:
            exchange.record_api_call("openai")
            exchange.add_usage(result.usage)

        if result.is_function_call:
            log.info(f"Dispatch selected function '{result.function_name}'")
            return FunctionCall(
                name=result.function_name,
                parameters=result.arguments,
                usage=result.usage,
            )

        return PlainMessage(text=result.text, usage=result.usage)
