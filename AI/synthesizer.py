"""
Response Synthesizer

Turns a function result into the final user-visible text with a second
completion call, and falls back to text built from the result itself when
that call fails, times out or comes back empty. Every synthesized response
ends with the subtext footer and fits the platform length cap.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import utils.func as func
from AI.base_client import BaseAIClient
from AI.dispatcher import FunctionCall, PlainMessage
from AI.error_types import GENERIC_APOLOGY, DownstreamFailure, EmptyResponse, SynthesisTimeout
from AI.exchange import Exchange
from AI.formatting import fit_with_footer, format_subtext
from AI.tool_executor import WEATHER_FUNCTIONS, FunctionResult, format_weather_summary
from AI.tools import FunctionName
from utils.stats import Telemetry, get_telemetry

log = logging.getLogger(__name__)


FALLBACK_APOLOGY = "⚠️ Sorry, I had trouble putting this into words. Here's what I found:"
FALLBACK_JSON_LIMIT = 1500


@dataclass
class SynthesizedResponse:
    """Final delivered text (with footer) and the body alone, for history."""
    text: str
    body: str = ""
    used_fallback: bool = False


class ResponseSynthesizer:
    """
    Produces and delivers the final response text.

    Args:
        client: Completion client for the second call
        timeout: Deadline for the second completion, in seconds
        model: Optional model override for synthesis
        home_timezone: Operator timezone mentioned in time answers
        max_length: Platform message length cap
        telemetry: Telemetry collaborator
    """

    def __init__(
        self,
        client: BaseAIClient,
        timeout: Optional[float] = None,
        model: Optional[str] = None,
        home_timezone: Optional[str] = None,
        max_length: Optional[int] = None,
        telemetry: Optional[Telemetry] = None
    ):
        self.client = client
        self.timeout = timeout if timeout is not None else float(
            func.get_setting("Pipeline", "synthesis_timeout", 15)
        )
        self.model = model or func.get_setting("OpenAI", "synthesis_model")
        self.home_timezone = home_timezone or func.get_setting("Pipeline", "home_timezone", "Pacific/Auckland")
        self.max_length = max_length or int(func.get_setting("Discord", "max_message_length", 2000))
        self.telemetry = telemetry or get_telemetry()

    # -------------------------------------------------------------------------
    # Prompts
    # -------------------------------------------------------------------------

    def instruction_for(self, function: Optional[FunctionName]) -> str:
        """System instruction for the second completion, per function kind."""
        if function in WEATHER_FUNCTIONS:
            return (
                "You are summarizing a weather lookup for a Discord chat. Give a concise "
                "summary of the current conditions with the location name and temperature "
                "in °C. If forecast data is present, add one short row per day with the "
                "date, condition and max/min temperature. Do not invent data."
            )
        if function is FunctionName.LOOKUP_TIME:
            return (
                "You are answering a time or timezone question for a Discord chat. State "
                "the local time at the requested location clearly. The operator's home "
                f"timezone is {self.home_timezone}; mention the difference from it when "
                "that helps. Keep it to one or two sentences."
            )
        if function is FunctionName.GET_WOLFRAM_SHORT_ANSWER:
            return (
                "You are relaying a Wolfram Alpha short answer. Answer the user's question "
                "using that result, briefly and accurately."
            )
        if function is FunctionName.QUAKE_LOOKUP:
            return (
                "You are reporting Quake Live server statistics. List the busiest servers "
                "with map, game type and player counts in a compact format."
            )
        if function is FunctionName.GET_VERSION:
            return "You are reporting your own version information. Be brief and friendly."
        return "Answer the user's last message using the function result provided."

    def build_messages(
        self,
        result: FunctionResult,
        context_messages: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """Context plus the function result as a tool-role message."""
        call_id = f"call_{uuid.uuid4().hex[:24]}"
        return [
            {"role": "system", "content": self.instruction_for(result.function)},
            *[m for m in context_messages if m.get("role") != "system"],
            {
                "role": "assistant",
                "content": None,
                "tool_calls": [{
                    "id": call_id,
                    "type": "function",
                    "function": {
                        "name": result.name,
                        "arguments": json.dumps(result.parameters, ensure_ascii=False),
                    },
                }],
            },
            {
                "role": "tool",
                "tool_call_id": call_id,
                "content": json.dumps(result.essential, ensure_ascii=False, default=str),
            },
        ]

    # -------------------------------------------------------------------------
    # Fallbacks
    # -------------------------------------------------------------------------

    def fallback_text(self, result: FunctionResult) -> str:
        """
        Text built from the result alone.

        Weather results get a grounded template (location and temperature);
        everything else gets an apology plus the bounded raw result.
        """
        if result.function in WEATHER_FUNCTIONS and result.success:
            return result.summary or format_weather_summary(result.essential)

        serialized = json.dumps(result.essential, indent=2, ensure_ascii=False, default=str)
        if len(serialized) > FALLBACK_JSON_LIMIT:
            serialized = serialized[:FALLBACK_JSON_LIMIT] + "..."
        return f"{FALLBACK_APOLOGY}\n```json\n{serialized}\n```"

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    def _finish(self, body: str, exchange: Exchange) -> str:
        footer = format_subtext(exchange.elapsed_ms(), exchange.usage, exchange.api_calls)
        return fit_with_footer(body, footer, self.max_length)

    async def _deliver(self, body: str, exchange: Exchange, used_fallback: bool = False) -> SynthesizedResponse:
        text = self._finish(body, exchange)
        await exchange.ack.finalize(text)
        return SynthesizedResponse(text=text, body=body, used_fallback=used_fallback)

    async def synthesize(
        self,
        result: FunctionResult,
        context_messages: List[Dict[str, Any]],
        exchange: Exchange
    ) -> SynthesizedResponse:
        """Second completion over ``result``, then the terminal edit."""
        if not result.success:
            log.info(f"Skipping synthesis for failed result '{result.name}'")
            return await self._deliver(self.fallback_text(result), exchange, used_fallback=True)

        try:
            completion = await BaseAIClient.first_settled(
                self.client.complete(self.build_messages(result, context_messages), model=self.model),
                self.timeout,
                label="synthesis completion",
            )
            if not completion.text or completion.text.isspace():
                raise EmptyResponse("openai", "synthesis returned no text")
        except asyncio.TimeoutError:
            failure: DownstreamFailure = SynthesisTimeout("openai", f"no answer within {self.timeout}s")
        except DownstreamFailure as e:
            failure = e
        except Exception as e:
            failure = DownstreamFailure.from_exception("openai", e)
        else:
            self.telemetry.track_api_call("openai")
            exchange.record_api_call("openai")
            exchange.add_usage(completion.usage)
            return await self._deliver(completion.text.strip(), exchange)

        log.warning(f"Synthesis for '{result.name}' failed, using fallback: {failure.to_detailed_string()}")
        self.telemetry.track_error("openai")
        return await self._deliver(self.fallback_text(result), exchange, used_fallback=True)

    async def finalize_plain(self, decision: PlainMessage, exchange: Exchange) -> SynthesizedResponse:
        """Plain answers need no second completion; add the footer and deliver."""
        body = (decision.text or "").strip()
        if not body:
            return await self._deliver(GENERIC_APOLOGY, exchange, used_fallback=True)
        return await self._deliver(body, exchange)

    async def finalize_failure(self, call: FunctionCall, exchange: Exchange) -> SynthesizedResponse:
        """A failed dispatch: short friendly apology, never the provider error."""
        message = call.error.to_friendly_string() if call.error else GENERIC_APOLOGY
        return await self._deliver(message, exchange, used_fallback=True)
