"""
Function Executor

Routes a FunctionCall decision to its collaborator. Every declared function
is charged against its rate-limit scope, shows a loading phrase, runs the
collaborator and projects the raw payload down to the few fields the
synthesizer needs.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

import utils.func as func
from AI.dispatcher import FunctionCall
from AI.error_types import ContentPolicyViolation, DownstreamFailure
from AI.exchange import Exchange
from AI.formatting import format_subtext
from AI.tools import FunctionName
from utils.stats import Telemetry, get_telemetry

log = logging.getLogger(__name__)


LOADING_PHRASES: Dict[FunctionName, str] = {
    FunctionName.LOOKUP_TIME: "Checking watch...",
    FunctionName.LOOKUP_WEATHER: "Looking outside...",
    FunctionName.LOOKUP_EXTENDED_FORECAST: "Let me ping the cloud, and I don't mean the fluffy ones...",
    FunctionName.GET_WOLFRAM_SHORT_ANSWER: "Consulting Wolfram Alpha...",
    FunctionName.QUAKE_LOOKUP: "Checking server stats...",
    FunctionName.GET_VERSION: "Checking my version...",
}

FAILURE_MESSAGES: Dict[FunctionName, str] = {
    FunctionName.LOOKUP_TIME: "❌ Sorry, I couldn't check the time right now. Please try again later.",
    FunctionName.LOOKUP_WEATHER: "❌ Sorry, I couldn't check the weather right now. Please try again later.",
    FunctionName.LOOKUP_EXTENDED_FORECAST: "❌ Sorry, I couldn't get the forecast right now. Please try again later.",
    FunctionName.GET_WOLFRAM_SHORT_ANSWER: "❌ Sorry, I couldn't reach Wolfram Alpha right now. Please try again later.",
    FunctionName.QUAKE_LOOKUP: "❌ Sorry, I couldn't fetch the server stats right now. Please try again later.",
    FunctionName.GET_VERSION: "❌ Sorry, I couldn't check my version right now.",
}

IMAGE_FAILURE_MESSAGE = "❌ Sorry, I couldn't generate that image. Please try again later."
IMAGE_PHASE_SETUP = "⚙️ Setting up image generation..."
IMAGE_PHASE_GENERATING = "🖼️ Generating your image..."
IMAGE_PROGRESS_INTERVAL = 5.0


def format_image_status(elapsed_seconds: int, phase: str) -> str:
    return f"🎨 Creating your image... ({elapsed_seconds}s)\n\n🔄 Currently: {phase}"


IMAGE_STATUS_MESSAGE = format_image_status(0, IMAGE_PHASE_SETUP)

WEATHER_FUNCTIONS = frozenset({
    FunctionName.LOOKUP_WEATHER,
    FunctionName.LOOKUP_EXTENDED_FORECAST,
})

MAX_SERVERS = 5


class ExecutionStatus(Enum):
    """How the executor left the acknowledgment."""
    NEEDS_SYNTHESIS = "needs_synthesis"   # result goes to the synthesizer
    ATTACHMENT = "attachment"             # final edit with an image already made
    RATE_LIMITED = "rate_limited"         # wait message already shown
    FAILED = "failed"                     # apology already shown


@dataclass
class FunctionResult:
    """
    Outcome of one function call.

    Attributes:
        name: Function name as requested
        success: Whether the collaborator succeeded
        essential: Bounded projection of the raw payload
        summary: Short ready-to-show text, used as a grounded fallback
        parameters: Parameters the function was called with
        attachment: Generated asset, for image results
        error: Failure, for unsuccessful results
    """
    name: str
    success: bool
    essential: Dict[str, Any] = field(default_factory=dict)
    summary: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)
    attachment: Any = None
    error: Optional[DownstreamFailure] = None

    @property
    def function(self) -> Optional[FunctionName]:
        return FunctionName.parse(self.name)


@dataclass
class ExecutionOutcome:
    status: ExecutionStatus
    result: Optional[FunctionResult] = None
    message: str = ""

    @property
    def needs_synthesis(self) -> bool:
        return self.status is ExecutionStatus.NEEDS_SYNTHESIS


# =============================================================================
# Projections
# =============================================================================

def _condition_text(condition: Any) -> Optional[str]:
    if isinstance(condition, dict):
        return condition.get("text")
    return condition


def _format_degrees(value: Any) -> str:
    if isinstance(value, (int, float)):
        return f"{value:g}"
    return str(value)


def project_weather(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Keep location, current conditions and compact forecast rows only."""
    location = raw.get("location") or {}
    current = raw.get("current") or {}
    essential: Dict[str, Any] = {
        "location": {
            "name": location.get("name"),
            "country": location.get("country"),
            "localtime": location.get("localtime"),
        },
        "current": {
            "temp_c": current.get("temp_c"),
            "condition": _condition_text(current.get("condition")),
            "humidity": current.get("humidity"),
            "wind_kph": current.get("wind_kph"),
            "wind_dir": current.get("wind_dir"),
        },
    }

    forecast_days = (raw.get("forecast") or {}).get("forecastday") or []
    if forecast_days:
        essential["forecast"] = [
            {
                "date": day.get("date"),
                "maxtemp_c": (day.get("day") or {}).get("maxtemp_c"),
                "mintemp_c": (day.get("day") or {}).get("mintemp_c"),
                "condition": _condition_text((day.get("day") or {}).get("condition")),
            }
            for day in forecast_days
            if isinstance(day, dict)
        ]

    if raw.get("_isMock"):
        essential["_isMock"] = True
    return essential


def format_weather_summary(essential: Dict[str, Any]) -> str:
    """
    Plain template built only from the projected fields.

    Always names the location and quotes the temperature when present.
    """
    location = essential.get("location") or {}
    current = essential.get("current") or {}
    name = location.get("name") or "the requested location"
    condition = current.get("condition") or "conditions unknown"

    text = f"Current weather in {name}: {condition}"
    if current.get("temp_c") is not None:
        text += f", {_format_degrees(current['temp_c'])}°C"

    rows = essential.get("forecast") or []
    if rows:
        text += "\n\nForecast:"
        for row in rows:
            text += (
                f"\n{row.get('date')}: {row.get('condition') or 'n/a'}, "
                f"{_format_degrees(row.get('maxtemp_c'))}°C / {_format_degrees(row.get('mintemp_c'))}°C"
            )
    return text


def project_time(raw: Dict[str, Any]) -> Dict[str, Any]:
    location = raw.get("location") or {}
    return {
        "location": location.get("name"),
        "region": location.get("region"),
        "country": location.get("country"),
        "tz_id": location.get("tz_id"),
        "localtime": location.get("localtime"),
    }


def format_time_summary(essential: Dict[str, Any]) -> str:
    return (
        f"The current time in {essential.get('location') or 'that location'} is "
        f"{essential.get('localtime') or 'unknown'} ({essential.get('tz_id') or 'unknown timezone'})."
    )


def project_arena_stats(raw: Dict[str, Any]) -> Dict[str, Any]:
    servers = raw.get("servers") or []

    def player_count(server: Dict[str, Any]) -> int:
        players = server.get("players")
        if isinstance(players, list):
            return len(players)
        try:
            return int(players or 0)
        except (TypeError, ValueError):
            return 0

    ranked = sorted(servers, key=player_count, reverse=True)
    return {
        "total_servers": len(servers),
        "total_players": sum(player_count(s) for s in servers),
        "servers": [
            {
                "name": s.get("name"),
                "map": s.get("map"),
                "gametype": s.get("gametype"),
                "players": player_count(s),
                "max_players": s.get("maxPlayers") or s.get("max_players"),
            }
            for s in ranked[:MAX_SERVERS]
        ],
    }


def format_arena_summary(essential: Dict[str, Any]) -> str:
    lines = [
        f"{essential['total_servers']} servers, {essential['total_players']} players online"
    ]
    for server in essential["servers"]:
        lines.append(
            f"- {server['name']}: {server['players']}/{server['max_players'] or '?'} "
            f"on {server['map']} ({server['gametype']})"
        )
    return "\n".join(lines)


_PROJECTIONS: Dict[FunctionName, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    FunctionName.LOOKUP_WEATHER: project_weather,
    FunctionName.LOOKUP_EXTENDED_FORECAST: project_weather,
    FunctionName.LOOKUP_TIME: project_time,
    FunctionName.GET_WOLFRAM_SHORT_ANSWER: lambda raw: {"query": raw.get("query"), "answer": raw.get("answer")},
    FunctionName.QUAKE_LOOKUP: project_arena_stats,
    FunctionName.GET_VERSION: dict,
}

_SUMMARIES: Dict[FunctionName, Callable[[Dict[str, Any]], str]] = {
    FunctionName.LOOKUP_WEATHER: format_weather_summary,
    FunctionName.LOOKUP_EXTENDED_FORECAST: format_weather_summary,
    FunctionName.LOOKUP_TIME: format_time_summary,
    FunctionName.GET_WOLFRAM_SHORT_ANSWER: lambda e: f"Wolfram Alpha says: {e.get('answer')}",
    FunctionName.QUAKE_LOOKUP: format_arena_summary,
    FunctionName.GET_VERSION: lambda e: f"{e.get('name')} v{e.get('version')}",
}


# =============================================================================
# Executor
# =============================================================================

class FunctionExecutor:
    """
    Runs one function call end to end.

    Args:
        rate_limits: RateLimitPolicy charging per-operation costs
        lookups: Collaborator per non-image function
        image_generator: Image collaborator
        telemetry: Telemetry collaborator
        loading_emoji: Prefix for loading phrases
        max_length: Platform message length cap
        progress_interval: Seconds between image status refreshes
    """

    def __init__(
        self,
        rate_limits,
        lookups: Dict[FunctionName, Any],
        image_generator=None,
        telemetry: Optional[Telemetry] = None,
        loading_emoji: Optional[str] = None,
        max_length: Optional[int] = None,
        progress_interval: float = IMAGE_PROGRESS_INTERVAL
    ):
        self.rate_limits = rate_limits
        self.lookups = dict(lookups)
        self.image_generator = image_generator
        self.telemetry = telemetry or get_telemetry()
        self.loading_emoji = loading_emoji or func.get_setting("Discord", "loading_emoji", "⏳")
        self.max_length = max_length or int(func.get_setting("Discord", "max_message_length", 2000))
        self.progress_interval = progress_interval

        missing = [f.value for f in FunctionName if f is not FunctionName.GENERATE_IMAGE and f not in self.lookups]
        if missing:
            log.warning(f"No collaborator configured for: {', '.join(missing)}")

    async def execute(self, call: FunctionCall, exchange: Exchange) -> ExecutionOutcome:
        """
        Execute ``call`` for the message in ``exchange``.

        Never raises for collaborator failures; every failure is turned into
        an apology on the acknowledgment or an error-shaped result.
        """
        function = FunctionName.parse(call.name)
        if function is None:
            log.warning(f"Unknown function requested: {call.name!r}")
            error = DownstreamFailure("function", f"unknown function {call.name!r}")
            return ExecutionOutcome(
                status=ExecutionStatus.NEEDS_SYNTHESIS,
                result=FunctionResult(
                    name=str(call.name),
                    success=False,
                    essential={"error": "Unknown function", "function": str(call.name)},
                    parameters=dict(call.parameters),
                    error=error,
                ),
            )

        if function is FunctionName.GENERATE_IMAGE:
            return await self._generate_image(call, exchange)
        return await self._run_lookup(function, call, exchange)

    async def _rate_limited(self, exchange: Exchange, message: str) -> ExecutionOutcome:
        self.telemetry.track_rate_limit(exchange.user_id)
        await exchange.ack.finalize(message)
        return ExecutionOutcome(status=ExecutionStatus.RATE_LIMITED, message=message)

    async def _run_lookup(self, function: FunctionName, call: FunctionCall, exchange: Exchange) -> ExecutionOutcome:
        kind = function.telemetry_kind

        limit = self.rate_limits.charge(exchange.user_id, function.value)
        if limit.limited:
            return await self._rate_limited(
                exchange,
                f"⏱️ Rate limit reached. Please wait {limit.seconds_before_next} seconds before trying again."
            )

        await exchange.ack.status(f"{self.loading_emoji} {LOADING_PHRASES[function]}")

        lookup = self.lookups.get(function)
        try:
            if lookup is None:
                raise DownstreamFailure(kind, f"no collaborator configured for {function.value}")
            raw = await lookup.execute(dict(call.parameters))
        except Exception as e:
            failure = DownstreamFailure.from_exception(kind, e)
            log.error(f"Function {function.value} failed: {failure.to_detailed_string()}")
            self.telemetry.track_error(kind)
            message = FAILURE_MESSAGES[function]
            await exchange.ack.finalize(message)
            return ExecutionOutcome(
                status=ExecutionStatus.FAILED,
                result=FunctionResult(
                    name=function.value,
                    success=False,
                    parameters=dict(call.parameters),
                    error=failure,
                ),
                message=message,
            )

        self.telemetry.track_api_call(kind)
        exchange.record_api_call(kind)

        essential = _PROJECTIONS[function](raw if isinstance(raw, dict) else {"value": raw})
        return ExecutionOutcome(
            status=ExecutionStatus.NEEDS_SYNTHESIS,
            result=FunctionResult(
                name=function.value,
                success=True,
                essential=essential,
                summary=_SUMMARIES[function](essential),
                parameters=dict(call.parameters),
            ),
        )

    async def _generate_image(self, call: FunctionCall, exchange: Exchange) -> ExecutionOutcome:
        kind = FunctionName.GENERATE_IMAGE.telemetry_kind
        name = FunctionName.GENERATE_IMAGE.value

        limit = self.rate_limits.charge(exchange.user_id, name)
        if limit.limited:
            points = self.rate_limits.rule_for(name).points
            return await self._rate_limited(
                exchange,
                f"⏱️ You can only generate {points:g} images per minute. "
                f"Please wait {limit.seconds_before_next} seconds before generating another image."
            )

        exchange.generation_started_at = time.monotonic()
        await exchange.ack.status(IMAGE_STATUS_MESSAGE)

        prompt = str(call.parameters.get("prompt") or exchange.content).strip()
        try:
            if self.image_generator is None:
                raise DownstreamFailure(kind, "image generation is not configured")
            image = await self._generate_with_progress(prompt, call.parameters.get("size"), exchange)
        except ContentPolicyViolation as e:
            log.warning(f"Image prompt rejected by content policy: {e.to_detailed_string()}")
            self.telemetry.track_error(kind)
            await exchange.ack.finalize(e.to_friendly_string())
            return ExecutionOutcome(
                status=ExecutionStatus.FAILED,
                result=FunctionResult(name=name, success=False, parameters={"prompt": prompt}, error=e),
                message=e.to_friendly_string(),
            )
        except Exception as e:
            failure = DownstreamFailure.from_exception(kind, e)
            log.error(f"Image generation failed: {failure.to_detailed_string()}")
            self.telemetry.track_error(kind)
            await exchange.ack.finalize(IMAGE_FAILURE_MESSAGE)
            return ExecutionOutcome(
                status=ExecutionStatus.FAILED,
                result=FunctionResult(name=name, success=False, parameters={"prompt": prompt}, error=failure),
                message=IMAGE_FAILURE_MESSAGE,
            )

        self.telemetry.track_api_call(kind)
        exchange.record_api_call(kind)

        message = self.format_image_message(image, exchange)
        await exchange.ack.finalize(message, attachment=image)

        essential = {"prompt": image.prompt, "model": image.model, "size": image.size}
        return ExecutionOutcome(
            status=ExecutionStatus.ATTACHMENT,
            result=FunctionResult(
                name=name,
                success=True,
                essential=essential,
                summary=json.dumps(essential, ensure_ascii=False),
                parameters={"prompt": prompt},
                attachment=image,
            ),
            message=message,
        )

    async def _generate_with_progress(self, prompt: str, size: Optional[str], exchange: Exchange):
        """Run the generator while a background task refreshes the status edit."""
        progress = asyncio.ensure_future(self._report_progress(exchange, IMAGE_PHASE_GENERATING))
        try:
            return await self.image_generator.generate(prompt, size)
        finally:
            # Stopped before any final edit is attempted
            progress.cancel()
            try:
                await progress
            except asyncio.CancelledError:
                pass

    async def _report_progress(self, exchange: Exchange, phase: str) -> None:
        while True:
            await asyncio.sleep(self.progress_interval)
            if exchange.ack.is_final or exchange.ack.gone:
                return
            elapsed = exchange.elapsed_ms(since=exchange.generation_started_at) // 1000
            await exchange.ack.status(format_image_status(elapsed, phase))

    def format_image_message(self, image, exchange: Exchange) -> str:
        footer = format_subtext(
            exchange.elapsed_ms(since=exchange.generation_started_at),
            exchange.usage,
            exchange.api_calls,
        )
        prompt = image.prompt if len(image.prompt) <= 500 else image.prompt[:497] + "..."
        lines = [
            "🎨 **Image Generated Successfully!**",
            "",
            f"**Prompt:** {prompt}",
        ]
        if image.revised_prompt and image.revised_prompt != image.prompt:
            revised = image.revised_prompt[:500]
            lines.append(f"**Revised prompt:** {revised}")
        lines.append(f"**Model:** {image.model} • **Size:** {image.size}")
        lines.append(f"**Generation time:** {image.duration_ms / 1000:.1f}s")
        return "\n".join(lines)[: self.max_length - len(footer)] + footer
