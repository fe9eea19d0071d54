"""
Rate Limiter - Per-user point budgets

Fixed-window point budgets keyed by (scope, user id). Two scopes exist:
"general" for messages and lookups, and "generation" for image requests.
A generation request is never charged against the general budget.

Checking and consuming happen in one synchronous call, so no other
coroutine can observe a half-applied charge.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional

import utils.func as func

log = logging.getLogger(__name__)


GENERAL_SCOPE = "general"
GENERATION_SCOPE = "generation"

DEFAULT_COSTS: Dict[str, float] = {
    "message": 1,
    "lookup_time": 1,
    "lookup_weather": 1,
    "lookup_extended_forecast": 2,
    "get_wolfram_short_answer": 2,
    "quake_lookup": 1,
    "get_version": 0.5,
    "generate_image": 1,
}

# Operations charged against the generation budget instead of the general one
GENERATION_OPERATIONS = frozenset({"generate_image"})


@dataclass(frozen=True)
class RateLimitRule:
    """Budget of ``points`` per window of ``duration`` seconds."""
    points: float
    duration: float

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], default: "RateLimitRule") -> "RateLimitRule":
        if not isinstance(data, dict):
            return default
        return cls(
            points=float(data.get("points", default.points)),
            duration=float(data.get("duration", default.duration)),
        )


@dataclass
class RateLimitResult:
    limited: bool
    remaining_points: float
    seconds_before_next: int


@dataclass
class _Window:
    consumed: float
    reset_at: float


class RateLimiter:
    """
    In-memory fixed-window limiter.

    A window opens at the first consume for a key and lasts the rule's
    duration. Expired windows are pruned lazily.

    Args:
        clock: Monotonic clock in seconds, injectable for tests
    """

    PRUNE_EVERY = 256

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._windows: Dict[Hashable, _Window] = {}
        self._calls = 0

    def consume(self, key: Hashable, cost: float, rule: RateLimitRule) -> RateLimitResult:
        """
        Try to consume ``cost`` points for ``key``.

        When the remaining budget covers the cost it is charged and the
        result is not limited. Otherwise nothing is charged and the result
        carries the whole seconds until the window resets (at least 1).
        """
        now = self._clock()
        self._maybe_prune(now)

        window = self._windows.get(key)
        if window is None or now >= window.reset_at:
            window = _Window(consumed=0.0, reset_at=now + rule.duration)
            self._windows[key] = window

        remaining = rule.points - window.consumed
        ms_before_next = round((window.reset_at - now) * 1000)
        seconds_left = max(1, math.ceil(ms_before_next / 1000))

        if remaining >= cost:
            window.consumed += cost
            return RateLimitResult(
                limited=False,
                remaining_points=remaining - cost,
                seconds_before_next=0,
            )

        return RateLimitResult(
            limited=True,
            remaining_points=remaining,
            seconds_before_next=seconds_left,
        )

    def remaining(self, key: Hashable, rule: RateLimitRule) -> float:
        """Remaining points for ``key`` without consuming anything."""
        window = self._windows.get(key)
        if window is None or self._clock() >= window.reset_at:
            return rule.points
        return rule.points - window.consumed

    def reset(self, key: Optional[Hashable] = None) -> None:
        if key is None:
            self._windows.clear()
        else:
            self._windows.pop(key, None)

    def _maybe_prune(self, now: float) -> None:
        self._calls += 1
        if self._calls % self.PRUNE_EVERY:
            return
        expired = [key for key, window in self._windows.items() if now >= window.reset_at]
        for key in expired:
            del self._windows[key]
        if expired:
            log.debug(f"Pruned {len(expired)} expired rate limit windows")

    def __len__(self) -> int:
        return len(self._windows)


class RateLimitPolicy:
    """
    Maps operations to scopes and costs, and charges users accordingly.

    Example:
        policy = RateLimitPolicy.from_config()
        result = policy.charge("1234", "lookup_weather")
        if result.limited:
            ...
    """

    def __init__(
        self,
        limiter: Optional[RateLimiter] = None,
        general: RateLimitRule = RateLimitRule(points=30, duration=30),
        generation: RateLimitRule = RateLimitRule(points=3, duration=60),
        costs: Optional[Dict[str, float]] = None
    ):
        self.limiter = limiter or RateLimiter()
        self.rules = {GENERAL_SCOPE: general, GENERATION_SCOPE: generation}
        self.costs = dict(DEFAULT_COSTS)
        if costs:
            self.costs.update({str(k): float(v) for k, v in costs.items()})

    @classmethod
    def from_config(
        cls,
        limiter: Optional[RateLimiter] = None,
        section: Optional[Dict[str, Any]] = None
    ) -> "RateLimitPolicy":
        """Build the policy from the ``RateLimits`` section of config.yml."""
        if section is None:
            section = func.get_section("RateLimits")
        return cls(
            limiter=limiter,
            general=RateLimitRule.from_dict(section.get("general"), RateLimitRule(30, 30)),
            generation=RateLimitRule.from_dict(section.get("generation"), RateLimitRule(3, 60)),
            costs=section.get("costs"),
        )

    def scope_for(self, operation: str) -> str:
        return GENERATION_SCOPE if operation in GENERATION_OPERATIONS else GENERAL_SCOPE

    def rule_for(self, operation: str) -> RateLimitRule:
        return self.rules[self.scope_for(operation)]

    def cost_for(self, operation: str) -> float:
        return self.costs.get(operation, 1.0)

    def charge(self, user_id: str, operation: str) -> RateLimitResult:
        """Charge ``user_id`` for ``operation`` in that operation's scope."""
        scope = self.scope_for(operation)
        result = self.limiter.consume(
            (scope, str(user_id)),
            self.cost_for(operation),
            self.rules[scope],
        )
        if result.limited:
            log.info(
                f"Rate limited user {user_id} on {operation} ({scope} scope); "
                f"retry in {result.seconds_before_next}s"
            )
        return result
