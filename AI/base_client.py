"""
Base AI Client

This module provides an abstract base class for completion providers and
the shared plumbing every provider uses: retry with exponential backoff
behind a circuit breaker, and a "first settle wins" deadline race.

Classes:
    - TokenUsage: Token counts reported by the provider
    - CompletionResult: Plain text or a single requested function call
    - BaseAIClient: Abstract base class for AI clients
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Optional

from AI.error_types import CircuitOpen


log = logging.getLogger(__name__)


@dataclass
class TokenUsage:
    """Token usage of one or more completion calls."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            self.prompt_tokens + other.prompt_tokens,
            self.completion_tokens + other.completion_tokens,
            self.total_tokens + other.total_tokens,
        )

    @classmethod
    def from_openai(cls, usage: Any) -> "TokenUsage":
        if usage is None:
            return cls()
        return cls(
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            total_tokens=getattr(usage, "total_tokens", 0) or 0,
        )


@dataclass
class CompletionResult:
    """
    Outcome of a completion request.

    Exactly one of ``text`` or ``function_name`` is meaningful. When the
    provider asks for several tool calls only the first is kept.
    """
    text: str = ""
    function_name: Optional[str] = None
    arguments: Dict[str, Any] = field(default_factory=dict)
    usage: TokenUsage = field(default_factory=TokenUsage)

    @property
    def is_function_call(self) -> bool:
        return self.function_name is not None


class BaseAIClient(ABC):
    """
    Abstract base class for completion providers.

    To add a new provider:
    1. Create a new class that inherits from BaseAIClient
    2. Set the provider_name class attribute
    3. Implement complete() and generate_image()
    4. Wrap provider calls with retry_with_backoff()
    """

    # Provider name (must be set by subclass)
    provider_name: str = None

    def __init__(self):
        if self.provider_name is None:
            raise NotImplementedError(
                f"{self.__class__.__name__} must set provider_name class attribute"
            )

    @abstractmethod
    async def complete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
        **kwargs
    ) -> CompletionResult:
        """
        Request a completion, optionally offering tools.

        Raises:
            DownstreamFailure: on any provider error or empty answer
        """

    @abstractmethod
    async def generate_image(
        self,
        prompt: str,
        size: str = "1024x1024",
        model: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Generate a single image.

        Returns:
            Dict with ``b64_json`` and/or ``url`` and ``revised_prompt``

        Raises:
            ContentPolicyViolation: if the provider refused the prompt
            DownstreamFailure: on any other provider error
        """

    # Circuit breaker state (class-level to share across instances)
    _circuit_breaker_failures: Dict[str, int] = {}
    _circuit_breaker_open_until: Dict[str, float] = {}

    @staticmethod
    async def retry_with_backoff(
        func_to_retry,
        max_retries: int = 3,
        base_delay: float = 1,
        circuit_breaker_key: Optional[str] = None
    ):
        """
        Retry an async function with exponential backoff and circuit breaker pattern.

        After 5 consecutive failures, the circuit opens for 60 seconds.

        Args:
            func_to_retry: Async function to retry
            max_retries: Maximum number of attempts
            base_delay: Base delay in seconds (doubles each retry)
            circuit_breaker_key: Optional key for circuit breaker (e.g., "openai_api")

        Returns:
            Result of the function call

        Raises:
            CircuitOpen: if the circuit is open
            The last exception if all retries fail
        """
        if circuit_breaker_key:
            open_until = BaseAIClient._circuit_breaker_open_until.get(circuit_breaker_key, 0)
            remaining = open_until - time.time()
            if remaining > 0:
                log.warning(
                    f"Circuit breaker OPEN for {circuit_breaker_key}. "
                    f"Skipping API call. Retry in {int(remaining)}s."
                )
                raise CircuitOpen(circuit_breaker_key, f"{int(remaining)}s remaining")

        for attempt in range(max_retries):
            try:
                result = await func_to_retry()

                if circuit_breaker_key:
                    BaseAIClient._circuit_breaker_failures[circuit_breaker_key] = 0

                return result

            except Exception as e:
                if circuit_breaker_key:
                    failures = BaseAIClient._circuit_breaker_failures.get(circuit_breaker_key, 0) + 1
                    BaseAIClient._circuit_breaker_failures[circuit_breaker_key] = failures

                    if failures >= 5:
                        open_duration = 60
                        BaseAIClient._circuit_breaker_open_until[circuit_breaker_key] = time.time() + open_duration
                        log.error(
                            f"Circuit breaker OPENED for {circuit_breaker_key} after {failures} failures. "
                            f"Will retry in {open_duration}s."
                        )

                if attempt == max_retries - 1:
                    raise

                delay = base_delay * (2 ** attempt)
                log.warning(f"Attempt {attempt + 1}/{max_retries} failed. Retrying in {delay}s. Error: {e}")
                await asyncio.sleep(delay)

    @staticmethod
    def reset_circuit_breakers() -> None:
        BaseAIClient._circuit_breaker_failures.clear()
        BaseAIClient._circuit_breaker_open_until.clear()

    @staticmethod
    async def first_settled(awaitable: Awaitable, timeout: float, label: str = "call"):
        """
        Race ``awaitable`` against a timer; whichever settles first wins.

        On timeout the underlying call is *not* cancelled. It keeps running
        and its eventual outcome is only logged.

        Raises:
            asyncio.TimeoutError: if the timer settles first
            Whatever the awaitable raises, if it settles first
        """
        task = asyncio.ensure_future(awaitable)
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if task in done:
            return task.result()

        def _log_late_outcome(finished: asyncio.Future) -> None:
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None:
                log.debug(f"Abandoned {label} failed after its deadline: {error}")
            else:
                log.info(f"Abandoned {label} completed after its deadline; result discarded")

        task.add_done_callback(_log_late_outcome)
        raise asyncio.TimeoutError(f"{label} exceeded {timeout}s")
