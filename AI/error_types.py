"""
Pipeline Error Types - Structured Error Handling

Provides the exceptions raised by the completion client and the function
collaborators. Every error carries a short, user-safe ``friendly_message``
so no raw provider body ever reaches Discord.
"""

from typing import Optional


GENERIC_APOLOGY = "❌ Sorry, I encountered an error processing your request."


class DownstreamFailure(Exception):
    """
    A function collaborator or the completion service failed.

    Attributes:
        kind: Telemetry kind of the failing call (e.g. "openai", "weather")
        detail: Detailed error message, for logs only
        friendly_message: User-friendly error message
    """

    default_friendly = "I'm having trouble connecting. Please try again later."

    def __init__(
        self,
        kind: str,
        detail: str = "",
        friendly_message: Optional[str] = None
    ):
        super().__init__(f"{kind}: {detail}" if detail else kind)
        self.kind = kind
        self.detail = detail
        self.friendly_message = friendly_message or self.default_friendly

    def to_detailed_string(self) -> str:
        """Returns detailed error string in format: 'ErrorType(kind): detail'"""
        return f"{type(self).__name__}({self.kind}): {self.detail}"

    def to_friendly_string(self) -> str:
        return self.friendly_message

    @classmethod
    def from_exception(cls, kind: str, exception: BaseException) -> "DownstreamFailure":
        """Wrap an arbitrary exception, keeping its type name in the detail."""
        if isinstance(exception, DownstreamFailure):
            return exception
        return cls(kind, f"{type(exception).__name__}: {exception}")


class DispatchTimeout(DownstreamFailure):
    """The dispatch completion did not settle before its deadline."""

    default_friendly = "I'm taking too long to think. Please try again in a moment."


class SynthesisTimeout(DownstreamFailure):
    """The synthesis completion did not settle before its deadline."""

    default_friendly = "I'm taking too long to put that into words."


class ContentPolicyViolation(DownstreamFailure):
    """The image provider refused the prompt."""

    default_friendly = (
        "❌ I can't create that image because the request was flagged by the "
        "content policy. Please try a different description."
    )


class EmptyResponse(DownstreamFailure):
    """The completion service answered with nothing usable."""

    default_friendly = "I'm sorry, but I couldn't generate a response. Please try again."


class CircuitOpen(DownstreamFailure):
    """Calls are short-circuited while the provider is failing."""
