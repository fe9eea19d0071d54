"""
Response formatting helpers: the subtext footer and length fitting.
"""

from typing import Mapping, Optional

from AI.base_client import TokenUsage

DISCORD_MESSAGE_LIMIT = 2000
ELLIPSIS = "..."


def format_subtext(
    elapsed_ms: int,
    usage: Optional[TokenUsage] = None,
    api_calls: Optional[Mapping[str, int]] = None
) -> str:
    """
    Build the Discord subtext footer.

    Example:
        format_subtext(1530, TokenUsage(120, 45, 165), {"openai": 2, "weather": 1})
        # "\\n\\n-# 1.5s • 120↑ 45↓ • openai×2, weather"
    """
    if elapsed_ms < 1000:
        timing = f"{elapsed_ms}ms"
    else:
        timing = f"{round(elapsed_ms / 1000, 1):g}s"

    token_info = ""
    if usage is not None and (usage.prompt_tokens or usage.completion_tokens):
        token_info = f" • {usage.prompt_tokens}↑ {usage.completion_tokens}↓"

    calls_info = ""
    if api_calls:
        calls = [
            f"{kind}×{count}" if count > 1 else kind
            for kind, count in api_calls.items()
            if count > 0
        ]
        if calls:
            calls_info = " • " + ", ".join(calls)

    return f"\n\n-# {timing}{token_info}{calls_info}"


def fit_with_footer(body: str, footer: str, limit: int = DISCORD_MESSAGE_LIMIT) -> str:
    """
    Append ``footer`` to ``body`` without exceeding ``limit``.

    The footer's exact length is reserved first; an overlong body is cut
    and marked with an ellipsis.
    """
    max_body = limit - len(footer)
    if max_body <= len(ELLIPSIS):
        # Degenerate footer; drop it rather than the answer
        return body[:limit - len(ELLIPSIS)] + ELLIPSIS if len(body) > limit else body
    if len(body) > max_body:
        body = body[:max_body - len(ELLIPSIS)] + ELLIPSIS
    return body + footer
