"""
Image Intent Detection

A cheap regex pre-filter run before the dispatch completion. Messages that
open with an imperative "draw ..." / "generate an image of ..." phrase go
straight to image generation without asking the completion service.

This is a heuristic: it can both miss requests the model would have routed
to image generation and catch messages the model would have answered in
text. The detector is a standalone strategy so it can be swapped or
disabled on the Dispatcher.
"""

import logging
import re
from typing import Optional, Pattern, Sequence

log = logging.getLogger(__name__)


# Most specific first, so "generate an image of a cat" strips the whole
# command and not only "generate an image"
IMAGE_COMMAND_PATTERNS: Sequence[Pattern] = (
    re.compile(r"^(?:generate|create|make) (?:(?:me|us) )?an? (?:image|picture|photo) (?:of|for|showing)\s*", re.IGNORECASE),
    re.compile(r"^i (?:need|want) (?:a|an|the) (?:image|picture|photo) (?:of|for)\s*", re.IGNORECASE),
    re.compile(r"^show (?:(?:me|us) )?(?:(?:a|an|the) )?(?:image|picture|photo) (?:of|for)\s*", re.IGNORECASE),
    re.compile(r"^(?:generate|create|make) (?:(?:me|us) )?(?:(?:a|an|the) )?(?:image|picture|photo)\s*", re.IGNORECASE),
    re.compile(r"^draw\b\s*(?:(?:me|us)\b\s*)?", re.IGNORECASE),
)

_LEADING_CONNECTOR = re.compile(r"^(?:of|for|showing)\s+", re.IGNORECASE)


class ImageIntentDetector:
    """
    Regex-based image request detector.

    Example:
        detector = ImageIntentDetector()
        detector.extract_prompt("draw me a red fox")  # "a red fox"
        detector.extract_prompt("what time is it?")   # None
    """

    def __init__(self, patterns: Optional[Sequence[Pattern]] = None):
        self.patterns = tuple(patterns) if patterns is not None else IMAGE_COMMAND_PATTERNS

    def matches(self, content: str) -> bool:
        text = (content or "").strip()
        return any(pattern.search(text) for pattern in self.patterns)

    def extract_prompt(self, content: str) -> Optional[str]:
        """
        Returns the image prompt with the command phrase removed,
        or None if the content is not an image command.
        """
        text = (content or "").strip()
        for pattern in self.patterns:
            if not pattern.search(text):
                continue
            prompt = pattern.sub("", text, count=1).strip()
            prompt = _LEADING_CONNECTOR.sub("", prompt).strip()
            if not prompt:
                # Bare "draw me" carries no subject; keep the full text
                prompt = text
            log.debug(f"Image command detected; prompt={prompt!r}")
            return prompt
        return None
