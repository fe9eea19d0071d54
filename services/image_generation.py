"""
Image generation through the completion provider's images API.
"""

import base64
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import utils.func as func
from AI.base_client import BaseAIClient
from AI.error_types import DownstreamFailure
from services.base import BaseLookup

log = logging.getLogger(__name__)

SUPPORTED_SIZES = ("1024x1024", "1536x1024", "1024x1536")


@dataclass
class GeneratedImage:
    """A generated image ready to attach to a Discord message."""
    data: bytes
    prompt: str
    model: str
    size: str
    duration_ms: int
    revised_prompt: Optional[str] = None

    @property
    def filename(self) -> str:
        slug = re.sub(r"[^a-z0-9]+", "-", self.prompt.lower()).strip("-")[:40]
        return f"{slug or 'image'}.png"


class ImageGenerator(BaseLookup):
    """
    Generates one image per request.

    Content-policy refusals propagate as ContentPolicyViolation from the
    client; every other failure is a DownstreamFailure.
    """

    kind = "gptimage"

    def __init__(
        self,
        client: BaseAIClient,
        model: Optional[str] = None,
        size: Optional[str] = None,
        request_timeout: Optional[float] = None
    ):
        super().__init__(request_timeout)
        self.client = client
        self.model = model or func.get_setting("OpenAI", "image_model", "gpt-image-1")
        self.size = size or func.get_setting("OpenAI", "image_size", "1024x1024")

    async def generate(self, prompt: str, size: Optional[str] = None) -> GeneratedImage:
        prompt = (prompt or "").strip()
        if not prompt:
            raise DownstreamFailure(self.kind, "empty image prompt")
        if size not in SUPPORTED_SIZES:
            size = self.size

        started = time.monotonic()
        image = await self.client.generate_image(prompt, size=size, model=self.model)

        if image.get("b64_json"):
            try:
                data = base64.b64decode(image["b64_json"])
            except (ValueError, TypeError) as e:
                raise DownstreamFailure.from_exception(self.kind, e)
        elif image.get("url"):
            data = await self._get_bytes(image["url"])
        else:
            raise DownstreamFailure(self.kind, "image response carried no data")

        duration_ms = int((time.monotonic() - started) * 1000)
        log.info(f"Generated {size} image ({len(data)} bytes) in {duration_ms}ms")
        return GeneratedImage(
            data=data,
            prompt=prompt,
            model=self.model,
            size=size,
            duration_ms=duration_ms,
            revised_prompt=image.get("revised_prompt"),
        )

    async def execute(self, parameters: Dict[str, Any]) -> Dict[str, Any]:
        image = await self.generate(parameters.get("prompt", ""), parameters.get("size"))
        return {"image": image}
