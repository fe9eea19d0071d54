import logging
from typing import Any, Dict, Optional

import utils.func as func
from AI.error_types import DownstreamFailure
from services.base import BaseLookup

log = logging.getLogger(__name__)

WOLFRAM_SHORT_ANSWER_URL = "http://api.wolframalpha.com/v1/result"


class WolframLookup(BaseLookup):
    """Wolfram Alpha Short Answers API: one line of plain text per query."""

    kind = "wolfram"

    def __init__(self, app_id: Optional[str] = None, request_timeout: Optional[float] = None):
        super().__init__(request_timeout)
        self.app_id = app_id or func.get_setting("Services", "wolfram_app_id", "")

    async def execute(self, parameters: Dict[str, Any]) -> Dict[str, Any]:
        query = self._require(parameters, "query", self.kind)
        if not self.app_id:
            raise DownstreamFailure(self.kind, "wolfram_app_id is not configured")

        answer = await self._get_text(WOLFRAM_SHORT_ANSWER_URL, {"appid": self.app_id, "i": query})
        answer = answer.strip()
        if not answer:
            raise DownstreamFailure(self.kind, "empty answer")

        log.debug(f"Wolfram answered {query!r} with {answer[:80]!r}")
        return {"query": query, "answer": answer}
