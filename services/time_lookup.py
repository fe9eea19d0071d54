from typing import Any, Dict, Optional

import utils.func as func
from AI.error_types import DownstreamFailure
from services.base import BaseLookup
from services.weather import WEATHER_API_URL


class TimeLookup(BaseLookup):
    """Local time and timezone for a location, via WeatherAPI's timezone endpoint."""

    kind = "time"

    def __init__(self, api_key: Optional[str] = None, request_timeout: Optional[float] = None):
        super().__init__(request_timeout)
        self.api_key = api_key or func.get_setting("Services", "weather_api_key", "")

    async def execute(self, parameters: Dict[str, Any]) -> Dict[str, Any]:
        location = self._require(parameters, "location", self.kind)
        if not self.api_key:
            raise DownstreamFailure(self.kind, "weather_api_key is not configured")

        data = await self._get_json(
            f"{WEATHER_API_URL}/timezone.json",
            {"key": self.api_key, "q": location}
        )
        if not isinstance(data, dict) or "location" not in data:
            raise DownstreamFailure(self.kind, f"unexpected payload for '{location}'")
        return data
