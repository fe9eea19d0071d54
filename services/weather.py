"""
Weather lookups backed by WeatherAPI.com.
"""

import logging
from typing import Any, Dict, Optional

import utils.func as func
from AI.error_types import DownstreamFailure
from services.base import BaseLookup

log = logging.getLogger(__name__)

WEATHER_API_URL = "https://api.weatherapi.com/v1"


class WeatherLookup(BaseLookup):
    """
    Current conditions, optionally with a multi-day forecast.

    Args:
        api_key: WeatherAPI key (defaults to Services.weather_api_key)
        extended: Fetch a multi-day forecast instead of current conditions
        default_days: Forecast length when the caller gives none
    """

    kind = "weather"

    def __init__(
        self,
        api_key: Optional[str] = None,
        extended: bool = False,
        default_days: int = 5,
        request_timeout: Optional[float] = None
    ):
        super().__init__(request_timeout)
        self.api_key = api_key or func.get_setting("Services", "weather_api_key", "")
        self.extended = extended
        self.default_days = default_days

    def _days(self, parameters: Dict[str, Any]) -> int:
        try:
            days = int(parameters.get("days") or self.default_days)
        except (TypeError, ValueError):
            days = self.default_days
        return min(max(days, 1), 7)

    async def execute(self, parameters: Dict[str, Any]) -> Dict[str, Any]:
        location = self._require(parameters, "location", self.kind)
        if not self.api_key:
            raise DownstreamFailure(self.kind, "weather_api_key is not configured")

        # A one-day forecast still carries current conditions plus today's min/max
        days = self._days(parameters) if self.extended else 1
        data = await self._get_json(
            f"{WEATHER_API_URL}/forecast.json",
            {"key": self.api_key, "q": location, "days": days}
        )
        if not isinstance(data, dict) or "location" not in data:
            raise DownstreamFailure(self.kind, f"unexpected payload for '{location}'")

        log.debug(f"Weather for {location} fetched ({'extended' if self.extended else 'current'})")
        return data
