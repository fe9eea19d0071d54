from typing import Any, Dict, List, Optional

import utils.func as func
from AI.error_types import DownstreamFailure
from services.base import BaseLookup


class ArenaStatsLookup(BaseLookup):
    """
    Quake Live server statistics from a JSON server list.

    The endpoint (Services.arena_stats_url) returns either a list of servers
    or an object with a ``servers`` list. Each server is expected to carry
    ``name``, ``map``, ``gametype``, ``players`` and ``maxPlayers`` keys.
    """

    kind = "quake"

    def __init__(self, url: Optional[str] = None, request_timeout: Optional[float] = None):
        super().__init__(request_timeout)
        self.url = url or func.get_setting("Services", "arena_stats_url", "")

    async def execute(self, parameters: Dict[str, Any]) -> Dict[str, Any]:
        if not self.url:
            raise DownstreamFailure(self.kind, "arena_stats_url is not configured")

        data = await self._get_json(self.url)
        servers: List[Dict[str, Any]]
        if isinstance(data, list):
            servers = data
        elif isinstance(data, dict) and isinstance(data.get("servers"), list):
            servers = data["servers"]
        else:
            raise DownstreamFailure(self.kind, "unexpected server list payload")

        return {"servers": [s for s in servers if isinstance(s, dict)]}
