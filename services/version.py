import platform
import time
from typing import Any, Dict

import discord

import utils.func as func
from services.base import BaseLookup

_STARTED_AT = time.time()


class VersionLookup(BaseLookup):
    """The bot's own name, version and runtime details. Never touches the network."""

    kind = "version"

    async def execute(self, parameters: Dict[str, Any]) -> Dict[str, Any]:
        from messaging import __version__

        info = {
            "name": func.get_setting("Pipeline", "bot_name", "ChimpGPT"),
            "version": __version__,
        }
        if parameters.get("detailed"):
            info.update({
                "python_version": platform.python_version(),
                "discord_py_version": discord.__version__,
                "platform": platform.system(),
                "uptime_seconds": int(time.time() - _STARTED_AT),
            })
        return info
