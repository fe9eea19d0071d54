"""
Base Lookup

Shared HTTP plumbing for function collaborators. Each lookup opens a short
aiohttp session per request and raises DownstreamFailure on any problem;
callers decide what the user sees.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp

import utils.func as func
from AI.error_types import DownstreamFailure

log = logging.getLogger(__name__)


class BaseLookup(ABC):
    """
    Abstract base class for function collaborators.

    To add a new lookup:
    1. Subclass BaseLookup and set the ``kind`` class attribute
    2. Implement execute(parameters)
    3. Use _get_json()/_get_text() for HTTP calls
    """

    # Telemetry kind (must be set by subclass)
    kind: str = None

    def __init__(self, request_timeout: Optional[float] = None):
        if self.kind is None:
            raise NotImplementedError(
                f"{self.__class__.__name__} must set kind class attribute"
            )
        self.request_timeout = request_timeout if request_timeout is not None else float(
            func.get_setting("Services", "request_timeout", 10)
        )

    @abstractmethod
    async def execute(self, parameters: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run the lookup.

        Raises:
            DownstreamFailure: on any failure
        """

    async def _request(self, url: str, params: Optional[Dict[str, Any]], mode: str):
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, params=params) as response:
                    if response.status != 200:
                        body = await response.text()
                        log.warning(f"{self.kind} lookup failed: HTTP {response.status}")
                        raise DownstreamFailure(self.kind, f"HTTP {response.status}: {body[:200]}")
                    if mode == "json":
                        return await response.json(content_type=None)
                    if mode == "bytes":
                        return await response.read()
                    return await response.text()
        except DownstreamFailure:
            raise
        except asyncio.TimeoutError:
            raise DownstreamFailure(self.kind, f"request timed out after {self.request_timeout}s")
        except (aiohttp.ClientError, ValueError) as e:
            raise DownstreamFailure.from_exception(self.kind, e)

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self._request(url, params, "json")

    async def _get_text(self, url: str, params: Optional[Dict[str, Any]] = None) -> str:
        return await self._request(url, params, "text")

    async def _get_bytes(self, url: str) -> bytes:
        return await self._request(url, None, "bytes")

    @staticmethod
    def _require(parameters: Dict[str, Any], name: str, kind: str) -> str:
        value = str(parameters.get(name) or "").strip()
        if not value:
            raise DownstreamFailure(kind, f"missing required parameter '{name}'")
        return value
