"""
Function collaborators.

Each lookup implements ``execute(parameters)`` and raises DownstreamFailure
on failure. Retries, if any, belong to the collaborator itself.
"""

from services.arena_stats import ArenaStatsLookup
from services.base import BaseLookup
from services.image_generation import GeneratedImage, ImageGenerator
from services.time_lookup import TimeLookup
from services.version import VersionLookup
from services.weather import WeatherLookup
from services.wolfram import WolframLookup

__all__ = [
    'ArenaStatsLookup',
    'BaseLookup',
    'GeneratedImage',
    'ImageGenerator',
    'TimeLookup',
    'VersionLookup',
    'WeatherLookup',
    'WolframLookup',
]
