"""
Function Calling - Capability Definitions

This module declares the closed set of capabilities the completion service
may request. Each definition follows OpenAI's function calling schema format.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class FunctionName(str, Enum):
    """Every function the dispatcher can route to."""
    LOOKUP_WEATHER = "lookup_weather"
    LOOKUP_EXTENDED_FORECAST = "lookup_extended_forecast"
    LOOKUP_TIME = "lookup_time"
    GET_WOLFRAM_SHORT_ANSWER = "get_wolfram_short_answer"
    QUAKE_LOOKUP = "quake_lookup"
    GENERATE_IMAGE = "generate_image"
    GET_VERSION = "get_version"

    @classmethod
    def parse(cls, name: Optional[str]) -> Optional["FunctionName"]:
        """Map a raw function name to the enum, or None if it is not declared."""
        try:
            return cls(name)
        except ValueError:
            return None

    @property
    def telemetry_kind(self) -> str:
        return _TELEMETRY_KINDS[self]


_TELEMETRY_KINDS = {
    FunctionName.LOOKUP_WEATHER: "weather",
    FunctionName.LOOKUP_EXTENDED_FORECAST: "weather",
    FunctionName.LOOKUP_TIME: "time",
    FunctionName.GET_WOLFRAM_SHORT_ANSWER: "wolfram",
    FunctionName.QUAKE_LOOKUP: "quake",
    FunctionName.GENERATE_IMAGE: "gptimage",
    FunctionName.GET_VERSION: "version",
}


# Function definitions for LLM function calling
FUNCTION_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": FunctionName.LOOKUP_TIME.value,
            "description": "Look up the current time and timezone information for a specific geographic location or city. Use for time zone queries, NOT for gaming or server statistics.",
            "parameters": {
                "type": "object",
                "properties": {
                    "location": {
                        "type": "string",
                        "description": "The location to look up the time for"
                    }
                },
                "required": ["location"]
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": FunctionName.LOOKUP_WEATHER.value,
            "description": "Look up the current weather for a specific location",
            "parameters": {
                "type": "object",
                "properties": {
                    "location": {
                        "type": "string",
                        "description": "The location to look up the weather for"
                    }
                },
                "required": ["location"]
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": FunctionName.LOOKUP_EXTENDED_FORECAST.value,
            "description": "Look up the extended weather forecast (several days) for a specific location",
            "parameters": {
                "type": "object",
                "properties": {
                    "location": {
                        "type": "string",
                        "description": "The location to look up the forecast for"
                    },
                    "days": {
                        "type": "integer",
                        "description": "Number of forecast days (1-7, default 5)"
                    }
                },
                "required": ["location"]
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": FunctionName.GET_WOLFRAM_SHORT_ANSWER.value,
            "description": "Get a short factual answer from Wolfram Alpha for math, science, conversions and general knowledge questions",
            "parameters": {
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "The question or query to send to Wolfram Alpha"
                    }
                },
                "required": ["query"]
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": FunctionName.QUAKE_LOOKUP.value,
            "description": "Look up Quake Live video game server statistics, player counts, and match information. Use this for gaming-related queries about Quake Live servers, NOT for location-based time or weather queries.",
            "parameters": {
                "type": "object",
                "properties": {}
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": FunctionName.GENERATE_IMAGE.value,
            "description": "Generate an image using AI based on a text description",
            "parameters": {
                "type": "object",
                "properties": {
                    "prompt": {
                        "type": "string",
                        "description": "The text description of the image to generate"
                    },
                    "size": {
                        "type": "string",
                        "enum": ["1024x1024", "1536x1024", "1024x1536"],
                        "description": "Image size: 1024x1024 (square), 1536x1024 (landscape), or 1024x1536 (portrait)"
                    }
                },
                "required": ["prompt"]
            }
        }
    },
    {
        "type": "function",
        "function": {
            "name": FunctionName.GET_VERSION.value,
            "description": "Get information about the bot's version and runtime details",
            "parameters": {
                "type": "object",
                "properties": {
                    "detailed": {
                        "type": "boolean",
                        "description": "Whether to include detailed runtime information"
                    }
                },
                "required": []
            }
        }
    },
]


def get_function_definitions() -> List[Dict[str, Any]]:
    """Returns the list of declared function definitions."""
    return FUNCTION_DEFINITIONS


__all__ = [
    "FUNCTION_DEFINITIONS",
    "FunctionName",
    "get_function_definitions",
]
