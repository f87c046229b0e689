import asyncio
import math
import random
from datetime import UTC, datetime
from typing import Any

import httpx
from loguru import logger

from travel_rag_agent.tool import QueryContext, ToolSpec

_GEOCODING_URL = "https://geocoding-api.open-meteo.com/v1/search"
_FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
_CURRENT_FIELDS = "temperature_2m,relative_humidity_2m,weather_code,wind_speed_10m"
_TIMEOUT_SECONDS = 30
_FALLBACK_BASE_TEMP = 72
_FALLBACK_SPREAD = 10

_WEATHER_CODES = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Foggy",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    71: "Slight snow",
    73: "Moderate snow",
    75: "Heavy snow",
    80: "Slight rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    95: "Thunderstorm",
    96: "Thunderstorm with slight hail",
    99: "Thunderstorm with heavy hail",
}


def describe_weather_code(code: object) -> str:
    try:
        return _WEATHER_CODES.get(int(code), "Unknown conditions")
    except (TypeError, ValueError):
        return "Unknown conditions"


class WeatherTool:
    """Current conditions for a free-text location via Open-Meteo.

    Never raises for lookup problems: an unknown place yields a "Location not
    found" payload and a transport failure yields an approximate fallback
    reading, so the turn can still be answered. ``timeout`` bounds the whole
    lookup (geocoding plus forecast), not each request.
    """

    def __init__(
        self,
        *,
        timeout: float = _TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport
        self._rng = rng or random.Random()

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def name(self) -> str:
        return "get_weather"

    @property
    def spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description="Get the current weather conditions for a city or place.",
            input_schema={
                "type": "object",
                "properties": {
                    "location": {
                        "type": "string",
                        "description": "City or place name, e.g. 'Kyoto' or 'Lisbon, Portugal'",
                    },
                },
                "required": ["location"],
            },
        )

    async def execute(self, tool_input: dict[str, Any], query_context: QueryContext) -> dict[str, Any]:
        location = str(tool_input.get("location") or query_context.query).strip()
        logger.info(f"Fetching weather data for location: {location}")

        try:
            return await asyncio.wait_for(self._lookup(location), timeout=self._timeout)
        except (TimeoutError, httpx.HTTPError, KeyError, TypeError, ValueError) as ex:
            logger.warning(f"Weather API error for {location!r}: {type(ex).__name__}: {ex}")
            return {
                "location": location,
                "error": "Failed to fetch weather data",
                "fallbackTemp": _FALLBACK_BASE_TEMP + self._rng.randint(-_FALLBACK_SPREAD, _FALLBACK_SPREAD),
            }

    async def _lookup(self, location: str) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            geo = await client.get(_GEOCODING_URL, params={"name": location, "count": 1})
            geo.raise_for_status()
            matches = geo.json().get("results") or []
            if not matches:
                return {"location": location, "error": "Location not found"}

            place = matches[0]
            forecast = await client.get(
                _FORECAST_URL,
                params={
                    "latitude": place["latitude"],
                    "longitude": place["longitude"],
                    "current": _CURRENT_FIELDS,
                    "timezone": "auto",
                },
            )
            forecast.raise_for_status()
            current = forecast.json()["current"]

        return {
            "location": f"{place.get('name', location)}, {place.get('country', '')}".rstrip(", "),
            "temperature": math.floor(float(current["temperature_2m"]) + 0.5),
            "humidity": current.get("relative_humidity_2m"),
            "windSpeed": current.get("wind_speed_10m"),
            "conditions": describe_weather_code(current.get("weather_code")),
            "timestamp": datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        }
