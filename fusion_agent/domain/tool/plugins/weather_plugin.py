from typing import Optional
import random
import re

import httpx
import structlog

from fusion_agent.domain.models.plugins import WeatherResult
from .base_plugin import BasePlugin

logger = structlog.get_logger(__name__)

WEATHER_PATTERN = re.compile(r"weather\s+(?:in\s+)?([a-zA-Z\s,]+)", re.IGNORECASE)
OPENWEATHER_URL = "https://api.openweathermap.org/data/2.5/weather"

_SYNTHETIC_CONDITIONS = ["Sunny", "Cloudy", "Rainy", "Partly Cloudy"]


class WeatherPlugin(BasePlugin):
    """Current weather for a place named in the message.

    Uses OpenWeather when an API key is configured. Without a key, or when the
    lookup fails, it answers with a synthetic reading marked
    ``source="synthetic"`` so the result is never mistaken for real data.
    """

    name = "weather"
    description = "Look up the current weather for a location"

    def __init__(
        self,
        api_key: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10.0
    ):
        self.api_key = api_key
        self.http_client = http_client
        self.timeout_seconds = timeout_seconds

    def can_handle(self, message: str) -> bool:
        return self.extract_input(message) is not None

    def extract_input(self, message: str) -> Optional[str]:
        match = WEATHER_PATTERN.search(message)
        if not match:
            return None

        location = match.group(1).strip().strip(",").strip()
        return location or None

    async def run(self, plugin_input: str) -> WeatherResult:
        if not self.api_key:
            logger.info("Using synthetic weather data", location=plugin_input)
            return self.synthetic_weather(plugin_input)

        try:
            return await self._fetch_weather(plugin_input)
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning("Weather lookup failed, using synthetic data", location=plugin_input, error=str(e))
            return self.synthetic_weather(plugin_input)

    async def _fetch_weather(self, location: str) -> WeatherResult:
        params = {"q": location, "appid": self.api_key, "units": "metric"}

        if self.http_client is not None:
            response = await self.http_client.get(OPENWEATHER_URL, params=params)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(OPENWEATHER_URL, params=params)

        response.raise_for_status()
        data = response.json()

        return WeatherResult(
            location=data["name"],
            temperature=round(data["main"]["temp"]),
            condition=data["weather"][0]["main"],
            humidity=data["main"].get("humidity"),
            # OpenWeather reports m/s in metric units
            wind_speed=round(data.get("wind", {}).get("speed", 0.0) * 3.6, 1),
            source="openweather"
        )

    @staticmethod
    def synthetic_weather(location: str) -> WeatherResult:
        """Stable made-up reading for a location"""

        rng = random.Random(location.lower())
        return WeatherResult(
            location=location,
            temperature=rng.randint(10, 39),
            condition=rng.choice(_SYNTHETIC_CONDITIONS),
            humidity=rng.randint(40, 79),
            wind_speed=float(rng.randint(5, 24)),
            source="synthetic"
        )
