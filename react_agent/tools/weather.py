"""
Weather Lookup Tool

Fetches current conditions for a location from an HTTP weather service.
The endpoint URL and API key are injected from configuration.
"""

import logging
from typing import Optional

import requests

from ..models import WeatherConfig
from .registry import ParameterSpec, ToolSpec

logger = logging.getLogger(__name__)

UNITS = ("celsius", "fahrenheit")


def get_weather(
    location: str,
    unit: str = "celsius",
    weather_config: Optional[WeatherConfig] = None,
) -> dict:
    """
    Look up the current weather for a location.

    Args:
        location: City or place name, e.g. "San Francisco"
        unit: Temperature unit, "celsius" or "fahrenheit"
        weather_config: Endpoint configuration

    Returns:
        Dictionary with location, temperature, unit and conditions

    Raises:
        ValueError: If the location is empty
        requests.RequestException: On transport or HTTP failure
    """
    cfg = weather_config or WeatherConfig()
    if not location or not location.strip():
        raise ValueError("Location is empty. Please provide a city or place name.")

    headers = {}
    if cfg.api_key:
        headers["Authorization"] = f"Bearer {cfg.api_key}"

    logger.debug("Fetching weather for %s from %s", location, cfg.url)
    response = requests.get(
        cfg.url,
        params={"location": location, "unit": unit},
        headers=headers,
        timeout=cfg.timeout,
    )
    response.raise_for_status()
    data = response.json()

    return {
        "location": data.get("location", location),
        "temperature": data.get("temperature"),
        "unit": data.get("unit", unit),
        "conditions": data.get("conditions", data.get("description", "")),
    }


def format_result_for_llm(weather: dict) -> str:
    """Format a weather payload into a compact sentence."""
    unit_symbol = "°C" if weather.get("unit") == "celsius" else "°F"
    temperature = weather.get("temperature")
    parts = [f"Weather in {weather.get('location')}:"]
    if temperature is not None:
        parts.append(f"{temperature}{unit_symbol}")
    if weather.get("conditions"):
        parts.append(str(weather["conditions"]))
    return " ".join(parts)


def build_tool(weather_config: Optional[WeatherConfig] = None) -> ToolSpec:
    """Declare the get_weather tool bound to an endpoint configuration."""
    cfg = weather_config or WeatherConfig()

    def _handle_weather(params: dict) -> dict:
        return get_weather(
            location=params["location"],
            unit=params.get("unit", "celsius"),
            weather_config=cfg,
        )

    return ToolSpec(
        name="get_weather",
        description="Get the current weather for a location",
        parameters={
            "location": ParameterSpec("string", "city or place name, e.g. San Francisco"),
            "unit": ParameterSpec(
                "string", "temperature unit", required=False, enum=UNITS
            ),
        },
        handler=_handle_weather,
        formatter=format_result_for_llm,
    )
