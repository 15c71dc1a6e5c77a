from __future__ import annotations

import random

from pydantic import BaseModel, Field

from .registry import ToolDefinition

CONDITIONS = ("sunny", "cloudy", "rainy", "snowy")


class WeatherInput(BaseModel):
    city: str = Field(description="City name")


def build_weather_tool(rng: random.Random | None = None) -> ToolDefinition:
    rng = rng or random.Random()

    async def get_weather(args: WeatherInput) -> dict[str, object]:
        # Simulated; swap in a real weather API here.
        return {
            "city": args.city,
            "temperature": rng.randint(5, 34),
            "condition": rng.choice(CONDITIONS),
            "unit": "celsius",
        }

    return ToolDefinition(
        name="getWeather",
        description="Get the current weather for a city",
        input_model=WeatherInput,
        execute=get_weather,
    )
