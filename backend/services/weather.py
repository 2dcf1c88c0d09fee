import random
import datetime

CONDITIONS = ["Cloudy", "Sunny", "Rainy", "Snowy", "Windy"]


def get_weather(location: str, unit: str = "fahrenheit") -> dict:
    """Simulated weather lookup. Returns random but plausible data for the location."""
    if not location or not isinstance(location, str):
        raise ValueError("Invalid location provided")

    if unit == "celsius":
        low, high, label = 10, 30, "C"
    else:
        low, high, label = 50, 86, "F"

    return {
        "location": location,
        "temperature": random.randint(low, high),
        "unit": label,
        "conditions": random.choice(CONDITIONS),
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
    }
