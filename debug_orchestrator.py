# debug_orchestrator.py
import asyncio
import json
import sys
from datetime import datetime, timedelta, timezone

from app.config import Settings
from app.geocoding import Geocoder
from app.orchestrator import search_happenings
from app.providers.base import ProviderClient
from app.providers.registry import build_providers


async def main(city: str):
    settings = Settings.from_env()
    client = ProviderClient.from_settings(settings)
    start = datetime.now(timezone.utc).replace(microsecond=0)

    payload = {
        "city": city,
        "start": start.isoformat(),
        "end": (start + timedelta(days=7)).isoformat(),
        "sort_by": "recommended",
    }

    # Call orchestrator directly
    result = await search_happenings(
        payload,
        providers=build_providers(settings, client),
        geocoder=Geocoder.from_settings(settings),
        limit=settings.result_limit,
    )
    print("➡️ Orchestrator returned:\n")
    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "Lisbon"))
