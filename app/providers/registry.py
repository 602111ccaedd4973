from __future__ import annotations

from typing import Iterable, List, Optional

from app.config import Settings
from app.providers.base import Provider, ProviderClient, ProviderList
from app.providers.eventbrite import EventbriteProvider
from app.providers.meetup import MeetupProvider
from app.providers.opentripmap import OpenTripMapProvider


def build_providers(settings: Settings, client: ProviderClient) -> ProviderList:
    """Instantiate every known adapter and keep the enabled ones, in order."""
    candidates: List[Provider] = [
        EventbriteProvider(client, settings.eventbrite_api_key),
        OpenTripMapProvider(client, settings.opentripmap_api_key),
        MeetupProvider(client, settings.meetup_api_key),
    ]
    return [provider for provider in candidates if provider.enabled]


def get_provider(providers: Iterable[Provider], name: str) -> Optional[Provider]:
    wanted = name.lower()
    return next((p for p in providers if p.name.lower() == wanted), None)


def enabled_provider_names(providers: Iterable[Provider]) -> List[str]:
    return [p.name for p in providers]
