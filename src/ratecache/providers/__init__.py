"""
ratecache Rate Providers

Two interchangeable variants of one contract, picked by configuration:
the CBR XML daily bulletin and the CBR JSON single-currency feed.
"""

import httpx

from ratecache.config import Settings
from ratecache.providers.base import (
    BaseRateProvider,
    MalformedResponseError,
    NetworkFailureError,
    RateProviderError,
    UnknownCurrencyError,
    build_http_client,
)
from ratecache.providers.cbr_json import CbrJsonProvider
from ratecache.providers.cbr_xml import BulletinCache, CbrXmlProvider


def create_provider(
    settings: Settings,
    client: httpx.Client,
    bulletins: BulletinCache | None = None
) -> BaseRateProvider:
    """Build the provider variant selected in settings."""
    if settings.provider == "cbr_xml":
        return CbrXmlProvider(client, settings.cbr_xml_url, bulletins)
    if settings.provider == "cbr_json":
        return CbrJsonProvider(client, settings.cbr_json_url)
    raise ValueError(f"Unknown provider: {settings.provider}")


__all__ = [
    "BaseRateProvider",
    "BulletinCache",
    "CbrJsonProvider",
    "CbrXmlProvider",
    "MalformedResponseError",
    "NetworkFailureError",
    "RateProviderError",
    "UnknownCurrencyError",
    "build_http_client",
    "create_provider",
]
