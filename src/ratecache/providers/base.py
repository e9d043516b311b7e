"""
Base Rate Provider Interface

A provider answers one question: what was the rate of `currency` on `date`.
It does its own HTTP, charset and locale-number handling and hands back a
RateRecord, or raises a RateProviderError subclass.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any

import httpx

from ratecache.models import RateRecord


class RateProviderError(Exception):
    """Base exception for rate provider errors."""

    def __init__(
        self,
        message: str,
        provider: str,
        error_type: str = "UNKNOWN",
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.error_type = error_type
        self.details = details or {}


class UnknownCurrencyError(RateProviderError):
    """The currency is not served by this provider."""

    def __init__(self, message: str, provider: str, details: dict[str, Any] | None = None):
        super().__init__(message, provider, error_type="UNKNOWN_CURRENCY", details=details)


class NetworkFailureError(RateProviderError):
    """Timeout, connection error or non-success HTTP status."""


class MalformedResponseError(RateProviderError):
    """The response body could not be parsed."""

    def __init__(self, message: str, provider: str, details: dict[str, Any] | None = None):
        super().__init__(message, provider, error_type="PARSE_ERROR", details=details)


class BaseRateProvider(ABC):
    """
    Abstract base class for rate providers.

    Implementations receive a shared synchronous httpx.Client; the client
    carries the timeout and User-Agent, and is owned by the caller.
    """

    PROVIDER_NAME: str = "base"

    def __init__(self, client: httpx.Client):
        self.client = client

    @abstractmethod
    def fetch_rate(self, currency: str, on_date: date) -> RateRecord:
        """
        Fetch the rate of `currency` for `on_date`.

        Args:
            currency: Currency code, case-insensitive (e.g. "usd")
            on_date: Date the rate applies to

        Returns:
            RateRecord with the provider's raw value and nominal

        Raises:
            UnknownCurrencyError: Currency not served by this provider
            NetworkFailureError: Timeout, connection error or HTTP status error
            MalformedResponseError: Unparseable response body
        """

    def _get(self, url: str, params: dict[str, Any], details: dict[str, Any]) -> httpx.Response:
        """Single GET, no retries. Transport errors become NetworkFailureError."""
        try:
            response = self.client.get(url, params=params)
            response.raise_for_status()
            return response

        except httpx.HTTPStatusError as e:
            raise NetworkFailureError(
                message=f"HTTP error: {e.response.status_code}",
                provider=self.PROVIDER_NAME,
                error_type=f"HTTP_{e.response.status_code}",
                details={**details, "url": str(e.request.url)}
            ) from e

        except httpx.TimeoutException as e:
            raise NetworkFailureError(
                message="Request timeout",
                provider=self.PROVIDER_NAME,
                error_type="TIMEOUT",
                details=details
            ) from e

        except httpx.HTTPError as e:
            raise NetworkFailureError(
                message=f"Network error: {e}",
                provider=self.PROVIDER_NAME,
                error_type="NETWORK",
                details=details
            ) from e


def build_http_client(timeout: float, user_agent: str) -> httpx.Client:
    """HTTP client shared by every lookup in a run."""
    return httpx.Client(
        timeout=timeout,
        headers={"User-Agent": user_agent},
        follow_redirects=True,
    )
