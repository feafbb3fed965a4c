"""
Geocoding Client

Forward (address -> coordinates) and reverse (coordinates -> address) lookups
against the Google Geocoding JSON API.

Raw JSON payloads are reduced to LookupResult here so nothing else in the
package touches the response shape.

Usage:
    from geobatch.utils.geocoder import GoogleGeocoder

    with GoogleGeocoder() as geocoder:
        result = geocoder.geocode("1600 Amphitheatre Parkway, Mountain View, CA", region="us")
        if result.ok:
            print(result.latitude, result.longitude)
"""

import logging
from typing import Any, Optional, Protocol

import httpx

from geobatch.utils.config import settings
from geobatch.utils.schemas import LookupResult, LookupStatus

logger = logging.getLogger(__name__)


class Geocoder(Protocol):
    """Lookup capability used by the record processor."""

    def geocode(self, query: str, region: str) -> LookupResult: ...

    def reverse_geocode(self, latitude: float, longitude: float, region: str) -> LookupResult: ...


def parse_status(raw: Any) -> LookupStatus:
    if not isinstance(raw, str):
        return LookupStatus.OTHER
    try:
        return LookupStatus(raw)
    except ValueError:
        return LookupStatus.OTHER


def parse_payload(payload: Any) -> LookupResult:
    """
    Convert a Geocoding API JSON body into a LookupResult.

    An OK status without a usable first result is reported as ZERO_RESULTS.

    Args:
        payload: Decoded JSON body

    Returns:
        LookupResult with status and whichever of location / address is present
    """
    if not isinstance(payload, dict):
        return LookupResult(status=LookupStatus.OTHER, error_message="Malformed response body")

    raw_status = payload.get("status")
    status = parse_status(raw_status)
    error_message = payload.get("error_message")
    raw_status = raw_status if isinstance(raw_status, str) else ""

    if status is not LookupStatus.OK:
        return LookupResult(status=status, raw_status=raw_status, error_message=error_message)

    results = payload.get("results") or []
    first = results[0] if results and isinstance(results[0], dict) else {}
    location = (first.get("geometry") or {}).get("location") or {}

    latitude = location.get("lat")
    longitude = location.get("lng")
    formatted_address = first.get("formatted_address")

    if latitude is None and longitude is None and not formatted_address:
        return LookupResult(
            status=LookupStatus.ZERO_RESULTS,
            raw_status=LookupStatus.ZERO_RESULTS.value,
            error_message="OK response without results",
        )

    return LookupResult(
        status=LookupStatus.OK,
        raw_status=raw_status,
        latitude=latitude,
        longitude=longitude,
        formatted_address=formatted_address,
    )


class GoogleGeocoder:
    """httpx client for the Geocoding API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        """
        Args:
            api_key: API key, defaults to settings.GEOCODER_API_KEY
            base_url: Endpoint URL, defaults to settings.GEOCODER_BASE_URL
            timeout: Request timeout in seconds, defaults to settings.API_TIMEOUT
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.api_key = api_key if api_key is not None else settings.GEOCODER_API_KEY
        self.base_url = base_url or settings.GEOCODER_BASE_URL
        self.client = httpx.Client(
            timeout=timeout if timeout is not None else settings.API_TIMEOUT,
            transport=transport,
        )

    def _request(self, params: dict[str, str]) -> LookupResult:
        if self.api_key:
            params["key"] = self.api_key

        response = self.client.get(self.base_url, params=params)

        if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
            logger.warning("Geocoding API returned HTTP 429")
            return LookupResult(
                status=LookupStatus.OVER_QUERY_LIMIT,
                raw_status=LookupStatus.OVER_QUERY_LIMIT.value,
                error_message="HTTP 429",
            )

        response.raise_for_status()
        return parse_payload(response.json())

    def geocode(self, query: str, region: str) -> LookupResult:
        return self._request({"address": query, "region": region})

    def reverse_geocode(self, latitude: float, longitude: float, region: str) -> LookupResult:
        return self._request({"latlng": f"{latitude},{longitude}", "region": region})

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "GoogleGeocoder":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
