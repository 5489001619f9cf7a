"""
Geolocation Service

Resolves an IP address to a coarse location using the ipstack API. When no
access key is configured, or the lookup fails for any reason, a deterministic
placeholder location derived from the IP is returned instead so the security
pipeline keeps flowing.
"""

import logging

import httpx

from tuning_portal.core.config import Settings, get_settings
from tuning_portal.core.metrics import GEOLOCATION_LOOKUPS
from tuning_portal.models.security_events import GeolocationData

logger = logging.getLogger(__name__)

SAMPLE_COUNTRIES = [
    "United States",
    "United Kingdom",
    "Canada",
    "Australia",
    "Germany",
    "France",
]

SAMPLE_REGIONS = [
    "California",
    "New York",
    "Texas",
    "London",
    "Ontario",
    "Queensland",
    "Bavaria",
    "Île-de-France",
]

SAMPLE_CITIES = [
    "San Francisco",
    "New York",
    "Austin",
    "London",
    "Toronto",
    "Brisbane",
    "Munich",
    "Paris",
]


def _ip_checksum(ip: str) -> int:
    """Sum of the IP's numeric parts; non-numeric parts count by character code."""
    total = 0
    for part in ip.replace(":", ".").split("."):
        if part.isdigit():
            total += int(part)
        else:
            total += sum(ord(char) for char in part)
    return total


def simulate_geolocation(ip: str) -> GeolocationData:
    """
    Deterministic placeholder location for an IP address.

    The same IP always maps to the same location; this is not a real lookup.

    Args:
        ip: IPv4 or IPv6 address (or any string)

    Returns:
        Placeholder geolocation flagged as simulated
    """
    checksum = _ip_checksum(ip)
    return GeolocationData(
        country=SAMPLE_COUNTRIES[checksum % len(SAMPLE_COUNTRIES)],
        region=SAMPLE_REGIONS[checksum % len(SAMPLE_REGIONS)],
        city=SAMPLE_CITIES[checksum % len(SAMPLE_CITIES)],
        latitude=float((checksum % 180) - 90),
        longitude=float((checksum % 360) - 180),
        simulated=True,
    )


class GeolocationService:
    """IP geolocation with simulated fallback."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = "https://api.ipstack.com",
        timeout_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the geolocation service.

        Args:
            api_key: ipstack access key; without one every lookup is simulated
            base_url: ipstack API base URL
            timeout_seconds: HTTP request timeout
            client: Optional pre-configured async HTTP client
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = client is None

        if not api_key:
            logger.warning("IPSTACK_API_KEY not configured. Using simulated geolocation data.")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "GeolocationService":
        settings = settings or get_settings()
        return cls(
            api_key=settings.get_geolocation_api_key(),
            base_url=settings.geolocation.base_url,
            timeout_seconds=settings.geolocation.timeout_seconds,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._client

    def _fallback(self, ip: str) -> GeolocationData:
        if GEOLOCATION_LOOKUPS:
            GEOLOCATION_LOOKUPS.labels(source="simulated").inc()
        return simulate_geolocation(ip)

    async def lookup(self, ip: str) -> GeolocationData:
        """
        Resolve ``ip`` to a location. Never raises.

        Args:
            ip: Address to resolve

        Returns:
            Location from ipstack, or the simulated placeholder
        """
        if not self.api_key:
            return self._fallback(ip)

        try:
            response = await self._get_client().get(
                f"{self.base_url}/{ip}", params={"access_key": self.api_key}
            )
            data = response.json()
        except httpx.TimeoutException:
            logger.error(f"Geolocation lookup timeout after {self.timeout_seconds}s")
            return self._fallback(ip)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to get geolocation data: {e}")
            return self._fallback(ip)

        if not response.is_success or not isinstance(data, dict) or data.get("error"):
            error = data.get("error") if isinstance(data, dict) else None
            info = error.get("info") if isinstance(error, dict) else None
            logger.error(f"Error from ipstack API: {info or 'Unknown error'}")
            return self._fallback(ip)

        try:
            location = GeolocationData(
                country=data.get("country_name") or "Unknown",
                region=data.get("region_name") or "Unknown",
                city=data.get("city") or "Unknown",
                latitude=float(data.get("latitude") or 0.0),
                longitude=float(data.get("longitude") or 0.0),
            )
        except (TypeError, ValueError) as e:
            logger.error(f"Unexpected ipstack response shape: {e}")
            return self._fallback(ip)

        if GEOLOCATION_LOOKUPS:
            GEOLOCATION_LOOKUPS.labels(source="ipstack").inc()
        return location

    async def close(self) -> None:
        """Close the HTTP client if this service created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
