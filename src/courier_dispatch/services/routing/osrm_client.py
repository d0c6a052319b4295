"""HTTP client for the OSRM route service."""

from __future__ import annotations

import logging
import time
from typing import Sequence

import httpx

from ...config import settings

DEFAULT_PROFILE = "driving"
CONNECT_TIMEOUT_SECONDS = 3.0

logger = logging.getLogger(__name__)


class OSRMClient:
    def __init__(
        self,
        base_url: str | None = None,
        profile: str = DEFAULT_PROFILE,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.osrm_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.profile = profile
        self.timeout = timeout if timeout is not None else settings.osrm_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.osrm_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.osrm_backoff_seconds
        self._transport = transport

    def _get_client(self) -> httpx.Client:
        """Short-lived client per call; callers may run on any worker thread."""
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, CONNECT_TIMEOUT_SECONDS)),
            transport=self._transport,
        )

    def route(
        self,
        coordinates: Sequence[tuple[float, float]],
        profile: str | None = None,
        steps: bool = True,
    ) -> dict:
        """Get the street route between (lat, lon) waypoints.

        Returns the decoded OSRM JSON body; ``routes[0]`` carries distance,
        duration, the polyline geometry and, when requested, the leg steps.
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for OSRM route.")

        # OSRM expects "lon,lat;lon,lat"
        coordinate_str = ";".join(f"{lon},{lat}" for lat, lon in coordinates)
        params = {
            "overview": "full",
            "geometries": "polyline",
            "steps": "true" if steps else "false",
        }
        url = f"{self.base_url}/route/v1/{profile or self.profile}/{coordinate_str}"

        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    response.raise_for_status()
                    data = response.json()
                    if data.get("code") != "Ok" or not data.get("routes"):
                        error_msg = data.get("message", "Unknown OSRM route error")
                        raise ValueError(f"OSRM route request failed: {error_msg}")
                    return data
                except httpx.TimeoutException as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"OSRM route request timed out after {attempt} attempts: {e}")
                        raise
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OSRM route timeout, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    time.sleep(wait_time)
                except (httpx.ConnectError, httpx.NetworkError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ConnectionError(f"Failed to connect to OSRM service at {self.base_url}: {e}") from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OSRM network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}")
                    time.sleep(wait_time)
                except (httpx.HTTPError, ValueError):
                    attempt += 1
                    if attempt > self.max_retries:
                        raise
                    time.sleep(self.backoff_seconds * attempt)
        finally:
            client.close()


def check_health(base_url: str | None = None, transport: httpx.BaseTransport | None = None) -> bool:
    """Check OSRM reachability with a minimal two-point route request."""
    base = base_url or settings.osrm_base_url
    if not base:
        return False
    test_coords = "13.388860,52.517037;13.385983,52.496891"
    url = f"{base.rstrip('/')}/route/v1/{DEFAULT_PROFILE}/{test_coords}"
    try:
        with httpx.Client(timeout=5.0, transport=transport) as client:
            response = client.get(url, params={"overview": "false"})
            response.raise_for_status()
            return response.json().get("code") == "Ok"
    except (httpx.HTTPError, ValueError) as e:
        logger.debug(f"OSRM health check failed: {e}")
        return False
