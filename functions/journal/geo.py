"""
Nominatim (geocoding) and OSRM (routing) HTTP client.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional

import requests

REQUEST_TIMEOUT = 30  # seconds

SEARCH_RESULT_LIMIT = 5
REVERSE_ZOOM = 18

_NUMBER = r"-?\d+(?:\.\d+)?"
COORDS_PATTERN = re.compile(rf"^{_NUMBER},{_NUMBER}(?:;{_NUMBER},{_NUMBER})+$")


class GeoError(Exception):
    """Raised when an upstream geocoding/routing call fails."""


def parse_coordinate(value: Optional[str], name: str, bound: float) -> float:
    """
    Parses a latitude/longitude query value.

    Raises:
        ValueError: If the value is not a number within +/- ``bound``.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f'"{name}" must be a number') from None
    if not -bound <= number <= bound:
        raise ValueError(f'"{name}" must be between {-bound:g} and {bound:g}')
    return number


def validate_coords(coords: str) -> str:
    """
    Checks an OSRM coordinate list (``lon,lat;lon,lat[;...]``).

    Raises:
        ValueError: If the value is not at least two ``lon,lat`` pairs.
    """
    cleaned = coords.strip()
    if not COORDS_PATTERN.match(cleaned):
        raise ValueError('"coords" must look like "lon,lat;lon,lat"')
    return cleaned


@dataclass
class GeoClient:
    nominatim_base_url: str = "https://nominatim.openstreetmap.org"
    osrm_base_url: str = "https://router.project-osrm.org"
    user_agent: str = "JourneyDiary/1.0"
    timeout: float = REQUEST_TIMEOUT

    def _get_json(self, url: str, params: Optional[dict] = None) -> Any:
        headers = {"Accept": "application/json", "User-Agent": self.user_agent}
        try:
            response = requests.get(
                url, params=params, headers=headers, timeout=self.timeout
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise GeoError(str(e)) from e

    def search(self, query: str) -> Any:
        """
        Searches Nominatim for places matching a free-text query.

        Args:
            query (str): The search text.

        Returns:
            The Nominatim JSON response (a list of places).
        """
        return self._get_json(
            f"{self.nominatim_base_url.rstrip('/')}/search",
            params={
                "format": "json",
                "q": query,
                "limit": SEARCH_RESULT_LIMIT,
                "addressdetails": 1,
            },
        )

    def reverse(self, lat: float, lon: float) -> Any:
        """
        Reverse-geocodes a coordinate to an address.

        Returns:
            The Nominatim JSON response (a single place).
        """
        return self._get_json(
            f"{self.nominatim_base_url.rstrip('/')}/reverse",
            params={
                "format": "json",
                "lat": lat,
                "lon": lon,
                "zoom": REVERSE_ZOOM,
                "addressdetails": 1,
            },
        )

    def route(self, coords: str) -> Any:
        """
        Computes a driving route through the given ``lon,lat;lon,lat`` points.

        Returns:
            The OSRM JSON response, geometry as GeoJSON.
        """
        return self._get_json(
            f"{self.osrm_base_url.rstrip('/')}/route/v1/driving/{coords}",
            params={"overview": "full", "geometries": "geojson"},
        )
