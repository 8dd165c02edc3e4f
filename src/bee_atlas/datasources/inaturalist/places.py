"""
Place-name cache.

iNaturalist observations carry a list of ``place_ids`` covering every
standard place the point falls in. ``places.json`` keeps the admin-level
places we care about as ``{id: [admin_level, name]}``::

    {"1": ["0", "United States"], "10": ["10", "Oregon"], "1954": ["20", "Benton"]}

Unknown ids are fetched in bulk before a batch of observations is mapped.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from bee_atlas.datasources.inaturalist.cache import JsonCache
from bee_atlas.occurrences.formatting import strip_county_suffix
from bee_atlas.reference.inat import ADMIN_LEVEL_COUNTRY, ADMIN_LEVEL_COUNTY, ADMIN_LEVEL_STATE

if TYPE_CHECKING:
    from pathlib import Path

    from bee_atlas.datasources.inaturalist.client import InatClient

logger = logging.getLogger(__name__)

SAVED_ADMIN_LEVELS = (ADMIN_LEVEL_COUNTRY, ADMIN_LEVEL_STATE, ADMIN_LEVEL_COUNTY)


@dataclass
class PlaceNames:
    country: str = ""
    state_province: str = ""
    county: str = ""


class PlacesCache(JsonCache):
    """Resolves observation ``place_ids`` to country, state and county."""

    def __init__(self, path: Path, client: InatClient) -> None:
        super().__init__(path)
        self.client = client

    def place_names(self, place_ids: Iterable[int | str] | None) -> PlaceNames:
        names = PlaceNames()
        for place_id in place_ids or ():
            place = self.data.get(str(place_id))
            if not place:
                continue
            level, name = place[0], place[1] if len(place) > 1 else ""
            if level == ADMIN_LEVEL_COUNTRY:
                names.country = name
            elif level == ADMIN_LEVEL_STATE:
                names.state_province = name
            elif level == ADMIN_LEVEL_COUNTY:
                names.county = name
        names.county = strip_county_suffix(names.county)
        return names

    def unknown_ids(self, observations: Iterable[dict[str, Any]]) -> list[str]:
        unknown: dict[str, None] = {}
        for obs in observations:
            for place_id in obs.get("place_ids") or ():
                if str(place_id) not in self:
                    unknown[str(place_id)] = None
        return list(unknown)

    def update_from_observations(
        self,
        observations: Iterable[dict[str, Any]],
        on_progress: Callable[[float], None] | None = None,
    ) -> int:
        """Fetch and cache places referenced by observations but not yet known.

        Returns:
            Number of places added.
        """
        unknown = self.unknown_ids(observations)
        added = 0
        if unknown:
            for place in self.client.fetch_places_by_ids(unknown, on_progress):
                level = place.get("admin_level")
                if level is None or str(level) not in SAVED_ADMIN_LEVELS:
                    continue
                self.data[str(place["id"])] = [str(level), place.get("name") or ""]
                added += 1
            logger.info("Cached %d new place(s) of %d unknown", added, len(unknown))
        self.write()
        return added
