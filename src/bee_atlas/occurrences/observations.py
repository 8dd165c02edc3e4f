"""
Mapping iNaturalist observations onto occurrences.

Two directions:
  - ``occurrence_from_observation`` builds a new record for an observation
    that has no occurrence yet (one per collected specimen, see
    ``specimen_count``)
  - ``update_from_observation`` computes the changes that refresh an existing
    occurrence from its observation: elevation, coordinates when the
    observation is at least as precise, the flower relationship and the plant
    taxonomy
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import date
from typing import TYPE_CHECKING, Any

from bee_atlas.elevation import coordinate_key
from bee_atlas.occurrences.formatting import join_name, parse_int, strip_county_suffix
from bee_atlas.occurrences.models import Occurrence
from bee_atlas.reference import COUNTRIES, STATE_PROVINCES
from bee_atlas.reference.inat import (
    DEFAULT_SAMPLING_PROTOCOL,
    FLOWER_RELATIONSHIP,
    OFV_BEES_COLLECTED,
    OFV_SAMPLE_ID,
)

if TYPE_CHECKING:
    from bee_atlas.datasources.inaturalist.places import PlacesCache
    from bee_atlas.datasources.inaturalist.taxa import TaxaCache
    from bee_atlas.usernames import Usernames

Observation = Mapping[str, Any]

# One shared account, split by sample number from 2021 on
SHARED_LOGIN = "pandg"
SHARED_LOGIN_SINCE = 2021
SHARED_LOGIN_SPLIT = 100


def observation_field(observation: Observation, name: str) -> str:
    """Value of a named observation field (OFV), or ""."""
    for ofv in observation.get("ofvs") or ():
        if ofv.get("name") == name:
            value = ofv.get("value")
            return "" if value is None else str(value)
    return ""


def specimen_count(observation: Observation) -> int:
    """Number of bees the volunteer reported collecting (0 if unset)."""
    return parse_int(observation_field(observation, OFV_BEES_COLLECTED)) or 0


def observed_date(observation: Observation) -> date | None:
    observed_on = observation.get("observed_on")
    if not observed_on:
        return None
    try:
        return date.fromisoformat(str(observed_on)[:10])
    except ValueError:
        return None


def observation_coordinates(observation: Observation) -> tuple[str, str]:
    """(latitude, longitude) to four decimals from the GeoJSON point."""
    coordinates = (observation.get("geojson") or {}).get("coordinates") or []
    if len(coordinates) < 2 or coordinates[0] is None or coordinates[1] is None:
        return "", ""
    lon, lat = float(coordinates[0]), float(coordinates[1])
    return f"{lat:.4f}", f"{lon:.4f}"


def _locality(place_guess: str | None) -> str:
    first = (place_guess or "").split(",")[0]
    return strip_county_suffix(first).strip()


def _accuracy(observation: Observation) -> str:
    accuracy = observation.get("positional_accuracy")
    return "" if accuracy is None else str(accuracy)


def occurrence_from_observation(
    observation: Observation,
    elevations: Mapping[str, str],
    usernames: Usernames,
    places: PlacesCache,
    taxa: TaxaCache,
) -> Occurrence:
    """Build a new occurrence from an observation. Nothing is stored."""
    user = observation.get("user") or {}
    login = user.get("login") or ""
    name = usernames.user_name(login)

    sample = parse_int(observation_field(observation, OFV_SAMPLE_ID))
    specimens = parse_int(observation_field(observation, OFV_BEES_COLLECTED))
    observed = observed_date(observation)

    if login == SHARED_LOGIN and observed and observed.year >= SHARED_LOGIN_SINCE and sample is not None:
        if sample > SHARED_LOGIN_SPLIT:
            name.first_name, name.first_name_initial = "Gretchen", "G."
        else:
            name.first_name, name.first_name_initial = "Robert", "R."

    place_names = places.place_names(observation.get("place_ids"))
    latitude, longitude = observation_coordinates(observation)
    ancestry = taxa.plant_ancestry(observation.get("taxon"))
    taxon_rank = (observation.get("taxon") or {}).get("rank") or ""

    occ = Occurrence(
        user_id="" if user.get("id") is None else str(user["id"]),
        user_login=login,
        first_name=name.first_name,
        first_name_initial=name.first_name_initial,
        last_name=name.last_name,
        recorded_by=join_name(name.first_name, name.last_name),
        sample_id="" if sample is None else str(sample),
        specimen_id="" if specimens is None else str(specimens),
        day=str(observed.day) if observed else "",
        month=str(observed.month) if observed else "",
        year=str(observed.year) if observed else "",
        country=COUNTRIES.get(place_names.country, place_names.country),
        state_province=STATE_PROVINCES.get(place_names.state_province, place_names.state_province),
        county=place_names.county,
        locality=_locality(observation.get("place_guess")),
        verbatim_elevation=elevations.get(f"{latitude},{longitude}", "") if latitude else "",
        decimal_latitude=latitude,
        decimal_longitude=longitude,
        coordinate_uncertainty=_accuracy(observation),
        sampling_protocol=DEFAULT_SAMPLING_PROTOCOL,
        relationship_of_resource=FLOWER_RELATIONSHIP,
        related_resource_id=observation.get("uuid") or "",
        url=observation.get("uri") or "",
        is_new=True,
        **ancestry.as_occurrence_fields(taxon_rank),
    )
    if observed:
        occ.verbatim_event_date = f"{occ.month}/{occ.day}/{occ.year}"
    return occ


def update_from_observation(
    occurrence: Occurrence,
    observation: Observation | None,
    elevations: Mapping[str, str],
    taxa: TaxaCache,
    lookup_elevation: Callable[[str, str], str] | None = None,
) -> dict[str, str]:
    """Field changes that refresh an occurrence from its observation.

    A blank accuracy on either side is treated as exact. Coordinates move only
    when the observation is at least as precise and actually differs.
    """
    lat, lon = occurrence.decimal_latitude, occurrence.decimal_longitude
    changes: dict[str, str] = {"verbatim_elevation": elevations.get(f"{lat},{lon}", "")}
    if observation is None:
        return changes

    previous = parse_int(occurrence.coordinate_uncertainty)
    accuracy = observation.get("positional_accuracy")
    more_precise = accuracy is None or (previous is not None and accuracy <= previous)
    if more_precise:
        new_lat, new_lon = observation_coordinates(observation)
        if (new_lat, new_lon) != (lat, lon) and new_lat and new_lon:
            elevation = elevations.get(coordinate_key(float(new_lat), float(new_lon)), "")
            if not elevation and lookup_elevation is not None:
                elevation = lookup_elevation(new_lat, new_lon)
            changes.update(
                verbatim_elevation=elevation,
                decimal_latitude=new_lat,
                decimal_longitude=new_lon,
                coordinate_uncertainty=_accuracy(observation),
            )

    taxon = observation.get("taxon") or {}
    changes["relationship_of_resource"] = FLOWER_RELATIONSHIP
    changes["related_resource_id"] = observation.get("uuid") or ""
    changes.update(taxa.plant_ancestry(taxon).as_occurrence_fields(taxon.get("rank") or ""))
    return changes
