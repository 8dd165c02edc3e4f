"""Derived occurrence fields: identity, sort key, error flags, normalization.

Everything here is pure. The store applies ``refresh_derived`` on every
write so ``errorFlags`` and the sort key always match the stored fields.
"""

from __future__ import annotations

import hashlib
import math
import re
from datetime import date
from typing import TYPE_CHECKING, Any

from bee_atlas.occurrences.models import (
    KEY_FIELDS,
    KEY_FIELDS_WITHOUT_URL,
    NON_EMPTY_FIELDS,
    SORT_KEY,
    SORT_DECIMALS,
    SORT_SEPARATOR,
    SORT_WIDTH,
    Occurrence,
    column_name,
)
from bee_atlas.reference import COUNTIES

if TYPE_CHECKING:
    from collections.abc import Mapping

# Street suffixes in a locality mean the volunteer typed an address
_STREET_SUFFIXES = (
    r"R(?:oa)?d",
    r"St(?:r(?:eet)?)?",
    r"Av(?:e(?:nue)?)?",
    r"Dr(?:ive)?",
    r"Blvd|Boulevard",
    r"C(?:our)?t",
    r"Ln|Lane",
)
_STREET_SUFFIX_RE = re.compile(
    "|".join(rf"(?<![^,.\s])(?:{s})(?![^,.\s])" for s in _STREET_SUFFIXES),
    re.IGNORECASE,
)

COUNTY_SUFFIX_RE = re.compile(r"(?<![^,.\s])Co(?:unty)?\.?(?![^,.\s])", re.IGNORECASE)

MAX_COUNTRY_LENGTH = 3
MAX_STATE_LENGTH = 2
MAX_LOCALITY_LENGTH = 18
MAX_UNCERTAINTY_METERS = 250
VASCULAR_PLANT_PHYLUM = "tracheophyta"


def includes_street_suffix(value: str) -> bool:
    return bool(value) and _STREET_SUFFIX_RE.search(value) is not None


def strip_county_suffix(value: str) -> str:
    """Drop "County", "Co" and "Co." from a place name."""
    return COUNTY_SUFFIX_RE.sub("", value).strip()


def parse_number(value: str) -> float | None:
    """Parse a numeric field, returning None for blanks and junk."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_int(value: Any) -> int | None:
    """Leading-integer parse: "12", "12.7" and "12abc" all give 12."""
    match = re.match(r"\s*([+-]?\d+)", str(value) if value is not None else "")
    return int(match.group(1)) if match else None


def format_coordinate(value: Any) -> str:
    number = parse_number(value)
    return f"{number:.4f}" if number is not None else ("" if value is None else str(value))


# =============================================================================
# Identity and ordering
# =============================================================================


def occurrence_id(occurrence: Occurrence) -> str:
    """Deterministic id: sha256 of the comma-joined key fields."""
    fields = KEY_FIELDS if occurrence.url else KEY_FIELDS + KEY_FIELDS_WITHOUT_URL
    key = ",".join(str(getattr(occurrence, f) or "") for f in fields)
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


# Integer digits, point, fixed decimals: "1.5" encodes below "2"
NUMBER_WIDTH = SORT_WIDTH + 1 + SORT_DECIMALS


def _encode_number(value: str) -> str:
    number = parse_number(value)
    if number is None or number < 0:
        return "9" * NUMBER_WIDTH
    return f"{number:0{NUMBER_WIDTH}.{SORT_DECIMALS}f}"


def composite_sort(occurrence: Occurrence) -> str:
    """Single string whose lexicographic order is the record order.

    Blank or unparseable parts encode as the maximal value for their kind so
    incomplete records sort after complete ones.
    """
    parts = []
    for part in SORT_KEY:
        value = getattr(occurrence, part.field)
        if part.kind == "number":
            parts.append(_encode_number(value))
        else:
            parts.append(value if value else "z" * SORT_WIDTH)
    return SORT_SEPARATOR.join(parts)


# =============================================================================
# Validation
# =============================================================================


def error_flags(occurrence: Occurrence) -> str:
    """Semicolon-joined column names that are blank or invalid."""
    flags = [column_name(f) for f in NON_EMPTY_FIELDS if not getattr(occurrence, f)]

    if len(occurrence.country) > MAX_COUNTRY_LENGTH:
        flags.append(column_name("country"))
    if len(occurrence.state_province) > MAX_STATE_LENGTH:
        flags.append(column_name("state_province"))
    if includes_street_suffix(occurrence.locality) or len(occurrence.locality) > MAX_LOCALITY_LENGTH:
        flags.append(column_name("locality"))

    uncertainty = parse_int(occurrence.coordinate_uncertainty)
    if uncertainty is not None and uncertainty > MAX_UNCERTAINTY_METERS:
        flags.append(column_name("coordinate_uncertainty"))

    if occurrence.phylum_plant and occurrence.phylum_plant.lower() != VASCULAR_PLANT_PHYLUM:
        flags.append(column_name("phylum_plant"))

    return ";".join(flags)


def refresh_derived(occurrence: Occurrence) -> Occurrence:
    """Recompute ``errorFlags`` in place and return the record."""
    occurrence.error_flags = error_flags(occurrence)
    return occurrence


# =============================================================================
# Normalization
# =============================================================================


def day_of_year(year: str, month: str, day: str) -> str:
    y, m, d = parse_int(year), parse_int(month), parse_int(day)
    if y is None or m is None or d is None:
        return ""
    try:
        return str(date(y, m, d).timetuple().tm_yday)
    except ValueError:
        return ""


def join_name(first_name: str, last_name: str) -> str:
    return " ".join(part for part in (first_name, last_name) if part)


def format_occurrence(row: Mapping[str, Any] | Occurrence, url_prefix: str = "") -> Occurrence:
    """Normalize an uploaded row into a full occurrence record.

    Fills every template field, derives recordedBy and the verbatim date,
    computes day-of-year bounds for two-date (trap) samples, abbreviates
    counties, rounds coordinates to four decimals, and sets error flags.
    """
    occ = row.model_copy() if isinstance(row, Occurrence) else Occurrence.model_validate(dict(row))

    if url_prefix and occ.field_number and occ.state_province == "OR":
        occ.occurrence_id = occ.occurrence_id or f"{url_prefix}{occ.field_number}"
        occ.resource_id = occ.resource_id or occ.occurrence_id

    occ.recorded_by = occ.recorded_by or join_name(occ.first_name, occ.last_name)

    if occ.day and occ.month and occ.year:
        occ.verbatim_event_date = f"{occ.month}/{occ.day}/{occ.year}"
    else:
        occ.verbatim_event_date = ""

    if occ.day2 and occ.month2 and occ.year2:
        occ.start_day_of_year = day_of_year(occ.year, occ.month, occ.day)
        occ.end_day_of_year = day_of_year(occ.year2, occ.month2, occ.day2)
        occ.verbatim_event_date = (
            f"{occ.year}-{occ.month}-{occ.day}/{occ.year2}-{occ.month2}-{occ.day2}"
        )

    occ.county = COUNTIES.get(occ.county, occ.county)
    occ.decimal_latitude = format_coordinate(occ.decimal_latitude)
    occ.decimal_longitude = format_coordinate(occ.decimal_longitude)

    return refresh_derived(occ)
