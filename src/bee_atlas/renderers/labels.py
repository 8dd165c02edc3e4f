"""Specimen label renderer.

Each printable occurrence becomes a small pin label with six lines::

    USA:OR:BentonCo Corvallis
    44.565 -123.262 75m
    15.VI2024-3.1
    J.Doe
    net
    24000123

Labels are laid out ten across and twenty-five down per letter page, with a
blank label between different collectors so each collector's run can be
cut apart.
"""

from __future__ import annotations

from dataclasses import dataclass

from bee_atlas.occurrences.formatting import parse_int, parse_number
from bee_atlas.occurrences.models import Occurrence
from bee_atlas.reference import COUNTIES
from bee_atlas.renderers import render_template

LABEL_COLUMNS = 10
LABEL_ROWS = 25
LABELS_PER_PAGE = LABEL_COLUMNS * LABEL_ROWS

MONTH_NUMERALS = ("I", "II", "III", "IV", "V", "VI", "VII", "VIII", "IX", "X", "XI", "XII")

# Longest values that still fit their line on a label
MAX_COUNTRY = 3
MAX_STATE = 2
MAX_COUNTY_AND_LOCALITY = 25
MAX_NAME = 19
MAX_METHOD = 5

METHODS = ("net", "trap", "nest")


@dataclass
class Label:
    location: str
    coordinates: str
    date: str
    name: str
    method: str
    number: str


def _numeral(month: str) -> str:
    number = parse_int(month)
    if number is None or not 1 <= number <= len(MONTH_NUMERALS):
        return ""
    return MONTH_NUMERALS[number - 1]


def _fixed(value: str, places: int) -> str:
    number = parse_number(value)
    return f"{number:.{places}f}" if number is not None else value


def _method(sampling_protocol: str) -> str:
    method = sampling_protocol.lower()
    # Later matches win, so "nest trap" prints as "nest"
    for keyword in METHODS:
        if keyword in method:
            method = keyword
    return method


def build_label(occ: Occurrence) -> Label:
    county = COUNTIES.get(occ.county.strip(), occ.county.strip())
    county_part = f":{county}{'Co' if occ.country == 'USA' else ''}" if county else ""

    elevation = f" {occ.verbatim_elevation}m" if occ.verbatim_elevation else ""

    month, month2 = _numeral(occ.month), _numeral(occ.month2)
    duration = f"-{occ.day2}.{month2}" if occ.day2 and month2 else ""
    sample_id = occ.sample_id.replace("-", "", 1)

    return Label(
        location=f"{occ.country}:{occ.state_province}{county_part} {occ.locality}",
        coordinates=f"{_fixed(occ.decimal_latitude, 3)} {_fixed(occ.decimal_longitude, 3)}{elevation}",
        date=f"{occ.day}.{month}{duration}{occ.year}-{sample_id}.{occ.specimen_id}",
        name=f"{occ.first_name_initial}{occ.last_name}",
        method=_method(occ.sampling_protocol),
        number=occ.field_number,
    )


def label_warning(occ: Occurrence, label: Label) -> str | None:
    """Why a label may print badly, or None if it looks fine."""
    reasons = []
    if not occ.county:
        reasons.append("county")
    if (
        len(occ.country) > MAX_COUNTRY
        or len(occ.state_province) > MAX_STATE
        or len(occ.county) + len(occ.locality) > MAX_COUNTY_AND_LOCALITY
        or len(label.name) > MAX_NAME
        or len(label.method) > MAX_METHOD
    ):
        reasons.append("field length")
    return ", ".join(reasons) if reasons else None


def partition_labels(labels: list[Label]) -> list[Label | None]:
    """Insert a blank (None) between consecutive labels of different collectors."""
    partitioned: list[Label | None] = []
    for i, label in enumerate(labels):
        partitioned.append(label)
        if i + 1 < len(labels) and labels[i + 1].name != label.name:
            partitioned.append(None)
    return partitioned


def paginate_labels(labels: list[Label | None]) -> list[list[Label | None]]:
    return [labels[i : i + LABELS_PER_PAGE] for i in range(0, len(labels), LABELS_PER_PAGE)]


def build_labels_html(labels: list[Label | None], title: str = "Specimen labels") -> str:
    """Full HTML document with one sheet per page of labels."""
    return render_template(
        "labels.html.j2",
        title=title,
        pages=paginate_labels(labels),
        columns=LABEL_COLUMNS,
        label_count=sum(1 for label in labels if label is not None),
    )
