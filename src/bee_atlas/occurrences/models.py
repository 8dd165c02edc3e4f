"""
Occurrence record and its field tables.

``Occurrence`` is the curated specimen record. Each attribute carries the
Darwin-Core style column name used in uploads and exports as its alias, and
the class body order IS the export column order.

Tables kept next to the model:
  - ``HEADER``: CSV column order (aliases in declaration order)
  - ``SORT_KEY``: composite sort field order and encoding
  - ``NON_EMPTY_FIELDS``: flagged in ``errorFlags`` when blank
  - ``REQUIRED_LABEL_FIELDS``: must be present and unflagged to print a label
  - ``KEY_FIELDS``: identity hash inputs
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Occurrence(BaseModel):
    """One curated specimen record."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    error_flags: str = Field(default="", alias="errorFlags")
    date_label_print: str = Field(default="", alias="dateLabelPrint")
    field_number: str = Field(default="", alias="fieldNumber")
    catalog_number: str = Field(default="", alias="catalogNumber")
    occurrence_id: str = Field(default="", alias="occurrenceID")
    user_id: str = Field(default="", alias="userId")
    user_login: str = Field(default="", alias="userLogin")
    first_name: str = Field(default="", alias="firstName")
    first_name_initial: str = Field(default="", alias="firstNameInitial")
    last_name: str = Field(default="", alias="lastName")
    recorded_by: str = Field(default="", alias="recordedBy")
    sample_id: str = Field(default="", alias="sampleId")
    specimen_id: str = Field(default="", alias="specimenId")
    day: str = Field(default="", alias="day")
    month: str = Field(default="", alias="month")
    year: str = Field(default="", alias="year")
    verbatim_event_date: str = Field(default="", alias="verbatimEventDate")
    day2: str = Field(default="", alias="day2")
    month2: str = Field(default="", alias="month2")
    year2: str = Field(default="", alias="year2")
    start_day_of_year: str = Field(default="", alias="startDayofYear")
    end_day_of_year: str = Field(default="", alias="endDayofYear")
    country: str = Field(default="", alias="country")
    state_province: str = Field(default="", alias="stateProvince")
    county: str = Field(default="", alias="county")
    locality: str = Field(default="", alias="locality")
    verbatim_elevation: str = Field(default="", alias="verbatimElevation")
    decimal_latitude: str = Field(default="", alias="decimalLatitude")
    decimal_longitude: str = Field(default="", alias="decimalLongitude")
    coordinate_uncertainty: str = Field(default="", alias="coordinateUncertaintyInMeters")
    sampling_protocol: str = Field(default="", alias="samplingProtocol")
    relationship_of_resource: str = Field(default="", alias="relationshipOfResource")
    resource_id: str = Field(default="", alias="resourceID")
    related_resource_id: str = Field(default="", alias="relatedResourceID")
    relationship_remarks: str = Field(default="", alias="relationshipRemarks")
    phylum_plant: str = Field(default="", alias="phylumPlant")
    order_plant: str = Field(default="", alias="orderPlant")
    family_plant: str = Field(default="", alias="familyPlant")
    genus_plant: str = Field(default="", alias="genusPlant")
    species_plant: str = Field(default="", alias="speciesPlant")
    taxon_rank_plant: str = Field(default="", alias="taxonRankPlant")
    url: str = Field(default="", alias="url")
    phylum: str = Field(default="", alias="phylum")
    class_: str = Field(default="", alias="class")
    order: str = Field(default="", alias="order")
    family: str = Field(default="", alias="family")
    genus: str = Field(default="", alias="genus")
    subgenus: str = Field(default="", alias="subgenus")
    specific_epithet: str = Field(default="", alias="specificEpithet")
    taxonomic_notes: str = Field(default="", alias="taxonomicNotes")
    scientific_name: str = Field(default="", alias="scientificName")
    sex: str = Field(default="", alias="sex")
    caste: str = Field(default="", alias="caste")
    taxon_rank: str = Field(default="", alias="taxonRank")
    identified_by: str = Field(default="", alias="identifiedBy")
    family_vol_det: str = Field(default="", alias="familyVolDet")
    genus_vol_det: str = Field(default="", alias="genusVolDet")
    species_vol_det: str = Field(default="", alias="speciesVolDet")
    sex_vol_det: str = Field(default="", alias="sexVolDet")
    caste_vol_det: str = Field(default="", alias="casteVolDet")

    # Store-only fields, never exported
    id: str = Field(default="", exclude=True)
    scratch: bool = Field(default=False, exclude=True)
    is_new: bool = Field(default=False, exclude=True)

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_str(cls, value: Any, info: Any) -> Any:
        if info.field_name in ("scratch", "is_new"):
            return value
        if value is None:
            return ""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    def to_row(self) -> dict[str, str]:
        """Export form keyed by column name."""
        return self.model_dump(by_alias=True)

    def record(self) -> dict[str, str]:
        """Record fields keyed by attribute name (no store flags)."""
        return self.model_dump()


# Attribute names of the exported record fields, in column order
RECORD_FIELDS: tuple[str, ...] = tuple(
    name for name, info in Occurrence.model_fields.items() if info.alias is not None
)

# CSV header, in column order
HEADER: tuple[str, ...] = tuple(
    info.alias for info in Occurrence.model_fields.values() if info.alias is not None
)

ALIAS_TO_FIELD: dict[str, str] = {
    info.alias: name for name, info in Occurrence.model_fields.items() if info.alias is not None
}


# =============================================================================
# Composite sort
# =============================================================================


@dataclass(frozen=True)
class SortPart:
    field: str
    kind: Literal["number", "string"] = "string"


# Lexicographic order of ``composite_sort`` follows this table exactly
SORT_KEY: tuple[SortPart, ...] = (
    SortPart("field_number", "number"),
    SortPart("last_name"),
    SortPart("first_name"),
    SortPart("month", "number"),
    SortPart("day", "number"),
    SortPart("sample_id", "number"),
    SortPart("specimen_id", "number"),
)

SORT_WIDTH = 16
SORT_DECIMALS = 6
SORT_SEPARATOR = "\x1f"


# =============================================================================
# Validation tables
# =============================================================================

NON_EMPTY_FIELDS: tuple[str, ...] = (
    "first_name",
    "first_name_initial",
    "last_name",
    "sample_id",
    "specimen_id",
    "day",
    "month",
    "year",
    "country",
    "state_province",
    "county",
    "locality",
    "decimal_latitude",
    "decimal_longitude",
    "sampling_protocol",
)

REQUIRED_LABEL_FIELDS: tuple[str, ...] = (
    "field_number",
    "first_name_initial",
    "last_name",
    "sample_id",
    "day",
    "month",
    "year",
    "country",
    "state_province",
    "locality",
    "decimal_latitude",
    "decimal_longitude",
    "sampling_protocol",
)

# Identity hash inputs; names are appended when there is no source URL
KEY_FIELDS: tuple[str, ...] = ("sample_id", "specimen_id", "day", "month", "year", "url")
KEY_FIELDS_WITHOUT_URL: tuple[str, ...] = ("first_name", "last_name")

PLANT_TAXONOMY_FIELDS: tuple[str, ...] = (
    "phylum_plant",
    "order_plant",
    "family_plant",
    "genus_plant",
    "species_plant",
    "taxon_rank_plant",
)


def column_name(attr: str) -> str:
    """Column header for an attribute name."""
    alias = Occurrence.model_fields[attr].alias
    return alias if alias is not None else attr


@dataclass
class InsertResult:
    """Outcome of a bulk insert: what went in and what was a duplicate."""

    inserted_count: int = 0
    inserted_ids: list[str] = field(default_factory=list)
    duplicates: list[Occurrence] = field(default_factory=list)

    def merge(self, other: InsertResult) -> InsertResult:
        self.inserted_count += other.inserted_count
        self.inserted_ids.extend(other.inserted_ids)
        self.duplicates.extend(other.duplicates)
        return self
