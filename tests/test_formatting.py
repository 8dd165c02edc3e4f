"""Tests for occurrence identity, ordering, flags and normalization."""

from __future__ import annotations

import pytest
from conftest import URL_PREFIX, occurrence_row

from bee_atlas.occurrences.formatting import (
    composite_sort,
    day_of_year,
    error_flags,
    format_occurrence,
    includes_street_suffix,
    occurrence_id,
    parse_int,
    parse_number,
    strip_county_suffix,
)
from bee_atlas.occurrences.models import HEADER, SORT_SEPARATOR, Occurrence


class TestOccurrenceModel:
    def test_header_uses_column_names_in_order(self) -> None:
        assert HEADER[:3] == ("errorFlags", "dateLabelPrint", "fieldNumber")
        assert "coordinateUncertaintyInMeters" in HEADER
        assert "scratch" not in HEADER

    def test_accepts_column_names_and_blanks(self) -> None:
        occ = Occurrence.model_validate({"fieldNumber": 24000001, "lastName": None, "unknown": "x"})
        assert occ.field_number == "24000001"
        assert occ.last_name == ""

    def test_export_row_omits_store_fields(self) -> None:
        row = Occurrence(field_number="1", scratch=True, is_new=True).to_row()
        assert row["fieldNumber"] == "1"
        assert "scratch" not in row
        assert "id" not in row


class TestOccurrenceId:
    def test_identical_inputs_give_identical_ids(self) -> None:
        a = format_occurrence(occurrence_row(url="https://www.inaturalist.org/observations/1"))
        b = format_occurrence(occurrence_row(url="https://www.inaturalist.org/observations/1"))
        assert occurrence_id(a) == occurrence_id(b)
        assert len(occurrence_id(a)) == 64

    def test_key_field_change_changes_id(self) -> None:
        a = format_occurrence(occurrence_row(specimenId="1"))
        b = format_occurrence(occurrence_row(specimenId="2"))
        assert occurrence_id(a) != occurrence_id(b)

    def test_non_key_field_does_not_change_id(self) -> None:
        a = format_occurrence(occurrence_row(url="u", locality="Pullman"))
        b = format_occurrence(occurrence_row(url="u", locality="Moscow"))
        assert occurrence_id(a) == occurrence_id(b)

    def test_names_distinguish_rows_without_url(self) -> None:
        a = format_occurrence(occurrence_row(lastName="Doe"))
        b = format_occurrence(occurrence_row(lastName="Roe"))
        assert occurrence_id(a) != occurrence_id(b)


class TestCompositeSort:
    def test_numbers_are_zero_padded(self) -> None:
        key = composite_sort(Occurrence(field_number="25000001", month="6", day="15"))
        parts = key.split(SORT_SEPARATOR)
        assert parts[0] == "0000000025000001.000000"
        assert parts[3] == "0000000000000006.000000"

    def test_missing_parts_sort_last(self) -> None:
        numbered = composite_sort(Occurrence(field_number="99999999", last_name="Zyzzyva"))
        unnumbered = composite_sort(Occurrence(field_number="", last_name="Aaron"))
        assert numbered < unnumbered

    def test_numeric_order_is_not_lexical(self) -> None:
        nine = composite_sort(Occurrence(last_name="Doe", sample_id="9"))
        ten = composite_sort(Occurrence(last_name="Doe", sample_id="10"))
        assert nine < ten

    def test_fractions_order_between_integers(self) -> None:
        keys = [composite_sort(Occurrence(last_name="Doe", sample_id=s)) for s in ("2", "1.5", "1", "10")]
        assert sorted(keys) == [keys[2], keys[1], keys[0], keys[3]]

    def test_fraction_sorts_before_blank(self) -> None:
        fraction = composite_sort(Occurrence(field_number="1.25"))
        blank = composite_sort(Occurrence(field_number=""))
        assert fraction < blank

    def test_string_parts_order_by_name(self) -> None:
        doe = composite_sort(Occurrence(last_name="Doe", first_name="Jane"))
        roe = composite_sort(Occurrence(last_name="Roe", first_name="Adam"))
        assert doe < roe


class TestErrorFlags:
    def test_complete_row_has_no_flags(self) -> None:
        assert error_flags(format_occurrence(occurrence_row())) == ""

    def test_missing_fields_are_named(self) -> None:
        occ = format_occurrence(occurrence_row(county="", sampleId=""))
        assert error_flags(occ).split(";") == ["sampleId", "county"]

    @pytest.mark.parametrize(
        ("overrides", "flag"),
        [
            ({"country": "United States"}, "country"),
            ({"stateProvince": "Washington"}, "stateProvince"),
            ({"locality": "123 Main St"}, "locality"),
            ({"locality": "Somewhere Far Away From Town"}, "locality"),
            ({"coordinateUncertaintyInMeters": "300"}, "coordinateUncertaintyInMeters"),
            ({"phylumPlant": "Bryophyta"}, "phylumPlant"),
        ],
    )
    def test_invalid_values_are_flagged(self, overrides: dict[str, str], flag: str) -> None:
        assert error_flags(format_occurrence(occurrence_row(**overrides))) == flag

    def test_vascular_plants_are_fine(self) -> None:
        assert error_flags(format_occurrence(occurrence_row(phylumPlant="Tracheophyta"))) == ""


class TestHelpers:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [("Mt Hood Rd", True), ("Main St.", True), ("Stanford", False), ("Corvallis", False), ("", False)],
    )
    def test_street_suffix(self, value: str, expected: bool) -> None:
        assert includes_street_suffix(value) is expected

    @pytest.mark.parametrize("value", ["Benton County", "Benton Co.", "Benton Co"])
    def test_strip_county_suffix(self, value: str) -> None:
        assert strip_county_suffix(value) == "Benton"

    def test_parse_int_takes_leading_integer(self) -> None:
        assert parse_int("12abc") == 12
        assert parse_int("12.7") == 12
        assert parse_int("") is None
        assert parse_int(None) is None

    def test_parse_number_rejects_junk(self) -> None:
        assert parse_number("46.5") == 46.5
        assert parse_number("nan") is None
        assert parse_number("abc") is None

    def test_day_of_year(self) -> None:
        assert day_of_year("2024", "2", "1") == "32"
        assert day_of_year("2024", "2", "30") == ""


class TestFormatOccurrence:
    def test_fills_derived_fields(self) -> None:
        occ = format_occurrence(occurrence_row(decimalLatitude="46.72981234", decimalLongitude="-117.2"))
        assert occ.recorded_by == "Jane Doe"
        assert occ.verbatim_event_date == "6/15/2024"
        assert occ.decimal_latitude == "46.7298"
        assert occ.decimal_longitude == "-117.2000"

    def test_keeps_given_recorded_by(self) -> None:
        assert format_occurrence(occurrence_row(recordedBy="J. Doe")).recorded_by == "J. Doe"

    def test_two_date_samples(self) -> None:
        occ = format_occurrence(occurrence_row(day2="20", month2="6", year2="2024"))
        assert occ.start_day_of_year == "167"
        assert occ.end_day_of_year == "172"
        assert occ.verbatim_event_date == "2024-6-15/2024-6-20"

    def test_abbreviates_counties(self) -> None:
        assert format_occurrence(occurrence_row(county="Capital")).county == "CRD"

    def test_oregon_rows_get_occurrence_urls(self) -> None:
        occ = format_occurrence(occurrence_row(stateProvince="OR", fieldNumber="24000001"), URL_PREFIX)
        assert occ.occurrence_id == f"{URL_PREFIX}24000001"
        assert occ.resource_id == occ.occurrence_id

    def test_other_states_keep_blank_ids(self) -> None:
        occ = format_occurrence(occurrence_row(fieldNumber="24000001"), URL_PREFIX)
        assert occ.occurrence_id == ""

    def test_does_not_mutate_input_model(self) -> None:
        original = Occurrence(first_name="Jane", last_name="Doe")
        format_occurrence(original)
        assert original.recorded_by == ""
