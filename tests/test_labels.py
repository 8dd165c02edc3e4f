"""Tests for the specimen label renderer."""

from __future__ import annotations

from bee_atlas.occurrences.models import Occurrence
from bee_atlas.renderers.labels import (
    LABELS_PER_PAGE,
    Label,
    build_label,
    build_labels_html,
    label_warning,
    paginate_labels,
    partition_labels,
)


def make_occurrence(**overrides: str) -> Occurrence:
    fields = {
        "country": "USA",
        "state_province": "OR",
        "county": "Benton",
        "locality": "Corvallis",
        "decimal_latitude": "44.5646",
        "decimal_longitude": "-123.2620",
        "verbatim_elevation": "75",
        "day": "15",
        "month": "6",
        "year": "2024",
        "sample_id": "3",
        "specimen_id": "1",
        "first_name_initial": "J.",
        "last_name": "Doe",
        "sampling_protocol": "aerial net",
        "field_number": "24000123",
    }
    fields.update(overrides)
    return Occurrence(**fields)


def make_label(name: str) -> Label:
    return Label(location="", coordinates="", date="", name=name, method="net", number="1")


class TestBuildLabel:
    def test_lines(self) -> None:
        label = build_label(make_occurrence())

        assert label.location == "USA:OR:BentonCo Corvallis"
        assert label.coordinates == "44.565 -123.262 75m"
        assert label.date == "15.VI2024-3.1"
        assert label.name == "J.Doe"
        assert label.method == "net"
        assert label.number == "24000123"

    def test_trap_duration(self) -> None:
        label = build_label(make_occurrence(day2="20", month2="7", sampling_protocol="blue vane trap"))
        assert label.date == "15.VI-20.VII2024-3.1"
        assert label.method == "trap"

    def test_no_county_suffix_outside_usa(self) -> None:
        label = build_label(make_occurrence(country="CA", state_province="BC", county="Capital"))
        assert label.location == "CA:BC:CRD Corvallis"

    def test_sample_dash_removed_once(self) -> None:
        assert build_label(make_occurrence(sample_id="-3")).date == "15.VI2024-3.1"

    def test_blank_elevation(self) -> None:
        assert build_label(make_occurrence(verbatim_elevation="")).coordinates == "44.565 -123.262"


class TestLabelWarning:
    def test_clean_label(self) -> None:
        occ = make_occurrence()
        assert label_warning(occ, build_label(occ)) is None

    def test_missing_county_and_long_fields(self) -> None:
        occ = make_occurrence(county="", locality="A Very Long Locality Name Here")
        assert label_warning(occ, build_label(occ)) == "county, field length"


class TestPartitionLabels:
    def test_blank_between_collectors(self) -> None:
        labels = [make_label("J.Doe"), make_label("J.Doe"), make_label("R.Roe")]
        assert partition_labels(labels) == [labels[0], labels[1], None, labels[2]]

    def test_last_label_is_kept(self) -> None:
        labels = [make_label("J.Doe")]
        assert partition_labels(labels) == labels

    def test_empty(self) -> None:
        assert partition_labels([]) == []

    def test_paginate(self) -> None:
        labels: list[Label | None] = [make_label("J.Doe")] * (LABELS_PER_PAGE + 1)
        pages = paginate_labels(labels)
        assert [len(p) for p in pages] == [LABELS_PER_PAGE, 1]


class TestBuildLabelsHtml:
    def test_renders_labels_and_blanks(self) -> None:
        labels = partition_labels([build_label(make_occurrence()), make_label("R.Roe")])

        html = build_labels_html(labels, title="Labels 2024")

        assert "<title>Labels 2024</title>" in html
        assert 'data-labels="2"' in html
        assert "USA:OR:BentonCo Corvallis" in html
        assert html.count('class="label blank"') == 1
        assert html.count('<section class="sheet">') == 1

    def test_escapes_content(self) -> None:
        html = build_labels_html([build_label(make_occurrence(locality="<b>x</b>"))])
        assert "<b>x</b>" not in html
        assert "&lt;b&gt;" in html
