"""Tests for mapping iNaturalist observations onto occurrences."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any
from unittest.mock import Mock

import pytest
from conftest import write_csv

from bee_atlas.datasources.inaturalist import PlacesCache, TaxaCache
from bee_atlas.occurrences.models import Occurrence
from bee_atlas.occurrences.observations import (
    observation_coordinates,
    observation_field,
    observed_date,
    occurrence_from_observation,
    specimen_count,
    update_from_observation,
)
from bee_atlas.usernames import Usernames

if TYPE_CHECKING:
    from pathlib import Path


def observation(**overrides: Any) -> dict[str, Any]:
    obs: dict[str, Any] = {
        "id": 101,
        "uri": "https://www.inaturalist.org/observations/101",
        "uuid": "4b1d-uuid",
        "observed_on": "2024-06-15",
        "user": {"id": 5, "login": "janedoe"},
        "ofvs": [{"name": "sampleId", "value": "3"}, {"name": "numberOfSpecimens", "value": "2"}],
        "geojson": {"type": "Point", "coordinates": [-122.6, 45.5]},
        "positional_accuracy": 10,
        "place_ids": [1, 10, 1954],
        "place_guess": "Corvallis, OR, USA",
        "taxon": {"id": 60000, "rank": "genus", "name": "Aster", "min_species_ancestry": "211194,60000"},
    }
    obs.update(overrides)
    return obs


@pytest.fixture
def usernames(tmp_path: Path) -> Usernames:
    path = write_csv(
        tmp_path / "usernames.csv",
        [
            {"userLogin": "janedoe", "firstName": "Jane", "firstNameInitial": "J.", "lastName": "Doe"},
            {"userLogin": "pandg", "firstName": "", "firstNameInitial": "", "lastName": "Smith"},
        ],
    )
    return Usernames(path)


@pytest.fixture
def places(tmp_path: Path) -> PlacesCache:
    path = tmp_path / "places.json"
    path.write_text(
        json.dumps({"1": ["0", "United States"], "10": ["10", "Oregon"], "1954": ["20", "Benton County"]}),
        encoding="utf-8",
    )
    return PlacesCache(path, Mock())


@pytest.fixture
def taxa(tmp_path: Path) -> TaxaCache:
    path = tmp_path / "taxa.json"
    path.write_text(json.dumps({"211194": {"rank": "phylum", "name": "Tracheophyta"}}), encoding="utf-8")
    return TaxaCache(path, Mock())


class TestObservationFields:
    def test_named_field(self) -> None:
        assert observation_field(observation(), "sampleId") == "3"
        assert observation_field(observation(), "missing") == ""

    def test_specimen_count(self) -> None:
        assert specimen_count(observation()) == 2
        assert specimen_count(observation(ofvs=[])) == 0

    def test_observed_date(self) -> None:
        assert observed_date(observation()).isoformat() == "2024-06-15"  # type: ignore[union-attr]
        assert observed_date(observation(observed_on=None)) is None
        assert observed_date(observation(observed_on="June")) is None

    def test_coordinates_are_lat_lon(self) -> None:
        assert observation_coordinates(observation()) == ("45.5000", "-122.6000")
        assert observation_coordinates(observation(geojson=None)) == ("", "")


class TestOccurrenceFromObservation:
    def test_maps_observation(self, usernames: Usernames, places: PlacesCache, taxa: TaxaCache) -> None:
        occ = occurrence_from_observation(
            observation(), {"45.5000,-122.6000": "75"}, usernames, places, taxa
        )

        assert occ.user_login == "janedoe"
        assert occ.user_id == "5"
        assert occ.recorded_by == "Jane Doe"
        assert occ.first_name_initial == "J."
        assert occ.sample_id == "3"
        assert (occ.day, occ.month, occ.year) == ("15", "6", "2024")
        assert occ.verbatim_event_date == "6/15/2024"
        assert (occ.country, occ.state_province, occ.county) == ("USA", "OR", "Benton")
        assert occ.locality == "Corvallis"
        assert occ.verbatim_elevation == "75"
        assert occ.coordinate_uncertainty == "10"
        assert occ.sampling_protocol == "aerial net"
        assert occ.relationship_of_resource == "visits flowers of"
        assert occ.related_resource_id == "4b1d-uuid"
        assert occ.url == "https://www.inaturalist.org/observations/101"
        assert occ.phylum_plant == "Tracheophyta"
        assert occ.genus_plant == "Aster"
        assert occ.taxon_rank_plant == "genus"
        assert occ.is_new is True

    def test_unknown_user_has_blank_name(self, usernames: Usernames, places: PlacesCache, taxa: TaxaCache) -> None:
        occ = occurrence_from_observation(
            observation(user={"id": 9, "login": "stranger"}), {}, usernames, places, taxa
        )
        assert occ.last_name == ""
        assert occ.verbatim_elevation == ""

    @pytest.mark.parametrize(("sample", "first_name"), [("150", "Gretchen"), ("12", "Robert")])
    def test_shared_account_split_by_sample(
        self, usernames: Usernames, places: PlacesCache, taxa: TaxaCache, sample: str, first_name: str
    ) -> None:
        obs = observation(
            user={"id": 7, "login": "pandg"},
            ofvs=[{"name": "sampleId", "value": sample}],
        )
        occ = occurrence_from_observation(obs, {}, usernames, places, taxa)
        assert occ.first_name == first_name
        assert occ.recorded_by == f"{first_name} Smith"

    def test_shared_account_before_split(self, usernames: Usernames, places: PlacesCache, taxa: TaxaCache) -> None:
        obs = observation(user={"id": 7, "login": "pandg"}, observed_on="2020-06-01")
        assert occurrence_from_observation(obs, {}, usernames, places, taxa).first_name == ""


class TestUpdateFromObservation:
    def existing(self, uncertainty: str = "20") -> Occurrence:
        return Occurrence(
            decimal_latitude="45.5000",
            decimal_longitude="-122.6000",
            coordinate_uncertainty=uncertainty,
        )

    def test_more_precise_observation_moves_coordinates(self, taxa: TaxaCache) -> None:
        obs = observation(geojson={"coordinates": [-122.7, 45.6]}, positional_accuracy=10)

        changes = update_from_observation(self.existing(), obs, {"45.6000,-122.7000": "120"}, taxa)

        assert changes["decimal_latitude"] == "45.6000"
        assert changes["decimal_longitude"] == "-122.7000"
        assert changes["coordinate_uncertainty"] == "10"
        assert changes["verbatim_elevation"] == "120"
        assert changes["genus_plant"] == "Aster"
        assert changes["relationship_of_resource"] == "visits flowers of"

    def test_less_precise_observation_keeps_coordinates(self, taxa: TaxaCache) -> None:
        obs = observation(geojson={"coordinates": [-122.7, 45.6]}, positional_accuracy=50)

        changes = update_from_observation(self.existing(), obs, {"45.5000,-122.6000": "75"}, taxa)

        assert "decimal_latitude" not in changes
        assert changes["verbatim_elevation"] == "75"

    def test_missing_accuracy_is_exact(self, taxa: TaxaCache) -> None:
        obs = observation(geojson={"coordinates": [-122.7, 45.6]}, positional_accuracy=None)
        changes = update_from_observation(self.existing(), obs, {}, taxa)
        assert changes["decimal_latitude"] == "45.6000"
        assert changes["coordinate_uncertainty"] == ""

    def test_falls_back_to_single_lookup(self, taxa: TaxaCache) -> None:
        obs = observation(geojson={"coordinates": [-122.7, 45.6]}, positional_accuracy=5)
        lookup = Mock(return_value="99")

        changes = update_from_observation(self.existing(), obs, {}, taxa, lookup)

        lookup.assert_called_once_with("45.6000", "-122.7000")
        assert changes["verbatim_elevation"] == "99"

    def test_without_observation_only_elevation(self, taxa: TaxaCache) -> None:
        changes = update_from_observation(self.existing(), None, {"45.5000,-122.6000": "75"}, taxa)
        assert changes == {"verbatim_elevation": "75"}
