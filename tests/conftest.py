"""Shared fixtures: in-memory database, temporary data directory, sample rows."""

from __future__ import annotations

import csv
from typing import TYPE_CHECKING, Any
from unittest.mock import Mock

import pytest

from bee_atlas.config import Settings
from bee_atlas.context import PipelineContext, build_context
from bee_atlas.db import create_db_engine
from bee_atlas.occurrences.store import OccurrenceStore
from bee_atlas.tasks import TaskStore

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy import Engine

URL_PREFIX = "https://osac.oregonstate.edu/OBS/OBA_"


def occurrence_row(**overrides: Any) -> dict[str, str]:
    """A complete, unflagged upload row keyed by column name."""
    row = {
        "firstName": "Jane",
        "firstNameInitial": "J.",
        "lastName": "Doe",
        "userLogin": "janedoe",
        "sampleId": "1",
        "specimenId": "1",
        "day": "15",
        "month": "6",
        "year": "2024",
        "country": "USA",
        "stateProvince": "WA",
        "county": "Whitman",
        "locality": "Pullman",
        "decimalLatitude": "46.7298",
        "decimalLongitude": "-117.1817",
        "coordinateUncertaintyInMeters": "10",
        "samplingProtocol": "aerial net",
    }
    row.update(overrides)
    return row


def write_csv(path: Path, rows: list[dict[str, str]]) -> Path:
    header: list[str] = []
    for row in rows:
        header.extend(k for k in row if k not in header)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=header or ["fieldNumber"])
        writer.writeheader()
        writer.writerows(rows)
    return path


def read_csv(path: Path) -> list[dict[str, str]]:
    with path.open(newline="", encoding="utf-8") as f:
        return list(csv.DictReader(f))


@pytest.fixture
def engine() -> Engine:
    return create_db_engine("sqlite://")


@pytest.fixture
def store(engine: Engine) -> OccurrenceStore:
    return OccurrenceStore(engine, page_size=3, url_prefix=URL_PREFIX)


@pytest.fixture
def tasks(engine: Engine) -> TaskStore:
    return TaskStore(engine)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        data_dir=tmp_path / "data",
        database_url="sqlite://",
        elevation_dir=tmp_path / "elevation",
        field_number_url_prefix=URL_PREFIX,
        page_size=3,
        chunk_size=2,
    )


@pytest.fixture
def context(settings: Settings, engine: Engine) -> PipelineContext:
    """A context whose iNaturalist client is a mock returning no data."""
    ctx = build_context(settings, engine=engine)
    inat = Mock()
    inat.fetch_observations_by_ids.return_value = []
    inat.fetch_source_observations.return_value = []
    inat.fetch_by_url.return_value = []
    inat.fetch_places_by_ids.return_value = []
    inat.fetch_taxa_by_ids.return_value = []
    ctx.inat = inat
    ctx.places.client = inat
    ctx.taxa.client = inat
    return ctx
