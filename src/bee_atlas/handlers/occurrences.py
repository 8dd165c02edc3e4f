"""Occurrences stage: ingest an upload and refresh it from iNaturalist."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_

from bee_atlas.db import occurrences_table
from bee_atlas.elevation import coordinate_key
from bee_atlas.handlers.base import SubtaskHandler
from bee_atlas.occurrences.indexing import index_occurrences
from bee_atlas.occurrences.observations import (
    observation_coordinates,
    specimen_count,
    update_from_observation,
)
from bee_atlas.occurrences.store import new_rows, unflagged
from bee_atlas.schemas import OutputFile, Subtask, SubtaskType, Task

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from pathlib import Path

    from bee_atlas.occurrences.models import Occurrence
    from bee_atlas.occurrences.store import OccurrenceStore

logger = logging.getLogger(__name__)


def observation_ids(urls: Iterable[str]) -> list[str]:
    """Numeric observation ids from the last path segment of each URL."""
    ids = []
    for url in urls:
        last = url.rstrip("/").rsplit("/", 1)[-1]
        if last.isdigit():
            ids.append(last)
    return ids


def observation_coordinate_keys(observations: Iterable[Mapping[str, Any]]) -> set[str]:
    keys = set()
    for obs in observations:
        lat, lon = observation_coordinates(obs)
        if lat and lon:
            keys.add(coordinate_key(float(lat), float(lon)))
    return keys


class OccurrencesHandler(SubtaskHandler):
    """Formats an uploaded dataset and syncs it with its observations.

    Existing occurrences take updated coordinates, elevation and plant
    taxonomy from their observation. When a volunteer raised the number of
    bees collected, copies of the first occurrence are added for the
    difference. New, unflagged rows then receive field numbers.
    """

    subtask_type = SubtaskType.OCCURRENCES
    # Replaces the whole store with the upload
    uses_scratch = False

    def process(self, task: Task, subtask: Subtask, input_path: Path | None) -> list[OutputFile]:
        ctx = self.context
        store = ctx.occurrences

        inserted = self.ingest(task, input_path)

        self.log_step(task, "Querying corresponding iNaturalist observations from provided dataset")
        ids = observation_ids(store.distinct_urls())
        observations = ctx.inat.fetch_observations_by_ids(ids, self.progress(task))
        by_uri = {obs["uri"]: obs for obs in observations if obs.get("uri")}

        self.log_step(task, "Updating place data")
        ctx.places.update_from_observations(observations, self.progress(task))

        self.log_step(task, "Updating taxonomy data")
        ctx.taxa.update_from_observations(observations, self.progress(task))

        coordinates = set(store.distinct_coordinates()) | observation_coordinate_keys(observations)
        self.log_step(task, f"Reading {len(coordinates)} elevations")
        elevations = ctx.elevation.elevations(sorted(coordinates), self.progress(task))

        self.log_step(task, "Updating occurrence data from iNaturalist observations")
        self._update_from_observations(task, by_uri, elevations)

        self.log_step(task, "Adding new occurrence data from bee increases")
        added = self._insert_bee_increases(store, by_uri)
        logger.info("Added %d occurrence(s) for increased bee counts", added)

        self.log_step(task, "Indexing occurrences")
        index_occurrences(store, datetime.now(UTC).year)

        self.log_step(task, "Writing output files")
        occurrences_name = f"occurrences_{task.tag}.csv"
        duplicates_name = f"duplicates_{task.tag}.csv"
        return [
            self.export_occurrences("occurrences", occurrences_name, or_(new_rows(False), unflagged())),
            self.export_rows("duplicates", duplicates_name, inserted.duplicates),
        ]

    def _update_from_observations(
        self, task: Task, by_uri: Mapping[str, Mapping[str, Any]], elevations: Mapping[str, str]
    ) -> int:
        ctx = self.context
        report = self.progress(task)
        report(0)
        total = ctx.occurrences.count()
        step = max(total // 100, 1)
        done = 0

        def changes(occ: Occurrence) -> dict[str, str]:
            nonlocal done
            done += 1
            if done % step == 0:
                report(100 * done / total)
            return update_from_observation(
                occ, by_uri.get(occ.url), elevations, ctx.taxa, ctx.elevation.elevation
            )

        updated = ctx.occurrences.update_many(None, changes)
        report(100)
        return updated

    @staticmethod
    def _insert_bee_increases(store: OccurrenceStore, by_uri: Mapping[str, Mapping[str, Any]]) -> int:
        copies: list[Occurrence] = []
        for uri, obs in by_uri.items():
            matching = occurrences_table.c.url == uri
            existing = store.count(matching)
            collected = specimen_count(obs)
            if existing == 0 or collected <= existing:
                continue

            first = store.first(matching)
            if first is None:
                continue
            for j in range(1, collected - existing + 1):
                copy = first.model_copy(
                    update={
                        "specimen_id": str(existing + j),
                        "field_number": "",
                        "date_label_print": "",
                        "is_new": True,
                    }
                )
                # Oregon ids derive from the field number, which the copy gets fresh
                if store.url_prefix and copy.occurrence_id.startswith(store.url_prefix):
                    copy.occurrence_id = ""
                if store.url_prefix and copy.resource_id.startswith(store.url_prefix):
                    copy.resource_id = ""
                copies.append(copy)

        return store.create_many(copies).inserted_count if copies else 0
