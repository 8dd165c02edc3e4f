"""Observations stage: merge new iNaturalist pulls into a dataset."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_

from bee_atlas.handlers.base import SubtaskHandler
from bee_atlas.handlers.occurrences import observation_coordinate_keys
from bee_atlas.occurrences.indexing import index_occurrences
from bee_atlas.occurrences.observations import occurrence_from_observation, specimen_count
from bee_atlas.occurrences.store import flagged, in_scratch, new_rows, unflagged, unprinted
from bee_atlas.schemas import OutputFile, Subtask, SubtaskType, Task

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

    from bee_atlas.occurrences.models import Occurrence

logger = logging.getLogger(__name__)


class ObservationsHandler(SubtaskHandler):
    """Adds occurrences for observations that have none yet.

    Each new observation becomes one scratch occurrence per bee collected,
    with specimen ids 1..N. Observations come from the subtask's project
    sources and, when given, an iNaturalist search URL. Writes the merged
    scratch set (unflagged rows), the new rows on their own (pulls), and
    flagged unprinted rows for follow-up.
    """

    subtask_type = SubtaskType.OBSERVATIONS

    def process(self, task: Task, subtask: Subtask, input_path: Path | None) -> list[OutputFile]:
        ctx = self.context
        store = ctx.occurrences

        self.stage(task, subtask, input_path)

        self.log_step(task, "Querying new observations from iNaturalist")
        observations = self._pull(task, subtask)

        self.log_step(task, "Updating place data")
        ctx.places.update_from_observations(observations, self.progress(task))

        self.log_step(task, "Updating taxonomy data")
        ctx.taxa.update_from_observations(observations, self.progress(task))

        ctx.usernames.reload()

        coordinates = observation_coordinate_keys(observations)
        self.log_step(task, f"Reading {len(coordinates)} elevations")
        elevations = ctx.elevation.elevations(sorted(coordinates), self.progress(task))

        self.log_step(task, "Adding new occurrence data from iNaturalist observations")
        created = self._insert_from_observations(task, observations, elevations)
        logger.info("Created %d occurrence(s) from new observations", created)

        self.log_step(task, "Indexing occurrences")
        index_occurrences(store, datetime.now(UTC).year, scratch=True)

        self.log_step(task, "Writing output files")
        return [
            self.export_occurrences(
                "occurrences",
                f"occurrences_merged_{task.tag}.csv",
                and_(in_scratch(True), unflagged()),
                subtype="merged",
            ),
            self.export_occurrences(
                "pulls", f"pulls_{task.tag}.csv", and_(in_scratch(True), unflagged(), new_rows())
            ),
            self.export_occurrences(
                "flags", f"flags_{task.tag}.csv", and_(in_scratch(True), flagged(), unprinted())
            ),
        ]

    def _pull(self, task: Task, subtask: Subtask) -> list[dict[str, Any]]:
        sources = subtask.sources
        parts = len(sources) + (1 if subtask.url else 0)
        observations: list[dict[str, Any]] = []
        for i, source in enumerate(sources):
            observations.extend(
                self.context.inat.fetch_source_observations(
                    source,
                    subtask.min_date,
                    subtask.max_date,
                    self.progress(task, part=i, parts=parts),
                )
            )
        if subtask.url:
            observations.extend(
                self.context.inat.fetch_by_url(subtask.url, self.progress(task, part=len(sources), parts=parts))
            )
        return observations

    def _insert_from_observations(
        self,
        task: Task,
        observations: Sequence[Mapping[str, Any]],
        elevations: Mapping[str, str],
    ) -> int:
        ctx = self.context
        report = self.progress(task)
        report(0)

        known = set(ctx.occurrences.distinct_urls())
        unmatched = [obs for obs in observations if obs.get("uri") not in known]

        occurrences: list[Occurrence] = []
        for i, obs in enumerate(unmatched, start=1):
            occ = occurrence_from_observation(obs, elevations, ctx.usernames, ctx.places, ctx.taxa)
            for specimen_id in range(1, specimen_count(obs) + 1):
                occurrences.append(occ.model_copy(update={"specimen_id": str(specimen_id)}))
            # Hold back 100% until the insert below is done
            report(99 * i / len(unmatched))

        result = ctx.occurrences.create_many(occurrences, scratch=True)
        report(100)
        return result.inserted_count
