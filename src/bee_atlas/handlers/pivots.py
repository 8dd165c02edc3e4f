"""Pivots stage: per-state summary tables of unprinted occurrences.

Each table lists a state header row followed by its entries, largest count
first::

    stateProvince,totalCount,recordedBy,count
    OR,42,,
    ,,Jane Doe,30
    ,,John Roe,12
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import and_

from bee_atlas.csvio import write_rows
from bee_atlas.handlers.base import SubtaskHandler
from bee_atlas.occurrences.store import in_scratch, unprinted
from bee_atlas.schemas import OutputFile, Subtask, SubtaskType, Task

if TYPE_CHECKING:
    from pathlib import Path

    from bee_atlas.occurrences.store import PivotGroup


def pivot_rows(groups: list[PivotGroup], key_column: str) -> list[dict[str, object]]:
    rows: list[dict[str, object]] = []
    for group in groups:
        header: dict[str, object] = {"stateProvince": group.state_province}
        if group.total_count is not None:
            header["totalCount"] = group.total_count
        rows.append(header)
        rows.extend({key_column: key, "count": count} for key, count in group.entries)
    return rows


class PivotsHandler(SubtaskHandler):
    subtask_type = SubtaskType.PIVOTS

    def process(self, task: Task, subtask: Subtask, input_path: Path | None) -> list[OutputFile]:
        ctx = self.context
        store = ctx.occurrences
        self.stage(task, subtask, input_path)

        self.log_step(task, "Generating pivot tables")
        where = and_(in_scratch(True), unprinted())
        tables = (
            (
                "stateCollectorBeeCounts",
                ("stateProvince", "totalCount", "recordedBy", "count"),
                pivot_rows(store.state_collector_counts(where), "recordedBy"),
            ),
            (
                "stateCollectorCountyCounts",
                ("stateProvince", "recordedBy", "count"),
                pivot_rows(store.state_collector_county_counts(where), "recordedBy"),
            ),
            (
                "stateGenusBeeCounts",
                ("stateProvince", "totalCount", "plantGenus", "count"),
                pivot_rows(store.state_genus_counts(where), "plantGenus"),
            ),
        )

        outputs = []
        for subtype, header, rows in tables:
            file_name = f"pivots_{subtype}_{task.tag}.csv"
            write_rows(ctx.outputs.path_for("pivots", file_name), header, rows)
            outputs.append(ctx.outputs.output_file("pivots", file_name, subtype))
        return outputs
