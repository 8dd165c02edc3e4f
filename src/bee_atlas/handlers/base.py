"""
Subtask handler contract.

Every stage follows the same outline; subclasses only implement
``process``::

    1. mark the subtask current on the task
    2. resolve its input (upload, a prior subtask's output, a selection)
    3. transform, using the occurrence store and collaborators
    4. write output files under their type directory
    5. record the outputs on the task (clears progress)
    6. trim each written output directory to its retention cap

Stages after ``occurrences`` work in the scratch partition of the store so a
re-run never overwrites committed rows::

    delete scratch ─▶ load input into scratch ─▶ process scratch rows
        ─▶ commit numbered or unflagged rows ─▶ delete the rest

Loading replaces existing records by id, which moves them into scratch until
the commit step returns them. The commit step runs even when processing fails.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

from sqlalchemy import and_

from bee_atlas.errors import PipelineError
from bee_atlas.occurrences.models import InsertResult
from bee_atlas.occurrences.store import committable, in_scratch, matching, write_occurrences
from bee_atlas.schemas import (
    NO_INPUT,
    SELECTION_INPUT,
    UPLOAD_INPUT,
    OutputFile,
    Subtask,
    SubtaskType,
    Task,
)

if TYPE_CHECKING:
    from sqlalchemy import ColumnElement

    from bee_atlas.context import PipelineContext
    from bee_atlas.occurrences.models import Occurrence

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

OCCURRENCES_OUTPUT = "occurrences"


class SubtaskHandler(ABC):
    """Base class for one pipeline stage."""

    subtask_type: ClassVar[SubtaskType]
    #: Work in the scratch partition and commit at the end
    uses_scratch: ClassVar[bool] = True

    def __init__(self, context: PipelineContext) -> None:
        self.context = context

    # -------------------------------------------------------------------------
    # Contract
    # -------------------------------------------------------------------------

    def handle_task(self, task_id: str) -> list[OutputFile]:
        tasks = self.context.tasks
        tasks.update_current_subtask_by_id(task_id, self.subtask_type.value)

        task = tasks.get(task_id)
        subtask = task.subtask(self.subtask_type)
        if subtask is None:
            msg = f"Task {task_id} has no {self.subtask_type} subtask"
            raise PipelineError(msg)

        input_path = self.resolve_input(task, subtask)
        logger.info("Running %s subtask of task %s on %s", self.subtask_type, task_id, input_path or subtask.input)

        try:
            outputs = self.process(task, subtask, input_path)
            tasks.update_subtask_outputs_by_id(task_id, self.subtask_type.value, outputs)
            for output_type in dict.fromkeys(o.type for o in outputs):
                self.context.outputs.limit_files(output_type, self.context.settings.limit_for(output_type))
        finally:
            # Also on failure: loading moved committed rows into scratch
            if self.uses_scratch:
                self.commit_scratch()
        return outputs

    @abstractmethod
    def process(self, task: Task, subtask: Subtask, input_path: Path | None) -> list[OutputFile]:
        """Transform the input and write outputs. Returns their descriptors."""

    # -------------------------------------------------------------------------
    # Input resolution
    # -------------------------------------------------------------------------

    def resolve_input(self, task: Task, subtask: Subtask) -> Path | None:
        """Path of the subtask's input file, or None when it reads no file.

        ``"upload"`` is the task upload. ``"{index}_{type}"`` is the output of
        that type from the ``index``-th recorded subtask output. A reference
        that matches nothing falls back to the most recent occurrences output,
        then to the upload. ``"selection"`` and ``"none"`` read no file.
        """
        if subtask.input in (SELECTION_INPUT, NO_INPUT):
            return None

        if subtask.input != UPLOAD_INPUT:
            output = self._referenced_output(task, subtask.input) or self._latest_output(
                task, OCCURRENCES_OUTPUT
            )
            if output is not None:
                return self.context.outputs.resolve_output(output)
            logger.warning("Input %r of task %s not found; using the upload", subtask.input, task.id)

        if task.upload is None:
            msg = f"Task {task.id} has no upload to use as {self.subtask_type} input"
            raise PipelineError(msg)
        return Path(task.upload.file_path)

    @staticmethod
    def _referenced_output(task: Task, reference: str) -> OutputFile | None:
        index_text, _, output_type = reference.partition("_")
        if not index_text.isdigit() or not output_type:
            return None
        index = int(index_text)
        if index >= len(task.subtask_outputs):
            return None
        return next((o for o in task.subtask_outputs[index].outputs if o.type == output_type), None)

    @staticmethod
    def _latest_output(task: Task, output_type: str) -> OutputFile | None:
        for block in reversed(task.subtask_outputs):
            for output in block.outputs:
                if output.type == output_type:
                    return output
        return None

    # -------------------------------------------------------------------------
    # Helpers for subclasses
    # -------------------------------------------------------------------------

    def log_step(self, task: Task, step: str) -> None:
        self.context.tasks.log_step(task.id, step)

    def progress(self, task: Task, part: int = 0, parts: int = 1) -> ProgressCallback:
        """Progress callback, optionally scaled to one part of several."""

        def report(percentage: float) -> None:
            overall = (100 * part + percentage) / parts
            self.context.tasks.update_progress_percentage_by_id(task.id, overall)

        return report

    def ingest(self, task: Task, input_path: Path | None) -> InsertResult:
        """Replace every stored occurrence with the input file."""
        if input_path is None:
            msg = f"The {self.subtask_type} subtask needs an input file"
            raise PipelineError(msg)
        self.log_step(task, "Formatting and uploading provided dataset")
        store = self.context.occurrences
        store.delete_all()
        return store.create_from_file(input_path, chunk_size=self.context.settings.chunk_size)

    def stage(self, task: Task, subtask: Subtask, input_path: Path | None) -> int:
        """Load the subtask's working set into scratch. Returns its size.

        A file is upserted into scratch; a selection moves the committed rows
        matching ``subtask.filter``. Leftover scratch rows from earlier tasks
        are dropped first.
        """
        self.log_step(task, "Formatting and uploading provided dataset")
        store = self.context.occurrences
        store.delete_all(in_scratch(True))
        if subtask.input == SELECTION_INPUT:
            store.update_many(and_(in_scratch(False), matching(subtask.filter)), {"scratch": True})
        elif input_path is not None:
            store.upsert_from_file(input_path, chunk_size=self.context.settings.chunk_size, scratch=True)
        return store.count(in_scratch(True))

    def commit_scratch(self) -> int:
        """Commit numbered or unflagged scratch rows and drop the rest."""
        store = self.context.occurrences
        committed = store.update_many(committable(), {"scratch": False})
        discarded = store.delete_all(in_scratch(True))
        logger.info("Committed %d scratch occurrence(s), discarded %d", committed, discarded)
        return committed

    def export_occurrences(
        self,
        output_type: str,
        file_name: str,
        where: ColumnElement[bool] | None = None,
        subtype: str | None = None,
    ) -> OutputFile:
        path = self.context.outputs.path_for(output_type, file_name)
        written = self.context.occurrences.write_csv(path, where)
        logger.info("Wrote %d occurrence(s) to %s", written, path)
        return self.context.outputs.output_file(output_type, file_name, subtype)

    def export_rows(
        self,
        output_type: str,
        file_name: str,
        occurrences: Iterable[Occurrence],
        subtype: str | None = None,
    ) -> OutputFile:
        write_occurrences(self.context.outputs.path_for(output_type, file_name), occurrences)
        return self.context.outputs.output_file(output_type, file_name, subtype)
