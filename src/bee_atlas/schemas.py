"""
Task models.

Pydantic models for the persisted job state the worker reads and updates.
Tasks are created by a producer (upload endpoint or ``bee-atlas submit``),
picked up by the queue consumer, and never deleted by the worker.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

# =============================================================================
# Enums
# =============================================================================


class TaskStatus(StrEnum):
    """Task lifecycle. ``Completed`` and ``Failed`` are terminal."""

    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class SubtaskType(StrEnum):
    """Pipeline stages a task can chain together."""

    OCCURRENCES = "occurrences"
    OBSERVATIONS = "observations"
    LABELS = "labels"
    ADDRESSES = "addresses"
    EMAILS = "emails"
    PIVOTS = "pivots"


class TaskType(StrEnum):
    """Job kind, derived from the subtask list when a task is created."""

    INGEST_OCCURRENCES = "ingest-occurrences"
    MERGE_OBSERVATIONS = "merge-observations"
    GENERATE_LABELS = "generate-labels"
    COMPILE_ADDRESSES = "compile-addresses"
    COMPILE_EMAILS = "compile-emails"
    COMPILE_PIVOTS = "compile-pivots"
    PIPELINE = "pipeline"

    @classmethod
    def for_subtasks(cls, subtasks: list[Subtask]) -> TaskType:
        """Single-stage tasks take the stage's kind, anything longer is a pipeline."""
        if len(subtasks) != 1:
            return cls.PIPELINE
        return _SINGLE_STAGE_TYPES[subtasks[0].type]


# =============================================================================
# Task parts
# =============================================================================

UPLOAD_INPUT = "upload"
SELECTION_INPUT = "selection"
NO_INPUT = "none"


class OutputFile(BaseModel):
    """One file written by a subtask."""

    uri: str
    file_name: str
    type: str
    subtype: str | None = None


class Subtask(BaseModel):
    """One stage of a task.

    ``input`` is one of:

    - ``"upload"``: the task upload
    - ``"{index}_{type}"``: the output of type ``type`` produced by the
      ``index``-th completed subtask
    - ``"selection"``: stored occurrences matching ``filter``
    - ``"none"``: no dataset (observations pulls only)
    """

    type: SubtaskType
    input: str = UPLOAD_INPUT
    outputs: list[OutputFile] = Field(default_factory=list)

    # column header -> value, or list of accepted values
    filter: dict[str, str | list[str]] = Field(default_factory=dict)
    ignore_date_label_print: bool = False

    # observations only
    sources: list[str] = Field(default_factory=list)
    url: str | None = None
    min_date: str | None = None
    max_date: str | None = None


class Progress(BaseModel):
    current_subtask: str | None = None
    current_step: str | None = None
    percentage: str | None = None


class SubtaskOutput(BaseModel):
    type: str
    outputs: list[OutputFile] = Field(default_factory=list)


class TaskResult(BaseModel):
    subtask_outputs: list[SubtaskOutput] = Field(default_factory=list)


class Upload(BaseModel):
    file_name: str
    file_path: str
    uri: str


class Task(BaseModel):
    """A persisted job and its state."""

    id: str
    name: str
    tag: str
    type: TaskType = TaskType.PIPELINE
    subtasks: list[Subtask] = Field(default_factory=list)
    status: TaskStatus = TaskStatus.PENDING
    current_subtask: str | None = None
    progress: Progress | None = None
    warnings: list[str] = Field(default_factory=list)
    result: TaskResult | None = None
    upload: Upload | None = None
    created_at: datetime
    completed_at: datetime | None = None

    def subtask(self, subtask_type: str) -> Subtask | None:
        """First subtask of the given type."""
        return next((s for s in self.subtasks if s.type == subtask_type), None)

    @property
    def subtask_outputs(self) -> list[SubtaskOutput]:
        return self.result.subtask_outputs if self.result else []


_SINGLE_STAGE_TYPES = {
    SubtaskType.OCCURRENCES: TaskType.INGEST_OCCURRENCES,
    SubtaskType.OBSERVATIONS: TaskType.MERGE_OBSERVATIONS,
    SubtaskType.LABELS: TaskType.GENERATE_LABELS,
    SubtaskType.ADDRESSES: TaskType.COMPILE_ADDRESSES,
    SubtaskType.EMAILS: TaskType.COMPILE_EMAILS,
    SubtaskType.PIVOTS: TaskType.COMPILE_PIVOTS,
}
