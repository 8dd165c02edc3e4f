"""Exception types raised by the pipeline core."""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for pipeline failures."""


class InfiniteUpdateLoopError(PipelineError):
    """A paginated bulk update grew its own matching set."""


class TaskNotFoundError(PipelineError):
    """No task exists with the requested id."""


class InvalidTransitionError(PipelineError):
    """A write was attempted on a task that already reached a terminal state."""


class UnknownSubtaskError(PipelineError):
    """A task names a subtask type that has no registered handler."""


class InvalidFilterError(PipelineError):
    """A selection filter names a column occurrences do not have."""
