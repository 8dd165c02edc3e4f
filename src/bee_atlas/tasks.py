"""
Task store.

Persists ``Task`` state in the ``tasks`` table and enforces its lifecycle::

    Pending ──progress──▶ Running ──complete──▶ Completed
                             │
                             └────fail───────▶ Failed

Any progress write (current subtask, step message, percentage) moves a
``Pending`` task to ``Running``. Completion and failure clear progress and
stamp ``completed_at``; failure also drops the result. Once a task is
terminal every write raises ``InvalidTransitionError``.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, insert, select, update

from bee_atlas.db import tasks_table
from bee_atlas.errors import InvalidTransitionError, TaskNotFoundError
from bee_atlas.schemas import (
    OutputFile,
    Progress,
    Subtask,
    SubtaskOutput,
    Task,
    TaskResult,
    TaskStatus,
    TaskType,
    Upload,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from bee_atlas.store import OutputStore

logger = logging.getLogger(__name__)

table = tasks_table

_JSON_COLUMNS = ("subtasks", "progress", "warnings", "result", "upload")


def make_tag(now: datetime) -> str:
    """File-name-safe timestamp: ISO seconds with ":" replaced by "."."""
    return now.replace(microsecond=0, tzinfo=None).isoformat().replace(":", ".")


def format_percentage(percentage: float) -> str:
    return f"{percentage:.2f}%"


class TaskStore:
    """CRUD and state transitions for tasks."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    @staticmethod
    def _to_values(task: Task) -> dict[str, Any]:
        data = task.model_dump(mode="json")
        values = {key: data[key] for key in _JSON_COLUMNS}
        values.update(
            name=task.name,
            tag=task.tag,
            type=task.type.value,
            status=task.status.value,
            current_subtask=task.current_subtask,
            created_at=task.created_at,
            completed_at=task.completed_at,
        )
        return values

    @staticmethod
    def _from_row(row: Any) -> Task:
        data = dict(row._mapping)
        # SQLite drops tzinfo on the way back
        for key in ("created_at", "completed_at"):
            if data[key] is not None and data[key].tzinfo is None:
                data[key] = data[key].replace(tzinfo=UTC)
        return Task.model_validate(data)

    # -------------------------------------------------------------------------
    # Create / read
    # -------------------------------------------------------------------------

    def create(
        self,
        subtasks: Sequence[Subtask | dict[str, Any]],
        upload_file_name: str | None = None,
        outputs: OutputStore | None = None,
        now: datetime | None = None,
    ) -> Task:
        """Create a ``Pending`` task. The first subtask becomes current."""
        if not subtasks:
            msg = "A task needs at least one subtask"
            raise ValueError(msg)

        now = now or datetime.now(UTC)
        tag = make_tag(now)
        parsed = [s if isinstance(s, Subtask) else Subtask.model_validate(s) for s in subtasks]

        upload = None
        if upload_file_name:
            upload_path = outputs.upload_path(upload_file_name) if outputs else upload_file_name
            upload = Upload(
                file_name=upload_file_name,
                file_path=str(upload_path),
                uri=f"/api/uploads/{upload_file_name}",
            )

        task = Task(
            id=str(uuid.uuid4()),
            name=f"task_{tag}",
            tag=tag,
            type=TaskType.for_subtasks(parsed),
            subtasks=parsed,
            status=TaskStatus.PENDING,
            current_subtask=parsed[0].type.value,
            upload=upload,
            created_at=now,
        )
        with self.engine.begin() as conn:
            conn.execute(insert(table).values(id=task.id, **self._to_values(task)))
        logger.info("Created task %s (%s) with %d subtask(s)", task.id, task.type, len(parsed))
        return task

    def get(self, task_id: str) -> Task:
        with self.engine.connect() as conn:
            row = conn.execute(select(table).where(table.c.id == task_id)).first()
        if row is None:
            msg = f"No task with id {task_id}"
            raise TaskNotFoundError(msg)
        return self._from_row(row)

    def list_recent(self, limit: int = 20) -> list[Task]:
        stmt = select(table).order_by(table.c.created_at.desc()).limit(limit)
        with self.engine.connect() as conn:
            return [self._from_row(row) for row in conn.execute(stmt)]

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def _mutate(self, task_id: str, change: Callable[[Task], None]) -> Task:
        with self.engine.begin() as conn:
            row = conn.execute(select(table).where(table.c.id == task_id)).first()
            if row is None:
                msg = f"No task with id {task_id}"
                raise TaskNotFoundError(msg)
            task = self._from_row(row)
            if task.status.is_terminal:
                msg = f"Task {task_id} is {task.status} and can no longer change"
                raise InvalidTransitionError(msg)
            change(task)
            conn.execute(update(table).where(table.c.id == task_id).values(**self._to_values(task)))
        return task

    @staticmethod
    def _progress(task: Task) -> Progress:
        if task.status == TaskStatus.PENDING:
            task.status = TaskStatus.RUNNING
        if task.progress is None:
            task.progress = Progress(current_subtask=task.current_subtask)
        return task.progress

    def update_current_subtask_by_id(self, task_id: str, subtask_type: str) -> Task:
        def change(task: Task) -> None:
            task.current_subtask = subtask_type
            self._progress(task).current_subtask = subtask_type

        return self._mutate(task_id, change)

    def log_step(self, task_id: str, step: str) -> Task:
        """Record the human-readable step a running task is on."""
        logger.info("[%s] %s", task_id, step)

        def change(task: Task) -> None:
            progress = self._progress(task)
            progress.current_step = step
            progress.percentage = None

        return self._mutate(task_id, change)

    def update_progress_percentage_by_id(self, task_id: str, percentage: float) -> Task:
        def change(task: Task) -> None:
            self._progress(task).percentage = format_percentage(percentage)

        return self._mutate(task_id, change)

    def update_warnings_by_id(self, task_id: str, warnings: Sequence[str]) -> Task:
        def change(task: Task) -> None:
            task.warnings = list(warnings)

        return self._mutate(task_id, change)

    def update_result_by_id(self, task_id: str, result: TaskResult) -> Task:
        def change(task: Task) -> None:
            task.result = result

        return self._mutate(task_id, change)

    def update_subtask_outputs_by_id(
        self, task_id: str, subtask_type: str, outputs: Sequence[OutputFile]
    ) -> Task:
        """Record a finished subtask's outputs and clear progress."""

        def change(task: Task) -> None:
            self._progress(task)
            for subtask in task.subtasks:
                if subtask.type == subtask_type:
                    subtask.outputs = list(outputs)
                    break
            result = task.result or TaskResult()
            result.subtask_outputs.append(SubtaskOutput(type=subtask_type, outputs=list(outputs)))
            task.result = result
            task.progress = None

        return self._mutate(task_id, change)

    def complete_by_id(self, task_id: str) -> Task:
        def change(task: Task) -> None:
            task.status = TaskStatus.COMPLETED
            task.progress = None
            task.completed_at = datetime.now(UTC)

        task = self._mutate(task_id, change)
        logger.info("Task %s completed", task_id)
        return task

    def update_failure_by_id(self, task_id: str, error: str | None = None) -> Task:
        """Mark a task ``Failed``. The error, if given, is kept as a warning."""

        def change(task: Task) -> None:
            task.status = TaskStatus.FAILED
            task.progress = None
            task.result = None
            task.completed_at = datetime.now(UTC)
            if error:
                task.warnings = [*task.warnings, f"Task failed: {error}"]

        task = self._mutate(task_id, change)
        logger.warning("Task %s failed", task_id)
        return task

    def force_failure_by_id(self, task_id: str, error: str | None = None) -> bool:
        """Mark a task ``Failed`` without loading it as a ``Task``.

        For records the model can no longer read (an unknown subtask type,
        a hand-edited row). Terminal tasks are left alone. Returns False when
        no row changed.
        """
        where = and_(
            table.c.id == task_id,
            table.c.status.not_in([TaskStatus.COMPLETED.value, TaskStatus.FAILED.value]),
        )
        with self.engine.begin() as conn:
            row = conn.execute(select(table.c.warnings).where(where)).first()
            if row is None:
                return False
            warnings = list(row.warnings) if isinstance(row.warnings, list) else []
            if error:
                warnings.append(f"Task failed: {error}")
            conn.execute(
                update(table)
                .where(where)
                .values(
                    status=TaskStatus.FAILED.value,
                    progress=None,
                    result=None,
                    warnings=warnings,
                    completed_at=datetime.now(UTC),
                )
            )
        logger.warning("Task %s marked failed without loading it", task_id)
        return True
