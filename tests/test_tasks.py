"""Tests for the task store and its lifecycle."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest

from bee_atlas.errors import InvalidTransitionError, TaskNotFoundError
from bee_atlas.schemas import OutputFile, Subtask, SubtaskType, TaskResult, TaskStatus, TaskType
from bee_atlas.store import OutputStore
from bee_atlas.tasks import TaskStore, format_percentage, make_tag

if TYPE_CHECKING:
    from pathlib import Path

OUTPUT = OutputFile(uri="/api/occurrences/a.csv", file_name="a.csv", type="occurrences")


class TestHelpers:
    def test_tag_is_file_name_safe(self) -> None:
        assert make_tag(datetime(2024, 7, 1, 12, 30, 5, 123, tzinfo=UTC)) == "2024-07-01T12.30.05"

    def test_percentage(self) -> None:
        assert format_percentage(12.5) == "12.50%"
        assert format_percentage(100) == "100.00%"


class TestCreate:
    def test_creates_pending_task(self, tasks: TaskStore) -> None:
        now = datetime(2024, 7, 1, 12, 0, tzinfo=UTC)
        task = tasks.create([{"type": "labels"}], now=now)

        assert task.status == TaskStatus.PENDING
        assert task.type == TaskType.GENERATE_LABELS
        assert task.tag == "2024-07-01T12.00.00"
        assert task.name == "task_2024-07-01T12.00.00"
        assert task.current_subtask == "labels"
        assert tasks.get(task.id) == task

    def test_multi_stage_task_is_a_pipeline(self, tasks: TaskStore) -> None:
        task = tasks.create(
            [Subtask(type=SubtaskType.OCCURRENCES), Subtask(type=SubtaskType.LABELS, input="0_occurrences")]
        )
        assert task.type == TaskType.PIPELINE
        assert tasks.get(task.id).subtasks[1].input == "0_occurrences"

    def test_upload_resolves_under_uploads(self, tasks: TaskStore, tmp_path: Path) -> None:
        task = tasks.create([{"type": "pivots"}], upload_file_name="in.csv", outputs=OutputStore(tmp_path))

        assert task.upload is not None
        assert task.upload.file_path == str(tmp_path / "uploads" / "in.csv")
        assert task.upload.uri == "/api/uploads/in.csv"

    def test_observation_subtask_options_persist(self, tasks: TaskStore) -> None:
        task = tasks.create(
            [{"type": "observations", "sources": ["18521"], "min_date": "2024-01-01", "max_date": "2024-12-31"}]
        )
        subtask = tasks.get(task.id).subtasks[0]
        assert subtask.sources == ["18521"]
        assert subtask.min_date == "2024-01-01"

    def test_requires_subtasks(self, tasks: TaskStore) -> None:
        with pytest.raises(ValueError, match="at least one subtask"):
            tasks.create([])

    def test_missing_task(self, tasks: TaskStore) -> None:
        with pytest.raises(TaskNotFoundError):
            tasks.get("missing")

    def test_list_recent_newest_first(self, tasks: TaskStore) -> None:
        older = tasks.create([{"type": "labels"}], now=datetime(2024, 1, 1, tzinfo=UTC))
        newer = tasks.create([{"type": "labels"}], now=datetime(2024, 2, 1, tzinfo=UTC))
        assert [t.id for t in tasks.list_recent()] == [newer.id, older.id]
        assert len(tasks.list_recent(limit=1)) == 1


class TestProgress:
    def test_progress_moves_pending_to_running(self, tasks: TaskStore) -> None:
        task = tasks.create([{"type": "labels"}])

        updated = tasks.log_step(task.id, "Generating labels")

        assert updated.status == TaskStatus.RUNNING
        assert updated.progress is not None
        assert updated.progress.current_step == "Generating labels"
        assert updated.progress.current_subtask == "labels"

    def test_percentage_is_formatted(self, tasks: TaskStore) -> None:
        task = tasks.create([{"type": "labels"}])
        tasks.log_step(task.id, "Working")

        updated = tasks.update_progress_percentage_by_id(task.id, 12.5)

        assert updated.progress is not None
        assert updated.progress.percentage == "12.50%"

    def test_new_step_clears_percentage(self, tasks: TaskStore) -> None:
        task = tasks.create([{"type": "labels"}])
        tasks.update_progress_percentage_by_id(task.id, 50)

        updated = tasks.log_step(task.id, "Next step")

        assert updated.progress is not None
        assert updated.progress.percentage is None

    def test_current_subtask(self, tasks: TaskStore) -> None:
        task = tasks.create([{"type": "occurrences"}, {"type": "labels"}])
        updated = tasks.update_current_subtask_by_id(task.id, "labels")
        assert updated.current_subtask == "labels"

    def test_subtask_outputs_recorded_in_order(self, tasks: TaskStore) -> None:
        task = tasks.create([{"type": "occurrences"}, {"type": "labels"}])
        tasks.log_step(task.id, "Writing")

        updated = tasks.update_subtask_outputs_by_id(task.id, "occurrences", [OUTPUT])

        assert updated.progress is None
        assert updated.subtasks[0].outputs == [OUTPUT]
        assert [block.type for block in updated.subtask_outputs] == ["occurrences"]

    def test_outputs_move_pending_to_running(self, tasks: TaskStore) -> None:
        task = tasks.create([{"type": "pivots"}])

        updated = tasks.update_subtask_outputs_by_id(task.id, "pivots", [OUTPUT])

        assert updated.status == TaskStatus.RUNNING
        assert updated.progress is None

    def test_warnings_and_result(self, tasks: TaskStore) -> None:
        task = tasks.create([{"type": "labels"}])
        tasks.update_warnings_by_id(task.id, ["careful"])
        tasks.update_result_by_id(task.id, TaskResult())

        stored = tasks.get(task.id)
        assert stored.warnings == ["careful"]
        assert stored.result == TaskResult()


class TestTerminalStates:
    def test_complete(self, tasks: TaskStore) -> None:
        task = tasks.create([{"type": "labels"}])
        tasks.log_step(task.id, "Working")

        done = tasks.complete_by_id(task.id)

        assert done.status == TaskStatus.COMPLETED
        assert done.progress is None
        assert done.completed_at is not None

    def test_failure_clears_result_and_keeps_error(self, tasks: TaskStore) -> None:
        task = tasks.create([{"type": "labels"}])
        tasks.update_subtask_outputs_by_id(task.id, "labels", [OUTPUT])

        failed = tasks.update_failure_by_id(task.id, "boom")

        assert failed.status == TaskStatus.FAILED
        assert failed.result is None
        assert failed.warnings == ["Task failed: boom"]
        assert tasks.get(task.id).completed_at is not None

    @pytest.mark.parametrize("finish", ["complete_by_id", "update_failure_by_id"])
    def test_terminal_tasks_reject_writes(self, tasks: TaskStore, finish: str) -> None:
        task = tasks.create([{"type": "labels"}])
        getattr(tasks, finish)(task.id)

        with pytest.raises(InvalidTransitionError):
            tasks.log_step(task.id, "Too late")
        with pytest.raises(InvalidTransitionError):
            tasks.complete_by_id(task.id)

    def test_write_to_missing_task(self, tasks: TaskStore) -> None:
        with pytest.raises(TaskNotFoundError):
            tasks.log_step("missing", "step")

    def test_force_failure_marks_open_task(self, tasks: TaskStore) -> None:
        task = tasks.create([{"type": "labels"}])
        tasks.update_warnings_by_id(task.id, ["careful"])

        assert tasks.force_failure_by_id(task.id, "bad record") is True

        stored = tasks.get(task.id)
        assert stored.status == TaskStatus.FAILED
        assert stored.warnings == ["careful", "Task failed: bad record"]
        assert stored.completed_at is not None

    def test_force_failure_leaves_finished_and_missing_tasks(self, tasks: TaskStore) -> None:
        task = tasks.create([{"type": "labels"}])
        tasks.complete_by_id(task.id)

        assert tasks.force_failure_by_id(task.id, "late") is False
        assert tasks.force_failure_by_id("missing", "nope") is False
        assert tasks.get(task.id).status == TaskStatus.COMPLETED
