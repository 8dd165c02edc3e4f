"""Tests for the task runner, the queue consumer and task submission."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from unittest.mock import Mock, patch

from conftest import occurrence_row, read_csv, write_csv
from sqlalchemy import insert, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from bee_atlas.consumer import QueueConsumer, TaskRunner, submit_task
from bee_atlas.db import tasks_table
from bee_atlas.messaging import InMemoryBroker
from bee_atlas.schemas import TaskStatus

if TYPE_CHECKING:
    from bee_atlas.context import PipelineContext


def upload(context: PipelineContext, rows: list[dict[str, str]], name: str = "upload.csv") -> str:
    write_csv(context.outputs.upload_path(name), rows)
    return name


def insert_raw_task(context: PipelineContext, task_id: str, subtasks: list[dict[str, Any]]) -> None:
    """A task row written by another producer, bypassing model validation."""
    with context.engine.begin() as conn:
        conn.execute(
            insert(tasks_table).values(
                id=task_id,
                name="task_raw",
                tag="raw",
                type="pipeline",
                status="Pending",
                current_subtask=None,
                subtasks=subtasks,
                progress=None,
                warnings=[],
                result=None,
                upload=None,
                created_at=datetime.now(UTC),
                completed_at=None,
            )
        )


def raw_status(context: PipelineContext, task_id: str) -> tuple[str, list[str]]:
    with context.engine.connect() as conn:
        row = conn.execute(
            select(tasks_table.c.status, tasks_table.c.warnings).where(tasks_table.c.id == task_id)
        ).one()
    return row.status, row.warnings


class TestTaskRunner:
    def test_runs_chained_subtasks(self, context: PipelineContext) -> None:
        name = upload(context, [occurrence_row(sampleId="1"), occurrence_row(sampleId="2")])
        task = context.tasks.create(
            [{"type": "occurrences"}, {"type": "labels", "input": "0_occurrences"}],
            upload_file_name=name,
            outputs=context.outputs,
        )

        status = TaskRunner(context).run(task.id)

        assert status == TaskStatus.COMPLETED
        stored = context.tasks.get(task.id)
        assert stored.status == TaskStatus.COMPLETED
        assert stored.completed_at is not None
        assert stored.progress is None
        assert [block.type for block in stored.subtask_outputs] == ["occurrences", "labels"]

        occurrences = stored.subtask_outputs[0].outputs[0]
        rows = read_csv(context.outputs.resolve_output(occurrences))
        assert all(r["fieldNumber"] for r in rows)
        labels = context.outputs.resolve_output(stored.subtask_outputs[1].outputs[0])
        assert 'data-labels="2"' in labels.read_text(encoding="utf-8")

    def test_unknown_task(self, context: PipelineContext) -> None:
        assert TaskRunner(context).run("missing") is None

    def test_failure_marks_task_failed(self, context: PipelineContext) -> None:
        task = context.tasks.create([{"type": "pivots"}])

        status = TaskRunner(context).run(task.id)

        assert status == TaskStatus.FAILED
        stored = context.tasks.get(task.id)
        assert stored.status == TaskStatus.FAILED
        assert stored.result is None
        assert stored.warnings[-1].startswith("Task failed: Task")

    def test_handler_exception_message_kept(self, context: PipelineContext) -> None:
        task = context.tasks.create([{"type": "pivots"}])
        handler = Mock()
        handler.handle_task.side_effect = RuntimeError("disk full")

        with patch("bee_atlas.consumer.handler_for", return_value=handler):
            status = TaskRunner(context).run(task.id)

        assert status == TaskStatus.FAILED
        assert context.tasks.get(task.id).warnings == ["Task failed: disk full"]

    def test_terminal_task_is_skipped(self, context: PipelineContext) -> None:
        task = context.tasks.create([{"type": "pivots"}])
        context.tasks.complete_by_id(task.id)

        with patch("bee_atlas.consumer.handler_for") as mock_handler_for:
            status = TaskRunner(context).run(task.id)

        assert status == TaskStatus.COMPLETED
        mock_handler_for.assert_not_called()

    def test_unreadable_task_record_marked_failed(self, context: PipelineContext) -> None:
        insert_raw_task(context, "bad", [{"type": "stewardshipReport"}])

        status = TaskRunner(context).run("bad")

        assert status == TaskStatus.FAILED
        state, warnings = raw_status(context, "bad")
        assert state == "Failed"
        assert len(warnings) == 1
        assert warnings[0].startswith("Task failed:")

    def test_database_error_on_load_marks_failed(self, context: PipelineContext) -> None:
        task = context.tasks.create([{"type": "pivots"}])

        with patch.object(context.tasks, "get", side_effect=OperationalError("SELECT", {}, Exception("locked"))):
            status = TaskRunner(context).run(task.id)

        assert status == TaskStatus.FAILED
        assert raw_status(context, task.id)[0] == "Failed"

    def test_failure_recording_error_falls_back(self, context: PipelineContext) -> None:
        task = context.tasks.create([{"type": "pivots"}])
        handler = Mock()
        handler.handle_task.side_effect = RuntimeError("disk full")

        with (
            patch("bee_atlas.consumer.handler_for", return_value=handler),
            patch.object(context.tasks, "update_failure_by_id", side_effect=SQLAlchemyError("gone")),
        ):
            status = TaskRunner(context).run(task.id)

        assert status == TaskStatus.FAILED
        assert raw_status(context, task.id) == ("Failed", ["Task failed: disk full"])

    def test_nothing_escapes_when_store_is_down(self, context: PipelineContext) -> None:
        with (
            patch.object(context.tasks, "get", side_effect=SQLAlchemyError("down")),
            patch.object(context.tasks, "force_failure_by_id", side_effect=SQLAlchemyError("down")),
        ):
            assert TaskRunner(context).run("any") is None


class TestQueueConsumer:
    def test_run_once_empty(self, context: PipelineContext) -> None:
        consumer = QueueConsumer(InMemoryBroker(), TaskRunner(context))
        assert consumer.run_once() is False

    def test_acks_before_running(self, context: PipelineContext) -> None:
        broker = InMemoryBroker()
        broker.publish(" some-id \n")
        acked_at_run: list[list[str]] = []
        runner = Mock()
        runner.run.side_effect = lambda task_id: acked_at_run.append(list(broker.acked))

        assert QueueConsumer(broker, runner).run_once() is True

        runner.run.assert_called_once_with("some-id")
        assert acked_at_run == [[" some-id \n"]]

    def test_failure_does_not_stop_later_tasks(self, context: PipelineContext) -> None:
        broker = InMemoryBroker()
        failing = context.tasks.create([{"type": "pivots"}])
        name = upload(context, [occurrence_row()])
        working = context.tasks.create([{"type": "pivots"}], upload_file_name=name, outputs=context.outputs)
        broker.publish(failing.id)
        broker.publish("unknown-id")
        broker.publish(working.id)

        consumer = QueueConsumer(broker, TaskRunner(context))
        handled = [consumer.run_once() for _ in range(3)]

        assert handled == [True, True, True]
        assert len(broker) == 0
        assert context.tasks.get(failing.id).status == TaskStatus.FAILED
        assert context.tasks.get(working.id).status == TaskStatus.COMPLETED

    def test_unreadable_task_does_not_stop_the_worker(self, context: PipelineContext) -> None:
        broker = InMemoryBroker()
        insert_raw_task(context, "bad", [{"type": "stewardshipReport"}])
        name = upload(context, [occurrence_row()])
        working = context.tasks.create([{"type": "pivots"}], upload_file_name=name, outputs=context.outputs)
        broker.publish("bad")
        broker.publish(working.id)

        handled = QueueConsumer(broker, TaskRunner(context)).run_forever(should_stop=lambda: len(broker) == 0)

        assert handled == 2
        assert raw_status(context, "bad")[0] == "Failed"
        assert context.tasks.get(working.id).status == TaskStatus.COMPLETED

    def test_run_forever_sleeps_when_idle(self) -> None:
        broker = InMemoryBroker()
        broker.publish("a")
        broker.publish("b")
        runner = Mock()
        sleep = Mock()
        checks = iter([False, False, False, True])

        consumer = QueueConsumer(broker, runner, idle_sleep=0.5, sleep=sleep)
        handled = consumer.run_forever(should_stop=lambda: next(checks))

        assert handled == 2
        assert [c.args[0] for c in runner.run.call_args_list] == ["a", "b"]
        sleep.assert_called_once_with(0.5)


class TestSubmitTask:
    def test_creates_and_publishes(self, context: PipelineContext) -> None:
        broker = InMemoryBroker()
        name = upload(context, [occurrence_row()])

        task = submit_task(context, broker, [{"type": "occurrences"}], upload_file_name=name)

        assert task.status == TaskStatus.PENDING
        assert task.upload is not None
        assert task.upload.file_path == str(context.outputs.upload_path(name))
        message = broker.receive()
        assert message is not None
        assert message.body == task.id
