"""
Queue consumer.

Each message body is a task id. Per message::

    received ─▶ acknowledged ─▶ task loaded ─▶ subtasks dispatched ─▶ Completed
                                                        │
                                                        └──exception──▶ Failed

Messages are acknowledged as soon as they arrive, before any work runs. A
worker that dies mid-task leaves the task ``Running`` instead of repeating its
file writes and API calls on redelivery. One message is in flight at a time:
handlers share the occurrence store and must not run concurrently.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

from bee_atlas.errors import TaskNotFoundError
from bee_atlas.handlers import handler_for
from bee_atlas.schemas import TaskStatus

if TYPE_CHECKING:
    from bee_atlas.context import PipelineContext
    from bee_atlas.messaging import MessageBroker
    from bee_atlas.schemas import Subtask, Task

logger = logging.getLogger(__name__)


class TaskRunner:
    """Runs every subtask of one task, in order, and records the outcome."""

    def __init__(self, context: PipelineContext) -> None:
        self.context = context

    def run(self, task_id: str) -> TaskStatus | None:
        """Process a task. Returns its final status, or None if it does not exist.

        Nothing raised while processing escapes. Handler exceptions mark the
        task ``Failed`` with the error kept in its warnings. When the task
        record itself cannot be read or written, the row is marked ``Failed``
        directly; if even that fails the error is only logged and None is
        returned.
        """
        try:
            return self._run(task_id)
        except Exception as exc:
            logger.exception("Could not process task %s", task_id)
            return self._force_fail(task_id, exc)

    def _run(self, task_id: str) -> TaskStatus | None:
        tasks = self.context.tasks
        try:
            task = tasks.get(task_id)
        except TaskNotFoundError:
            logger.error("Received unknown task id %s", task_id)
            return None

        if task.status.is_terminal:
            logger.warning("Task %s is already %s; skipping", task_id, task.status)
            return task.status

        try:
            for subtask in task.subtasks:
                handler_for(subtask.type, self.context).handle_task(task_id)
            tasks.complete_by_id(task_id)
        except Exception as exc:
            logger.exception("Task %s failed", task_id)
            try:
                tasks.update_failure_by_id(task_id, error_text(exc))
            except Exception:
                logger.exception("Could not record failure of task %s", task_id)
                return self._force_fail(task_id, exc)
            return TaskStatus.FAILED
        return TaskStatus.COMPLETED

    def _force_fail(self, task_id: str, exc: Exception) -> TaskStatus | None:
        try:
            marked = self.context.tasks.force_failure_by_id(task_id, error_text(exc))
        except Exception:
            logger.exception("Could not mark task %s as failed", task_id)
            return None
        return TaskStatus.FAILED if marked else None


def error_text(exc: Exception) -> str:
    return str(exc) or type(exc).__name__


class QueueConsumer:
    """Pulls task ids from a broker and runs them one at a time."""

    def __init__(
        self,
        broker: MessageBroker,
        runner: TaskRunner,
        idle_sleep: float = 1.0,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self.broker = broker
        self.runner = runner
        self.idle_sleep = idle_sleep
        self._sleep = sleep

    def run_once(self) -> bool:
        """Handle at most one message. Returns False when none arrived."""
        message = self.broker.receive()
        if message is None:
            return False

        self.broker.ack(message)
        task_id = message.body.strip()
        logger.info("Received task %s", task_id)
        status = self.runner.run(task_id)
        logger.info("Task %s finished as %s", task_id, status)
        return True

    def run_forever(self, should_stop: Callable[[], bool] | None = None) -> int:
        """Consume until ``should_stop`` returns True. Returns messages handled."""
        handled = 0
        while should_stop is None or not should_stop():
            if self.run_once():
                handled += 1
            else:
                self._sleep(self.idle_sleep)
        return handled


def submit_task(
    context: PipelineContext,
    broker: MessageBroker,
    subtasks: Sequence[Subtask | dict[str, Any]],
    upload_file_name: str | None = None,
) -> Task:
    """Create a ``Pending`` task and publish its id."""
    task = context.tasks.create(subtasks, upload_file_name=upload_file_name, outputs=context.outputs)
    broker.publish(task.id)
    logger.info("Submitted task %s", task.id)
    return task
