"""
Prefect flow for processing a single task by id.

The queue worker (``bee-atlas worker``) is the normal path. This flow reruns
or inspects one task by hand with Prefect's logging and UI:

    python -m bee_atlas.flows.process <task-id>

Run with Prefect dashboard:
    prefect server start &
    python -m bee_atlas.flows.process <task-id>
"""

from __future__ import annotations

import sys
from typing import Any

from prefect import flow, task

from bee_atlas.consumer import TaskRunner
from bee_atlas.context import build_context


@task(name="run-task")
def run_task(task_id: str) -> dict[str, Any]:
    """Run every subtask of the task and summarize the outcome."""
    context = build_context()
    status = TaskRunner(context).run(task_id)
    if status is None:
        return {"task_id": task_id, "status": None, "warnings": [], "outputs": []}

    record = context.tasks.get(task_id)
    return {
        "task_id": task_id,
        "status": record.status.value,
        "warnings": list(record.warnings),
        "outputs": [output.uri for block in record.subtask_outputs for output in block.outputs],
    }


@flow(name="process-task", log_prints=True)
def process_task(task_id: str) -> dict[str, Any]:
    """Process one task outside the queue."""
    print(f"Processing task {task_id}...")
    summary = run_task(task_id)

    if summary["status"] is None:
        print(f"No task with id {task_id}.")
        return summary

    print(f"Task {task_id} finished as {summary['status']}.")
    for warning in summary["warnings"]:
        print(f"  warning: {warning}")
    for uri in summary["outputs"]:
        print(f"  output: {uri}")
    return summary


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: python -m bee_atlas.flows.process <task-id>", file=sys.stderr)
        sys.exit(2)
    process_task(sys.argv[1])
