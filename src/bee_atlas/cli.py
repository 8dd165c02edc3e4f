"""
Command-line interface.

Runs the queue worker, submits tasks, reruns one task through the Prefect
flow and shows task status. Entry point: ``bee-atlas``.
"""

from __future__ import annotations

import argparse
import logging
import shutil
import sys
from pathlib import Path

from bee_atlas import __version__
from bee_atlas.config import Settings, get_settings
from bee_atlas.consumer import QueueConsumer, TaskRunner, submit_task
from bee_atlas.context import build_context
from bee_atlas.errors import TaskNotFoundError
from bee_atlas.flows.process import process_task
from bee_atlas.messaging import MessageBroker, ServiceBusBroker
from bee_atlas.schemas import NO_INPUT, SELECTION_INPUT, UPLOAD_INPUT, SubtaskType, Task

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="bee-atlas",
        description="Occurrence processing pipeline for the bee atlas",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("info", help="Show application info")

    # 'worker' command - consume the task queue
    worker_parser = subparsers.add_parser("worker", help="Consume tasks from the queue")
    worker_parser.add_argument(
        "--once",
        action="store_true",
        help="Handle at most one message, then exit",
    )

    # 'submit' command - create a task and queue it
    submit_parser = subparsers.add_parser("submit", help="Create a task and queue it")
    submit_parser.add_argument(
        "subtasks",
        nargs="+",
        choices=[t.value for t in SubtaskType],
        help="Subtasks to run, in order",
    )
    submit_parser.add_argument(
        "--upload",
        type=Path,
        default=None,
        help="CSV file to copy into the uploads directory as the task input",
    )
    submit_parser.add_argument(
        "--source",
        dest="sources",
        action="append",
        default=[],
        help="iNaturalist project id for the observations subtask (repeatable)",
    )
    submit_parser.add_argument("--min-date", default=None, help="Earliest observation date (YYYY-MM-DD)")
    submit_parser.add_argument("--max-date", default=None, help="Latest observation date (YYYY-MM-DD)")
    submit_parser.add_argument("--url", default=None, help="iNaturalist observation search URL to pull as well")
    submit_parser.add_argument(
        "--filter",
        dest="filters",
        type=filter_pair,
        action="append",
        default=[],
        metavar="COLUMN=VALUE",
        help="Run the first subtask on stored occurrences matching this (repeatable)",
    )
    submit_parser.add_argument(
        "--reprint",
        action="store_true",
        help="Include occurrences whose labels were already printed",
    )

    # 'run-task' command - process one task through the Prefect flow
    run_parser = subparsers.add_parser("run-task", help="Process one task by id, outside the queue")
    run_parser.add_argument("task_id", help="Task id")

    # 'status' command
    status_parser = subparsers.add_parser("status", help="Show one task, or the most recent ones")
    status_parser.add_argument("task_id", nargs="?", default=None, help="Task id")
    status_parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Number of recent tasks to list (default: 10)",
    )

    return parser


def create_broker(settings: Settings) -> MessageBroker:
    """Broker for the configured Service Bus queue."""
    return ServiceBusBroker(
        settings.servicebus_connection_string,
        settings.queue_name,
        max_wait_time=settings.receive_wait_seconds,
    )


def filter_pair(text: str) -> tuple[str, str]:
    column, sep, value = text.partition("=")
    if not sep or not column:
        msg = f"expected COLUMN=VALUE, got {text!r}"
        raise argparse.ArgumentTypeError(msg)
    return column, value


def build_subtasks(args: argparse.Namespace) -> list[dict[str, object]]:
    """Chain subtasks: each reads the previous occurrences output.

    The first reads the upload, the ``--filter`` selection, or nothing when an
    observations pull starts without an upload.
    """
    selection: dict[str, str | list[str]] = {}
    for column, value in args.filters:
        current = selection.get(column)
        if current is None:
            selection[column] = value
        else:
            selection[column] = [*([current] if isinstance(current, str) else current), value]
    if selection:
        first_input = SELECTION_INPUT
    elif args.upload is None and args.subtasks[0] == SubtaskType.OBSERVATIONS:
        first_input = NO_INPUT
    else:
        first_input = UPLOAD_INPUT

    subtasks: list[dict[str, object]] = []
    for index, subtask_type in enumerate(args.subtasks):
        subtask: dict[str, object] = {
            "type": subtask_type,
            "input": first_input if index == 0 else f"{index - 1}_occurrences",
        }
        if index == 0 and selection:
            subtask["filter"] = selection
        if subtask_type == SubtaskType.OBSERVATIONS:
            subtask.update(sources=args.sources, url=args.url, min_date=args.min_date, max_date=args.max_date)
        if args.reprint and subtask_type in (SubtaskType.LABELS, SubtaskType.ADDRESSES):
            subtask["ignore_date_label_print"] = True
        subtasks.append(subtask)
    return subtasks


def format_task(task: Task) -> str:
    lines = [f"{task.id}  {task.name}  {task.type}  {task.status}"]
    if task.progress is not None:
        step = task.progress.current_step or ""
        percentage = task.progress.percentage or ""
        lines.append(f"  {task.progress.current_subtask}: {step} {percentage}".rstrip())
    lines.extend(f"  warning: {warning}" for warning in task.warnings)
    lines.extend(
        f"  output: {output.uri}" for block in task.subtask_outputs for output in block.outputs
    )
    return "\n".join(lines)


def cmd_info(_args: argparse.Namespace) -> int:
    """Handle the 'info' command."""
    settings = get_settings()
    print(f"Application: {settings.app_name}")
    print(f"Version: {__version__}")
    print(f"Environment: {settings.app_env}")
    print(f"Debug: {settings.debug}")
    print(f"Data directory: {settings.data_dir}")
    print(f"Queue: {settings.queue_name}")
    return 0


def cmd_worker(args: argparse.Namespace) -> int:
    """Handle the 'worker' command: consume tasks until interrupted."""
    settings = get_settings()
    if not settings.servicebus_connection_string:
        print("SERVICEBUS_CONNECTION_STRING is not set.", file=sys.stderr)
        return 1

    context = build_context(settings)
    broker = create_broker(settings)
    consumer = QueueConsumer(broker, TaskRunner(context))
    print(f"Listening on queue {settings.queue_name} (Ctrl+C to stop)")
    try:
        if args.once:
            consumer.run_once()
        else:
            consumer.run_forever()
    except KeyboardInterrupt:
        print("\nWorker stopped.")
    finally:
        broker.close()
    return 0


def cmd_submit(args: argparse.Namespace) -> int:
    """Handle the 'submit' command: create a task and publish its id."""
    settings = get_settings()
    if not settings.servicebus_connection_string:
        print("SERVICEBUS_CONNECTION_STRING is not set.", file=sys.stderr)
        return 1

    context = build_context(settings)
    upload_name = None
    if args.upload is not None:
        if not args.upload.is_file():
            print(f"Upload not found: {args.upload}", file=sys.stderr)
            return 1
        upload_name = args.upload.name
        destination = context.outputs.upload_path(upload_name)
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(args.upload, destination)

    broker = create_broker(settings)
    try:
        task = submit_task(context, broker, build_subtasks(args), upload_file_name=upload_name)
    finally:
        broker.close()
    print(f"Submitted task {task.id} ({task.type})")
    return 0


def cmd_run_task(args: argparse.Namespace) -> int:
    """Handle the 'run-task' command: process one task through the flow."""
    summary = process_task(args.task_id)
    return 0 if summary["status"] == "Completed" else 1


def cmd_status(args: argparse.Namespace) -> int:
    """Handle the 'status' command."""
    context = build_context()
    if args.task_id:
        try:
            task = context.tasks.get(args.task_id)
        except TaskNotFoundError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        print(format_task(task))
        return 0

    tasks = context.tasks.list_recent(args.limit)
    if not tasks:
        print("No tasks.")
    for task in tasks:
        print(format_task(task))
    return 0


def main() -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "info": cmd_info,
        "worker": cmd_worker,
        "submit": cmd_submit,
        "run-task": cmd_run_task,
        "status": cmd_status,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
