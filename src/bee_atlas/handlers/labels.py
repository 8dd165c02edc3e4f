"""Labels stage: render printable occurrences as a label sheet."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bee_atlas.handlers.base import SubtaskHandler
from bee_atlas.renderers.labels import build_label, build_labels_html, label_warning, partition_labels
from bee_atlas.schemas import OutputFile, Subtask, SubtaskType, Task

if TYPE_CHECKING:
    from pathlib import Path

    from bee_atlas.renderers.labels import Label

logger = logging.getLogger(__name__)


class LabelsHandler(SubtaskHandler):
    """Renders label sheets for printable scratch occurrences.

    Labels with suspicious data are also collected on a separate warnings
    sheet. Occurrences whose flags block a label are written to a flags file
    for follow-up, printed or not.
    """

    subtask_type = SubtaskType.LABELS

    def process(self, task: Task, subtask: Subtask, input_path: Path | None) -> list[OutputFile]:
        ctx = self.context
        store = ctx.occurrences

        staged = self.stage(task, subtask, input_path)
        printable = store.printable(scratch=True, ignore_label_print=subtask.ignore_date_label_print)

        warnings = [
            f"Filtered out {staged - len(printable)} occurrences that were already printed or had faulty data."
        ]

        labels: list[Label] = []
        warning_labels: list[Label] = []
        suspicious = []
        for occ in printable:
            label = build_label(occ)
            labels.append(label)
            reason = label_warning(occ, label)
            if reason:
                suspicious.append(f"{occ.field_number} ({reason})")
                warning_labels.append(label)
        if suspicious:
            warnings.append(f"Potentially incompatible data for occurrences: [ {', '.join(suspicious)} ]")
        ctx.tasks.update_warnings_by_id(task.id, warnings)

        self.log_step(task, "Generating labels from provided dataset")
        outputs = [self._write_sheet(task, f"labels_{task.tag}.html", labels, f"Labels {task.tag}")]

        if warning_labels:
            self.log_step(task, "Generating labels with warnings")
            outputs.append(
                self._write_sheet(
                    task,
                    f"labels_warnings_{task.tag}.html",
                    warning_labels,
                    f"Label warnings {task.tag}",
                    subtype="warnings",
                )
            )

        unprintable = store.unprintable(scratch=True, ignore_label_print=True)
        outputs.append(
            self.export_rows("flags", f"flags_unprintable_{task.tag}.csv", unprintable, subtype="unprintable")
        )
        logger.info("Wrote %d unprintable occurrence(s) for task %s", len(unprintable), task.id)
        return outputs

    def _write_sheet(
        self, task: Task, file_name: str, labels: list[Label], title: str, subtype: str | None = None
    ) -> OutputFile:
        report = self.progress(task)
        report(0)
        path = self.context.outputs.path_for("labels", file_name)
        path.write_text(build_labels_html(partition_labels(labels), title=title), encoding="utf-8")
        report(100)
        logger.info("Rendered %d label(s) to %s", len(labels), path)
        return self.context.outputs.output_file("labels", file_name, subtype)
