"""Emails stage: who to contact about which kind of data problem."""

from __future__ import annotations

from itertools import zip_longest
from typing import TYPE_CHECKING

from bee_atlas.csvio import write_rows
from bee_atlas.handlers.base import SubtaskHandler
from bee_atlas.occurrences.models import PLANT_TAXONOMY_FIELDS, column_name
from bee_atlas.schemas import OutputFile, Subtask, SubtaskType, Task

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

# Email column -> flagged columns that put a user on that list
EMAIL_CATEGORIES: dict[str, tuple[str, ...]] = {
    "locationEmails": (column_name("locality"),),
    "accuracyEmails": (column_name("coordinate_uncertainty"),),
    "taxonomyEmails": tuple(column_name(f) for f in PLANT_TAXONOMY_FIELDS),
}


def categorize_emails(
    flags_by_user: Mapping[str, set[str]], emails_by_user: Mapping[str, str]
) -> dict[str, list[str]]:
    """Emails per category; a user can land on several lists."""
    categories: dict[str, list[str]] = {name: [] for name in EMAIL_CATEGORIES}
    for login in sorted(flags_by_user):
        email = emails_by_user.get(login)
        if not email:
            continue
        for name, columns in EMAIL_CATEGORIES.items():
            if flags_by_user[login].intersection(columns):
                categories[name].append(email)
    return categories


class EmailsHandler(SubtaskHandler):
    subtask_type = SubtaskType.EMAILS

    def process(self, task: Task, subtask: Subtask, input_path: Path | None) -> list[OutputFile]:
        ctx = self.context
        self.stage(task, subtask, input_path)

        self.log_step(task, "Compiling user email addresses")
        ctx.usernames.reload()
        emails = {login: user.get("email", "") for login, user in ctx.usernames.users.items() if login}
        flags = ctx.occurrences.error_flags_by_user(list(emails), scratch=True)
        categories = categorize_emails(flags, emails)

        header = tuple(EMAIL_CATEGORIES)
        rows = [
            dict(zip(header, values, strict=True))
            for values in zip_longest(*categories.values(), fillvalue="")
        ]
        file_name = f"emails_{task.tag}.csv"
        write_rows(ctx.outputs.path_for("emails", file_name), header, rows)
        return [ctx.outputs.output_file("emails", file_name)]
