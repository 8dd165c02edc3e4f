"""Addresses stage: mailing list of collectors with printable specimens."""

from __future__ import annotations

from typing import TYPE_CHECKING

from bee_atlas.csvio import write_rows
from bee_atlas.handlers.base import SubtaskHandler
from bee_atlas.schemas import OutputFile, Subtask, SubtaskType, Task

if TYPE_CHECKING:
    from pathlib import Path

ADDRESS_FIELDS = ("fullName", "address", "city", "stateProvince", "zipPostal", "country")


class AddressesHandler(SubtaskHandler):
    subtask_type = SubtaskType.ADDRESSES

    def process(self, task: Task, subtask: Subtask, input_path: Path | None) -> list[OutputFile]:
        ctx = self.context
        self.stage(task, subtask, input_path)

        self.log_step(task, "Compiling user mailing addresses")
        ctx.usernames.reload()
        logins = [login for login in ctx.usernames.users if login]
        printable_logins = {occ.user_login for occ in ctx.occurrences.printable(
            logins, scratch=True, ignore_label_print=subtask.ignore_date_label_print
        ) if occ.user_login}
        users = [user for login, user in ctx.usernames.users.items() if login in printable_logins]

        file_name = f"addresses_{task.tag}.csv"
        write_rows(ctx.outputs.path_for("addresses", file_name), ADDRESS_FIELDS, users)
        return [ctx.outputs.output_file("addresses", file_name)]
