"""
Volunteer directory.

``usernames.csv`` maps iNaturalist logins to the collector's name as it
should appear on labels, plus contact details for mailing and email lists.
It is maintained by hand and re-read whenever a subtask needs fresh names.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path  # noqa: TC003

from bee_atlas.csvio import read_rows

HEADER = (
    "userLogin",
    "fullName",
    "firstName",
    "firstNameInitial",
    "lastName",
    "email",
    "address",
    "city",
    "stateProvince",
    "zipPostal",
    "country",
)


@dataclass
class UserName:
    first_name: str = ""
    first_name_initial: str = ""
    last_name: str = ""


class Usernames:
    """Login-keyed lookup over ``usernames.csv``."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._by_login: dict[str, dict[str, str]] | None = None

    def reload(self) -> int:
        """Re-read the file. Returns the number of users."""
        self._by_login = {row.get("userLogin", ""): row for row in read_rows(self.path)}
        return len(self._by_login)

    @property
    def users(self) -> dict[str, dict[str, str]]:
        if self._by_login is None:
            self.reload()
        assert self._by_login is not None
        return self._by_login

    def user_name(self, login: str | None) -> UserName:
        user = self.users.get(login or "")
        if user is None:
            return UserName()
        return UserName(
            first_name=user.get("firstName", ""),
            first_name_initial=user.get("firstNameInitial", ""),
            last_name=user.get("lastName", ""),
        )
