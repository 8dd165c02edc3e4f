"""
Sequential field-number assignment.

Field numbers are a two-character prefix (the collection year) followed by a
zero-padded counter: ``25000001``, ``25000002``, ... New numbers continue from
the current maximum so they are unique and gap-free across runs.

Indexing runs in two phases. Phase one pages through eligible rows in
composite-sort order and only buffers the changes; phase two applies them.
Writing a field number removes a row from the eligible set, so applying while
paging would shift later rows into pages already visited.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

    from bee_atlas.occurrences.store import OccurrenceStore

logger = logging.getLogger(__name__)

PREFIX_LENGTH = 2
OREGON = "OR"


def increment_field_number(value: str) -> str:
    """Next field number after ``value``, or "" if it is not numeric."""
    value = (value or "").strip()
    if len(value) <= PREFIX_LENGTH or not value.isdigit():
        return ""
    prefix, suffix = value[:PREFIX_LENGTH], value[PREFIX_LENGTH:]
    return f"{prefix}{int(suffix) + 1:0{len(suffix)}d}"


def starting_field_number(store: OccurrenceStore, year: int) -> str:
    """First unused field number: one past the max, else ``{yy}000001``."""
    current = store.max_field_number()
    if current:
        following = increment_field_number(current)
        if following:
            return following
    return f"{str(year)[2:]}000001"


def index_occurrences(
    store: OccurrenceStore,
    year: int,
    page_size: int | None = None,
    scratch: bool = False,
    url_prefix: str = "",
    on_progress: Callable[[float], None] | None = None,
) -> int:
    """Assign field numbers to every unflagged row that lacks one.

    Returns:
        Number of occurrences indexed.
    """
    page_size = page_size or store.page_size
    field_number = starting_field_number(store, year)
    url_prefix = url_prefix or store.url_prefix

    pending: list[tuple[str, dict[str, Any]]] = []
    page = 1
    while True:
        result = store.unindexed_page(page, page_size, scratch=scratch)
        for occ in result.rows:
            changes: dict[str, Any] = {"field_number": field_number}
            if occ.state_province == OREGON and url_prefix:
                if not occ.occurrence_id:
                    changes["occurrence_id"] = f"{url_prefix}{field_number}"
                if not occ.resource_id:
                    changes["resource_id"] = f"{url_prefix}{field_number}"
            pending.append((occ.id, changes))
            field_number = increment_field_number(field_number)
        if page >= result.total_pages:
            break
        page += 1

    total = len(pending)
    for i, (occurrence_id, changes) in enumerate(pending, start=1):
        store.update_by_id(occurrence_id, changes)
        if on_progress and total:
            on_progress(100 * i / total)

    logger.info("Indexed %d occurrence(s)", total)
    return total
