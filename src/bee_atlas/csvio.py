"""
Bounded-memory CSV readers and writers.

Every subtask reads its input and writes its outputs through this module.
Readers are lazy generators: the caller drives iteration, so only the batch
currently being consumed is held in memory. Writers pull rows page by page
from a callback so exports never materialize a whole table.

Usage::

    for batch in read_chunks(upload_path, chunk_size=5000):
        store.create_many(batch)

    write_rows_streaming(out_path, HEADER, lambda page: store.paginate(where, page))
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# utf-8-sig strips the byte-order mark spreadsheet exports often carry
ENCODING = "utf-8-sig"


class Page(Protocol):
    """Anything with a page of rows and the total page count."""

    @property
    def rows(self) -> Sequence[Mapping[str, Any]]: ...

    @property
    def total_pages(self) -> int: ...


PageSource = Callable[[int], Page]


def read_chunks(path: Path, chunk_size: int) -> Iterator[list[dict[str, str]]]:
    """Yield batches of at most ``chunk_size`` rows from a CSV file.

    A missing file yields nothing: callers treat zero batches as "no data"
    so that an absent optional input does not fail a task. The generator is
    forward-only; call again to re-read from the start.
    """
    if chunk_size < 1:
        msg = f"chunk_size must be positive, got {chunk_size}"
        raise ValueError(msg)

    if not path.exists():
        logger.warning("Input file %s does not exist; reading zero rows", path)
        return

    with path.open(newline="", encoding=ENCODING) as f:
        reader = csv.DictReader(f)
        batch: list[dict[str, str]] = []
        for row in reader:
            # DictReader puts overflow cells under the None key
            row.pop(None, None)  # type: ignore[call-overload]
            batch.append({k: v if v is not None else "" for k, v in row.items()})
            if len(batch) >= chunk_size:
                yield batch
                batch = []
        if batch:
            yield batch


def read_rows(path: Path) -> list[dict[str, str]]:
    """Read a small CSV file fully. Missing files read as empty."""
    rows: list[dict[str, str]] = []
    for batch in read_chunks(path, chunk_size=1000):
        rows.extend(batch)
    return rows


def _writer(f: Any, header: Sequence[str]) -> csv.DictWriter[str]:
    return csv.DictWriter(f, fieldnames=list(header), extrasaction="ignore", restval="")


def write_rows(path: Path, header: Sequence[str], rows: Iterable[Mapping[str, Any]]) -> Path:
    """Write rows to ``path`` with the given header. Returns the path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = _writer(f, header)
        writer.writeheader()
        for row in rows:
            writer.writerow(row)
    return path


def write_rows_streaming(path: Path, header: Sequence[str], page_source: PageSource) -> int:
    """Write every page produced by ``page_source`` to ``path``.

    ``page_source(page)`` is called with 1-based page numbers until the page
    number passes the reported ``total_pages``. The header is written even
    when the source has no rows.

    Returns:
        Number of data rows written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    written = 0
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = _writer(f, header)
        writer.writeheader()

        page_number = 1
        page = page_source(page_number)
        while page_number <= page.total_pages:
            for row in page.rows:
                writer.writerow(row)
                written += 1
            page_number += 1
            if page_number > page.total_pages:
                break
            page = page_source(page_number)

    logger.debug("Wrote %d rows to %s", written, path)
    return written
