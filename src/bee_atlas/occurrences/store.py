"""
Occurrence store.

SQLAlchemy Core persistence for curated occurrence records with:
  - deterministic identity (sha256 of key fields) so re-importing a record
    reports a duplicate instead of inserting a second row
  - a composite sort key giving a total, stable order for pagination
  - a drift-detecting bulk update for paginated mutation of a live filter

Filters are plain SQLAlchemy boolean expressions; the helpers below cover
the recurring ones::

    store.paginate(and_(in_scratch(False), unflagged()), page=1)
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, delete, distinct, func, insert, or_, select, true, update

from bee_atlas.csvio import read_chunks, write_rows, write_rows_streaming
from bee_atlas.db import occurrences_table
from bee_atlas.errors import InfiniteUpdateLoopError, InvalidFilterError
from bee_atlas.occurrences.formatting import (
    composite_sort,
    format_coordinate,
    format_occurrence,
    occurrence_id,
    parse_number,
    refresh_derived,
)
from bee_atlas.occurrences.models import (
    ALIAS_TO_FIELD,
    HEADER,
    RECORD_FIELDS,
    REQUIRED_LABEL_FIELDS,
    InsertResult,
    Occurrence,
    column_name,
)

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy import ColumnElement, Connection, Engine, Select

logger = logging.getLogger(__name__)

table = occurrences_table

Changes = Mapping[str, Any]
UpdateSpec = Changes | Callable[[Occurrence], Changes]

# Keeps IN (...) lists under SQLite's bound-parameter limit
_ID_BATCH = 500


# =============================================================================
# Filter helpers
# =============================================================================


def is_blank(name: str) -> ColumnElement[bool]:
    column = table.c[name]
    return or_(column.is_(None), column == "")


def is_present(name: str) -> ColumnElement[bool]:
    column = table.c[name]
    return and_(column.is_not(None), column != "")


def in_scratch(scratch: bool) -> ColumnElement[bool]:
    return table.c.scratch.is_(scratch)


def new_rows(is_new: bool = True) -> ColumnElement[bool]:
    """Rows created during the current task rather than uploaded."""
    return table.c.is_new.is_(is_new)


def unflagged() -> ColumnElement[bool]:
    return is_blank("error_flags")


def flagged() -> ColumnElement[bool]:
    return is_present("error_flags")


def unprinted() -> ColumnElement[bool]:
    return is_blank("date_label_print")


def unindexed(scratch: bool = False) -> ColumnElement[bool]:
    """Rows eligible for a field number: no flags, no number yet."""
    return and_(in_scratch(scratch), unflagged(), is_blank("field_number"))


def committable() -> ColumnElement[bool]:
    """Scratch rows worth keeping: numbered, or free of flags."""
    return and_(in_scratch(True), or_(is_present("field_number"), unflagged()))


def matching(filters: Mapping[str, str | Sequence[str]]) -> ColumnElement[bool]:
    """Equality filter keyed by column header or attribute name.

    A list value matches any of its entries; an empty mapping matches all rows.
    """
    conditions = []
    for key, value in filters.items():
        name = ALIAS_TO_FIELD.get(key, key)
        if name not in RECORD_FIELDS:
            msg = f"Unknown occurrence field {key!r} in filter"
            raise InvalidFilterError(msg)
        column = table.c[name]
        conditions.append(column == value if isinstance(value, str) else column.in_(list(value)))
    return and_(true(), *conditions)


# =============================================================================
# Results
# =============================================================================


@dataclass
class OccurrencePage:
    rows: list[Occurrence]
    current_page: int
    total_pages: int
    total_documents: int


@dataclass
class _RowPage:
    rows: list[dict[str, str]]
    total_pages: int


@dataclass
class PivotGroup:
    """One state's block in a pivot table, entries sorted by count."""

    state_province: str
    total_count: int | None = None
    entries: list[tuple[str, int]] = field(default_factory=list)


# =============================================================================
# Store
# =============================================================================


class OccurrenceStore:
    """Occurrence persistence over a SQLAlchemy engine."""

    def __init__(self, engine: Engine, page_size: int = 1000, url_prefix: str = "") -> None:
        self.engine = engine
        self.page_size = page_size
        self.url_prefix = url_prefix

    # -------------------------------------------------------------------------
    # Conversion
    # -------------------------------------------------------------------------

    @staticmethod
    def _values(occ: Occurrence) -> dict[str, Any]:
        values: dict[str, Any] = {name: getattr(occ, name) for name in RECORD_FIELDS}
        values["composite_sort"] = composite_sort(occ)
        values["scratch"] = occ.scratch
        values["is_new"] = occ.is_new
        return values

    @staticmethod
    def _occurrence(row: Any) -> Occurrence:
        data = {name: row._mapping[name] for name in RECORD_FIELDS}
        data.update(id=row.id, scratch=row.scratch, is_new=row.is_new)
        return Occurrence.model_validate(data)

    @staticmethod
    def _filtered(stmt: Select[Any], where: ColumnElement[bool] | None) -> Select[Any]:
        return stmt if where is None else stmt.where(where)

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def create(self, row: Mapping[str, Any] | Occurrence, scratch: bool = False) -> InsertResult:
        return self.create_many([row], scratch=scratch)

    def create_many(
        self,
        rows: Iterable[Mapping[str, Any] | Occurrence],
        scratch: bool = False,
        skip_formatting: bool = False,
    ) -> InsertResult:
        """Insert records, collecting duplicate ids instead of raising.

        A record is a duplicate when its id already exists in the store or
        appeared earlier in the same batch. Non-duplicates are inserted in
        one statement.
        """
        result = InsertResult()
        occurrences: list[Occurrence] = []
        for row in rows:
            if skip_formatting:
                occ = row.model_copy() if isinstance(row, Occurrence) else Occurrence.model_validate(dict(row))
                refresh_derived(occ)
            else:
                occ = format_occurrence(row, self.url_prefix)
            occ.scratch = scratch
            occ.id = occurrence_id(occ)
            occurrences.append(occ)

        if not occurrences:
            return result

        with self.engine.begin() as conn:
            existing = self._existing_ids(conn, {occ.id for occ in occurrences})
            seen: set[str] = set()
            values: list[dict[str, Any]] = []
            for occ in occurrences:
                if occ.id in existing or occ.id in seen:
                    result.duplicates.append(occ)
                    continue
                seen.add(occ.id)
                values.append({"id": occ.id, **self._values(occ)})
                result.inserted_ids.append(occ.id)

            if values:
                conn.execute(insert(table), values)

        result.inserted_count = len(result.inserted_ids)
        if result.duplicates:
            logger.info("Skipped %d duplicate occurrence(s)", len(result.duplicates))
        return result

    def create_from_file(self, path: Path, chunk_size: int = 5000, scratch: bool = False) -> InsertResult:
        """Stream a CSV upload into the store, chunk by chunk."""
        result = InsertResult()
        for chunk in read_chunks(path, chunk_size):
            result.merge(self.create_many(chunk, scratch=scratch))
        logger.info(
            "Loaded %d occurrence(s) from %s (%d duplicate(s))",
            result.inserted_count,
            path,
            len(result.duplicates),
        )
        return result

    @staticmethod
    def _existing_ids(conn: Connection, ids: set[str]) -> set[str]:
        found: set[str] = set()
        id_list = sorted(ids)
        for start in range(0, len(id_list), _ID_BATCH):
            batch = id_list[start : start + _ID_BATCH]
            found.update(conn.execute(select(table.c.id).where(table.c.id.in_(batch))).scalars())
        return found

    def upsert_by_id(self, row: Mapping[str, Any] | Occurrence, scratch: bool = False) -> bool:
        """Insert or replace a record keyed by its id. Returns True on insert."""
        with self.engine.begin() as conn:
            return self._upsert(conn, row, scratch)

    def upsert_many(self, rows: Iterable[Mapping[str, Any] | Occurrence], scratch: bool = False) -> int:
        """Insert or replace each record in one transaction. Returns inserts.

        Replacing moves an existing record into the given partition, so
        loading with ``scratch=True`` pulls committed rows into scratch.
        """
        with self.engine.begin() as conn:
            return sum(self._upsert(conn, row, scratch) for row in rows)

    def upsert_from_file(self, path: Path, chunk_size: int = 5000, scratch: bool = False) -> int:
        """Stream a CSV into the store, replacing records that already exist."""
        inserted = replaced = 0
        for chunk in read_chunks(path, chunk_size):
            added = self.upsert_many(chunk, scratch=scratch)
            inserted += added
            replaced += len(chunk) - added
        logger.info("Upserted %s: %d new, %d replaced", path, inserted, replaced)
        return inserted

    def _upsert(self, conn: Connection, row: Mapping[str, Any] | Occurrence, scratch: bool) -> bool:
        occ = format_occurrence(row, self.url_prefix)
        occ.scratch = scratch
        occ.id = occurrence_id(occ)
        values = self._values(occ)
        if conn.execute(update(table).where(table.c.id == occ.id).values(**values)).rowcount:
            return False
        conn.execute(insert(table).values(id=occ.id, **values))
        return True

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    def find_by_id(self, occurrence_id: str) -> Occurrence | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(table).where(table.c.id == occurrence_id)).first()
        return self._occurrence(row) if row is not None else None

    def count(self, where: ColumnElement[bool] | None = None) -> int:
        stmt = self._filtered(select(func.count()).select_from(table), where)
        with self.engine.connect() as conn:
            return int(conn.execute(stmt).scalar_one())

    def paginate(
        self,
        where: ColumnElement[bool] | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> OccurrencePage:
        """One page in composite-sort order, ties broken by id."""
        page_size = page_size or self.page_size
        page = max(page, 1)
        total = self.count(where)
        stmt = (
            self._filtered(select(table), where)
            .order_by(table.c.composite_sort, table.c.id)
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
        with self.engine.connect() as conn:
            rows = [self._occurrence(r) for r in conn.execute(stmt)]
        return OccurrencePage(
            rows=rows,
            current_page=page,
            total_pages=math.ceil(total / page_size),
            total_documents=total,
        )

    def first(self, where: ColumnElement[bool] | None = None) -> Occurrence | None:
        page = self.paginate(where, page=1, page_size=1)
        return page.rows[0] if page.rows else None

    def unindexed_page(self, page: int = 1, page_size: int | None = None, scratch: bool = False) -> OccurrencePage:
        return self.paginate(unindexed(scratch), page, page_size)

    def max_field_number(self) -> str | None:
        """The numerically largest field number, or None when none are set."""
        best: tuple[int, str] | None = None
        stmt = select(table.c.field_number).where(is_present("field_number"))
        with self.engine.connect() as conn:
            for value in conn.execute(stmt).scalars():
                text = value.strip()
                if not text.isdigit():
                    continue
                if best is None or int(text) > best[0]:
                    best = (int(text), text)
        return best[1] if best else None

    def distinct_coordinates(self, where: ColumnElement[bool] | None = None) -> list[str]:
        """Unique ``"lat,lon"`` pairs rounded to four decimals."""
        stmt = self._filtered(
            select(table.c.decimal_latitude, table.c.decimal_longitude)
            .where(is_present("decimal_latitude"), is_present("decimal_longitude"))
            .distinct(),
            where,
        )
        coordinates: set[str] = set()
        with self.engine.connect() as conn:
            for lat, lon in conn.execute(stmt):
                if parse_number(lat) is None or parse_number(lon) is None:
                    continue
                coordinates.add(f"{format_coordinate(lat)},{format_coordinate(lon)}")
        return sorted(coordinates)

    def distinct_urls(self, where: ColumnElement[bool] | None = None) -> list[str]:
        stmt = self._filtered(select(distinct(table.c.url)).where(is_present("url")), where)
        with self.engine.connect() as conn:
            return sorted(conn.execute(stmt).scalars())

    def printable(
        self,
        user_logins: Sequence[str] | None = None,
        scratch: bool = False,
        ignore_label_print: bool = False,
    ) -> list[Occurrence]:
        """Occurrences ready for labels: required fields present and unflagged.

        Ordered by collector then field number so labels group by collector.
        """
        conditions = [in_scratch(scratch), *(is_present(f) for f in REQUIRED_LABEL_FIELDS)]
        if not ignore_label_print:
            conditions.append(unprinted())
        if user_logins:
            conditions.append(table.c.user_login.in_(list(user_logins)))

        stmt = select(table).where(and_(*conditions)).order_by(table.c.recorded_by, table.c.field_number)
        with self.engine.connect() as conn:
            occurrences = [self._occurrence(r) for r in conn.execute(stmt)]
        return [occ for occ in occurrences if not _has_required_flag(occ)]

    def unprintable(self, scratch: bool = False, ignore_label_print: bool = False) -> list[Occurrence]:
        """Occurrences whose flags name at least one required label field."""
        conditions = [in_scratch(scratch), flagged()]
        if not ignore_label_print:
            conditions.append(unprinted())
        stmt = select(table).where(and_(*conditions)).order_by(table.c.composite_sort, table.c.id)
        with self.engine.connect() as conn:
            occurrences = [self._occurrence(r) for r in conn.execute(stmt)]
        return [occ for occ in occurrences if _has_required_flag(occ)]

    def error_flags_by_user(self, user_logins: Sequence[str], scratch: bool = False) -> dict[str, set[str]]:
        """Union of flagged column names per user login."""
        if not user_logins:
            return {}
        stmt = select(table.c.user_login, table.c.error_flags).where(
            in_scratch(scratch),
            flagged(),
            table.c.user_login.in_(list(user_logins)),
        )
        flags: dict[str, set[str]] = defaultdict(set)
        with self.engine.connect() as conn:
            for login, error_flags in conn.execute(stmt):
                flags[login].update(f for f in error_flags.split(";") if f)
        return dict(flags)

    # -------------------------------------------------------------------------
    # Pivots
    # -------------------------------------------------------------------------

    def state_collector_counts(self, where: ColumnElement[bool] | None = None) -> list[PivotGroup]:
        """Occurrence count per collector within each state."""
        stmt = self._filtered(
            select(table.c.state_province, table.c.recorded_by, func.count())
            .where(is_present("state_province"), is_present("recorded_by"))
            .group_by(table.c.state_province, table.c.recorded_by),
            where,
        )
        return self._pivot(stmt, with_total=True)

    def state_collector_county_counts(self, where: ColumnElement[bool] | None = None) -> list[PivotGroup]:
        """Distinct county count per collector within each state."""
        stmt = self._filtered(
            select(table.c.state_province, table.c.recorded_by, func.count(distinct(table.c.county)))
            .where(is_present("state_province"), is_present("recorded_by"), is_present("county"))
            .group_by(table.c.state_province, table.c.recorded_by),
            where,
        )
        return self._pivot(stmt, with_total=False)

    def state_genus_counts(self, where: ColumnElement[bool] | None = None) -> list[PivotGroup]:
        """Occurrence count per plant genus within each state."""
        stmt = self._filtered(
            select(table.c.state_province, table.c.genus_plant, func.count())
            .where(is_present("state_province"), is_present("genus_plant"))
            .group_by(table.c.state_province, table.c.genus_plant),
            where,
        )
        return self._pivot(stmt, with_total=True)

    def _pivot(self, stmt: Select[Any], with_total: bool) -> list[PivotGroup]:
        groups: dict[str, PivotGroup] = {}
        with self.engine.connect() as conn:
            for state, key, count in conn.execute(stmt):
                group = groups.setdefault(state, PivotGroup(state, 0 if with_total else None))
                group.entries.append((key, int(count)))
                if group.total_count is not None:
                    group.total_count += int(count)
        for group in groups.values():
            group.entries.sort(key=lambda e: (-e[1], e[0]))
        return [groups[state] for state in sorted(groups)]

    # -------------------------------------------------------------------------
    # Update
    # -------------------------------------------------------------------------

    def update_by_id(self, occurrence_id: str, changes: Changes) -> bool:
        """Apply field changes to one record. Returns False if it does not exist."""
        with self.engine.begin() as conn:
            return self._update(conn, occurrence_id, changes) is not None

    def _update(self, conn: Connection, occurrence_id: str, changes: Changes) -> tuple[str, str] | None:
        """Update one row, returning its (old, new) composite sort keys."""
        row = conn.execute(select(table).where(table.c.id == occurrence_id)).first()
        if row is None:
            return None
        current = self._occurrence(row)
        updated = Occurrence.model_validate({**dict(current), **changes, "id": occurrence_id})
        refresh_derived(updated)
        values = self._values(updated)
        conn.execute(update(table).where(table.c.id == occurrence_id).values(**values))
        return row.composite_sort, values["composite_sort"]

    def update_many(
        self,
        where: ColumnElement[bool] | None,
        changes: UpdateSpec,
        page_size: int | None = None,
    ) -> int:
        """Update every row matching ``where``, page by page.

        ``changes`` is a mapping of field changes or a callable computing them
        from each row. After each page the match count is measured again:

          - an increase means the update admits new matches and raises
            ``InfiniteUpdateLoopError``
          - a decrease means rows left the filter and later rows shifted
            into visited pages, so the cursor restarts at page 1

        Each row is updated at most once. If an update moved a row within the
        sort order, one more sweep from page 1 picks up anything it displaced.

        Returns:
            Number of rows updated.
        """
        page_size = page_size or self.page_size
        compute = changes if callable(changes) else (lambda _occ: changes)

        processed: set[str] = set()
        previous_total = self.count(where)
        page = 1
        reordered = False

        while True:
            result = self.paginate(where, page, page_size)
            if not result.rows:
                if reordered:
                    reordered = False
                    page = 1
                    continue
                break

            pending = [(occ.id, compute(occ)) for occ in result.rows if occ.id not in processed]
            with self.engine.begin() as conn:
                for occurrence_id, row_changes in pending:
                    sort_keys = self._update(conn, occurrence_id, row_changes)
                    processed.add(occurrence_id)
                    if sort_keys is not None and sort_keys[0] != sort_keys[1]:
                        reordered = True

            total = self.count(where)
            if total > previous_total:
                msg = (
                    f"Matching occurrences grew from {previous_total} to {total} "
                    f"while updating page {page}"
                )
                raise InfiniteUpdateLoopError(msg)
            page = 1 if total < previous_total else page + 1
            previous_total = total

        logger.debug("Bulk update touched %d occurrence(s)", len(processed))
        return len(processed)

    # -------------------------------------------------------------------------
    # Delete / export
    # -------------------------------------------------------------------------

    def delete_all(self, where: ColumnElement[bool] | None = None) -> int:
        stmt = delete(table) if where is None else delete(table).where(where)
        with self.engine.begin() as conn:
            return conn.execute(stmt).rowcount

    def write_csv(self, path: Path, where: ColumnElement[bool] | None = None) -> int:
        """Export matching occurrences to CSV in composite-sort order."""

        def page_source(page: int) -> _RowPage:
            result = self.paginate(where, page)
            return _RowPage([occ.to_row() for occ in result.rows], result.total_pages)

        return write_rows_streaming(path, HEADER, page_source)


def _has_required_flag(occ: Occurrence) -> bool:
    flags = set(occ.error_flags.split(";"))
    return any(column_name(f) in flags for f in REQUIRED_LABEL_FIELDS)


def write_occurrences(path: Path, occurrences: Iterable[Occurrence]) -> Path:
    """Write already-loaded occurrences (e.g. duplicates) to CSV."""
    return write_rows(path, HEADER, (occ.to_row() for occ in occurrences))
