"""Output file store with per-type directories and size-capped retention.

Subtask outputs are laid out by output type under the data directory::

    data/
      uploads/        task uploads (input only)
      occurrences/    occurrences_<tag>.csv, occurrences_merged_<tag>.csv
      duplicates/     duplicates_<tag>.csv
      flags/ pulls/   observation merge side outputs
      labels/         labels_<tag>.html
      addresses/ emails/ pivots/

Each directory is capped independently: once it holds more files than its
limit, the least recently modified file is zipped alongside and removed.
"""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path  # noqa: TC003

from bee_atlas.schemas import OutputFile

logger = logging.getLogger(__name__)


class OutputStore:
    """Resolves output paths and trims output directories."""

    def __init__(self, base_dir: Path) -> None:
        self.base = base_dir
        self.uploads = base_dir / "uploads"

    def path_for(self, output_type: str, file_name: str) -> Path:
        """Absolute path of an output file, creating its directory."""
        full = self._resolve(self.base / output_type / file_name)
        full.parent.mkdir(parents=True, exist_ok=True)
        return full

    def upload_path(self, file_name: str) -> Path:
        return self._resolve(self.uploads / file_name)

    def output_file(self, output_type: str, file_name: str, subtype: str | None = None) -> OutputFile:
        """Build the result descriptor for a written output."""
        return OutputFile(
            uri=f"/api/{output_type}/{file_name}",
            file_name=file_name,
            type=output_type,
            subtype=subtype,
        )

    def resolve_output(self, output: OutputFile) -> Path:
        return self._resolve(self.base / output.type / output.file_name)

    def limit_files(self, output_type: str, max_files: int) -> list[Path]:
        """Archive the oldest files of a directory until ``max_files`` remain.

        Zip archives are not counted. Failures are logged and the files that
        were archived so far are returned.
        """
        directory = self.base / output_type
        archived: list[Path] = []
        if not directory.is_dir():
            return archived

        try:
            files = self._countable(directory)
            while len(files) > max_files:
                oldest = min(files, key=lambda p: p.stat().st_mtime)
                self._archive(oldest)
                oldest.unlink()
                archived.append(oldest)
                files = self._countable(directory)
        except OSError:
            logger.exception("Error while limiting files in %s", directory)

        if archived:
            logger.info("Archived %d file(s) from %s", len(archived), directory)
        return archived

    @staticmethod
    def _countable(directory: Path) -> list[Path]:
        return [p for p in directory.iterdir() if p.is_file() and p.suffix.lower() != ".zip"]

    @staticmethod
    def _archive(path: Path) -> Path:
        zip_path = path.with_name(path.name + ".zip")
        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            zf.write(path, arcname=path.name)
        return zip_path

    def _resolve(self, path: Path) -> Path:
        try:
            path.resolve().relative_to(self.base.resolve())
        except ValueError:
            msg = f"Path escapes store base directory: {path}"
            raise ValueError(msg) from None
        return path
