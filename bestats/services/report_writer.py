"""Daily-rotated CSV report files, one per engine and metric category."""

import logging
import os
from datetime import date
from pathlib import Path
from typing import Callable, Dict, List, Optional, TextIO, Tuple

from ..collectors.categories import MetricCategory
from ..utils.errors import WriteError


class ReportWriter:
    """
    Own the report files of one engine.

    At most one file is open per category. The filename carries the
    month and day, so a write on a new day closes yesterday's file and
    opens a fresh one; rotation is checked on every write rather than
    by a timer. The header row is written only when a file is created.
    """

    def __init__(
        self,
        endpoint,
        report_folder: str = ".",
        include_year: bool = False,
        today: Callable[[], date] = date.today,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize report writer.

        Args:
            endpoint: EngineEndpoint whose identity names the files
            report_folder: Directory holding report files, created on demand
            include_year: Prefix month/day with the year in filenames
            today: Date source, injectable for rotation tests
            logger: Optional logger instance
        """
        self.endpoint = endpoint
        self.report_folder = Path(report_folder or ".")
        self.include_year = include_year
        self._today = today
        self.logger = logger or logging.getLogger(__name__)
        # category name -> (filename, open handle)
        self._open: Dict[str, Tuple[str, TextIO]] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def filename(self, category: MetricCategory) -> str:
        """Today's filename for a category."""
        day = self._today()
        stamp = f"{day:%Y_%m_%d}" if self.include_year else f"{day:%m_%d}"
        parts = self.endpoint.filename_parts() + (category.name, stamp)
        return "_".join(parts) + ".csv"

    def path(self, category: MetricCategory) -> Path:
        return self.report_folder / self.filename(category)

    def open(self, category: MetricCategory) -> None:
        """
        Make sure today's file for the category exists, with its header.

        Raises:
            WriteError: If the folder or file cannot be created
        """
        self._writer_for(category)

    def write(self, category: MetricCategory, row: str) -> None:
        """
        Append one line to today's file for the category.

        Raises:
            WriteError: If the folder or file cannot be created or written
        """
        handle = self._writer_for(category)
        try:
            handle.write(row)
        except (OSError, ValueError) as e:
            raise WriteError(
                f"Failed to write {self.filename(category)}: {e}",
                engine=self.endpoint.label,
                category=category.name
            ) from e

    def flush(self, category: MetricCategory) -> None:
        entry = self._open.get(category.name)
        if entry is None:
            return
        try:
            entry[1].flush()
        except (OSError, ValueError) as e:
            raise WriteError(
                f"Failed to flush {entry[0]}: {e}",
                engine=self.endpoint.label,
                category=category.name
            ) from e

    def check_health(self, category: MetricCategory) -> bool:
        """
        Check that today's file still exists and is writable.

        An open handle keeps writing to a file that was deleted out from
        under it, so a False result means the caller should close the
        writer and let the next write recreate the file.
        """
        path = self.path(category)
        if path.exists() and os.access(path, os.W_OK):
            return True
        self.logger.warning(
            f"Report file {path} no longer exists or is not writable",
            extra={"engine": self.endpoint.label, "category": category.name}
        )
        return False

    def is_open(self, category: MetricCategory) -> bool:
        return category.name in self._open

    def open_categories(self) -> List[str]:
        return list(self._open)

    def close(self, category: MetricCategory) -> None:
        self._close(category.name)

    def close_all(self) -> None:
        for name in list(self._open):
            self._close(name)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _writer_for(self, category: MetricCategory) -> TextIO:
        filename = self.filename(category)
        entry = self._open.get(category.name)
        if entry is not None:
            if entry[0] == filename:
                return entry[1]
            # New day: release yesterday's file first
            self.logger.info(
                f"Rotating {entry[0]} -> {filename}",
                extra={"engine": self.endpoint.label, "category": category.name}
            )
            self._close(category.name)
        return self._create(category, filename)

    def _create(self, category: MetricCategory, filename: str) -> TextIO:
        try:
            self.report_folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WriteError(
                f"Failed to create directory {self.report_folder}: {e}",
                engine=self.endpoint.label,
                category=category.name
            ) from e

        path = self.report_folder / filename
        is_new = not path.exists()
        handle = None
        try:
            handle = open(path, "a", encoding="utf-8", newline="")
            if is_new:
                handle.write(category.header())
        except OSError as e:
            if handle is not None:
                handle.close()
            raise WriteError(
                f"Failed to open {path}: {e}",
                engine=self.endpoint.label,
                category=category.name
            ) from e

        self._open[category.name] = (filename, handle)
        self.logger.debug(
            f"Opened report file {path}",
            extra={"engine": self.endpoint.label, "category": category.name}
        )
        return handle

    def _close(self, name: str) -> None:
        entry = self._open.pop(name, None)
        if entry is None:
            return
        try:
            entry[1].close()
            self.logger.info(
                f"Closed report file {entry[0]}",
                extra={"engine": self.endpoint.label, "category": name}
            )
        except OSError as e:
            self.logger.warning(f"Error closing {entry[0]}: {e}")
