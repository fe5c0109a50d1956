"""NDJSON log reader — streaming, line-by-line.

Each JSON object becomes a LogRecord whose id is its 1-based line number,
so appending to the file keeps ids monotonic across reads.  NdjsonFileStore
follows a growing file for the alert evaluator.
"""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Iterator

from .logs import InMemoryLogStore
from .records import LogRecord

logger = logging.getLogger(__name__)


class NdjsonReader:
    """Parse newline-delimited JSON (NDJSON) log files into LogRecords."""

    def parse_line(self, line: str, line_no: int) -> LogRecord | None:
        """Parse a single JSON log line.

        Returns None for blank lines, parse errors, non-object lines and
        entries without a usable timestamp.
        """
        line = line.strip()
        if not line:
            return None
        try:
            entry = json.loads(line)
        except ValueError:
            logger.debug("Skipping malformed JSON on line %d", line_no)
            return None
        if not isinstance(entry, dict):
            return None
        try:
            return LogRecord.from_entry(line_no, entry)
        except ValueError as exc:
            logger.debug("Skipping line %d: %s", line_no, exc)
            return None

    def parse_file(self, path: str) -> Iterator[LogRecord]:
        """Stream-parse an NDJSON file. Memory usage: O(1) — one line at a time."""
        with open(path, encoding="utf-8", errors="replace") as f:
            for line_no, line in enumerate(f, start=1):
                record = self.parse_line(line, line_no)
                if record is not None:
                    yield record

    def load(self, path: str) -> InMemoryLogStore:
        """Read a whole file into an InMemoryLogStore."""
        return InMemoryLogStore(self.parse_file(path))


class NdjsonFileStore(InMemoryLogStore):
    """Log store backed by an NDJSON file that may still be growing.

    Every read first picks up complete lines appended since the last read,
    so one store serves a long-running evaluator.  A trailing line without
    its newline is left for the next read.  When the file shrinks (rotation,
    truncation) reading restarts at the top and line numbering carries on,
    so ids stay monotonic.

    Usage::

        logs = NdjsonFileStore("app.ndjson")
        Evaluator(logs, alerts, dispatcher).tick()
    """

    def __init__(self, path: str | Path, reader: NdjsonReader | None = None) -> None:
        super().__init__()
        self.path = Path(path)
        self._reader = reader or NdjsonReader()
        self._offset = 0
        self._line_no = 0
        self._refresh_lock = threading.Lock()
        self.refresh()

    def refresh(self) -> int:
        """Read newly appended lines; returns how many records were added."""
        with self._refresh_lock:
            try:
                size = self.path.stat().st_size
            except OSError as exc:
                logger.warning("Cannot stat %s: %s", self.path, exc)
                return 0
            if size < self._offset:
                logger.warning("%s shrank (rotated?); reading from the top", self.path)
                self._offset = 0
            if size == self._offset:
                return 0

            added = 0
            with self.path.open("rb") as fh:
                fh.seek(self._offset)
                for raw in fh:
                    if not raw.endswith(b"\n"):
                        break
                    self._offset += len(raw)
                    self._line_no += 1
                    record = self._reader.parse_line(raw.decode("utf-8", errors="replace"), self._line_no)
                    if record is not None:
                        self.add(record)
                        added += 1
            if added:
                logger.debug("Read %d new records from %s", added, self.path)
            return added

    def _snapshot(self) -> list[LogRecord]:
        self.refresh()
        return super()._snapshot()

    def max_id(self) -> int | None:
        self.refresh()
        return super().max_id()
