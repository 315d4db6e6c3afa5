"""Append-only report log in newline-delimited JSON.

The first line of a log is a header documenting the format; every following
line holds one complete Report. A log can be replayed without executing any
code, and appending to it never rewrites earlier records.
"""

import json
import threading
from pathlib import Path

from runtop.errors import InvalidFile, WriteFailure
from runtop.models import Report

LOG_KIND = "runtop-log"
LOG_VERSION = 1
RECORD_KIND = "report"

HEADER = {
    "kind": LOG_KIND,
    "version": LOG_VERSION,
    "usage": (
        "One JSON object per line. Lines after this header have kind 'report'; "
        "replay them in order with runtop.persistence.replay(path)."
    ),
}


def append(report: Report, path: str | Path) -> None:
    """
    Append one report to the log at path, creating it with the header if needed.

    Raises:
        WriteFailure: If the log cannot be written.
    """
    path = Path(path)
    try:
        new = not path.exists() or path.stat().st_size == 0
        with open(path, "a", encoding="utf-8") as f:
            if new:
                f.write(json.dumps(HEADER) + "\n")
            f.write(json.dumps({"kind": RECORD_KIND, "report": report.to_dict()}) + "\n")
    except OSError as e:
        raise WriteFailure(f"could not append report to {path}: {e}") from e


def replay(path: str | Path) -> list[Report]:
    """
    Read every report of the log at path, in append order.

    Raises:
        InvalidFile: If the file is missing, unreadable or not a report log.
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            lines = [line for line in f.read().splitlines() if line.strip()]
    except (OSError, UnicodeDecodeError) as e:
        raise InvalidFile(path, str(e)) from e

    if not lines:
        raise InvalidFile(path, "empty log")

    try:
        header = json.loads(lines[0])
    except json.JSONDecodeError as e:
        raise InvalidFile(path, "bad header") from e
    if not isinstance(header, dict) or header.get("kind") != LOG_KIND:
        raise InvalidFile(path, "not a report log")
    if header.get("version") != LOG_VERSION:
        raise InvalidFile(path, f"unsupported version {header.get('version')!r}")

    reports: list[Report] = []
    for lineno, line in enumerate(lines[1:], start=2):
        try:
            record = json.loads(line)
            if record.get("kind") != RECORD_KIND:
                raise ValueError(f"unexpected kind {record.get('kind')!r}")
            reports.append(Report.from_dict(record["report"]))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise InvalidFile(path, f"line {lineno}: {e}") from e
    return reports


class ReportLog:
    """
    Active append target of a controller.

    Keeps the reports appended through it in memory so they can be read
    back without reparsing the file.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._records: list[Report] = []
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def append(self, report: Report) -> None:
        """Append to the file, then remember the report."""
        with self._lock:
            append(report, self._path)
            self._records.append(report)

    def load(self) -> list[Report]:
        """Reports appended through this log, in order."""
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        return len(self._records)
