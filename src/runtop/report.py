"""Helpers to print, select and chart collected reports."""

import sys
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path
from typing import Any, TextIO

from runtop import persistence
from runtop.errors import WriteFailure
from runtop.log import get_logger
from runtop.models import Report
from runtop.ranking import resolve_sort_field
from runtop.render import render

log = get_logger(__name__)

Plotter = Callable[..., Any]


def print_report(
    entries: Report | Iterable[Report],
    file: str | Path | None = None,
    *,
    sort: str | None = None,
    human: bool = True,
    limit: int | None = None,
    stream: TextIO | None = None,
) -> None:
    """
    Print one report or a list of reports.

    Output goes to stream (stdout by default), or is appended to file.
    The sort field is checked before anything is written.

    Raises:
        InvalidSortField: For an unknown sort name.
    """
    if sort is not None:
        resolve_sort_field(sort)

    reports = [entries] if isinstance(entries, Report) else list(entries)
    for report in reports:
        text = render(report, sort=sort, human=human, limit=limit)
        try:
            write_text(text, file, stream)
        except WriteFailure as e:
            log.error("write_failed", file=str(file), error=str(e))


def write_text(text: str, file: str | Path | None = None, stream: TextIO | None = None) -> None:
    """
    Append text to file, or write it to stream when file is None.

    Raises:
        WriteFailure: If the file or stream cannot be written.
    """
    if file is None:
        out = stream or sys.stdout
        try:
            out.write(text)
            out.flush()
        except (OSError, ValueError) as e:
            # ValueError is raised for a closed stream
            raise WriteFailure(f"could not write to {getattr(out, 'name', 'stream')}: {e}") from e
        return
    try:
        with open(file, "a", encoding="utf-8") as f:
            f.write(text)
    except OSError as e:
        raise WriteFailure(f"could not write to {file}: {e}") from e


def load(path: str | Path) -> list[Report]:
    """Replay a structured report log."""
    return persistence.replay(path)


def cpu_load(report: Report) -> float:
    """CPU load of a report, with an unavailable load counting as lowest."""
    cpu = report.summary.load.cpu
    return float("-inf") if isinstance(cpu, str) else float(cpu)


def top(entries: Iterable[Report], num: int) -> list[Report]:
    """The num reports with the highest CPU load, highest first."""
    return sorted(entries, key=cpu_load, reverse=True)[:num]


def max_load(entries: Iterable[Report]) -> Report | None:
    """The report with the highest CPU load, or None for no reports."""
    ranked = top(entries, 1)
    return ranked[0] if ranked else None


def list_cpu(entries: Iterable[Report]) -> list[float | str]:
    """CPU load of every report."""
    return [e.summary.load.cpu for e in entries]


def list_memory(entries: Iterable[Report], field: str = "total") -> list[int]:
    """One memory figure of every report."""
    return [getattr(e.summary.memory, field) for e in entries]


def list_times(entries: Iterable[Report]) -> list[str]:
    """Collection time of every report."""
    return [e.summary.time for e in entries]


def plot_cpu(entries: Sequence[Report], plotter: Plotter, **opts: Any) -> Any:
    """Chart CPU utilization through an external plotter."""
    series = [0.0 if isinstance(c, str) else c for c in list_cpu(entries)]
    options = {"y_label_postfix": "%", "title": "CPU Utilization", "labels": list_times(entries)}
    options.update(opts)
    return plotter(series, **options)


def plot_memory(
    entries: Sequence[Report], plotter: Plotter, field: str = "total", **opts: Any
) -> Any:
    """Chart one memory figure, in MB, through an external plotter."""
    series = [value / (1024 * 1024) for value in list_memory(entries, field)]
    options = {
        "width": 80,
        "height": 15,
        "y_label_postfix": "MB",
        "title": "Memory Usage",
        "labels": list_times(entries),
    }
    options.update(opts)
    return plotter(series, **options)
