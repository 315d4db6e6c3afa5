"""Fixed-width text rendering of reports.

A report is a separator, the node/time line, three load and memory summary
lines, the column header and one line per process. The column
widths are a stable contract for tools that parse reports.
"""

from runtop.models import Report, Sample, SystemSnapshot
from runtop.ranking import rank

COLUMN_WIDTHS: tuple[int, ...] = (15, 35, 8, 13, 9, 4, 10, 30)
HEADERS: tuple[str, ...] = (
    "Pid",
    "Name or Initial Func",
    "Percent",
    "Reds",
    "Memory",
    "MsgQ",
    "State",
    "Current Function",
)
REPORT_WIDTH = sum(COLUMN_WIDTHS) + len(COLUMN_WIDTHS)

SEPARATOR = "=" * REPORT_WIDTH
SEPARATOR_DASH = "-" * REPORT_WIDTH


def pad(item: object, width: int, char: str = " ") -> str:
    """Left-pad the string form of item to width. Longer strings are kept whole."""
    return str(item).rjust(width, char)


def pad_trailing(item: object, width: int, char: str = " ") -> str:
    """Right-pad the string form of item to width."""
    return str(item).ljust(width, char)


def size_string(size: int | float) -> str:
    """Format a byte count with a K/M/G/T suffix, e.g. 202240 -> '197.5K'."""
    if size < 1024:
        return str(size)
    value = float(size)
    for unit in ["K", "M", "G", "T"]:
        value = value / 1024
        if value < 1024:
            break
    return f"{value:.1f}{unit}"


def humanize(number: int | float, human: bool) -> str:
    """Humanized byte count when human is set, the raw digits otherwise."""
    return size_string(number) if human else str(number)


def header_line() -> str:
    """Column titles, aligned the same way as the process lines."""
    last = len(HEADERS) - 1
    cells = []
    for i, (title, width) in enumerate(zip(HEADERS, COLUMN_WIDTHS)):
        if i == 0:
            cells.append(pad_trailing(title, width))
        elif i == last:
            cells.append(title)
        else:
            cells.append(pad(title, width))
    return " ".join(cells)


def summary_lines(summary: SystemSnapshot, human: bool = False) -> list[str]:
    """Node/time header plus the three load and memory lines."""
    load = summary.load
    memory = summary.memory
    node = summary.node

    return [
        node + pad(summary.time, REPORT_WIDTH - len(node)),
        _summary_line(
            "Load:  cpu  ",
            f"{load.cpu}%",
            "Memory:  total    ",
            humanize(memory.total, human),
            "     binary",
            humanize(memory.binary, human),
        ),
        _summary_line(
            "       procs",
            load.nprocs,
            "processes",
            humanize(memory.processes, human),
            "     code",
            humanize(memory.code, human),
        ),
        _summary_line(
            "       runq ",
            load.runq,
            "atom    ",
            humanize(memory.atom, human),
            "      ets",
            humanize(memory.ets, human),
        ),
    ]


def process_line(sample: Sample, human: bool = False) -> str:
    """One table row. Every cell is cut to its column width."""
    w = COLUMN_WIDTHS
    cells = [
        pad_trailing(_cut(sample.pid, w[0]), w[0]),
        pad(_cut(sample.name, w[1]), w[1]),
        pad(_cut(sample.percent, w[2]), w[2]),
        pad(_cut(sample.reduction_delta, w[3]), w[3]),
        pad(_cut(humanize(sample.memory, human), w[4]), w[4]),
        pad(_cut(sample.message_queue_len, w[5]), w[5]),
        pad(_cut(sample.status, w[6]), w[6]),
        _cut(sample.current_function, w[7]),
    ]
    return " ".join(cells)


def render(
    report: Report,
    sort: str | None = None,
    human: bool = False,
    limit: int | None = None,
) -> str:
    """
    Render a report as fixed-width text.

    Args:
        report: The report to render.
        sort: Sort field name, or None to keep collection order.
        human: Humanize memory figures.
        limit: Maximum number of process lines.

    Raises:
        InvalidSortField: For an unknown sort name. Nothing is rendered.
    """
    processes = rank(report.processes, sort)
    if limit is not None:
        processes = processes[:limit]

    lines = [SEPARATOR]
    lines.extend(summary_lines(report.summary, human))
    lines.append("")
    lines.append(header_line())
    lines.append(SEPARATOR_DASH)
    lines.extend(process_line(p, human) for p in processes)
    lines.append(SEPARATOR)
    lines.append("")
    return "\n".join(lines) + "\n"


def _summary_line(load_label, load, mem1_label, mem1, mem2_label, mem2) -> str:
    return (
        load_label
        + pad(load, 7)
        + pad(mem1_label, 40)
        + pad(mem1, 15)
        + pad_trailing(mem2_label, 11)
        + pad(mem2, 10)
    )


def _cut(item: object, width: int) -> str:
    return str(item)[:width]
