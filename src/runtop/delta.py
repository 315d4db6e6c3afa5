"""Reduction deltas between consecutive collection passes."""

from collections.abc import Iterable, Mapping
from typing import Any

from runtop.log import get_logger
from runtop.models import Collection, LoadSummary, RawMetrics, Report, Sample, SystemSnapshot

log = get_logger(__name__)

NAME_WIDTH = 35


def format_call(call: Any) -> str:
    """Format a (module, function, arity) triple as ``module.function/arity``."""
    if isinstance(call, (tuple, list)) and len(call) == 3:
        module, function, arity = call
        return f"{module}.{function}/{arity}"
    if isinstance(call, str):
        return call
    return ""


def resolve_name(raw: RawMetrics, width: int = NAME_WIDTH, strip_prefix: str = "") -> str:
    """Display name of a process: its registered name, else its initial call.

    The dictionary "$initial_call" entry wins over the initial_call field.
    """
    if raw.registered_name:
        name = str(raw.registered_name)
    else:
        dict_call = raw.dictionary.get("$initial_call") if raw.dictionary else None
        name = format_call(dict_call or raw.initial_call)

    if strip_prefix and name.startswith(strip_prefix):
        name = name[len(strip_prefix) :]
    return name[:width]


def reduction_delta(current: RawMetrics, previous: RawMetrics | None) -> int:
    """Reductions done since the previous sample of the same process.

    A missing previous sample, or a counter that went backwards (identifier
    reuse or counter reset), yields the absolute count.
    """
    if previous is None:
        return current.reductions
    delta = current.reductions - previous.reductions
    if delta < 0:
        log.debug("reductions_decreased", pid=current.pid, delta=delta)
        return current.reductions
    return delta


def enrich(
    raw: Iterable[RawMetrics],
    previous: Mapping[str, RawMetrics],
    total_delta: int,
    *,
    name_width: int = NAME_WIDTH,
    name_prefix: str = "",
) -> list[Sample]:
    """Build Samples with deltas and CPU share, keeping the input order.

    Entries that fail to compute are logged and dropped.
    """
    samples: list[Sample] = []
    for item in raw:
        try:
            delta = reduction_delta(item, previous.get(item.pid))
            percent = round(delta / total_delta * 100, 2) if total_delta else 0.0
            samples.append(
                Sample(
                    pid=str(item.pid),
                    name=resolve_name(item, name_width, name_prefix),
                    percent=percent,
                    reductions=item.reductions,
                    reduction_delta=delta,
                    memory=item.memory,
                    message_queue_len=item.message_queue_len,
                    status=str(item.status),
                    current_function=format_call(item.current_function),
                )
            )
        except (ArithmeticError, LookupError, TypeError, AttributeError, ValueError) as e:
            log.warning("sample_dropped", pid=getattr(item, "pid", None), error=repr(e))
    return samples


def total_delta(current_total: int, previous_total: int | None) -> int:
    """Runtime-wide reduction delta; the absolute counter on the first pass."""
    if previous_total is None or current_total < previous_total:
        return current_total
    return current_total - previous_total


def build_report(
    collection: Collection,
    previous: Mapping[str, RawMetrics],
    previous_total: int | None = None,
    *,
    name_prefix: str = "",
) -> Report:
    """Turn a raw collection into a Report using the previous pass as baseline."""
    stats = collection.stats
    samples = enrich(
        collection.metrics,
        previous,
        total_delta(stats.total_reductions, previous_total),
        name_prefix=name_prefix,
    )
    summary = SystemSnapshot(
        node=stats.node,
        time=collection.time,
        load=LoadSummary(
            cpu="-" if stats.cpu is None else stats.cpu,
            nprocs=stats.process_count,
            runq=stats.run_queue,
        ),
        memory=stats.memory,
    )
    return Report(summary=summary, processes=tuple(samples))
