"""Data models for runtop."""

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(slots=True, frozen=True)
class RawMetrics:
    """Per-process metrics as fetched from a provider in one collection pass."""

    pid: str
    reductions: int  # Cumulative, never reset by the provider
    memory: int  # Bytes
    message_queue_len: int
    status: str  # 'running', 'waiting', 'suspended', etc.
    current_function: Any = None  # (module, function, arity) tuple or str
    registered_name: str | None = None
    initial_call: Any = None
    dictionary: dict[str, Any] | None = None  # Optional "$initial_call" override


@dataclass(slots=True, frozen=True)
class Sample:
    """One process line of a Report, with its reduction delta and CPU share."""

    pid: str
    name: str
    percent: float
    reductions: int
    reduction_delta: int
    memory: int
    message_queue_len: int
    status: str
    current_function: str


@dataclass(slots=True, frozen=True)
class LoadSummary:
    """CPU load and scheduler figures."""

    cpu: float | str  # "-" when the load is unavailable
    nprocs: int
    runq: int


@dataclass(slots=True, frozen=True)
class MemoryBreakdown:
    """Runtime memory usage in bytes."""

    total: int = 0
    processes: int = 0
    processes_used: int = 0
    system: int = 0
    atom: int = 0
    atom_used: int = 0
    binary: int = 0
    code: int = 0
    ets: int = 0


@dataclass(slots=True, frozen=True)
class SystemSnapshot:
    """Summary header of a Report."""

    node: str
    time: str  # Local time, HH:MM:SS
    load: LoadSummary
    memory: MemoryBreakdown


@dataclass(slots=True, frozen=True)
class Report:
    """A system summary plus the process samples of one collection tick.

    Processes are kept in collection order. Ranking happens at render time.
    """

    summary: SystemSnapshot
    processes: tuple[Sample, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Convert to plain JSON-compatible data."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Report":
        """Rebuild a Report from the output of to_dict()."""
        summary = data["summary"]
        return cls(
            summary=SystemSnapshot(
                node=summary["node"],
                time=summary["time"],
                load=LoadSummary(**summary["load"]),
                memory=MemoryBreakdown(**summary["memory"]),
            ),
            processes=tuple(Sample(**item) for item in data["processes"]),
        )


@dataclass(slots=True, frozen=True)
class SystemStats:
    """Aggregate runtime counters returned by a provider."""

    node: str
    cpu: float | None
    process_count: int
    run_queue: int
    memory: MemoryBreakdown
    total_reductions: int


@dataclass(slots=True)
class Collection:
    """Raw result of one sampling pass, before delta enrichment."""

    stats: SystemStats
    metrics: list[RawMetrics] = field(default_factory=list)
    failures: int = 0
    time: str = ""

    def by_pid(self) -> dict[str, RawMetrics]:
        """Index the raw metrics by process identifier."""
        return {m.pid: m for m in self.metrics}
