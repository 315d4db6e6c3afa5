"""Shared fixtures: an in-memory provider, manual timers and a synchronous executor."""

import threading
from concurrent.futures import Executor, Future

import pytest

from runtop.errors import ProcessGone
from runtop.models import (
    LoadSummary,
    MemoryBreakdown,
    RawMetrics,
    Report,
    Sample,
    SystemSnapshot,
    SystemStats,
)
from runtop.provider import MetricsProvider

MEMORY = MemoryBreakdown(
    total=41_746_160,
    processes=21_886_368,
    processes_used=21_885_976,
    system=19_859_792,
    atom=512_625,
    atom_used=501_465,
    binary=218_688,
    code=10_318_069,
    ets=797_536,
)


def raw(pid, reductions, **kwargs) -> RawMetrics:
    """Build RawMetrics with sensible defaults."""
    defaults = {
        "memory": 2688,
        "message_queue_len": 0,
        "status": "waiting",
        "current_function": ("gen_server", "loop", 7),
        "initial_call": ("proc_lib", "init_p", 5),
    }
    defaults.update(kwargs)
    return RawMetrics(pid=str(pid), reductions=reductions, **defaults)


def make_sample(**kwargs) -> Sample:
    """Build a Sample with sensible defaults."""
    defaults = {
        "pid": "<0.79.0>",
        "name": ":disk_log.init/2",
        "percent": 1.22,
        "reductions": 38389,
        "reduction_delta": 38389,
        "memory": 264_300,
        "message_queue_len": 0,
        "status": "waiting",
        "current_function": ":disk_log.loop/1",
    }
    defaults.update(kwargs)
    return Sample(**defaults)


def make_report(*samples: Sample, cpu: float | str = 2.9, time: str = "08:36:11") -> Report:
    """Build a Report around the given samples."""
    return Report(
        summary=SystemSnapshot(
            node="nonode@nohost",
            time=time,
            load=LoadSummary(cpu=cpu, nprocs=92, runq=0),
            memory=MEMORY,
        ),
        processes=samples,
    )


class FakeProvider(MetricsProvider):
    """Provider serving a mutable in-memory process table."""

    def __init__(self, *processes: RawMetrics, total: int = 0, cpu: float | None = 2.9) -> None:
        self.processes: dict[str, RawMetrics] = {p.pid: p for p in processes}
        self.vanished: set[str] = set()
        self.total_reductions = total
        self.cpu = cpu
        self.passes = 0
        self.gate: threading.Event | None = None

    def update(self, *processes: RawMetrics, total: int | None = None) -> None:
        self.processes = {p.pid: p for p in processes}
        if total is not None:
            self.total_reductions = total

    def list_ids(self) -> list[str]:
        self.passes += 1
        if self.gate is not None:
            self.gate.wait(timeout=5.0)
        return list(self.processes) + sorted(self.vanished)

    def fetch(self, pid: str) -> RawMetrics:
        if pid in self.vanished:
            raise ProcessGone(pid, "exited")
        return self.processes[pid]

    def system_stats(self) -> SystemStats:
        return SystemStats(
            node="nonode@nohost",
            cpu=self.cpu,
            process_count=len(self.processes),
            run_queue=0,
            memory=MEMORY,
            total_reductions=self.total_reductions,
        )


class ManualTimer:
    """Timer that only fires when the test says so."""

    def __init__(self, delay: float, callback) -> None:
        self.delay = delay
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self):
        return self.callback()


class ManualTimers:
    """Timer factory recording every timer it creates."""

    def __init__(self) -> None:
        self.created: list[ManualTimer] = []

    def __call__(self, delay: float, callback) -> ManualTimer:
        timer = ManualTimer(delay, callback)
        self.created.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.created if t.started and not t.cancelled]

    def fire(self):
        """Fire the most recently armed timer."""
        return self.pending[-1].fire()


class ImmediateExecutor(Executor):
    """Executor running submitted work in the caller's thread."""

    def submit(self, fn, /, *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider(
        raw("<0.1.0>", 1000, registered_name="code_server", memory=196_980),
        raw("<0.2.0>", 500, memory=426_508, message_queue_len=4),
        total=1500,
    )


@pytest.fixture
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture
def executor() -> ImmediateExecutor:
    return ImmediateExecutor()
