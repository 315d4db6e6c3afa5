"""Timer-driven lifecycle of the process monitor."""

import threading
import time
from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, TextIO

from runtop import persistence
from runtop.config import MonitorConfig, OutputFormat
from runtop.delta import build_report
from runtop.errors import WriteFailure
from runtop.log import get_logger
from runtop.models import RawMetrics, Report, SystemStats
from runtop.persistence import ReportLog
from runtop.provider import MetricsProvider
from runtop.render import render
from runtop.report import write_text
from runtop.sampler import Sampler

log = get_logger(__name__)


class State(Enum):
    """Lifecycle states."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


class Transition(Enum):
    """Result of a lifecycle request."""

    STARTED = "started"
    PAUSED = "paused"
    STOPPED = "stopped"
    ALREADY_ACTIVE = "not_halted"
    ALREADY_HALTED = "already_halted"


class Timer(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], Any]], Timer]


def thread_timer(delay: float, callback: Callable[[], Any]) -> threading.Timer:
    """One-shot daemon timer firing callback after delay seconds."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.name = "runtop-timer"
    return timer


class Controller:
    """
    Drives collection passes on a timer and dispatches their reports.

    Collections run on a single worker so the controller keeps accepting
    pause/stop/set_options while one is in progress. A tick that fires while
    a collection is in flight is dropped rather than queued. Pausing or
    stopping cancels the pending timer but lets an in-flight collection
    finish and dispatch its report.
    """

    def __init__(
        self,
        provider: MetricsProvider,
        config: MonitorConfig | None = None,
        *,
        timer_factory: TimerFactory | None = None,
        executor: Executor | None = None,
        stream: TextIO | None = None,
    ) -> None:
        """
        Initialize the Controller.

        Args:
            provider: Source of process metrics.
            config: Initial configuration (defaults to MonitorConfig()).
            timer_factory: Builds one-shot timers; defaults to daemon threading.Timer.
            executor: Runs collection passes; defaults to a one-worker thread pool.
            stream: Default output stream for text reports (stdout if None).
        """
        self._sampler = Sampler(provider)
        self._config = config or MonitorConfig()
        self._timer_factory = timer_factory or thread_timer
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="runtop-collector"
        )
        self._stream = stream

        self._lock = threading.RLock()
        self._state = State.IDLE
        self._timer: Timer | None = None
        self._collecting = False
        self._future: Future | None = None
        self._epoch = 0
        self._ticks = 0

        self._previous: dict[str, RawMetrics] = {}
        self._previous_total: int | None = None
        self._stats: SystemStats | None = None
        self._report: Report | None = None
        self._log: ReportLog | None = None

    @property
    def state(self) -> State:
        return self._state

    @property
    def config(self) -> MonitorConfig:
        return self._config

    @property
    def report(self) -> Report | None:
        """Most recent report."""
        return self._report

    @property
    def is_collecting(self) -> bool:
        return self._collecting

    def start(self, config: MonitorConfig | None = None, **opts: Any) -> Transition:
        """
        Start or resume ticking, applying any given options first.

        Returns ALREADY_ACTIVE without changes when already running.

        Raises:
            InvalidOption, InvalidSortField: For bad options. State is unchanged.
        """
        with self._lock:
            if self._state is State.RUNNING:
                return Transition.ALREADY_ACTIVE

            new_config = (config or self._config).with_options(**opts)
            self._config = new_config
            self._state = State.RUNNING
            self._arm(new_config.initial_delay)
            log.info("monitor_started", interval=new_config.interval, sort=new_config.sort)
            return Transition.STARTED

    def pause(self) -> Transition:
        """Cancel the pending tick. Returns ALREADY_HALTED unless running."""
        with self._lock:
            if self._state is not State.RUNNING:
                return Transition.ALREADY_HALTED
            self._cancel_timer()
            self._state = State.PAUSED
            log.info("monitor_paused")
            return Transition.PAUSED

    def stop(self) -> Transition:
        """Return to idle and forget the previous pass."""
        with self._lock:
            self._cancel_timer()
            self._state = State.IDLE
            self._previous = {}
            self._previous_total = None
            self._epoch += 1
            log.info("monitor_stopped")
            return Transition.STOPPED

    def set_options(self, **opts: Any) -> MonitorConfig:
        """
        Validate and apply options. The next tick uses the new settings.

        Raises:
            InvalidOption, InvalidSortField: For bad options. State is unchanged.
        """
        with self._lock:
            self._config = self._config.with_options(**opts)
            return self._config

    def status(self, raw: bool = False) -> dict[str, Any]:
        """
        Current configuration, state and last report.

        With raw=True the process counters are included as well.
        """
        with self._lock:
            config = self._config
            status: dict[str, Any] = {
                "state": self._state,
                "interval": config.interval,
                "first_interval": config.first_interval,
                "sort": config.sort,
                "human": config.human,
                "file": config.file,
                "format": config.format,
                "debug": config.debug,
                "reporting": config.reporting,
                "limit": config.limit,
                "report": self._report,
            }
            if raw:
                stats = self._stats
                status["counters"] = {
                    "procs": stats.process_count if stats else None,
                    "runq": stats.run_queue if stats else None,
                    "total_reductions": stats.total_reductions if stats else None,
                    "previous_samples": len(self._previous),
                    "collecting": self._collecting,
                    "ticks": self._ticks,
                }
            return status

    def load(self, path: str | Path | None = None) -> list[Report] | None:
        """
        Replay reports.

        With a path the log file is replayed. Without one, the reports this
        controller appended to its active log are returned, or None if no
        structured log was ever written.

        Raises:
            InvalidFile: If path cannot be replayed.
        """
        if path is not None:
            return persistence.replay(path)
        with self._lock:
            return self._log.load() if self._log is not None else None

    def tick(self) -> bool:
        """
        Timer callback. Starts a collection unless one is in flight.

        Ignored unless running. Returns True when a collection was started.
        """
        with self._lock:
            if self._state is not State.RUNNING:
                log.debug("tick_ignored", state=self._state.value)
                return False

            config = self._config
            self._arm(config.interval)
            if self._collecting:
                log.debug("tick_skipped", reason="collection in flight")
                return False

            self._ticks += 1
            self._collecting = True
            try:
                self._future = self._executor.submit(
                    self._collect, config, self._epoch, self._previous, self._previous_total
                )
            except RuntimeError:
                # Executor already shut down
                self._collecting = False
                log.warning("tick_dropped", reason="executor shut down")
                return False
            return True

    def wait(self, timeout: float | None = None) -> Report | None:
        """Block until the in-flight collection, if any, has finished."""
        future = self._future
        if future is None:
            return self._report
        return future.result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        """Stop and release the collector worker."""
        self.stop()
        self._executor.shutdown(wait=wait)

    def _arm(self, delay_ms: int) -> None:
        self._cancel_timer()
        self._timer = self._timer_factory(delay_ms / 1000, self.tick)
        self._timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _collect(
        self,
        config: MonitorConfig,
        epoch: int,
        previous: dict[str, RawMetrics],
        previous_total: int | None,
    ) -> Report | None:
        try:
            return self._run_pass(config, epoch, previous, previous_total)
        finally:
            with self._lock:
                self._collecting = False

    def _run_pass(
        self,
        config: MonitorConfig,
        epoch: int,
        previous: dict[str, RawMetrics],
        previous_total: int | None,
    ) -> Report | None:
        started = time.monotonic()
        try:
            collection = self._sampler.sample()
            report = build_report(
                collection,
                previous,
                previous_total,
                name_prefix=self._sampler.provider.name_prefix,
            )
        except Exception:
            # Keep the tick loop alive; the next interval tries again
            log.exception("collection_failed")
            return None

        self._dispatch(report, config)

        with self._lock:
            if epoch == self._epoch:
                self._previous = collection.by_pid()
                self._previous_total = collection.stats.total_reductions
            self._stats = collection.stats
            self._report = report

        elapsed_ms = round((time.monotonic() - started) * 1000, 1)
        if config.debug:
            log.info(
                "collection_complete",
                processes=len(report.processes),
                vanished=collection.failures,
                elapsed_ms=elapsed_ms,
            )
        else:
            log.debug("collection_complete", elapsed_ms=elapsed_ms)
        return report

    def _dispatch(self, report: Report, config: MonitorConfig) -> None:
        if not config.reporting:
            return
        try:
            if config.format is OutputFormat.STRUCTURED and config.file:
                self._report_log(config.file).append(report)
            else:
                text = render(report, sort=config.sort, human=config.human, limit=config.limit)
                write_text(text, config.file, self._stream)
        except WriteFailure as e:
            log.error("write_failed", file=config.file, error=str(e))
        except Exception:
            log.exception("dispatch_failed", file=config.file)

    def _report_log(self, path: str) -> ReportLog:
        with self._lock:
            if self._log is None or self._log.path != Path(path):
                self._log = ReportLog(path)
            return self._log
