"""One collection pass over a metrics provider."""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime

from runtop.delta import build_report
from runtop.errors import CollectionFailure, ProcessGone
from runtop.log import get_logger
from runtop.models import Collection, RawMetrics, Report
from runtop.provider import MetricsProvider

log = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class FetchResult:
    """Outcome of fetching a single process."""

    pid: str
    metrics: RawMetrics | None = None
    error: CollectionFailure | None = None

    @property
    def ok(self) -> bool:
        return self.metrics is not None


class Sampler:
    """
    Collects raw metrics for every live process.

    A process that vanishes or cannot be read is logged and left out of
    the pass. The Sampler never touches controller state.
    """

    def __init__(self, provider: MetricsProvider) -> None:
        self._provider = provider

    @property
    def provider(self) -> MetricsProvider:
        return self._provider

    def sample(self) -> Collection:
        """Enumerate and fetch all processes plus the aggregate counters."""
        results = [self._fetch(pid) for pid in self._provider.list_ids()]

        failures = [r for r in results if not r.ok]
        for result in failures:
            if isinstance(result.error, ProcessGone):
                log.warning("process_vanished", pid=result.pid, reason=result.error.reason)
            else:
                log.warning("fetch_failed", pid=result.pid, reason=result.error.reason)

        metrics: list[RawMetrics] = []
        seen: set[str] = set()
        for result in results:
            if result.ok and result.pid not in seen:
                seen.add(result.pid)
                metrics.append(result.metrics)

        return Collection(
            stats=self._provider.system_stats(),
            metrics=metrics,
            failures=len(failures),
            time=datetime.now().strftime("%H:%M:%S"),
        )

    def collect(
        self,
        previous: Mapping[str, RawMetrics] | None = None,
        previous_total: int | None = None,
    ) -> Report:
        """Run one pass and build its Report against an optional baseline."""
        return build_report(
            self.sample(),
            previous or {},
            previous_total,
            name_prefix=self._provider.name_prefix,
        )

    def _fetch(self, pid: str) -> FetchResult:
        try:
            return FetchResult(pid=pid, metrics=self._provider.fetch(pid))
        except CollectionFailure as e:
            return FetchResult(pid=pid, error=e)
        except Exception as e:
            return FetchResult(pid=pid, error=CollectionFailure(pid, repr(e)))
