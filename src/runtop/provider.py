"""Process metrics providers.

A provider enumerates live processes and fetches one RawMetrics record per
process. PsutilProvider maps operating system processes onto that schema.
"""

import socket
from abc import ABC, abstractmethod
from collections.abc import Iterable

import psutil

from runtop.errors import CollectionFailure, ProcessGone
from runtop.models import MemoryBreakdown, RawMetrics, SystemStats


class MetricsProvider(ABC):
    """Source of per-process metrics and aggregate runtime counters."""

    #: Namespace prefix stripped from display names.
    name_prefix: str = ""

    @abstractmethod
    def list_ids(self) -> Iterable[str]:
        """Return the identifiers of all currently live processes."""

    @abstractmethod
    def fetch(self, pid: str) -> RawMetrics:
        """
        Fetch metrics for one process.

        Raises:
            CollectionFailure: If the process cannot be read (ProcessGone if it exited).
        """

    @abstractmethod
    def system_stats(self) -> SystemStats:
        """Return aggregate load, memory and reduction counters."""


class PsutilProvider(MetricsProvider):
    """
    Provider backed by psutil.

    Reductions are cumulative CPU milliseconds (user + system). The message
    queue column carries the thread count, which is the closest observable
    backlog figure for an OS process.
    """

    _ATTRS = [
        "pid",
        "name",
        "status",
        "cpu_times",
        "memory_info",
        "num_threads",
        "cmdline",
        "exe",
    ]

    def __init__(self) -> None:
        # Initialize CPU percent (first call returns 0.0)
        psutil.cpu_percent()

    def list_ids(self) -> list[str]:
        return [str(pid) for pid in psutil.pids()]

    def fetch(self, pid: str) -> RawMetrics:
        try:
            proc = psutil.Process(int(pid))
            with proc.oneshot():
                info = proc.as_dict(attrs=self._ATTRS)
        except (psutil.NoSuchProcess, psutil.ZombieProcess) as e:
            raise ProcessGone(pid, type(e).__name__) from e
        except psutil.AccessDenied as e:
            raise ProcessGone(pid, "AccessDenied") from e
        except (psutil.Error, OSError) as e:
            raise CollectionFailure(pid, repr(e)) from e

        cmdline = info.get("cmdline") or []
        cpu_times = info.get("cpu_times")
        mem_info = info.get("memory_info")

        return RawMetrics(
            pid=pid,
            reductions=_cpu_ms(cpu_times),
            memory=mem_info.rss if mem_info else 0,
            message_queue_len=info.get("num_threads") or 0,
            status=info.get("status") or "?",
            current_function=" ".join(cmdline) if cmdline else "",
            registered_name=info.get("name") or None,
            initial_call=cmdline[0] if cmdline else info.get("exe") or "",
        )

    def system_stats(self) -> SystemStats:
        mem = psutil.virtual_memory()
        pids = psutil.pids()
        running = 0
        rss_total = 0
        for proc in psutil.process_iter(attrs=["status", "memory_info"]):
            if proc.info.get("status") == psutil.STATUS_RUNNING:
                running += 1
            mem_info = proc.info.get("memory_info")
            rss_total += mem_info.rss if mem_info else 0

        return SystemStats(
            node=socket.gethostname(),
            cpu=psutil.cpu_percent(),
            process_count=len(pids),
            run_queue=running,
            memory=MemoryBreakdown(
                total=mem.total,
                processes=rss_total,
                processes_used=rss_total,
                system=mem.used,
                atom=mem.free,
                atom_used=mem.available,
                binary=getattr(mem, "buffers", 0),
                code=getattr(mem, "shared", 0),
                ets=getattr(mem, "cached", 0),
            ),
            total_reductions=_cpu_ms(psutil.cpu_times()),
        )


def _cpu_ms(cpu_times) -> int:
    if cpu_times is None:
        return 0
    return int((cpu_times.user + cpu_times.system) * 1000)
