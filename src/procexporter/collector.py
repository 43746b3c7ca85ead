"""Collectors turning procfs snapshots into Prometheus metric families.

Each collector exposes the prometheus_client custom-collector contract
(``describe()`` and ``collect()``) on top of two plain operations,
``descriptors()`` and ``samples()``. Every call to ``samples()`` opens its
own snapshot and keeps nothing between scrapes, so overlapping scrapes
never share mutable state.
"""

import logging
from collections.abc import Callable, Iterable, Iterator

import psutil
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric

from procexporter import reader
from procexporter.models import (
    MetricDescriptor,
    MetricKind,
    MetricSample,
    ProcessEntry,
)

logger = logging.getLogger(__name__)

HOST_LABELS = ("host",)
PROCESS_LABELS = ("uid", "process", "host", "pid")

# A process that exits mid-read, or whose records cannot be parsed, is skipped.
_PROCESS_ERRORS = (
    psutil.NoSuchProcess,
    psutil.AccessDenied,
    psutil.ZombieProcess,
    ValueError,
)

SnapshotOpener = Callable[[str], reader.ProcFS]


def to_families(
    descriptors: Iterable[MetricDescriptor],
    samples: Iterable[MetricSample],
    *,
    keep_empty: bool = False,
) -> list[Metric]:
    """Group samples into one metric family per descriptor."""
    families: dict[str, Metric] = {}
    for descriptor in descriptors:
        family_cls = (
            CounterMetricFamily if descriptor.kind is MetricKind.COUNTER else GaugeMetricFamily
        )
        families[descriptor.name] = family_cls(
            descriptor.name,
            descriptor.documentation,
            labels=list(descriptor.label_names),
        )

    for sample in samples:
        families[sample.descriptor.name].add_metric(list(sample.label_values), sample.value)

    return [family for family in families.values() if keep_empty or family.samples]


class MemoryCollector:
    """Exports total and available system memory for one host."""

    def __init__(
        self,
        hostname: str,
        proc_root: str = reader.DEFAULT_PROC_ROOT,
        open_snapshot: SnapshotOpener = reader.open_snapshot,
    ) -> None:
        self.hostname = hostname
        self.proc_root = proc_root
        self._open_snapshot = open_snapshot
        self.total_memory = MetricDescriptor(
            "total_memory_bytes",
            "Total memory in bytes.",
            HOST_LABELS,
        )
        self.available_memory = MetricDescriptor(
            "current_memory_available_bytes",
            "Free memory in bytes.",
            HOST_LABELS,
        )

    def descriptors(self) -> tuple[MetricDescriptor, ...]:
        return (self.total_memory, self.available_memory)

    def samples(self) -> Iterator[MetricSample]:
        """Yield the two memory samples, or nothing if the source is unavailable."""
        try:
            snapshot = self._open_snapshot(self.proc_root)
            memory = snapshot.global_memory()
        except reader.ProcFSError as exc:
            logger.error("Error fetching memory info: %s", exc)
            return

        labels = (self.hostname,)
        yield MetricSample(self.total_memory, float(memory.total_bytes), labels)
        yield MetricSample(self.available_memory, float(memory.available_bytes), labels)

    def describe(self) -> list[Metric]:
        return to_families(self.descriptors(), (), keep_empty=True)

    def collect(self) -> list[Metric]:
        return to_families(self.descriptors(), self.samples())


class ProcessCollector:
    """
    Exports resident memory and CPU time of every process on the host.

    Each process contributes one sample per descriptor, all sharing the label
    tuple (uid, process, host, pid). A process whose stat, status or command
    cannot be read is left out of the scrape entirely.
    """

    def __init__(
        self,
        hostname: str,
        proc_root: str = reader.DEFAULT_PROC_ROOT,
        open_snapshot: SnapshotOpener = reader.open_snapshot,
        ticks_per_second: int | None = None,
    ) -> None:
        """
        Initialize the ProcessCollector.

        Args:
            hostname: Value of the host label on every sample.
            proc_root: Mount point of the process information filesystem.
            open_snapshot: Opens a fresh snapshot of proc_root per scrape.
            ticks_per_second: Divisor for CPU tick counters. Defaults to the
                kernel's clock tick rate.
        """
        self.hostname = hostname
        self.proc_root = proc_root
        self.ticks_per_second = ticks_per_second or reader.clock_ticks()
        self._open_snapshot = open_snapshot
        self.resident_memory = MetricDescriptor(
            "process_resident_memory_bytes",
            "Resident memory size of the process in bytes.",
            PROCESS_LABELS,
        )
        self.system_seconds = MetricDescriptor(
            "process_system_seconds_total",
            "CPU time the process spent in kernel mode, in seconds.",
            PROCESS_LABELS,
            MetricKind.COUNTER,
        )
        self.user_seconds = MetricDescriptor(
            "process_user_seconds_total",
            "CPU time the process spent in user mode, in seconds.",
            PROCESS_LABELS,
            MetricKind.COUNTER,
        )

    def descriptors(self) -> tuple[MetricDescriptor, ...]:
        return (self.resident_memory, self.system_seconds, self.user_seconds)

    def entries(self) -> Iterator[ProcessEntry]:
        """Yield a fully-read entry for every process that could be inspected."""
        try:
            snapshot = self._open_snapshot(self.proc_root)
            handles = snapshot.list_processes()
        except reader.ProcFSError as exc:
            logger.error("Error fetching processes: %s", exc)
            return

        for handle in handles:
            try:
                stat = handle.stat()
                status = handle.status()
                name = handle.command()
                if not status.uids:
                    raise ValueError(f"no uids reported for pid {handle.pid}")
            except _PROCESS_ERRORS as exc:
                logger.debug("Skipping pid %s: %s", handle.pid, exc)
                continue

            yield ProcessEntry(
                pid=handle.pid,
                name=name.strip(),
                uid=status.uids[0],
                cpu_user_seconds=stat.cpu_user_ticks / self.ticks_per_second,
                cpu_system_seconds=stat.cpu_system_ticks / self.ticks_per_second,
                resident_bytes=stat.resident_memory,
            )

    def samples(self) -> Iterator[MetricSample]:
        for entry in self.entries():
            labels = (str(entry.uid), entry.name, self.hostname, str(entry.pid))
            yield MetricSample(self.resident_memory, float(entry.resident_bytes), labels)
            yield MetricSample(self.system_seconds, entry.cpu_system_seconds, labels)
            yield MetricSample(self.user_seconds, entry.cpu_user_seconds, labels)

    def describe(self) -> list[Metric]:
        return to_families(self.descriptors(), (), keep_empty=True)

    def collect(self) -> list[Metric]:
        return to_families(self.descriptors(), self.samples())
