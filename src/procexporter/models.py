"""Data models for proc-exporter."""

from dataclasses import dataclass
from enum import Enum


class MetricKind(Enum):
    """Exposition type of a metric."""

    GAUGE = "gauge"
    COUNTER = "counter"


@dataclass(slots=True, frozen=True)
class MetricDescriptor:
    """Static metadata for one metric the collectors can emit."""

    name: str
    documentation: str
    label_names: tuple[str, ...]
    kind: MetricKind = MetricKind.GAUGE


@dataclass(slots=True, frozen=True)
class MetricSample:
    """One value for a descriptor, with label values in declaration order."""

    descriptor: MetricDescriptor
    value: float
    label_values: tuple[str, ...]

    def __post_init__(self) -> None:
        if len(self.label_values) != len(self.descriptor.label_names):
            raise ValueError(
                f"{self.descriptor.name} expects labels {self.descriptor.label_names}, "
                f"got {len(self.label_values)} values"
            )

    @property
    def labels(self) -> dict[str, str]:
        """Label values keyed by label name."""
        return dict(zip(self.descriptor.label_names, self.label_values))


@dataclass(slots=True, frozen=True)
class MemorySnapshot:
    """Whole-system memory totals."""

    total_bytes: int
    available_bytes: int


@dataclass(slots=True, frozen=True)
class ProcStat:
    """Fields of /proc/<pid>/stat used by the exporter."""

    pid: int
    cpu_user_ticks: int
    cpu_system_ticks: int
    resident_pages: int
    page_size: int = 4096

    @property
    def resident_memory(self) -> int:
        """Resident set size in bytes."""
        return self.resident_pages * self.page_size


@dataclass(slots=True, frozen=True)
class ProcStatus:
    """Ownership fields of /proc/<pid>/status."""

    uids: tuple[int, ...]  # real, effective, saved, filesystem


@dataclass(slots=True, frozen=True)
class ProcessEntry:
    """Immutable per-scrape view of one process."""

    pid: int
    name: str
    uid: int
    cpu_user_seconds: float
    cpu_system_seconds: float
    resident_bytes: int
