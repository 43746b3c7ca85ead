"""Shared fakes for collector tests."""

import psutil
import pytest

from procexporter.models import MemorySnapshot, ProcStat, ProcStatus
from procexporter.reader import ProcFSError


class FakeHandle:
    """Process handle whose reads can be made to fail like an exited process."""

    def __init__(
        self,
        pid: int,
        name: str = "proc",
        uids: tuple[int, ...] = (1000, 1000, 1000, 1000),
        user_ticks: int = 0,
        system_ticks: int = 0,
        resident_pages: int = 0,
        fail: str | None = None,
    ) -> None:
        self.pid = pid
        self._name = name
        self._uids = uids
        self._user_ticks = user_ticks
        self._system_ticks = system_ticks
        self._resident_pages = resident_pages
        self._fail = fail

    def _check(self, record: str) -> None:
        if self._fail == record:
            raise psutil.NoSuchProcess(self.pid)

    def stat(self) -> ProcStat:
        self._check("stat")
        return ProcStat(
            pid=self.pid,
            cpu_user_ticks=self._user_ticks,
            cpu_system_ticks=self._system_ticks,
            resident_pages=self._resident_pages,
            page_size=4096,
        )

    def status(self) -> ProcStatus:
        self._check("status")
        return ProcStatus(uids=self._uids)

    def command(self) -> str:
        self._check("command")
        return self._name


class FakeSnapshot:
    """Stands in for reader.ProcFS."""

    def __init__(
        self,
        handles: list[FakeHandle] | None = None,
        memory: MemorySnapshot | None = None,
    ) -> None:
        self.handles = handles or []
        self.memory = memory

    def global_memory(self) -> MemorySnapshot:
        if self.memory is None:
            raise ProcFSError("meminfo unavailable")
        return self.memory

    def list_processes(self) -> list[FakeHandle]:
        return list(self.handles)


def opener_for(snapshot: FakeSnapshot):
    """Return an open_snapshot replacement that always yields snapshot."""

    def open_snapshot(proc_root: str) -> FakeSnapshot:
        return snapshot

    return open_snapshot


def unavailable_opener(proc_root: str) -> FakeSnapshot:
    raise ProcFSError(f"procfs root {proc_root!r} is not a readable directory")


@pytest.fixture
def three_processes() -> list[FakeHandle]:
    return [
        FakeHandle(1, name="systemd", uids=(0, 0, 0, 0), user_ticks=150, system_ticks=450, resident_pages=3000),
        FakeHandle(42, name="bash\n", uids=(1000, 1000, 1000, 1000), user_ticks=250, system_ticks=30, resident_pages=1024),
        FakeHandle(99, name="  python3  ", uids=(1001, 0, 0, 0), user_ticks=7, system_ticks=1, resident_pages=20000),
    ]


@pytest.fixture
def memory_snapshot() -> MemorySnapshot:
    return MemorySnapshot(total_bytes=16 * 1024**3, available_bytes=3 * 1024**3 + 1)
