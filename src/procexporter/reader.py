"""Snapshot access to kernel process and memory state.

Enumeration, ownership and system memory come from psutil, pointed at the
configured procfs root. The stat and comm records are read directly so the
raw clock-tick counters and the kernel's command name reach the collectors
unchanged.
"""

import os

import psutil

from procexporter.models import MemorySnapshot, ProcStat, ProcStatus

DEFAULT_PROC_ROOT = "/proc"
DEFAULT_CLOCK_TICKS = 100
DEFAULT_PAGE_SIZE = 4096

# Offsets into the fields following "(comm) " in /proc/<pid>/stat.
_UTIME_INDEX = 11
_STIME_INDEX = 12
_RSS_INDEX = 21


class ProcFSError(Exception):
    """The procfs root, or a system-wide record under it, could not be read."""


def _sysconf(name: str, default: int) -> int:
    try:
        value = os.sysconf(name)
    except (AttributeError, ValueError, OSError):
        return default
    return value if value > 0 else default


def clock_ticks() -> int:
    """Kernel clock ticks per second, 100 where the platform does not say."""
    return _sysconf("SC_CLK_TCK", DEFAULT_CLOCK_TICKS)


def page_size() -> int:
    """Memory page size in bytes."""
    return _sysconf("SC_PAGE_SIZE", DEFAULT_PAGE_SIZE)


def parse_stat(text: str, page_bytes: int = DEFAULT_PAGE_SIZE) -> ProcStat:
    """
    Parse the contents of a /proc/<pid>/stat file.

    The command field may itself contain spaces and parentheses, so the
    remaining fields are taken from after the last closing parenthesis.

    Raises:
        ValueError: If the record is truncated or not numeric where expected.
    """
    lpar = text.find("(")
    rpar = text.rfind(")")
    if lpar == -1 or rpar < lpar:
        raise ValueError(f"malformed stat record: {text[:64]!r}")

    pid = int(text[:lpar])
    rest = text[rpar + 2 :].split()
    try:
        return ProcStat(
            pid=pid,
            cpu_user_ticks=int(rest[_UTIME_INDEX]),
            cpu_system_ticks=int(rest[_STIME_INDEX]),
            resident_pages=max(0, int(rest[_RSS_INDEX])),
            page_size=page_bytes,
        )
    except IndexError as exc:
        raise ValueError(f"truncated stat record for pid {pid}") from exc


class ProcessHandle:
    """
    Lazy accessor for one enumerated process.

    Every read may fail with psutil.NoSuchProcess once the process exits,
    which is expected between enumeration and inspection.
    """

    __slots__ = ("pid", "_proc_root", "_page_size")

    def __init__(self, pid: int, proc_root: str, page_bytes: int) -> None:
        self.pid = pid
        self._proc_root = proc_root
        self._page_size = page_bytes

    def __repr__(self) -> str:
        return f"ProcessHandle(pid={self.pid})"

    def _read(self, record: str) -> str:
        path = os.path.join(self._proc_root, str(self.pid), record)
        try:
            with open(path, encoding="utf-8", errors="replace") as f:
                return f.read()
        except (FileNotFoundError, ProcessLookupError) as exc:
            raise psutil.NoSuchProcess(self.pid) from exc
        except PermissionError as exc:
            raise psutil.AccessDenied(self.pid) from exc

    def stat(self) -> ProcStat:
        """Read CPU ticks and resident pages."""
        return parse_stat(self._read("stat"), self._page_size)

    def status(self) -> ProcStatus:
        """Read the owning user ids (real, effective, saved)."""
        return ProcStatus(uids=tuple(psutil.Process(self.pid).uids()))

    def command(self) -> str:
        """Read the kernel command name, untrimmed."""
        return self._read("comm")


class ProcFS:
    """A view of one procfs root, opened once per scrape."""

    def __init__(self, proc_root: str = DEFAULT_PROC_ROOT) -> None:
        self.proc_root = proc_root
        self._page_size = page_size()

    def global_memory(self) -> MemorySnapshot:
        """
        Read system-wide memory totals.

        Raises:
            ProcFSError: If the memory record cannot be read.
        """
        try:
            mem = psutil.virtual_memory()
        except (OSError, psutil.Error) as exc:
            raise ProcFSError(f"cannot read memory info under {self.proc_root}: {exc}") from exc
        return MemorySnapshot(total_bytes=int(mem.total), available_bytes=int(mem.available))

    def list_processes(self) -> list[ProcessHandle]:
        """
        Enumerate the processes present right now.

        Raises:
            ProcFSError: If the root can no longer be listed.
        """
        try:
            pids = psutil.pids()
        except (OSError, psutil.Error) as exc:
            raise ProcFSError(f"cannot list processes under {self.proc_root}: {exc}") from exc
        return [ProcessHandle(pid, self.proc_root, self._page_size) for pid in pids]


def open_snapshot(proc_root: str = DEFAULT_PROC_ROOT) -> ProcFS:
    """
    Open a fresh view of the given procfs root.

    Raises:
        ProcFSError: If the root is missing or unreadable.
    """
    if not os.path.isdir(proc_root) or not os.access(proc_root, os.R_OK | os.X_OK):
        raise ProcFSError(f"procfs root {proc_root!r} is not a readable directory")
    psutil.PROCFS_PATH = proc_root
    return ProcFS(proc_root)
