"""Data models for sysmonitor."""

from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple

GIB = 1024**3
KIB = 1024


class DisplayMode(str, Enum):
    """How the status line renders CPU usage."""

    TEXT = "text"
    MINI_CHART = "mini_chart"


class CoreTicks(NamedTuple):
    """Cumulative tick counters for one CPU core."""

    user: float
    system: float
    idle: float
    nice: float = 0.0


class MemoryCounters(NamedTuple):
    """Memory counters in bytes."""

    active: int
    wired: int
    compressed: int
    total: int


class DiskCapacity(NamedTuple):
    """Volume capacity in bytes."""

    total: int
    free: int


@dataclass(slots=True, frozen=True)
class UsageMetrics:
    """Immutable snapshot of host usage at one sampling instant."""

    timestamp: float
    cpu_percent: float = 0.0
    cpu_per_core: tuple[float, ...] = ()
    gpu_percent: float = 0.0
    memory_used_gb: float = 0.0
    memory_total_gb: float = 0.0
    disk_used_gb: float = 0.0
    disk_total_gb: float = 0.0
    disk_free_gb: float = 0.0
    network_down_kbps: float = 0.0
    network_up_kbps: float = 0.0
    disk_read_kbps: float = 0.0
    disk_write_kbps: float = 0.0
    efficiency_core_count: int = 0

    @property
    def memory_percent(self) -> float:
        """Memory used as a percentage of total (0 when total is unknown)."""
        if self.memory_total_gb <= 0:
            return 0.0
        return self.memory_used_gb / self.memory_total_gb * 100.0

    @property
    def disk_percent(self) -> float:
        """Disk used as a percentage of total (0 when total is unknown)."""
        if self.disk_total_gb <= 0:
            return 0.0
        return self.disk_used_gb / self.disk_total_gb * 100.0
