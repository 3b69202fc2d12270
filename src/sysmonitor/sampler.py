"""Host metric samplers for sysmonitor.

Each sampler wraps a reader function that queries the OS. Readers are free
to raise; samplers absorb the failure, log it, and report zeros for their own
metric so one broken subsystem never stops the others from updating.
"""

import re
import subprocess
import sys
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import psutil

from sysmonitor.config import Settings
from sysmonitor.log import get_logger
from sysmonitor.models import GIB, KIB, CoreTicks, DiskCapacity, MemoryCounters, UsageMetrics

logger = get_logger(__name__)

IS_MACOS = sys.platform == "darwin"

COMMAND_TIMEOUT = 2.0

# Anything an OS query or its parsing can throw at us
SAMPLE_ERRORS = (
    psutil.Error,
    OSError,
    subprocess.SubprocessError,
    ValueError,
    KeyError,
    AttributeError,
    IndexError,
    TypeError,
    RuntimeError,
)

DEFAULT_MACOS_INTERFACES = ("en0", "en1")
VIRTUAL_INTERFACE_PREFIXES = (
    "lo",
    "docker",
    "veth",
    "br-",
    "virbr",
    "utun",
    "awdl",
    "llw",
    "bridge",
    "vmnet",
    "tun",
    "tap",
)


def run_command(argv: Sequence[str], timeout: float = COMMAND_TIMEOUT) -> str:
    """Run a command and return its stdout. Raises on failure or timeout."""
    result = subprocess.run(
        list(argv),
        capture_output=True,
        text=True,
        timeout=timeout,
        check=True,
    )
    return result.stdout


# --- Readers ---


def read_cpu_ticks() -> list[CoreTicks]:
    """Read cumulative per-core CPU times."""
    return [
        CoreTicks(
            user=times.user,
            system=times.system,
            idle=times.idle,
            nice=getattr(times, "nice", 0.0),  # Not reported on Windows
        )
        for times in psutil.cpu_times(percpu=True)
    ]


_VM_STAT_PAGE_SIZE = re.compile(r"page size of (\d+) bytes")
_VM_STAT_COMPRESSOR = re.compile(r"Pages occupied by compressor:\s+(\d+)")


def read_compressed_bytes(run: Callable[[Sequence[str]], str] = run_command) -> int:
    """Read the memory held by the macOS compressor from vm_stat."""
    output = run(["vm_stat"])
    page_size = _VM_STAT_PAGE_SIZE.search(output)
    pages = _VM_STAT_COMPRESSOR.search(output)
    if page_size is None or pages is None:
        return 0
    return int(pages.group(1)) * int(page_size.group(1))


def read_memory_counters() -> MemoryCounters:
    """
    Read memory counters in bytes.

    On macOS used memory is active + wired + compressed, matching what
    Activity Monitor calls memory used. Other platforms have no wired or
    compressor counters, so psutil's used figure stands in for active.
    """
    vm = psutil.virtual_memory()
    if not IS_MACOS:
        return MemoryCounters(active=vm.used, wired=0, compressed=0, total=vm.total)

    try:
        compressed = read_compressed_bytes()
    except SAMPLE_ERRORS as exc:
        logger.debug("vm_stat_failed", error=str(exc))
        compressed = 0
    return MemoryCounters(active=vm.active, wired=vm.wired, compressed=compressed, total=vm.total)


def read_disk_capacity(path: str = "/") -> DiskCapacity:
    """Read total and available bytes for the volume holding path."""
    usage = psutil.disk_usage(path)
    return DiskCapacity(total=usage.total, free=usage.free)


def read_disk_io_bytes() -> tuple[int, int]:
    """Read cumulative bytes read and written across all disks."""
    counters = psutil.disk_io_counters()
    if counters is None:
        raise ValueError("no disk I/O counters available")
    return counters.read_bytes, counters.write_bytes


def is_physical_interface(name: str) -> bool:
    """Return True unless name looks like loopback or a virtual adapter."""
    return not name.startswith(VIRTUAL_INTERFACE_PREFIXES)


def read_network_bytes(interfaces: Sequence[str] = ()) -> tuple[int, int]:
    """
    Sum cumulative received and sent bytes over the selected interfaces.

    Args:
        interfaces: Interface names to include. When empty, every interface
            that is not loopback or virtual is included.
    """
    counters = psutil.net_io_counters(pernic=True)
    if interfaces:
        selected = [nic for name, nic in counters.items() if name in interfaces]
    else:
        selected = [nic for name, nic in counters.items() if is_physical_interface(name)]
    return (
        sum(nic.bytes_recv for nic in selected),
        sum(nic.bytes_sent for nic in selected),
    )


def read_efficiency_core_count(run: Callable[[Sequence[str]], str] = run_command) -> int:
    """Read the number of efficiency cores on Apple Silicon (0 elsewhere)."""
    if not IS_MACOS:
        return 0
    try:
        return max(0, int(run(["sysctl", "-n", "hw.perflevel1.physicalcpu"]).strip()))
    except SAMPLE_ERRORS as exc:
        logger.debug("efficiency_core_count_failed", error=str(exc))
        return 0


# --- Delta engine ---


def _percent(used: float, total: float) -> float:
    if total <= 0:
        return 0.0
    return used / total * 100.0


class RateTracker:
    """
    Turns cumulative counters into per-second rates between calls.

    The first update only seeds the baseline and reports zeros. A counter
    that went backwards (reset or wraparound) reports zero for that tick.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._previous: tuple[int, ...] | None = None
        self._last_check: float | None = None

    @property
    def seeded(self) -> bool:
        """True once a baseline reading has been taken."""
        return self._last_check is not None

    def update(self, counters: Sequence[int]) -> list[float]:
        """Record new counter values and return their rates in units per second."""
        now = self._clock()
        current = tuple(counters)
        rates = [0.0] * len(current)

        previous = self._previous
        if previous is not None and self._last_check is not None and len(previous) == len(current):
            elapsed = now - self._last_check
            if elapsed > 0:
                rates = [
                    (after - before) / elapsed if after >= before else 0.0
                    for before, after in zip(previous, current)
                ]

        self._previous = current
        self._last_check = now
        return rates


# --- Samplers ---


class CpuSampler:
    """Computes CPU usage from the tick deltas between two readings."""

    def __init__(self, reader: Callable[[], Sequence[CoreTicks]] = read_cpu_ticks) -> None:
        self._reader = reader
        self._previous: list[CoreTicks] | None = None

    @property
    def core_count(self) -> int:
        """Number of cores in the current baseline (0 before the first sample)."""
        return len(self._previous) if self._previous is not None else 0

    def sample(self) -> tuple[float, list[float]]:
        """
        Return overall and per-core usage percentages.

        The first call seeds the baseline and returns zeros. If the number of
        cores changes between calls the baseline is re-seeded instead of
        pairing readings from different cores.
        """
        try:
            current = list(self._reader())
        except SAMPLE_ERRORS as exc:
            logger.debug("cpu_sample_failed", error=str(exc))
            return 0.0, []

        previous, self._previous = self._previous, current
        if previous is None:
            return 0.0, [0.0] * len(current)
        if len(previous) != len(current):
            logger.info("cpu_topology_changed", previous=len(previous), current=len(current))
            return 0.0, [0.0] * len(current)

        per_core: list[float] = []
        used_sum = 0.0
        total_sum = 0.0
        for before, after in zip(previous, current):
            user = max(0.0, after.user - before.user)
            system = max(0.0, after.system - before.system)
            nice = max(0.0, after.nice - before.nice)
            idle = max(0.0, after.idle - before.idle)

            used = user + system + nice
            total = used + idle
            per_core.append(_percent(used, total))
            used_sum += used
            total_sum += total

        return _percent(used_sum, total_sum), per_core


class MemorySampler:
    """Reports used and total memory in GiB."""

    def __init__(self, reader: Callable[[], MemoryCounters] = read_memory_counters) -> None:
        self._reader = reader

    def sample(self) -> tuple[float, float]:
        """Return (used_gb, total_gb)."""
        try:
            counters = self._reader()
        except SAMPLE_ERRORS as exc:
            logger.debug("memory_sample_failed", error=str(exc))
            return 0.0, 0.0

        total = max(0, counters.total)
        used = min(max(0, counters.active + counters.wired + counters.compressed), total)
        return used / GIB, total / GIB


class DiskSampler:
    """Reports capacity of one volume in GiB."""

    def __init__(
        self,
        path: str = "/",
        reader: Callable[[str], DiskCapacity] = read_disk_capacity,
    ) -> None:
        self._path = path
        self._reader = reader

    @property
    def path(self) -> str:
        """Path of the sampled volume."""
        return self._path

    def sample(self) -> tuple[float, float, float]:
        """Return (used_gb, total_gb, free_gb)."""
        try:
            capacity = self._reader(self._path)
        except SAMPLE_ERRORS as exc:
            logger.debug("disk_sample_failed", path=self._path, error=str(exc))
            return 0.0, 0.0, 0.0

        total = max(0, capacity.total)
        free = min(max(0, capacity.free), total)
        return (total - free) / GIB, total / GIB, free / GIB


class DiskIOSampler:
    """Reports disk read and write throughput in KB/s."""

    def __init__(
        self,
        reader: Callable[[], tuple[int, int]] = read_disk_io_bytes,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._reader = reader
        self._tracker = RateTracker(clock)

    def sample(self) -> tuple[float, float]:
        """Return (read_kbps, write_kbps). The first call returns zeros."""
        try:
            read_bytes, write_bytes = self._reader()
        except SAMPLE_ERRORS as exc:
            logger.debug("disk_io_sample_failed", error=str(exc))
            return 0.0, 0.0

        read_rate, write_rate = self._tracker.update((read_bytes, write_bytes))
        return read_rate / KIB, write_rate / KIB


class NetworkSampler:
    """Reports network download and upload throughput in KB/s."""

    def __init__(
        self,
        interfaces: Sequence[str] | None = None,
        reader: Callable[[Sequence[str]], tuple[int, int]] = read_network_bytes,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interfaces is None:
            interfaces = DEFAULT_MACOS_INTERFACES if IS_MACOS else ()
        self._interfaces = tuple(interfaces)
        self._reader = reader
        self._tracker = RateTracker(clock)

    @property
    def interfaces(self) -> tuple[str, ...]:
        """Configured interface names (empty means auto-detect)."""
        return self._interfaces

    def sample(self) -> tuple[float, float]:
        """Return (down_kbps, up_kbps). The first call returns zeros."""
        try:
            received, sent = self._reader(self._interfaces)
        except SAMPLE_ERRORS as exc:
            logger.debug("network_sample_failed", error=str(exc))
            return 0.0, 0.0

        down, up = self._tracker.update((received, sent))
        return down / KIB, up / KIB


@dataclass(slots=True, frozen=True)
class GpuQuery:
    """A command whose output carries per-device GPU utilization figures."""

    argv: tuple[str, ...]
    pattern: re.Pattern[str]

    def parse(self, output: str) -> list[float]:
        """Return one utilization value per device found in output."""
        return [float(value) for value in self.pattern.findall(output)]


IOREG_ACCELERATORS = ("ioreg", "-r", "-d", "1", "-w", "0", "-c", "IOAccelerator")
NVIDIA_SMI = ("nvidia-smi", "--query-gpu=utilization.gpu", "--format=csv,noheader,nounits")

# Property naming differs by hardware and driver; first query with a match wins
DEFAULT_GPU_QUERIES: tuple[GpuQuery, ...] = (
    GpuQuery(IOREG_ACCELERATORS, re.compile(r'"Device Utilization %"\s*=\s*(\d+)')),
    GpuQuery(IOREG_ACCELERATORS, re.compile(r'"GPU Activity\(%\)"\s*=\s*(\d+)')),
    GpuQuery(IOREG_ACCELERATORS, re.compile(r'"Renderer Utilization %"\s*=\s*(\d+)')),
    GpuQuery(NVIDIA_SMI, re.compile(r"^\s*(\d+(?:\.\d+)?)\s*$", re.MULTILINE)),
)


class GpuSampler:
    """Reports average GPU utilization across all devices found by the queries."""

    def __init__(
        self,
        queries: Sequence[GpuQuery] = DEFAULT_GPU_QUERIES,
        runner: Callable[[Sequence[str]], str] = run_command,
    ) -> None:
        self._queries = tuple(queries)
        self._runner = runner
        self._missing: set[str] = set()

    def sample(self) -> float:
        """Return GPU utilization percent, or 0 when unsupported."""
        outputs: dict[tuple[str, ...], str] = {}
        for query in self._queries:
            if query.argv not in outputs:
                outputs[query.argv] = self._run(query.argv)

            values = query.parse(outputs[query.argv])
            if values:
                average = sum(values) / len(values)
                return min(100.0, max(0.0, average))
        return 0.0

    def _run(self, argv: tuple[str, ...]) -> str:
        command = argv[0]
        if command in self._missing:
            return ""
        try:
            return self._runner(argv)
        except FileNotFoundError:
            # Binary not installed; stop trying it
            self._missing.add(command)
            logger.debug("gpu_query_unavailable", command=command)
        except SAMPLE_ERRORS as exc:
            logger.debug("gpu_query_failed", command=command, error=str(exc))
        return ""


class SystemUsage:
    """
    Samples every metric and assembles UsageMetrics snapshots.

    Owns the counter state of its samplers; create one instance and hand it
    to every consumer that needs usage data.
    """

    def __init__(
        self,
        cpu: CpuSampler | None = None,
        memory: MemorySampler | None = None,
        disk: DiskSampler | None = None,
        disk_io: DiskIOSampler | None = None,
        network: NetworkSampler | None = None,
        gpu: GpuSampler | None = None,
        efficiency_core_count: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cpu = cpu or CpuSampler()
        self.memory = memory or MemorySampler()
        self.disk = disk or DiskSampler()
        self.disk_io = disk_io or DiskIOSampler()
        self.network = network or NetworkSampler()
        self.gpu = gpu or GpuSampler()
        if efficiency_core_count is None:
            efficiency_core_count = read_efficiency_core_count()
        self._efficiency_core_count = efficiency_core_count
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "SystemUsage":
        """Build a SystemUsage for the configured volume and interfaces."""
        return cls(
            disk=DiskSampler(path=settings.disk_path),
            network=NetworkSampler(interfaces=settings.network_interfaces or None),
        )

    def prime(self) -> None:
        """Seed the rate baselines so the next snapshot reports real deltas."""
        self.cpu.sample()
        self.disk_io.sample()
        self.network.sample()
        logger.info(
            "usage_primed",
            cores=self.cpu.core_count,
            efficiency_cores=self._efficiency_core_count,
            disk_path=self.disk.path,
            interfaces=list(self.network.interfaces) or "auto",
        )

    def current_usage(self) -> UsageMetrics:
        """Take one snapshot. Never raises; failed metrics are zero."""
        cpu_percent, per_core = self.cpu.sample()
        memory_used, memory_total = self.memory.sample()
        disk_used, disk_total, disk_free = self.disk.sample()
        disk_read, disk_write = self.disk_io.sample()
        down, up = self.network.sample()
        gpu_percent = self.gpu.sample()

        return UsageMetrics(
            timestamp=self._clock(),
            cpu_percent=cpu_percent,
            cpu_per_core=tuple(per_core),
            gpu_percent=gpu_percent,
            memory_used_gb=memory_used,
            memory_total_gb=memory_total,
            disk_used_gb=disk_used,
            disk_total_gb=disk_total,
            disk_free_gb=disk_free,
            network_down_kbps=down,
            network_up_kbps=up,
            disk_read_kbps=disk_read,
            disk_write_kbps=disk_write,
            efficiency_core_count=self._efficiency_core_count,
        )
