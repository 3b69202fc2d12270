"""Background sampling loop for sysmonitor."""

import threading
from queue import Queue

from sysmonitor.history import DEFAULT_CAPACITY, HistoryBuffer
from sysmonitor.log import get_logger
from sysmonitor.models import UsageMetrics
from sysmonitor.sampler import SystemUsage

logger = get_logger(__name__)


class SystemMonitor:
    """
    System monitor that samples host usage on a fixed interval.

    Runs in a separate daemon thread and pushes snapshots to a thread-safe
    Queue. Keeps fixed-size histories of overall CPU, per-core CPU, GPU and
    memory percent for chart rendering.
    """

    def __init__(
        self,
        update_queue: Queue[UsageMetrics],
        usage: SystemUsage | None = None,
        poll_rate: float = 2.0,
        history_size: int = DEFAULT_CAPACITY,
    ) -> None:
        """
        Initialize the SystemMonitor.

        Args:
            update_queue: Thread-safe queue to push snapshots to.
            usage: Sampler owning the counter state. Built with defaults if omitted.
            poll_rate: How often to sample (in seconds). Default 2.0s.
            history_size: Number of values kept per history series.
        """
        self._queue = update_queue
        self._usage = usage or SystemUsage()
        self._poll_rate = max(0.1, poll_rate)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

        self._history_lock = threading.Lock()
        self._history_size = history_size
        self._cpu_history = HistoryBuffer(history_size)
        self._gpu_history = HistoryBuffer(history_size)
        self._memory_history = HistoryBuffer(history_size)
        self._per_core_history: list[HistoryBuffer] = []

        # Seed CPU, disk and network baselines (their first reading is all zeros)
        self._usage.prime()

    @property
    def usage(self) -> SystemUsage:
        """The sampler driven by this monitor."""
        return self._usage

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="SystemMonitor",
        )
        self._thread.start()
        logger.info("monitor_started", poll_rate=self._poll_rate)

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
            logger.info("monitor_stopped")

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self.sample_once()
            except Exception:
                # Keep the loop running; the next tick is the retry
                logger.exception("monitor_tick_failed")

            # Wait for poll_rate seconds or until stop is requested
            self._stop_event.wait(timeout=self._poll_rate)

    def sample_once(self) -> UsageMetrics:
        """Take one snapshot, record it in the histories and queue it."""
        snapshot = self._usage.current_usage()
        self._record(snapshot)
        self._queue.put(snapshot)
        return snapshot

    def _record(self, snapshot: UsageMetrics) -> None:
        """Push one snapshot into every history series as a single update."""
        with self._history_lock:
            self._cpu_history.push(snapshot.cpu_percent)
            self._gpu_history.push(snapshot.gpu_percent)
            self._memory_history.push(snapshot.memory_percent)

            per_core = snapshot.cpu_per_core
            if not per_core:
                # Failed CPU read: keep per-core series aligned with the overall one
                for buffer in self._per_core_history:
                    buffer.push(0.0)
                return
            if len(per_core) != len(self._per_core_history):
                self._per_core_history = [HistoryBuffer(self._history_size) for _ in per_core]
            for buffer, value in zip(self._per_core_history, per_core):
                buffer.push(value)

    def get_cpu_history(self) -> list[float]:
        """Get the overall CPU usage history for sparkline rendering."""
        with self._history_lock:
            return self._cpu_history.as_sequence()

    def get_per_core_history(self) -> list[list[float]]:
        """Get one usage history per CPU core."""
        with self._history_lock:
            return [buffer.as_sequence() for buffer in self._per_core_history]

    def get_gpu_history(self) -> list[float]:
        """Get the GPU usage history."""
        with self._history_lock:
            return self._gpu_history.as_sequence()

    def get_memory_history(self) -> list[float]:
        """Get the memory usage history (percent of total)."""
        with self._history_lock:
            return self._memory_history.as_sequence()
