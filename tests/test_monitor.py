"""Tests for the SystemMonitor class."""

from queue import Queue

from sysmonitor.models import UsageMetrics
from sysmonitor.monitor import SystemMonitor


class FakeUsage:
    """SystemUsage stand-in returning queued snapshots."""

    def __init__(self, *snapshots: UsageMetrics) -> None:
        self._snapshots = list(snapshots)
        self.primed = False

    def prime(self) -> None:
        self.primed = True

    def current_usage(self) -> UsageMetrics:
        if len(self._snapshots) > 1:
            return self._snapshots.pop(0)
        return self._snapshots[0]


class TestSystemMonitor:
    """Tests for SystemMonitor class."""

    def test_monitor_creation(self):
        """Test SystemMonitor can be instantiated."""
        queue: Queue[UsageMetrics] = Queue()
        monitor = SystemMonitor(queue)

        assert monitor.poll_rate == 2.0
        assert not monitor.is_running

    def test_monitor_primes_usage(self):
        """Test constructing a monitor seeds the rate baselines."""
        usage = FakeUsage(UsageMetrics(timestamp=1.0))
        SystemMonitor(Queue(), usage=usage)

        assert usage.primed

    def test_monitor_custom_poll_rate(self):
        """Test SystemMonitor with custom poll rate."""
        queue: Queue[UsageMetrics] = Queue()
        monitor = SystemMonitor(queue, poll_rate=1.0)

        assert monitor.poll_rate == 1.0

    def test_poll_rate_minimum(self):
        """Test poll rate has a minimum value."""
        queue: Queue[UsageMetrics] = Queue()
        monitor = SystemMonitor(queue)

        monitor.poll_rate = 0.01  # Very small value
        assert monitor.poll_rate >= 0.1  # Should be clamped to minimum

    def test_history_prefilled(self):
        """Test histories start as full-width zero baselines."""
        monitor = SystemMonitor(Queue(), usage=FakeUsage(UsageMetrics(timestamp=1.0)))

        assert monitor.get_cpu_history() == [0.0] * 60
        assert monitor.get_gpu_history() == [0.0] * 60
        assert monitor.get_memory_history() == [0.0] * 60
        assert monitor.get_per_core_history() == []

    def test_sample_once_records_history(self):
        """Test one tick updates every history series and queues the snapshot."""
        snapshot = UsageMetrics(
            timestamp=1.0,
            cpu_percent=40.0,
            cpu_per_core=(30.0, 50.0),
            gpu_percent=10.0,
            memory_used_gb=4.0,
            memory_total_gb=16.0,
        )
        queue: Queue[UsageMetrics] = Queue()
        monitor = SystemMonitor(queue, usage=FakeUsage(snapshot), history_size=5)

        result = monitor.sample_once()

        assert result is snapshot
        assert queue.get_nowait() is snapshot
        assert monitor.get_cpu_history() == [0.0, 0.0, 0.0, 0.0, 40.0]
        assert monitor.get_gpu_history() == [0.0, 0.0, 0.0, 0.0, 10.0]
        assert monitor.get_memory_history() == [0.0, 0.0, 0.0, 0.0, 25.0]
        assert monitor.get_per_core_history() == [
            [0.0, 0.0, 0.0, 0.0, 30.0],
            [0.0, 0.0, 0.0, 0.0, 50.0],
        ]

    def test_history_capacity(self):
        """Test history never grows beyond its size."""
        snapshots = [UsageMetrics(timestamp=float(i), cpu_percent=float(i)) for i in range(100)]
        monitor = SystemMonitor(Queue(), usage=FakeUsage(*snapshots))

        for _ in range(100):
            monitor.sample_once()

        history = monitor.get_cpu_history()
        assert len(history) == 60
        assert history == [float(i) for i in range(40, 100)]

    def test_per_core_history_rebuilt_on_core_change(self):
        """Test per-core histories follow the reported core count."""
        usage = FakeUsage(
            UsageMetrics(timestamp=1.0, cpu_per_core=(10.0,)),
            UsageMetrics(timestamp=2.0, cpu_per_core=(20.0, 30.0)),
        )
        monitor = SystemMonitor(Queue(), usage=usage, history_size=3)

        monitor.sample_once()
        assert monitor.get_per_core_history() == [[0.0, 0.0, 10.0]]

        monitor.sample_once()
        assert monitor.get_per_core_history() == [[0.0, 0.0, 20.0], [0.0, 0.0, 30.0]]

    def test_per_core_history_stays_aligned_on_failed_read(self):
        """Test an empty per-core reading pushes zeros instead of skipping a tick."""
        usage = FakeUsage(
            UsageMetrics(timestamp=1.0, cpu_percent=40.0, cpu_per_core=(30.0, 50.0)),
            UsageMetrics(timestamp=2.0),
        )
        monitor = SystemMonitor(Queue(), usage=usage, history_size=3)

        monitor.sample_once()
        monitor.sample_once()

        assert monitor.get_cpu_history() == [0.0, 40.0, 0.0]
        assert monitor.get_per_core_history() == [[0.0, 30.0, 0.0], [0.0, 50.0, 0.0]]

    def test_monitor_start_stop(self):
        """Test SystemMonitor can be started and stopped."""
        queue: Queue[UsageMetrics] = Queue()
        monitor = SystemMonitor(queue, poll_rate=0.1)

        assert not monitor.is_running

        monitor.start()
        assert monitor.is_running

        monitor.stop()
        assert not monitor.is_running

    def test_monitor_start_idempotent(self):
        """Test starting an already running monitor is safe."""
        queue: Queue[UsageMetrics] = Queue()
        monitor = SystemMonitor(queue, poll_rate=0.1)

        monitor.start()
        thread1 = monitor._thread

        monitor.start()  # Should not create a new thread
        thread2 = monitor._thread

        assert thread1 is thread2
        monitor.stop()

    def test_monitor_collects_data(self):
        """Test SystemMonitor collects and queues data."""
        queue: Queue[UsageMetrics] = Queue()
        monitor = SystemMonitor(queue, poll_rate=0.1)

        monitor.start()

        # Wait for at least one snapshot
        try:
            snapshot = queue.get(timeout=5.0)
            assert isinstance(snapshot, UsageMetrics)
            assert isinstance(snapshot.cpu_per_core, tuple)
            assert 0.0 <= snapshot.cpu_percent <= 100.0
            assert snapshot.memory_total_gb > 0
            assert snapshot.disk_total_gb > 0
        finally:
            monitor.stop()

    def test_monitor_keeps_polling(self):
        """Test the loop keeps producing snapshots."""
        queue: Queue[UsageMetrics] = Queue()
        monitor = SystemMonitor(queue, poll_rate=0.1)

        monitor.start()

        try:
            snapshot1 = queue.get(timeout=5.0)
            snapshot2 = queue.get(timeout=5.0)

            assert snapshot2.timestamp >= snapshot1.timestamp
        finally:
            monitor.stop()

    def test_monitor_survives_tick_errors(self):
        """Test an exception inside a tick does not kill the thread."""

        class FlakyUsage(FakeUsage):
            def __init__(self) -> None:
                super().__init__(UsageMetrics(timestamp=1.0))
                self.calls = 0

            def current_usage(self) -> UsageMetrics:
                self.calls += 1
                if self.calls == 1:
                    raise RuntimeError("boom")
                return super().current_usage()

        queue: Queue[UsageMetrics] = Queue()
        monitor = SystemMonitor(queue, usage=FlakyUsage(), poll_rate=0.1)

        monitor.start()
        try:
            snapshot = queue.get(timeout=5.0)
            assert snapshot.timestamp == 1.0
            assert monitor.is_running
        finally:
            monitor.stop()

    def test_daemon_thread(self):
        """Test monitor thread is a daemon thread."""
        queue: Queue[UsageMetrics] = Queue()
        monitor = SystemMonitor(queue, poll_rate=0.1)

        monitor.start()

        try:
            assert monitor._thread is not None
            assert monitor._thread.daemon is True
            assert monitor._thread.name == "SystemMonitor"
        finally:
            monitor.stop()
