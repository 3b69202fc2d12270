"""sysmonitor - Main Textual application."""

from collections.abc import Sequence
from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Grid, VerticalScroll
from textual.widgets import Footer, Sparkline, Static

from sysmonitor.config import DEFAULT_LOG_FILE, Settings, get_settings
from sysmonitor.log import get_logger, setup_logging
from sysmonitor.models import GIB, DisplayMode, UsageMetrics
from sysmonitor.monitor import SystemMonitor
from sysmonitor.sampler import SystemUsage

logger = get_logger(__name__)

FIGURE_SPACE = "\u2007"  # Digit-width space keeps the status line from jittering
SPARK_CHARS = " ▁▂▃▄▅▆▇█"
MINI_CHART_WIDTH = 12
BAR_WIDTH = 20


def pad_figure(number: int, width: int = 2) -> str:
    """Left-pad a number with figure spaces to a fixed digit width."""
    text = str(number)
    return FIGURE_SPACE * max(0, width - len(text)) + text


def mini_chart(values: Sequence[float]) -> str:
    """Render 0-100 values as a one-line block-character chart."""
    top = len(SPARK_CHARS) - 1
    return "".join(SPARK_CHARS[round(max(0.0, min(100.0, value)) / 100.0 * top)] for value in values)


def status_text(
    metrics: UsageMetrics,
    mode: DisplayMode = DisplayMode.TEXT,
    cpu_history: Sequence[float] = (),
) -> str:
    """Build the compact status line, e.g. 'C:42% M:63%'."""
    memory = pad_figure(int(metrics.memory_percent))
    if mode is DisplayMode.MINI_CHART:
        return f"C:{mini_chart(list(cpu_history)[-MINI_CHART_WIDTH:])} M:{memory}%"
    return f"C:{pad_figure(int(metrics.cpu_percent))}% M:{memory}%"


def usage_color(percent: float) -> str:
    """Color band for a usage percentage."""
    if percent < 60:
        return "green"
    if percent < 85:
        return "yellow"
    return "red"


def format_bytes(size: float) -> str:
    """Format a byte count as a fixed-width string, e.g. ' 40.0G'."""
    for unit in ("B", "K", "M", "G", "T"):
        if size < 1024:
            return f"{int(size):5d}{unit}" if unit == "B" else f"{size:5.1f}{unit}"
        size /= 1024
    return f"{size:.1f}P"


def format_rate(kbps: float) -> str:
    """Format a KB/s rate as a human-readable string."""
    if kbps < 1024:
        return f"{kbps:6.1f} KB/s"
    return f"{kbps / 1024:6.1f} MB/s"


def disk_text(metrics: UsageMetrics) -> str:
    """Disk row markup: used/total, a usage bar, and free space."""
    bar_len = min(BAR_WIDTH, int(metrics.disk_percent / 100 * BAR_WIDTH))
    bar = "[blue]█[/blue]" * bar_len + "[dim]░[/dim]" * (BAR_WIDTH - bar_len)
    free = format_bytes(metrics.disk_free_gb * GIB).strip()
    return f"Disk {metrics.disk_used_gb:.0f}/{metrics.disk_total_gb:.0f} GB \\[{bar}] {free} free"


def _colored_percent(percent: float) -> str:
    color = usage_color(percent)
    return f"[{color}]{percent:3.0f}%[/{color}]"


class StatusLine(Static):
    """One-line summary standing in for the menu-bar item."""

    DEFAULT_CSS = """
    StatusLine {
        height: 1;
        padding: 0 1;
        background: $primary-background;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize StatusLine."""
        super().__init__("Initializing...", *args, **kwargs)
        self._mode = DisplayMode.TEXT

    @property
    def mode(self) -> DisplayMode:
        """Current display mode."""
        return self._mode

    @mode.setter
    def mode(self, value: DisplayMode) -> None:
        self._mode = value

    def update_status(self, metrics: UsageMetrics, cpu_history: Sequence[float]) -> None:
        """Render the status line from a snapshot."""
        self.update(status_text(metrics, self._mode, cpu_history))


class MetricPanel(VerticalScroll):
    """Detail panel with metric rows and history charts."""

    DEFAULT_CSS = """
    MetricPanel {
        height: 1fr;
        padding: 1 2;
        border: solid $primary;
    }

    MetricPanel Sparkline {
        height: 3;
        margin-bottom: 1;
    }

    #per-core-grid {
        grid-size: 4;
        grid-gutter: 0 1;
        height: auto;
    }

    #per-core-grid Sparkline {
        height: 2;
    }

    Sparkline.ecore > .sparkline--max-color {
        color: $success;
    }

    Sparkline.pcore > .sparkline--max-color {
        color: $accent;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize MetricPanel."""
        super().__init__(*args, **kwargs)
        self._core_charts: list[Sparkline] = []
        self._show_per_core = False

    @property
    def show_per_core(self) -> bool:
        """Whether the CPU chart is split per core."""
        return self._show_per_core

    def compose(self) -> ComposeResult:
        """Compose the metric rows and charts."""
        yield Static("CPU   --", id="cpu-row")
        yield Sparkline([], id="cpu-chart")
        yield Grid(id="per-core-grid")
        yield Static("GPU   --", id="gpu-row")
        yield Sparkline([], id="gpu-chart")
        yield Static("RAM   --", id="memory-row")
        yield Sparkline([], id="memory-chart")
        yield Static("Disk  --", id="disk-row")
        yield Static("", id="io-row")

    def on_mount(self) -> None:
        """Apply the initial CPU chart mode."""
        self.set_per_core(self._show_per_core)

    def set_per_core(self, enabled: bool) -> None:
        """Switch between the overall CPU chart and the per-core grid."""
        self._show_per_core = enabled
        self.query_one("#cpu-chart", Sparkline).display = not enabled
        self.query_one("#per-core-grid", Grid).display = enabled

    def update_metrics(
        self,
        metrics: UsageMetrics,
        cpu_history: list[float],
        per_core_history: list[list[float]],
        gpu_history: list[float],
        memory_history: list[float],
    ) -> None:
        """Refresh every row and chart from a snapshot and its histories."""
        self.query_one("#cpu-row", Static).update(f"CPU  {_colored_percent(metrics.cpu_percent)}")
        self.query_one("#gpu-row", Static).update(f"GPU  {_colored_percent(metrics.gpu_percent)}")
        self.query_one("#memory-row", Static).update(
            f"RAM  {_colored_percent(metrics.memory_percent)} "
            f"{metrics.memory_used_gb:.1f}/{metrics.memory_total_gb:.1f} GB"
        )

        self.query_one("#disk-row", Static).update(disk_text(metrics))
        self.query_one("#io-row", Static).update(
            f"Net  ↓{format_rate(metrics.network_down_kbps)} ↑{format_rate(metrics.network_up_kbps)}\n"
            f"I/O  R{format_rate(metrics.disk_read_kbps)}  W{format_rate(metrics.disk_write_kbps)}"
        )

        self.query_one("#cpu-chart", Sparkline).data = cpu_history
        self.query_one("#gpu-chart", Sparkline).data = gpu_history
        self.query_one("#memory-chart", Sparkline).data = memory_history
        self._update_core_charts(per_core_history, metrics.efficiency_core_count)

    def _update_core_charts(self, per_core_history: list[list[float]], efficiency_cores: int) -> None:
        """Rebuild the per-core grid when the core count changes, else update data."""
        if len(self._core_charts) != len(per_core_history):
            grid = self.query_one("#per-core-grid", Grid)
            grid.remove_children()
            # Efficiency cores are enumerated first on Apple Silicon
            self._core_charts = [
                Sparkline(history, classes="ecore" if index < efficiency_cores else "pcore")
                for index, history in enumerate(per_core_history)
            ]
            grid.mount_all(self._core_charts)
            return

        for chart, history in zip(self._core_charts, per_core_history):
            chart.data = history


class SysMonitorApp(App):
    """Main sysmonitor application."""

    TITLE = "sysmonitor"
    SUB_TITLE = "Host Usage Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #status-line {
        dock: top;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("c", "toggle_per_core", "Per-core"),
        ("m", "toggle_mode", "Display mode"),
    ]

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize the SysMonitorApp."""
        super().__init__()
        self._settings = settings or get_settings()
        self._update_queue: Queue[UsageMetrics] = Queue()
        self._monitor = SystemMonitor(
            self._update_queue,
            usage=SystemUsage.from_settings(self._settings),
            poll_rate=self._settings.poll_rate,
            history_size=self._settings.history_size,
        )
        self._display_mode = self._settings.display_mode
        self._latest: UsageMetrics | None = None

    @property
    def display_mode(self) -> DisplayMode:
        """Current status line display mode."""
        return self._display_mode

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield StatusLine(id="status-line")
        yield MetricPanel(id="metric-panel")
        yield Footer()

    def on_mount(self) -> None:
        """Start the system monitor when the app is mounted."""
        self.query_one(StatusLine).mode = self._display_mode
        self.query_one(MetricPanel).set_per_core(self._settings.show_per_core)
        self._monitor.start()
        # Set up a timer to poll the queue for updates
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Check the queue for snapshots and refresh the UI with the newest one."""
        snapshot = None
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break

        if snapshot is not None:
            self._latest = snapshot
            self._update_ui(snapshot)

    def _update_ui(self, snapshot: UsageMetrics) -> None:
        """Update the UI with the new snapshot."""
        cpu_history = self._monitor.get_cpu_history()
        try:
            self.query_one(StatusLine).update_status(snapshot, cpu_history)
            self.query_one(MetricPanel).update_metrics(
                snapshot,
                cpu_history,
                self._monitor.get_per_core_history(),
                self._monitor.get_gpu_history(),
                self._monitor.get_memory_history(),
            )
        except Exception:
            # A rendering problem must not stop the next refresh
            logger.exception("ui_update_failed")

    def action_toggle_per_core(self) -> None:
        """Switch the CPU chart between overall and per-core views."""
        panel = self.query_one(MetricPanel)
        panel.set_per_core(not panel.show_per_core)
        self.notify("CPU: per-core" if panel.show_per_core else "CPU: overall")

    def action_toggle_mode(self) -> None:
        """Cycle the status line display mode."""
        modes = list(DisplayMode)
        self._display_mode = modes[(modes.index(self._display_mode) + 1) % len(modes)]
        status = self.query_one(StatusLine)
        status.mode = self._display_mode
        if self._latest is not None:
            status.update_status(self._latest, self._monitor.get_cpu_history())
        self.notify(f"Status: {self._display_mode.value}")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()


def main() -> None:
    """Entry point for sysmonitor application."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file or DEFAULT_LOG_FILE)
    app = SysMonitorApp(settings)
    app.run()


if __name__ == "__main__":
    main()
