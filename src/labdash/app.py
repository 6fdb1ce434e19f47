"""labdash - Textual dashboard over the polling engine."""

import argparse
import json
import logging
from dataclasses import asdict, replace
from enum import Enum
from pathlib import Path

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.widgets import DataTable, Footer, Sparkline, Static

from labdash.client import MetricsClient
from labdash.config import Config, load_config, parse_config
from labdash.errors import FetchError
from labdash.logging_setup import configure_logging
from labdash.models import GpuDevice, Liveness, Snapshot
from labdash.monitor import PollScheduler
from labdash.state import DashboardState

logger = logging.getLogger(__name__)

BAR_WIDTH = 20


class SortKey(Enum):
    """Sort keys for the GPU table."""

    ID = "id"
    UTIL = "util"
    MEM = "mem"
    TEMP = "temp"


def format_bar(percent: float, color: str = "green", width: int = BAR_WIDTH) -> str:
    """Render a percentage as a fixed-width markup bar."""
    filled = int(max(0.0, min(percent, 100.0)) / 100 * width)
    return f"[{color}]" + "█" * filled + f"[/{color}]" + "[dim]░[/dim]" * (width - filled)


def format_percent(used: float, total: float) -> float:
    """Usage percentage, 0 when the total is unknown."""
    if total <= 0:
        return 0.0
    return used / total * 100


def liveness_label(liveness: Liveness) -> str:
    if liveness is Liveness.ONLINE:
        return "[bold green]● System Online[/bold green]"
    return "[bold yellow]● Reconnecting[/bold yellow]"


class StatusHeader(Static):
    """Header line with lab identity, host details and endpoint liveness."""

    DEFAULT_CSS = """
    StatusHeader {
        height: auto;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, config: Config, *args, **kwargs) -> None:
        """Initialize StatusHeader."""
        super().__init__(*args, **kwargs)
        self._dash_config = config
        self._liveness = Liveness.OFFLINE
        self._snapshot = Snapshot()

    @property
    def liveness(self) -> Liveness:
        return self._liveness

    def on_mount(self) -> None:
        self.update(self._header_text())

    def update_state(self, state: DashboardState) -> None:
        self._liveness = state.liveness
        self._snapshot = state.snapshot
        self.update(self._header_text())

    def _header_text(self) -> str:
        system = self._snapshot.system
        return (
            f"[b]{self._dash_config.project_name}[/b] · {self._dash_config.lab_name}   "
            f"{liveness_label(self._liveness)}\n"
            f"{system.hostname}  {system.os}  kernel {system.kernel}  "
            f"up {system.uptime}  load {system.load_avg:.2f}  updated {self._snapshot.updated}"
        )


class MetricPanel(Vertical):
    """A single metric: current value bar plus a sparkline of recent samples."""

    DEFAULT_CSS = """
    MetricPanel {
        width: 1fr;
        height: auto;
        border: solid $primary;
        padding: 0 1;
    }

    MetricPanel Sparkline {
        height: 3;
    }
    """

    def __init__(self, title: str, color: str, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._label = title
        self._bar_color = color
        self.percent: float = 0.0
        self.detail: str = "Waiting for data..."
        self.samples: list[float] = []

    def compose(self) -> ComposeResult:
        yield Static(self._summary(), classes="summary")
        yield Sparkline([0.0], summary_function=max)

    def update_metric(self, percent: float, detail: str, samples: tuple[float, ...]) -> None:
        self.percent = percent
        self.detail = detail
        self.samples = list(samples)
        try:
            self.query_one(".summary", Static).update(self._summary())
            self.query_one(Sparkline).data = self.samples
        except Exception:
            pass  # Widget not mounted yet

    def _summary(self) -> str:
        return (
            f"[b]{self._label}[/b] {self.percent:5.1f}%\n"
            f"\\[{format_bar(self.percent, self._bar_color)}]\n"
            f"{self.detail}"
        )


class GpuTable(Container):
    """Container for the per-GPU data table."""

    DEFAULT_CSS = """
    GpuTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize GpuTable."""
        super().__init__(*args, **kwargs)
        self._current_ids: set[int] = set()
        self._sort_key: SortKey = SortKey.ID
        self._sort_reverse: bool = False

    @property
    def sort_key(self) -> SortKey:
        """Get current sort key."""
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key and return it."""
        keys = list(SortKey)
        current_index = keys.index(self._sort_key)
        self._sort_key = keys[(current_index + 1) % len(keys)]
        # Busiest and hottest first
        self._sort_reverse = self._sort_key is not SortKey.ID
        return self._sort_key

    def compose(self) -> ComposeResult:
        """Compose the GPU table."""
        yield DataTable(id="gpu-table")

    def on_mount(self) -> None:
        table = self.query_one("#gpu-table", DataTable)
        table.cursor_type = "row"
        table.add_column("ID", key="id", width=4)
        table.add_column("Name", key="name", width=24)
        table.add_column("UTIL%", key="util", width=7)
        table.add_column("MEM%", key="mem_util", width=7)
        table.add_column("Memory", key="memory", width=16)
        table.add_column("Power", key="power", width=8)
        table.add_column("Fan", key="fan", width=6)
        table.add_column("Temp", key="temp", width=6)

    def update_gpus(self, gpus: tuple[GpuDevice, ...]) -> None:
        """
        Update the table with new per-device data.

        Existing rows are updated cell by cell; rows for devices that
        disappeared are removed.
        """
        table = self.query_one("#gpu-table", DataTable)
        ordered = self._sort_gpus(gpus)
        new_ids = {gpu.id for gpu in ordered}

        for gpu_id in self._current_ids - new_ids:
            try:
                table.remove_row(str(gpu_id))
            except Exception:
                pass  # Row may not exist

        for gpu in ordered:
            row_key = str(gpu.id)
            if gpu.id in self._current_ids:
                self._update_row(table, row_key, gpu)
            else:
                self._add_row(table, row_key, gpu)

        self._current_ids = new_ids

    def _sort_gpus(self, gpus: tuple[GpuDevice, ...]) -> list[GpuDevice]:
        key_func = {
            SortKey.ID: lambda g: g.id,
            SortKey.UTIL: lambda g: g.util,
            SortKey.MEM: lambda g: g.mem_util,
            SortKey.TEMP: lambda g: g.temp,
        }
        return sorted(gpus, key=key_func[self._sort_key], reverse=self._sort_reverse)

    @staticmethod
    def _cells(gpu: GpuDevice) -> dict[str, str]:
        return {
            "id": str(gpu.id),
            "name": gpu.name[:24],
            "util": f"{gpu.util:3d}",
            "mem_util": f"{gpu.mem_util:3d}",
            "memory": f"{gpu.mem_used}/{gpu.mem_total}",
            "power": f"{gpu.power}W",
            "fan": f"{gpu.fan}%",
            "temp": f"{gpu.temp}°C",
        }

    def _update_row(self, table: DataTable, row_key: str, gpu: GpuDevice) -> None:
        try:
            for column, value in self._cells(gpu).items():
                table.update_cell(row_key, column, value)
        except Exception:
            pass  # Row may have been removed

    def _add_row(self, table: DataTable, row_key: str, gpu: GpuDevice) -> None:
        try:
            table.add_row(*self._cells(gpu).values(), key=row_key)
        except Exception:
            pass  # Row may already exist


class DiskPanel(Static):
    """Partition and per-user disk usage."""

    DEFAULT_CSS = """
    DiskPanel {
        width: 1fr;
        height: 1fr;
        border: solid $primary;
        padding: 0 1;
    }
    """

    summary: str = ""

    def update_disk(self, snapshot: Snapshot) -> None:
        disk = snapshot.disk
        lines = [
            f"[b]Disk[/b] {disk.used:.0f}/{disk.total:.0f} GB "
            f"({format_percent(disk.used, disk.total):.1f}%)"
        ]
        for part in disk.partitions:
            pct = format_percent(part.used, part.total)
            lines.append(f"{part.path:<10} \\[{format_bar(pct, 'magenta', 12)}] {part.label}")
        if disk.users:
            lines.append("")
            lines.append("[b]Top users[/b]")
            for user in disk.users:
                lines.append(f"  {user.name:<16} {user.used:8.1f} GB")
        self.summary = "\n".join(lines)
        self.update(self.summary)


class LabDashApp(App):
    """Main labdash application."""

    TITLE = "labdash"
    SUB_TITLE = "Lab Telemetry Dashboard"

    CSS = """
    Screen {
        layout: vertical;
    }

    #status-header {
        dock: top;
    }

    #metrics {
        height: auto;
    }

    #details {
        height: 1fr;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort GPUs"),
    ]

    def __init__(self, config: Config | None = None, scheduler: PollScheduler | None = None) -> None:
        """Initialize the LabDashApp."""
        super().__init__()
        self._dash_config = config or Config()
        self._scheduler = scheduler or PollScheduler(self._dash_config)
        self._last_cycle = -1

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield StatusHeader(self._dash_config, id="status-header")
        yield Horizontal(
            MetricPanel("CPU", "green", id="cpu-panel"),
            MetricPanel("RAM", "cyan", id="ram-panel"),
            MetricPanel("GPU", "yellow", id="gpu-panel"),
            id="metrics",
        )
        yield Horizontal(GpuTable(), DiskPanel(id="disk-panel"), id="details")
        yield Footer()

    def on_mount(self) -> None:
        """Start polling when the app is mounted."""
        self._scheduler.start()
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Read the latest state and refresh the UI when a new cycle landed."""
        try:
            state = self._scheduler.store.read()
            if state.cycle != self._last_cycle:
                self._last_cycle = state.cycle
                self._update_ui(state)
        except Exception:
            # The dashboard must keep running whatever the data looks like
            pass

    def _update_ui(self, state: DashboardState) -> None:
        """Update every widget from one consistent state."""
        snapshot = state.snapshot
        self.query_one("#status-header", StatusHeader).update_state(state)

        cpu, ram, gpu = snapshot.cpu, snapshot.ram, snapshot.gpu
        self.query_one("#cpu-panel", MetricPanel).update_metric(
            cpu.load,
            f"{cpu.model} · {cpu.cores}C/{cpu.threads}T",
            snapshot.history.cpu_load,
        )
        self.query_one("#ram-panel", MetricPanel).update_metric(
            format_percent(ram.used, ram.total),
            f"{ram.used:.1f}/{ram.total:.1f} GB {ram.type}",
            snapshot.history.ram_load,
        )
        self.query_one("#gpu-panel", MetricPanel).update_metric(
            gpu.avg_util,
            f"{gpu.name} · CUDA {gpu.cuda} · {gpu.power_total}W · {gpu.avg_temp}/{gpu.max_temp}°C",
            snapshot.history.gpu_load,
        )
        self.query_one(GpuTable).update_gpus(snapshot.gpus)
        self.query_one("#disk-panel", DiskPanel).update_disk(snapshot)

    def action_sort(self) -> None:
        """Cycle the GPU table sort key."""
        try:
            gpu_table = self.query_one(GpuTable)
            new_sort_key = gpu_table.cycle_sort()
            self.notify(f"Sort: {new_sort_key.value.upper()}")
        except Exception:
            pass

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._scheduler.stop()
        self.exit()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="labdash", description="Lab telemetry dashboard")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.json")
    parser.add_argument("--endpoint", default=None, help="Override the metrics endpoint URL")
    parser.add_argument(
        "--remote-config",
        action="store_true",
        help="Take lab settings from the server's /api/config instead of the local file",
    )
    parser.add_argument("--log-file", type=Path, default=None, help="Write JSON logs to this file")
    parser.add_argument("--once", action="store_true", help="Poll once and print the snapshot as JSON")
    return parser


def resolve_config(args: argparse.Namespace) -> Config:
    config = load_config(args.config)
    if args.endpoint:
        config = replace(config, monitor=replace(config.monitor, endpoint=args.endpoint))
    if args.remote_config:
        config = fetch_remote_config(config)
    return config


def fetch_remote_config(config: Config) -> Config:
    """
    Replace lab settings with the document served at the endpoint's /api/config.

    The endpoint and timeout are kept from ``config``. An unreachable server
    leaves ``config`` unchanged.
    """
    client = MetricsClient(config.monitor.endpoint, timeout=config.monitor.timeout)
    try:
        remote = parse_config(client.fetch_config())
    except FetchError as exc:
        logger.warning(
            "remote config unavailable: %s, keeping local config",
            exc,
            extra={"event": "config_defaulted"},
        )
        return config
    finally:
        client.close()

    monitor = replace(remote.monitor, endpoint=config.monitor.endpoint, timeout=config.monitor.timeout)
    logger.info("config loaded from server", extra={"event": "config_loaded"})
    return replace(remote, monitor=monitor)


def main(argv: list[str] | None = None) -> int:
    """Entry point for the labdash dashboard."""
    args = build_parser().parse_args(argv)
    # The TUI owns the terminal, so console logging only in --once mode
    configure_logging(log_file=args.log_file, console=args.once)
    config = resolve_config(args)
    scheduler = PollScheduler(config)

    if args.once:
        try:
            state = scheduler.run_once()
        finally:
            scheduler.stop()
        payload = {"liveness": state.liveness.value, "snapshot": asdict(state.snapshot)}
        print(json.dumps(payload, indent=2))
        return 0 if state.liveness is Liveness.ONLINE else 1

    app = LabDashApp(config, scheduler)
    app.run()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
