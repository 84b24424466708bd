"""pyrevive - Operator console."""

from datetime import datetime
from queue import Empty, Queue

from textual import work
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import DataTable, Footer, Log

from pyrevive.config import Settings, configure_logging
from pyrevive.errors import PyreviveError
from pyrevive.gateway import SnapshotGateway
from pyrevive.models import ProcessEntry, SnapshotSummary
from pyrevive.monitor import ProcessMonitor
from pyrevive.service import SnapshotService


def format_timestamp(value: float) -> str:
    """Format an epoch timestamp as local wall-clock time."""
    return datetime.fromtimestamp(value).strftime("%H:%M:%S")


def _selected_key(table: DataTable) -> str | None:
    if table.row_count == 0:
        return None
    try:
        cell_key = table.coordinate_to_cell_key(table.cursor_coordinate)
    except Exception:
        return None  # Cursor outside the table
    return cell_key.row_key.value


class ProcessTable(Container):
    """Container for the running-process table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._current_pids: set[int] = set()

    def compose(self) -> ComposeResult:
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"
        table.add_column("PID", key="pid", width=8)
        table.add_column("Name", key="name", width=20)
        table.add_column("TTY", key="tty", width=12)
        table.add_column("GUI", key="gui", width=4)

    def update_processes(self, processes: list[ProcessEntry]) -> None:
        """
        Update the table with a new listing.

        Existing rows are updated in place; rows for vanished pids are removed.
        """
        table = self.query_one("#process-table", DataTable)
        new_pids = {proc.pid for proc in processes}

        for pid in self._current_pids - new_pids:
            try:
                table.remove_row(str(pid))
            except Exception:
                pass  # Row may not exist

        for proc in sorted(processes, key=lambda p: p.pid):
            row_key = str(proc.pid)
            gui = "yes" if proc.is_gui else ""
            try:
                if proc.pid in self._current_pids:
                    table.update_cell(row_key, "name", proc.name[:20])
                    table.update_cell(row_key, "tty", proc.terminal)
                    table.update_cell(row_key, "gui", gui)
                else:
                    table.add_row(str(proc.pid), proc.name[:20], proc.terminal, gui, key=row_key)
            except Exception:
                pass  # Row changed underneath us

        self._current_pids = new_pids

    def selected_pid(self) -> int | None:
        key = _selected_key(self.query_one("#process-table", DataTable))
        return int(key) if key is not None else None


class SavedTable(Container):
    """Container for the saved-snapshot table."""

    DEFAULT_CSS = """
    SavedTable {
        height: 1fr;
        border: solid $secondary;
    }
    """

    def compose(self) -> ComposeResult:
        yield DataTable(id="saved-table")

    def on_mount(self) -> None:
        table = self.query_one("#saved-table", DataTable)
        table.cursor_type = "row"
        table.add_column("Old PID", key="pid", width=8)
        table.add_column("Name", key="name", width=24)
        table.add_column("TTY", key="tty", width=12)
        table.add_column("Exe", key="exe")
        table.add_column("Saved", key="saved", width=9)

    def show_summaries(self, summaries: list[SnapshotSummary]) -> None:
        table = self.query_one("#saved-table", DataTable)
        table.clear()
        # The same pid may be saved twice, so keys carry the position too.
        for index, summary in enumerate(summaries):
            table.add_row(
                str(summary.original_pid),
                summary.display_name[:24],
                summary.terminal_path,
                summary.executable_path,
                format_timestamp(summary.saved_at),
                key=f"{summary.original_pid}:{index}",
            )

    def selected_pid(self) -> int | None:
        key = _selected_key(self.query_one("#saved-table", DataTable))
        return int(key.split(":", 1)[0]) if key is not None else None


class PyreviveApp(App):
    """Main pyrevive application."""

    TITLE = "pyrevive"
    SUB_TITLE = "Process Snapshot & Restore"

    CSS = """
    Screen {
        layout: vertical;
    }

    Horizontal {
        height: 2fr;
    }

    #activity-log {
        height: 1fr;
        border: solid $accent;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("s", "snapshot", "Snapshot & kill"),
        ("r", "restore", "Restore"),
        ("f", "forget", "Forget"),
        ("l", "logs", "Logs"),
        ("f5", "refresh", "Refresh"),
    ]

    def __init__(
        self,
        settings: Settings | None = None,
        gateway: SnapshotGateway | None = None,
    ) -> None:
        super().__init__()
        self._settings = settings if settings is not None else Settings()
        if gateway is None:
            gateway = SnapshotGateway(
                SnapshotService.from_settings(self._settings),
                self._settings.secret,
                self._settings.diagnostic_paths,
            )
        self._gateway = gateway
        self._token = self._settings.secret
        self._update_queue: Queue[list[ProcessEntry]] = Queue()
        self._monitor = ProcessMonitor(self._update_queue, poll_rate=self._settings.poll_rate)

    @property
    def gateway(self) -> SnapshotGateway:
        return self._gateway

    def compose(self) -> ComposeResult:
        yield Horizontal(ProcessTable(), SavedTable())
        yield Log(id="activity-log")
        yield Footer()

    def on_mount(self) -> None:
        self._monitor.start()
        self.set_interval(0.5, self._check_for_updates)
        self.call_after_refresh(self.refresh_saved)

    def write_activity(self, message: str) -> None:
        """Append a line to the activity log."""
        stamp = datetime.now().strftime("%H:%M:%S")
        self.query_one("#activity-log", Log).write_line(f"[{stamp}] {message}")

    def _check_for_updates(self) -> None:
        # Drain the queue, keep only the newest listing
        listing = None
        while True:
            try:
                listing = self._update_queue.get_nowait()
            except Empty:
                break
        if listing is not None:
            self.query_one(ProcessTable).update_processes(listing)

    def refresh_saved(self) -> None:
        try:
            payload = self._gateway.saved(self._token)
        except PyreviveError as exc:
            self._record_error("list saved", exc)
            return
        summaries = [
            SnapshotSummary(
                original_pid=entry["oldpid"],
                display_name=entry["name"],
                terminal_path=entry["tty"],
                executable_path=entry["exe"],
                saved_at=entry["saved_at"],
            )
            for entry in payload["saved"]
        ]
        self.query_one(SavedTable).show_summaries(summaries)

    def _record_error(self, action: str, exc: PyreviveError) -> None:
        status, body = SnapshotGateway.error_payload(exc)
        self.write_activity(f"{action.upper()} ERR {status}: {body}")

    def action_snapshot(self) -> None:
        pid = self.query_one(ProcessTable).selected_pid()
        if pid is None:
            self.notify("No process selected")
            return
        self.snapshot_process(pid)

    def action_restore(self) -> None:
        pid = self.query_one(SavedTable).selected_pid()
        if pid is None:
            self.notify("No saved snapshot selected")
            return
        self.restore_process(pid)

    def action_forget(self) -> None:
        pid = self.query_one(SavedTable).selected_pid()
        if pid is None:
            self.notify("No saved snapshot selected")
            return
        try:
            self._gateway.forget(self._token, pid)
        except PyreviveError as exc:
            self._record_error("forget", exc)
            return
        self.write_activity(f"Forgot saved {pid}")
        self.refresh_saved()

    def action_logs(self) -> None:
        try:
            logs = self._gateway.logs(self._token)
        except PyreviveError as exc:
            self._record_error("logs", exc)
            return
        for name, text in logs.items():
            if text.strip():
                self.write_activity(f"--- {name} ---")
                for line in text.strip().splitlines()[-20:]:
                    self.write_activity(line)

    def action_refresh(self) -> None:
        self.refresh_saved()

    @work(exclusive=False)
    async def snapshot_process(self, pid: int) -> None:
        self.write_activity(f"Request snapshot {pid}")
        try:
            payload = await self._gateway.snapshot(self._token, pid)
        except PyreviveError as exc:
            self._record_error("snapshot", exc)
            return
        self.write_activity(f"SNAPSHOT OK: {payload['out']}")
        if payload["kill_error"]:
            self.write_activity(f"Kill step: {payload['kill_error']}")
        self.refresh_saved()

    @work(exclusive=False)
    async def restore_process(self, oldpid: int, newpid: int = 0) -> None:
        self.write_activity(f"Request restore {oldpid} -> {newpid}")
        try:
            payload = await self._gateway.restore(self._token, oldpid, newpid)
        except PyreviveError as exc:
            self._record_error("restore", exc)
            return
        self.write_activity(f"RESTORE OK: {payload['out']}")
        if payload["spawned_pid"]:
            self.write_activity(f"Spawned PID: {payload['spawned_pid']} ({payload['strategy'] or 'existing'})")
        else:
            self.write_activity(f"No spawned PID; check {self._settings.headless_log_path}")
        self.refresh_saved()

    def action_quit(self) -> None:
        self._monitor.stop()
        self.exit()


def main() -> None:
    """Entry point for pyrevive."""
    settings = Settings.from_env()
    configure_logging(settings)
    app = PyreviveApp(settings)
    app.run()


if __name__ == "__main__":
    main()
