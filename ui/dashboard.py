"""Real-time CLI dashboard for proxy monitoring."""

from datetime import datetime
from threading import Lock
from typing import Any

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.config import Config
from core.request_types import CallRecord
from ui.log_utils import FileLogger

console = Console()


class CallInfo:
    """Info about a single proxied call."""

    def __init__(self, record: CallRecord, timestamp: datetime):
        self.method = record.method
        self.path = record.path[:48] + "..." if len(record.path) > 48 else record.path
        self.status = record.status
        self.duration_ms = record.duration_ms
        self.correlation_id = record.correlation_id
        self.ok = record.ok
        self.timestamp = timestamp


class Dashboard:
    """Real-time dashboard showing recent backend calls and auth state."""

    def __init__(self, config: Config, file_logger: FileLogger | None = None):
        self.config = config
        self._files = file_logger or FileLogger(debug=config.server.debug)
        self._lock = Lock()
        self._calls: list[CallInfo] = []
        self._max_calls = 10
        self._counts = {"ok": 0, "failed": 0, "auth": 0}
        self._last_auth: str | None = None
        self._errors: list[str] = []
        self._live: Live | None = None

    def start(self) -> "Dashboard":
        """Start the live dashboard."""
        self._live = Live(
            self._build_layout(),
            console=console,
            refresh_per_second=4,
            screen=False,
        )
        self._live.start()
        return self

    def stop(self) -> None:
        """Stop the live dashboard."""
        if self._live:
            self._live.stop()

    def log_call(self, record: CallRecord, *, request_body: Any = None, response_body: Any = None) -> None:
        """Log a proxied backend call."""
        with self._lock:
            self._counts["ok" if record.ok else "failed"] += 1
            self._calls.insert(0, CallInfo(record, datetime.now()))
            self._calls = self._calls[: self._max_calls]
            if not record.ok:
                self._push_error(f"{record.method} {record.path} {record.status}: {record.message or ''}")
            self._files.log_call(record, request_body=request_body, response_body=response_body)
            self._refresh()

    def log_auth(
        self,
        correlation_id: str,
        *,
        outcome: str,
        duration_ms: float,
        status: int | None = None,
        message: str | None = None,
    ) -> None:
        """Log a credential exchange attempt."""
        with self._lock:
            self._counts["auth"] += 1
            self._last_auth = f"{outcome} at {datetime.now().strftime('%H:%M:%S')} ({duration_ms:.0f}ms)"
            if outcome != "authenticated":
                self._push_error(f"authenticate {outcome}: {message or status}")
            self._files.log_auth(
                correlation_id,
                outcome=outcome,
                duration_ms=duration_ms,
                status=status,
                message=message,
            )
            self._refresh()

    def log_error(self, route: str, status: int, message: str) -> None:
        """Log an error."""
        with self._lock:
            self._push_error(f"{route} {status}: {message}")
            self._files.log_error(route, status, message)
            self._refresh()

    def _push_error(self, line: str) -> None:
        truncated = line[:80] + "..." if len(line) > 80 else line
        self._errors.insert(0, truncated)
        self._errors = self._errors[:3]

    def _refresh(self) -> None:
        """Refresh the display."""
        if self._live:
            self._live.update(self._build_layout())

    def _build_layout(self) -> Layout:
        """Build the dashboard layout."""
        layout = Layout()

        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="body"),
            Layout(name="footer", size=5),
        )

        layout["header"].update(self._build_header())
        layout["body"].update(self._build_calls_panel())
        layout["footer"].update(self._build_footer())

        return layout

    def _build_header(self) -> Panel:
        """Build header with stats."""
        stats = Text()
        stats.append("UtilitySign Proxy", style="bold cyan")
        stats.append("  |  ")
        stats.append(f"OK: {self._counts['ok']}", style="green")
        stats.append("  |  ")
        stats.append(f"Failed: {self._counts['failed']}", style="red")
        stats.append("  |  ")
        stats.append(f"Auth: {self._last_auth or 'not yet'}", style="blue")
        stats.append("  |  ")
        stats.append(f"Port: {self.config.server.port}", style="dim")

        return Panel(stats, style="cyan")

    def _build_calls_panel(self) -> Panel:
        """Build recent calls panel."""
        if self._calls:
            table = Table(show_header=True, header_style="bold", expand=True, box=None)
            table.add_column("Time", style="dim", width=8)
            table.add_column("Method", width=6)
            table.add_column("Path", ratio=2)
            table.add_column("Status", width=6)
            table.add_column("ms", width=8, justify="right")
            table.add_column("Correlation", ratio=1, style="dim")

            for call in self._calls:
                table.add_row(
                    call.timestamp.strftime("%H:%M:%S"),
                    call.method,
                    call.path,
                    Text(str(call.status), style="green" if call.ok else "red"),
                    f"{call.duration_ms:.0f}",
                    call.correlation_id,
                )

            content = table
        else:
            content = Text("Waiting for requests...", style="dim")

        return Panel(content, title="[blue]Backend calls[/blue]", border_style="blue")

    def _build_footer(self) -> Panel:
        """Build footer with errors and help."""
        if self._errors:
            error_text = Text()
            for err in self._errors:
                error_text.append("! ", style="red bold")
                error_text.append(err + "\n", style="red")
            content = error_text
        else:
            content = Text(
                f"Backend: {self.config.backend.base_url}  "
                f"Listening on http://{self.config.server.host}:{self.config.server.port}/utilitysign/v1",
                style="dim",
            )

        return Panel(content, title="[dim]Status[/dim]", border_style="dim")
