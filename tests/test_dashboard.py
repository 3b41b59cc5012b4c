from rich.console import Console

from core.config import Config
from core.request_types import CallRecord, FailureKind
from ui.dashboard import Dashboard
from ui.log_utils import FileLogger


def _render(dashboard: Dashboard) -> str:
    console = Console(width=160, record=True)
    console.print(dashboard._build_layout())
    return console.export_text()


def test_counts_calls_and_mirrors_to_file(tmp_path):
    dashboard = Dashboard(Config(), FileLogger(log_root=tmp_path))

    dashboard.log_call(CallRecord("wp-rest-1", "GET", "/api/v1.0/signing/req-1", 200, 8.0))
    dashboard.log_call(
        CallRecord(
            "wp-rest-2",
            "POST",
            "/api/v1.0/wordpress/signing",
            400,
            9.0,
            kind=FailureKind.BACKEND_REJECTED,
            message="SignerEmail: Required.",
        )
    )

    output = _render(dashboard)
    assert "OK: 1" in output
    assert "Failed: 1" in output
    assert "SignerEmail: Required." in output
    assert len((tmp_path / "proxy.log").read_text().splitlines()) == 2


def test_auth_state_is_shown(tmp_path):
    dashboard = Dashboard(Config(), FileLogger(log_root=tmp_path))

    dashboard.log_auth("wp-auth-1", outcome="rejected", duration_ms=40.0, status=401, message="Invalid key")

    output = _render(dashboard)
    assert "Auth: rejected" in output
    assert "authenticate rejected: Invalid key" in output


def test_idle_footer_shows_listen_address(tmp_path):
    output = _render(Dashboard(Config(), FileLogger(log_root=tmp_path)))

    assert "Waiting for requests..." in output
    assert "http://127.0.0.1:8080/utilitysign/v1" in output
