"""Shared logging utilities."""

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from core.request_types import CallRecord

LOG_ROOT = Path.cwd() / "logs"
CLI_LOG_FILE = LOG_ROOT / "proxy.log"

SENSITIVE_BODY_KEYS = {"pluginsecret", "pluginkey", "personalnumber", "fodselsnummer", "accesstoken"}


def write_cli_log(
    level: str,
    message: str,
    /,
    *,
    log_file: Path | None = None,
    **extra: Any,
) -> None:
    """Append a line to the rolling CLI log file."""
    log_file = log_file or CLI_LOG_FILE
    log_file.parent.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S")
    extra_str = " ".join(f"{k}={v}" for k, v in extra.items() if v is not None) if extra else ""
    line = f"[{timestamp}] {level}: {message}"
    if extra_str:
        line += f" {extra_str}"
    line += "\n"
    with log_file.open("a") as f:
        f.write(line)


def write_call_log(record: CallRecord, *, log_file: Path | None = None) -> None:
    """Write the one log line every proxied call produces."""
    if record.ok:
        level = "INFO"
    elif record.status >= 500:
        level = "ERROR"
    else:
        level = "WARNING"
    write_cli_log(
        level,
        f"{record.method} {record.path}",
        log_file=log_file,
        correlation_id=record.correlation_id,
        status=record.status,
        duration_ms=f"{record.duration_ms:.2f}",
        kind=record.kind.value if record.kind else None,
        code=record.code,
        message=json.dumps(record.message) if record.message else None,
    )


def write_backend_log(
    record: CallRecord,
    request_body: Any,
    response_body: Any,
    *,
    log_root: Path = LOG_ROOT,
) -> Path:
    """Write a full debug entry for one call, grouped by correlation id."""
    payload = {
        "timestamp": _utc_now(),
        "correlation_id": record.correlation_id,
        "method": record.method,
        "path": record.path,
        "status": record.status,
        "duration_ms": round(record.duration_ms, 2),
        "kind": record.kind.value if record.kind else None,
        "code": record.code,
        "message": record.message,
        "request_body": _redact_body(request_body),
        "response_body": _redact_body(response_body),
    }
    return _write_json(log_root / "backend" / _safe_folder(record.correlation_id), payload)


def clear_logs(log_root: Path = LOG_ROOT) -> int:
    """Delete debug call logs from previous runs, keeping the CLI log."""
    folder = log_root / "backend"
    if not folder.exists():
        return 0
    deleted = 0
    for old_file in folder.glob("*/*.json"):
        try:
            old_file.unlink()
            deleted += 1
        except OSError:
            pass
    return deleted


class FileLogger:
    """``RequestLogger`` that only writes log files (no live display)."""

    def __init__(self, *, debug: bool = False, log_root: Path = LOG_ROOT) -> None:
        self.debug = debug
        self.log_root = log_root
        self.log_file = log_root / "proxy.log"

    def log_call(self, record: CallRecord, *, request_body: Any = None, response_body: Any = None) -> None:
        write_call_log(record, log_file=self.log_file)
        if self.debug:
            write_backend_log(record, request_body, response_body, log_root=self.log_root)

    def log_auth(
        self,
        correlation_id: str,
        *,
        outcome: str,
        duration_ms: float,
        status: int | None = None,
        message: str | None = None,
    ) -> None:
        write_cli_log(
            "AUTH" if outcome == "authenticated" else "ERROR",
            f"authenticate {outcome}",
            log_file=self.log_file,
            correlation_id=correlation_id,
            status=status,
            duration_ms=f"{duration_ms:.2f}",
            message=json.dumps(message) if message else None,
        )

    def log_error(self, route: str, status: int, message: str) -> None:
        write_cli_log("ERROR", message[:200], log_file=self.log_file, route=route, status=status)


def _write_json(folder: Path, payload: dict[str, Any]) -> Path:
    """Write payload to a unique JSON file in the given folder."""
    folder.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S.%fZ")
    file_path = folder / f"{timestamp}_{uuid4().hex}.json"
    file_path.write_text(json.dumps(payload, indent=2, default=str))
    return file_path


def _safe_folder(correlation_id: str) -> str:
    return "".join(c if c.isalnum() or c in "-_." else "_" for c in correlation_id) or "unknown"


def _redact_body(body: Any) -> Any:
    """Mask secrets and national identity numbers in logged payloads."""
    if isinstance(body, dict):
        return {
            key: _mask(str(value)) if key.lower() in SENSITIVE_BODY_KEYS and value else _redact_body(value)
            for key, value in body.items()
        }
    if isinstance(body, list):
        return [_redact_body(item) for item in body]
    return body


def _mask(value: str) -> str:
    if len(value) <= 10:
        return "***"
    return "***" + value[-4:]


def _utc_now() -> str:
    return datetime.now(UTC).isoformat()
