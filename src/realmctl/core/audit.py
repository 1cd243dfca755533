"""Audit trail of every change realmctl pushes to a forwarding panel.

One JSON object per line. Each invocation gets a session id; the per-rule
events of a batch import also share a correlation id so the import can be
reassembled later. Passwords and tokens never reach the file, and the file
is rotated by size (``audit.log`` -> ``audit.log.1`` -> ...).

Writing is best effort: a full disk or an unwritable path is reported at
debug level and never fails the panel operation being recorded.
"""

import fcntl
import json
import os
import pwd
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Optional

from realmctl.core.config import DEFAULT_AUDIT_LOG_PATH
from realmctl.core.output import console


DEFAULT_MAX_SIZE_MB = 10
DEFAULT_BACKUP_COUNT = 5

REDACTED = "***REDACTED***"

# Substrings of parameter names whose values are never written
SENSITIVE_KEYS = ("password", "secret", "token", "csrf", "credential", "cookie")


class AuditEventType(Enum):
    SESSION_LOGIN = "session.login"
    SESSION_LOGOUT = "session.logout"

    RULE_ADD = "rule.add"
    RULE_REMOVE = "rule.remove"
    RULE_BATCH_ADD = "rule.batch_add"

    SERVICE_START = "service.start"
    SERVICE_STOP = "service.stop"
    SERVICE_RESTART = "service.restart"


class AuditResult(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    DRY_RUN = "dry_run"
    # Batch import where some lines went in and some did not
    PARTIAL = "partial"


def redact(key: str, value: Any) -> Any:
    """Replace the value if its key looks secret; recurse into dicts and lists."""
    if any(marker in key.lower() for marker in SENSITIVE_KEYS):
        return REDACTED
    if isinstance(value, dict):
        return {k: redact(k, v) for k, v in value.items()}
    if isinstance(value, list):
        return [redact(key, item) for item in value]
    return value


def _local_user() -> str:
    uid = os.getuid()
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return str(uid)


@dataclass
class AuditEvent:
    """One recorded action against the panel.

    ``panel_url``, ``session_id`` and ``correlation_id`` are filled in by
    the logger when the event is written.
    """
    event_type: AuditEventType
    result: AuditResult
    target: Optional[str] = None
    parameters: dict[str, Any] = field(default_factory=dict)
    message: Optional[str] = None
    error: Optional[str] = None

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    actor: str = field(default_factory=_local_user)
    panel_url: Optional[str] = None
    session_id: Optional[str] = None
    correlation_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "result": self.result.value,
            "actor": self.actor,
            "panel_url": self.panel_url,
            "target": self.target,
            "parameters": redact("parameters", self.parameters),
            "message": self.message,
            "error": self.error,
            "session_id": self.session_id,
            "correlation_id": self.correlation_id,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str, ensure_ascii=False)


class AuditLogger:
    """Appends AuditEvents to a JSON-lines file under an exclusive flock."""

    def __init__(
        self,
        log_path: Optional[Path] = None,
        max_size_mb: int = DEFAULT_MAX_SIZE_MB,
        backup_count: int = DEFAULT_BACKUP_COUNT,
        enabled: bool = True,
        panel_url: Optional[str] = None,
    ) -> None:
        self.log_path = Path(log_path) if log_path else DEFAULT_AUDIT_LOG_PATH
        self.max_size_bytes = max_size_mb * 1024 * 1024
        self.backup_count = backup_count
        self.enabled = enabled
        self.panel_url = panel_url
        self.session_id = str(uuid.uuid4())
        self._correlations: list[str] = []

    def log(self, event: AuditEvent) -> None:
        if not self.enabled:
            return

        event.session_id = self.session_id
        event.panel_url = event.panel_url or self.panel_url
        if self._correlations:
            event.correlation_id = self._correlations[-1]

        try:
            self.log_path.parent.mkdir(mode=0o750, parents=True, exist_ok=True)
            fd = os.open(self.log_path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o640)
            with os.fdopen(fd, "a", encoding="utf-8") as f:
                fcntl.flock(f, fcntl.LOCK_EX)
                f.write(event.to_json() + "\n")
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            console.debug(f"Audit log not written ({self.log_path}): {e}")
            return

        try:
            if self.log_path.stat().st_size > self.max_size_bytes:
                self._rotate()
        except OSError as e:
            console.debug(f"Audit log rotation failed: {e}")

    def _rotate(self) -> None:
        """Shift every backup up by one, dropping the oldest."""
        backups = [self.log_path.with_name(f"{self.log_path.name}.{i}") for i in range(1, self.backup_count + 1)]
        backups[-1].unlink(missing_ok=True)
        for older, newer in zip(reversed(backups[:-1]), reversed(backups[1:])):
            if older.exists():
                older.rename(newer)
        self.log_path.rename(backups[0])
        self.log_path.touch(mode=0o640)

    @contextmanager
    def correlation(self, operation: str) -> Iterator[str]:
        """Give every event logged inside the block the same correlation id.

            with audit.correlation("batch_add"):
                ...  # rule.add, service.restart, rule.batch_add
        """
        correlation_id = f"{operation}_{uuid.uuid4().hex[:8]}"
        self._correlations.append(correlation_id)
        try:
            yield correlation_id
        finally:
            self._correlations.pop()

    def _record(self, event_type: AuditEventType, result: AuditResult, **fields: Any) -> None:
        fields["parameters"] = fields.get("parameters") or {}
        self.log(AuditEvent(event_type=event_type, result=result, **fields))

    def log_success(
        self,
        event_type: AuditEventType,
        target: Optional[str] = None,
        parameters: Optional[dict[str, Any]] = None,
        message: Optional[str] = None,
    ) -> None:
        self._record(event_type, AuditResult.SUCCESS, target=target, parameters=parameters, message=message)

    def log_failure(
        self,
        event_type: AuditEventType,
        error: str,
        target: Optional[str] = None,
        parameters: Optional[dict[str, Any]] = None,
    ) -> None:
        self._record(event_type, AuditResult.FAILURE, target=target, parameters=parameters, error=error)

    def log_dry_run(
        self,
        event_type: AuditEventType,
        target: Optional[str] = None,
        parameters: Optional[dict[str, Any]] = None,
    ) -> None:
        self._record(event_type, AuditResult.DRY_RUN, target=target, parameters=parameters)

