"""
Audit log for Web Agent.

Every policy evaluation and execution attempt is recorded as one entry. The
log is loaded wholesale at startup and the full collection is rewritten on
every append, through a temp file and an atomic rename.
"""

import json
import logging
import os
import tempfile
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .errors import AuditPersistError
from .utils import normalize_host


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEntry:
    """One immutable record of a request, its policy decision and outcome."""
    id: str
    timestamp: str
    host: Optional[str]
    action: str
    parameters: Optional[dict[str, str]]
    policy_allowed: bool
    policy_reason: Optional[str]
    requested_consent: bool
    user_consented: Optional[bool] = None
    outcome_success: Optional[bool] = None
    outcome_message: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted JSON shape."""
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "host": self.host,
            "action": self.action,
            "parameters": self.parameters,
            "policyAllowed": self.policy_allowed,
            "policyReason": self.policy_reason,
            "requestedConsent": self.requested_consent,
            "userConsented": self.user_consented,
            "outcomeSuccess": self.outcome_success,
            "outcomeMessage": self.outcome_message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuditEntry":
        """Create from the persisted JSON shape."""
        return cls(
            id=str(data["id"]),
            timestamp=str(data["timestamp"]),
            host=data.get("host"),
            action=str(data["action"]),
            parameters=data.get("parameters"),
            policy_allowed=bool(data["policyAllowed"]),
            policy_reason=data.get("policyReason"),
            requested_consent=bool(data.get("requestedConsent", False)),
            user_consented=data.get("userConsented"),
            outcome_success=data.get("outcomeSuccess"),
            outcome_message=data.get("outcomeMessage"),
        )


class AuditLog:
    """Append-only, file-backed audit trail.

    Usage:
        log = AuditLog(config.audit_log_path)
        log.append(host="example.com", action="click", ...)
        for entry in log.all():
            ...
    """

    def __init__(self, path: Path):
        """Load the existing log from disk.

        Args:
            path: JSON file holding the entry array
        """
        self.path = Path(path)
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()
        self._load()

    def _load(self) -> None:
        """Load entries; a missing file is an empty log.

        A file that cannot be parsed is renamed to ``<name>.corrupt-<ts>``
        so the next append starts a fresh log without destroying it.
        """
        if not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read audit log {self.path}: {e}")
            self._set_aside()
            return
        if not isinstance(raw, list):
            logger.warning(f"Audit log {self.path} is not a JSON array")
            self._set_aside()
            return
        for item in raw:
            try:
                self._entries.append(AuditEntry.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed audit entry: {e}")

    def _set_aside(self) -> None:
        """Move an unreadable log out of the way, keeping its bytes."""
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        target = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        try:
            os.replace(self.path, target)
        except OSError as e:
            logger.error(f"Could not move corrupt audit log {self.path} aside: {e}")
            return
        logger.warning(f"Corrupt audit log moved to {target}")

    def append(
        self,
        host: Optional[str],
        action: str,
        parameters: Optional[dict[str, str]],
        policy_allowed: bool,
        policy_reason: Optional[str],
        requested_consent: bool,
        user_consented: Optional[bool] = None,
        outcome_success: Optional[bool] = None,
        outcome_message: Optional[str] = None,
    ) -> AuditEntry:
        """Add an entry and persist the full log.

        The entry stays in memory even if writing fails.

        Returns:
            The stored entry

        Raises:
            AuditPersistError: If the log file could not be written
        """
        entry = AuditEntry(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc).isoformat(),
            host=normalize_host(host),
            action=action,
            parameters=parameters,
            policy_allowed=policy_allowed,
            policy_reason=policy_reason,
            requested_consent=requested_consent,
            user_consented=user_consented,
            outcome_success=outcome_success,
            outcome_message=outcome_message,
        )
        with self._lock:
            self._entries.append(entry)
            self._persist()
        return entry

    def _persist(self) -> None:
        """Rewrite the whole file atomically."""
        data = [e.to_dict() for e in self._entries]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=".audit_", suffix=".json", dir=str(self.path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.error(f"Failed to persist audit log to {self.path}: {e}")
            raise AuditPersistError(f"audit log not written: {e}") from e

    def all(self) -> list[AuditEntry]:
        """All entries in append order."""
        with self._lock:
            return list(self._entries)

    def tail(self, n: int) -> list[AuditEntry]:
        """The last ``n`` entries."""
        if n <= 0:
            return []
        with self._lock:
            return list(self._entries[-n:])

    def entries_for_host(self, host: str) -> list[AuditEntry]:
        """Entries recorded against one host."""
        host = normalize_host(host)
        with self._lock:
            return [e for e in self._entries if e.host == host]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
