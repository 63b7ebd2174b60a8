"""Audit trail of registry and install operations.

Line format: ISO8601_TIMESTAMP [OPERATION] key1=value1 key2="value with spaces"
Example: 2026-02-01T10:00:00Z [INSTALL] skill=pdf-tools source=acme/toolkit agents=cursor

Operations: INSTALL, UNINSTALL, UPDATE, ADD_SOURCE, REMOVE_SOURCE,
DELETE_SOURCE, CHECK, PRUNE
"""

from __future__ import annotations

import re
import shlex
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

AuditValue = str | int | float | bool | None

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
LINE_PATTERN = re.compile(r"^(?P<ts>\S+) \[(?P<op>[A-Z_]+)\](?: (?P<rest>.*))?$")


@dataclass
class AuditEntry:
    """One parsed audit line."""

    timestamp: datetime
    operation: str
    fields: dict[str, str] = field(default_factory=dict)


def format_entry(operation: str, fields: dict[str, AuditValue], now: datetime) -> str:
    """Render one audit line (without trailing newline). None values are dropped."""
    pairs = []
    for key, value in fields.items():
        if value is None:
            continue
        text = str(value)
        if any(char in text for char in " \"'\\"):
            text = '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
        pairs.append(f"{key}={text}")

    line = f"{now.strftime(TIMESTAMP_FORMAT)} [{operation}]"
    if pairs:
        line += " " + " ".join(pairs)
    return line


def parse_entry(line: str) -> AuditEntry | None:
    match = LINE_PATTERN.match(line.strip())
    if match is None:
        return None
    try:
        timestamp = datetime.strptime(match.group("ts"), TIMESTAMP_FORMAT).replace(
            tzinfo=timezone.utc
        )
        tokens = shlex.split(match.group("rest") or "")
    except ValueError:
        return None

    fields = {}
    for token in tokens:
        key, sep, value = token.partition("=")
        if sep:
            fields[key] = value
    return AuditEntry(timestamp=timestamp, operation=match.group("op"), fields=fields)


class AuditLogger:
    """Append lifecycle events to an audit file."""

    def __init__(self, log_path: Path) -> None:
        self.log_path = log_path
        self._lock = threading.Lock()

    def log(self, operation: str, **kwargs: AuditValue) -> None:
        """Append an entry, creating the file and its directory if needed."""
        line = format_entry(operation, kwargs, datetime.now(timezone.utc))
        with self._lock:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def entries(self, limit: int | None = None) -> list[AuditEntry]:
        """Return parsed entries, oldest first; the last ``limit`` if given."""
        if not self.log_path.exists():
            return []
        with open(self.log_path, encoding="utf-8") as f:
            parsed = [entry for entry in map(parse_entry, f) if entry is not None]
        if limit is not None:
            return parsed[-limit:] if limit > 0 else []
        return parsed
