"""Built-in plugin that records lifecycle events as JSON lines.

Each hook call appends one object to ``.stackctl/events.jsonl``::

    {"ts": "...", "event": "post_service_ready", "project": "shop", ...}

Write failures are logged and swallowed so a read-only project directory
never blocks ``up`` or ``down``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import Lock
from typing import Any

import pluggy

from stackctl.services._helpers import now_iso

hookimpl = pluggy.HookimplMarker("stackctl")

logger = logging.getLogger(__name__)


class EventLogPlugin:
    """Append lifecycle events to a JSON-lines file."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _record(self, event: str, **fields: Any) -> None:
        line = json.dumps({"ts": now_iso(), "event": event, **fields}, sort_keys=True)
        try:
            with self._lock:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
        except OSError:
            logger.warning("Could not write event log %s", self._path, exc_info=True)

    def read_events(self) -> list[dict[str, Any]]:
        """Return every recorded event, oldest first."""
        if not self._path.is_file():
            return []
        return [
            json.loads(line)
            for line in self._path.read_text(encoding="utf-8").splitlines()
            if line.strip()
        ]

    @hookimpl
    def pre_service_start(self, project: str, service: str, container: str) -> None:
        self._record("pre_service_start", project=project, service=service, container=container)

    @hookimpl
    def post_service_start(self, project: str, service: str, container: str) -> None:
        self._record("post_service_start", project=project, service=service, container=container)

    @hookimpl
    def post_service_ready(self, project: str, service: str, state: str, waited_seconds: float) -> None:
        self._record(
            "post_service_ready",
            project=project,
            service=service,
            state=state,
            waited_seconds=round(waited_seconds, 3),
        )

    @hookimpl
    def post_service_failed(self, project: str, service: str, state: str, reason: str) -> None:
        self._record("post_service_failed", project=project, service=service, state=state, reason=reason)

    @hookimpl
    def post_up(self, project: str, ok: bool, states: dict[str, str]) -> None:
        self._record("post_up", project=project, ok=ok, states=states)

    @hookimpl
    def post_down(self, project: str, removed: list[str]) -> None:
        self._record("post_down", project=project, removed=removed)

    @hookimpl
    def post_check(self, project: str, errors: int, warnings: int, issues: list[dict[str, Any]]) -> None:
        self._record("post_check", project=project, errors=errors, warnings=warnings)
