"""Run metrics: append-only JSONL events plus a rolling summary."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _read_json(path: Path) -> dict[str, Any]:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except Exception:
        return {}


def _write_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


@dataclass
class MetricsEmitter:
    """Append-only JSONL metrics plus a rolling summary snapshot."""

    log_path: Path
    summary_path: Path
    enabled: bool = True
    _summary: dict[str, Any] = field(default_factory=dict, init=False)

    def __post_init__(self) -> None:
        if not self.enabled:
            return
        self._summary = _read_json(self.summary_path) or {
            "runs_started": 0,
            "runs_finished": 0,
            "runs_failed": {},
            "new_products": 0,
            "deliveries_sent": 0,
            "deliveries_failed": 0,
            "last_event": None,
        }

    def emit(self, event: str, **fields: Any) -> None:
        if not self.enabled:
            return
        entry = {"ts": _now().isoformat(), "event": event}
        entry.update(fields)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with self.log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError:
            return
        self._update_summary(entry)

    def _update_summary(self, entry: dict[str, Any]) -> None:
        event = entry.get("event")
        if event == "run_started":
            self._summary["runs_started"] = int(self._summary.get("runs_started", 0)) + 1
        elif event == "run_finished":
            self._summary["runs_finished"] = int(self._summary.get("runs_finished", 0)) + 1
            added = int(entry.get("new_products", 0) or 0)
            self._summary["new_products"] = int(self._summary.get("new_products", 0)) + max(added, 0)
            for key in ("deliveries_sent", "deliveries_failed"):
                count = int(entry.get(key, 0) or 0)
                self._summary[key] = int(self._summary.get(key, 0)) + max(count, 0)
        elif event == "run_failed":
            reason = entry.get("reason") or "unknown"
            errors = dict(self._summary.get("runs_failed") or {})
            errors[reason] = int(errors.get(reason, 0)) + 1
            self._summary["runs_failed"] = errors
        self._summary["last_event"] = entry.get("ts")
        try:
            _write_json(self.summary_path, self._summary)
        except OSError:
            return

    def summary(self) -> dict[str, Any]:
        return dict(self._summary)
