# FILE: blender_agent/agent/progress.py
"""
Per-request progress log.

Append-only: add() and add_error() append; merge() patches the latest entry
with the same step name (or appends when there is none). Nothing removes
entries, so len(steps) never decreases.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

_UNSET = object()


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ProgressStep:
    id: str
    step: str
    message: str
    ts: int
    data: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "step": self.step, "message": self.message, "ts": self.ts}
        if self.data is not None:
            out["data"] = self.data
        if self.error is not None:
            out["error"] = self.error
        return out


class ProgressTracker:
    def __init__(self):
        self._steps: List[ProgressStep] = []
        self._seq = 0

    @property
    def steps(self) -> List[ProgressStep]:
        return list(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def _append(self, step: str, message: str, data: Any = None, error: Any = None) -> ProgressStep:
        ts = _now_ms()
        entry = ProgressStep(
            id=f"{ts}-{self._seq}",
            step=step,
            message=message,
            ts=ts,
            data=data,
            error=None if error is None else str(error),
        )
        self._seq += 1
        self._steps.append(entry)
        return entry

    def add(self, step: str, message: str, data: Any = None) -> ProgressStep:
        return self._append(step, message, data)

    def add_error(self, step: str, message: str, error: Any, data: Any = None) -> ProgressStep:
        return self._append(step, message, data, error if error is not None else "error")

    def merge(self, step: str, message: Any = _UNSET, data: Any = _UNSET, error: Any = _UNSET) -> ProgressStep:
        """Last-write-wins update of the most recent entry named `step`."""
        for entry in reversed(self._steps):
            if entry.step == step:
                if message is not _UNSET:
                    entry.message = message
                if data is not _UNSET:
                    entry.data = data
                if error is not _UNSET:
                    entry.error = None if error is None else str(error)
                return entry
        return self._append(
            step,
            "" if message is _UNSET else message,
            None if data is _UNSET else data,
            None if error is _UNSET else error,
        )

    def find(self, step: str) -> Optional[ProgressStep]:
        for entry in reversed(self._steps):
            if entry.step == step:
                return entry
        return None

    def to_list(self) -> List[Dict[str, Any]]:
        return [s.to_dict() for s in self._steps]


__all__ = ["ProgressStep", "ProgressTracker"]
