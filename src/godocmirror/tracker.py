"""Thread-safe stage tracker for the orchestrator state machine."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum

from .models import StageRecord


class StageState(Enum):
    pending = "pending"
    running = "running"
    done = "done"
    skipped = "skipped"
    error = "error"


@dataclass
class StageNode:
    name: str
    state: StageState = StageState.pending
    started_at: float | None = None
    finished_at: float | None = None
    detail: str = ""

    def elapsed(self, now: float) -> float:
        """Seconds spent in the stage so far (0 if it never started)."""
        if self.started_at is None:
            return 0.0
        end = self.finished_at if self.finished_at is not None else now
        return round(end - self.started_at, 1)


class StageTracker:
    """Records state transitions of each pipeline stage, in declaration order."""

    def __init__(self, stages: list[str] | tuple[str, ...] = ()) -> None:
        self._lock = threading.Lock()
        self._nodes: dict[str, StageNode] = {}
        for stage in stages:
            self._nodes[stage] = StageNode(name=stage)

    def set_state(self, stage: str, state: StageState, detail: str = "") -> None:
        with self._lock:
            node = self._nodes.setdefault(stage, StageNode(name=stage))
            node.state = state
            node.detail = detail
            now = time.monotonic()
            if state == StageState.running and node.started_at is None:
                node.started_at = now
            if state in (StageState.done, StageState.error, StageState.skipped):
                node.finished_at = now

    def state(self, stage: str) -> StageState:
        with self._lock:
            node = self._nodes.get(stage)
            return node.state if node else StageState.pending

    def records(self) -> list[StageRecord]:
        with self._lock:
            now = time.monotonic()
            return [
                StageRecord(stage=n.name, state=n.state.value, detail=n.detail, elapsed=n.elapsed(now))
                for n in self._nodes.values()
            ]
