# report.py
from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

# Job statuses
OK = "ok"
FAILED = "failed"
BLOCKED = "blocked"          # a needed job did not succeed
CANCELLED = "cancelled"      # fail-fast sibling or stop_on_failure
UNAVAILABLE = "unavailable"  # no local runner for runs_on
DISABLED = "disabled"        # inert job, never scheduled

FAILURE_STATUSES = (FAILED,)


@dataclass(frozen=True)
class Event:
    """One timestamped lifecycle event of a job instance or step."""
    at: float
    job: str
    kind: str                # job_started | job_finished | step_started | step_finished | step_skipped
    step: Optional[str] = None
    status: Optional[str] = None


@dataclass
class RunReport:
    run_id: str
    workflow: str
    tag: Optional[str]
    activated: bool
    results: Dict[str, str] = field(default_factory=dict)
    events: List[Event] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)
    # source commit; None when the tree is dirty or not a git checkout
    commit: Optional[str] = None

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def record(self, job: str, kind: str, *, step: str | None = None, status: str | None = None) -> Event:
        ev = Event(at=time.time(), job=job, kind=kind, step=step, status=status)
        with self._lock:
            self.events.append(ev)
        return ev

    def set_result(self, job: str, status: str, error: str | None = None) -> None:
        with self._lock:
            self.results[job] = status
            if error:
                self.errors[job] = error

    @property
    def failed(self) -> bool:
        return any(v in FAILURE_STATUSES for v in self.results.values())

    def executed(self) -> List[str]:
        """Job instances that actually started."""
        return [e.job for e in self.events if e.kind == "job_started"]

    def _find(self, job: str, kind: str, step: str | None = None) -> Optional[float]:
        for e in self.events:
            if e.job == job and e.kind == kind and (step is None or e.step == step):
                return e.at
        return None

    def started_at(self, job: str, step: str | None = None) -> Optional[float]:
        return self._find(job, "step_started" if step else "job_started", step)

    def finished_at(self, job: str, step: str | None = None) -> Optional[float]:
        return self._find(job, "step_finished" if step else "job_finished", step)

    def to_dict(self) -> Dict:
        return {
            "run_id": self.run_id,
            "workflow": self.workflow,
            "tag": self.tag,
            "activated": self.activated,
            "commit": self.commit,
            "results": dict(self.results),
            "errors": dict(self.errors),
            "events": [vars(e) for e in self.events],
        }

    def save(self, path: str | Path) -> Path:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        tmp = p.with_suffix(p.suffix + ".tmp")
        tmp.write_text(json.dumps(self.to_dict(), indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(p)
        return p
