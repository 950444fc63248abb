# config.py
from __future__ import annotations

import os
import platform
from dataclasses import dataclass, field, replace
from typing import Any, List, Optional

from .artifacts import DEFAULT_STATE_DIR

# runs-on labels a local machine can serve, by platform.system()
HOST_LABELS = {
    "Linux": ["ubuntu-latest", "ubuntu-22.04", "ubuntu-20.04", "linux", "self-hosted"],
    "Darwin": ["macos-latest", "macos-13", "macos-12", "macos", "self-hosted"],
    "Windows": ["windows-latest", "windows-2022", "windows-2019", "windows", "self-hosted"],
}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> Optional[List[str]]:
    raw = os.environ.get(name)
    if not raw:
        return None
    return [x.strip() for x in raw.split(",") if x.strip()]


def default_host_labels() -> List[str]:
    return list(HOST_LABELS.get(platform.system(), ["self-hosted"]))


@dataclass(frozen=True)
class RunnerConfig:
    state_dir: str = DEFAULT_STATE_DIR
    max_workers: Optional[int] = None
    runner_labels: List[str] = field(default_factory=default_host_labels)
    # run jobs whose runs_on this host cannot serve instead of marking them unavailable
    run_anywhere: bool = False
    keep_workspaces: bool = True
    stop_on_failure: bool = False
    output_limit: int = 4000

    @classmethod
    def from_env(cls) -> "RunnerConfig":
        workers = os.environ.get("WHEELCI_MAX_WORKERS")
        return cls(
            state_dir=os.environ.get("WHEELCI_STATE_DIR", DEFAULT_STATE_DIR),
            max_workers=int(workers) if workers else None,
            runner_labels=_env_list("WHEELCI_RUNNER_LABELS") or default_host_labels(),
            run_anywhere=_env_bool("WHEELCI_RUN_ANYWHERE", False),
            keep_workspaces=_env_bool("WHEELCI_KEEP_WORKSPACES", True),
            stop_on_failure=_env_bool("WHEELCI_STOP_ON_FAILURE", False),
            output_limit=int(os.environ.get("WHEELCI_OUTPUT_LIMIT", "4000")),
        )

    def override(self, **changes: Any) -> "RunnerConfig":
        """Apply CLI flags; None means "not given" and keeps the current value."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def can_run(self, runs_on: str) -> bool:
        return self.run_anywhere or runs_on in self.runner_labels

    @property
    def workers(self) -> int:
        if self.max_workers is not None:
            return max(1, self.max_workers)
        c = os.cpu_count() or 2
        return max(1, c - 1)
