# context.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Tuple

from .artifacts import ArtifactStore
from .expressions import ExprContext
from .model import JobInstance, Step


@dataclass
class JobContext:
    """Everything a step executor needs from the job instance it belongs to."""
    instance: JobInstance
    workspace: Path           # job-local checkout root
    source_root: Path         # tree that actions/checkout copies from
    store: ArtifactStore
    working_directory: str | None = None
    env: Dict[str, str] = field(default_factory=dict)
    output_limit: int = 4000
    # top-level names actions/checkout must not copy (the state dir)
    checkout_ignore: Tuple[str, ...] = ()
    expr: ExprContext = field(default_factory=ExprContext)

    @property
    def key(self) -> str:
        return self.instance.key

    def step_cwd(self, step: Step) -> Path:
        """`run` steps execute in step.cwd, else the default working directory."""
        rel = step.cwd if step.cwd is not None else (self.working_directory or ".")
        return (self.workspace / rel).resolve()

    def step_env(self, step: Step) -> Dict[str, str]:
        env = os.environ.copy()
        env.update(self.env)
        env.update(step.env or {})
        env["WHEELCI_WORKSPACE"] = str(self.workspace)
        return env
