# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


STEP_KINDS = ("run", "uses", "docker")


class WorkflowError(ValueError):
    """Raised when a workflow definition is structurally invalid."""


@dataclass(frozen=True)
class Step:
    """A single step inside a job: a shell command, a built-in action or a container run."""
    name: str
    run: str = ""
    cwd: str | None = None
    kind: str = "run"
    data: Optional[Dict[str, Any]] = None
    if_: str | None = None
    env: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.kind not in STEP_KINDS:
            raise WorkflowError(f"step {self.name!r}: unknown kind {self.kind!r}")

    @property
    def uses(self) -> str | None:
        if self.kind != "uses":
            return None
        return (self.data or {}).get("uses")

    @property
    def with_(self) -> Dict[str, Any]:
        return dict((self.data or {}).get("with") or {})

    @property
    def shell(self) -> str | None:
        """Explicit `shell:` of a run step; None means the platform default."""
        if self.kind != "run":
            return None
        return (self.data or {}).get("shell")


@dataclass(frozen=True)
class Matrix:
    """
    Axis name -> values. Expanded into independent job instances.

    `exclude` entries remove every combination they partially match,
    `include` entries add extra combinations after expansion.
    """
    axes: Dict[str, List[Any]]
    include: List[Dict[str, Any]] = field(default_factory=list)
    exclude: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class Job:
    """
    A CI job: ordered steps + dependencies + where it runs.

    `id` is the key used by `needs`; `name` is the display name
    (defaults to the id). Jobs with `enabled=False` are kept in the
    workflow as inert configuration and never scheduled.
    """
    id: str
    steps: list[Step]
    name: str | None = None
    needs: list[str] = field(default_factory=list)
    runs_on: str = "ubuntu-latest"
    matrix: Optional[Matrix] = None
    fail_fast: bool = True
    env: Dict[str, str] = field(default_factory=dict)
    working_directory: str | None = None
    enabled: bool = True

    @property
    def display_name(self) -> str:
        return self.name or self.id


@dataclass(frozen=True)
class Trigger:
    """Push-event trigger. Only tag pushes are considered when `tags` is set."""
    event: str = "push"
    tags: List[str] = field(default_factory=list)
    tags_ignore: List[str] = field(default_factory=list)


@dataclass
class Workflow:
    name: str
    trigger: Trigger
    jobs: list[Job]
    defaults_working_directory: str | None = None

    def job(self, job_id: str) -> Job:
        for j in self.jobs:
            if j.id == job_id:
                return j
        raise KeyError(job_id)

    @property
    def enabled_jobs(self) -> list[Job]:
        return [j for j in self.jobs if j.enabled]


@dataclass(frozen=True)
class JobInstance:
    """One expanded matrix cell (or the single instance of a non-matrix job)."""
    job: Job
    key: str
    matrix_values: Dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        if not self.matrix_values:
            return self.job.display_name
        vals = ", ".join(str(v) for v in self.matrix_values.values())
        return f"{self.job.display_name} ({vals})"
