# dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

from .model import Job, Matrix, Step, Trigger, Workflow, WorkflowError
from .step_workflows.actions import (
    checkout,
    download_artifact,
    rust_toolchain,
    setup_python,
    upload_artifact,
    uses,
)
from .step_workflows.docker import docker_step
from .step_workflows.shell import sh

__all__ = [
    "sh", "uses", "checkout", "setup_python", "rust_toolchain", "upload_artifact",
    "download_artifact", "docker_step", "job", "matrix", "on_tags", "wf", "JobBuilder", "build",
]


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    job_id: str,
    *steps: Step,  # allow: job("x", sh(...), sh(...))
    steps_list: Optional[List[Step]] = None,  # allow: job("x", steps_list=[...])
    name: str | None = None,
    needs: Optional[List[str]] = None,
    runs_on: str = "ubuntu-latest",
    matrix: Optional[Matrix] = None,
    fail_fast: bool = True,
    env: Optional[Dict[str, str]] = None,
    working_directory: str | None = None,
    enabled: bool = True,
    cwd: str | None = None,  # default cwd applied to steps missing cwd
) -> Job:
    steps_final: List[Step] = []
    if steps_list:
        steps_final.extend(list(steps_list))
    steps_final.extend(list(steps))

    if not steps_final:
        raise WorkflowError(f"job({job_id!r}) must have at least one step")

    if cwd is not None:
        steps_final = [s if s.cwd is not None or s.kind != "run" else replace(s, cwd=cwd) for s in steps_final]

    return Job(
        id=job_id,
        name=name,
        steps=steps_final,
        needs=list(needs or []),
        runs_on=runs_on,
        matrix=matrix,
        fail_fast=fail_fast,
        env={k: str(v) for k, v in (env or {}).items()},
        working_directory=working_directory,
        enabled=enabled,
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class JobBuilder:
    def __init__(self, job_id: str):
        self.job_id = job_id
        self._name: str | None = None
        self._needs: list[str] = []
        self._steps: list[Step] = []
        self._env: dict[str, str] = {}
        self._runs_on = "ubuntu-latest"
        self._matrix: Optional[Matrix] = None
        self._fail_fast = True
        self._working_directory: str | None = None
        self._enabled = True

    def named(self, name: str):
        self._name = name
        return self

    def depends_on(self, *job_ids: str):
        self._needs.extend(job_ids)
        return self

    def runs_on(self, label: str):
        self._runs_on = label
        return self

    def define_step(self, name: str, run: str, cwd: str | None = None):
        self._steps.append(Step(name=name, run=run, cwd=cwd))
        return self

    def add_step(self, step: Step):
        self._steps.append(step)
        return self

    def with_env(self, **env):
        # force values to str for env compatibility
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def with_matrix(self, m: Matrix, *, fail_fast: bool = True):
        self._matrix = m
        self._fail_fast = fail_fast
        return self

    def in_directory(self, path: str):
        self._working_directory = path
        return self

    def disabled(self):
        self._enabled = False
        return self

    def build(self) -> Job:
        if not self._steps:
            raise WorkflowError(f"Job '{self.job_id}' has no steps")

        return Job(
            id=self.job_id,
            name=self._name,
            steps=list(self._steps),
            needs=list(self._needs),
            runs_on=self._runs_on,
            matrix=self._matrix,
            fail_fast=self._fail_fast,
            env=dict(self._env),
            working_directory=self._working_directory,
            enabled=self._enabled,
        )


def build(job_id: str) -> JobBuilder:
    """Convenience: build('test').define_step(...).build()"""
    return JobBuilder(job_id)


# ---------------------------------------------------------------------
# Matrix / trigger
# ---------------------------------------------------------------------

def matrix(
    axes: Dict[str, Iterable[Any]] | None = None,
    *,
    include: Optional[List[Dict[str, Any]]] = None,
    exclude: Optional[List[Dict[str, Any]]] = None,
    **kw_axes: Iterable[Any],
) -> Matrix:
    """
    matrix({"python-version": ["3.10"], "os": ["macos-latest", "windows-latest"]})
    matrix(os=["ubuntu-latest"])   # keyword form for identifier-safe axis names
    """
    all_axes: Dict[str, List[Any]] = {k: list(v) for k, v in (axes or {}).items()}
    all_axes.update({k: list(v) for k, v in kw_axes.items()})
    if not all_axes and not include:
        raise WorkflowError("matrix needs at least one axis")
    return Matrix(axes=all_axes, include=list(include or []), exclude=list(exclude or []))


def on_tags(*patterns: str, ignore: Iterable[str] = ()) -> Trigger:
    """Push trigger filtered to tags, e.g. on_tags("*-rc*")."""
    return Trigger(event="push", tags=list(patterns), tags_ignore=list(ignore))


# ---------------------------------------------------------------------
# Workflow helper (single-file story)
# ---------------------------------------------------------------------

def wf(
    *jobs: Job,
    name: str = "workflow",
    on: Trigger | None = None,
    working_directory: str | None = None,
) -> Workflow:
    """
    Workflow definition helper.

    Users can write:
        from wheelci import wf, job, sh, on_tags

        def workflow():
            return wf(
                job(...),
                job(...),
                name="Python Release Build",
                on=on_tags("*-rc*"),
            )
    """
    ids = [j.id for j in jobs]
    if len(set(ids)) != len(ids):
        dupes = sorted({n for n in ids if ids.count(n) > 1})
        raise WorkflowError(f"Duplicate job ids found: {dupes}")
    return Workflow(
        name=name,
        trigger=on or Trigger(),
        jobs=list(jobs),
        defaults_working_directory=working_directory,
    )
