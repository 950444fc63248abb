# loader.py
from __future__ import annotations

import runpy
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .model import Job, Matrix, Step, Trigger, Workflow, WorkflowError


# ----------------------------------------------------------------------
# YAML schema (GitHub Actions subset)
# ----------------------------------------------------------------------

class _Spec(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class StepSpec(_Spec):
    name: Optional[str] = None
    run: Optional[str] = None
    uses: Optional[str] = None
    with_: Dict[str, Any] = Field(default_factory=dict, alias="with")
    if_: Optional[Union[str, bool]] = Field(default=None, alias="if")
    env: Dict[str, Any] = Field(default_factory=dict)
    shell: Optional[str] = None
    working_directory: Optional[str] = Field(default=None, alias="working-directory")

    @model_validator(mode="after")
    def _run_xor_uses(self) -> "StepSpec":
        if (self.run is None) == (self.uses is None):
            raise ValueError("a step needs exactly one of 'run' or 'uses'")
        return self


class StrategySpec(_Spec):
    fail_fast: bool = Field(default=True, alias="fail-fast")
    matrix: Optional[Dict[str, Any]] = None


class RunDefaults(_Spec):
    working_directory: Optional[str] = Field(default=None, alias="working-directory")
    shell: Optional[str] = None


class DefaultsSpec(_Spec):
    run: Optional[RunDefaults] = None


class JobSpec(_Spec):
    name: Optional[str] = None
    runs_on: Union[str, List[str]] = Field(alias="runs-on")
    needs: Union[str, List[str]] = Field(default_factory=list)
    steps: List[StepSpec] = Field(min_length=1)
    strategy: Optional[StrategySpec] = None
    env: Dict[str, Any] = Field(default_factory=dict)
    defaults: Optional[DefaultsSpec] = None
    if_: Optional[Union[str, bool]] = Field(default=None, alias="if")

    @field_validator("needs", mode="before")
    @classmethod
    def _needs_list(cls, v: Any) -> Any:
        return [v] if isinstance(v, str) else v


class WorkflowSpec(_Spec):
    name: Optional[str] = None
    on: Any = None
    defaults: Optional[DefaultsSpec] = None
    jobs: Dict[str, JobSpec] = Field(min_length=1)


# ----------------------------------------------------------------------
# Conversion
# ----------------------------------------------------------------------

def _parse_trigger(on: Any) -> Trigger:
    if on is None:
        return Trigger()
    if isinstance(on, str):
        return Trigger(event=on)
    if isinstance(on, list):
        return Trigger(event="push" if "push" in on else str(on[0]))
    if isinstance(on, dict):
        if "push" not in on:
            return Trigger(event=str(next(iter(on))))
        push = on.get("push") or {}
        return Trigger(
            event="push",
            tags=[str(t) for t in push.get("tags") or []],
            tags_ignore=[str(t) for t in push.get("tags-ignore") or []],
        )
    raise WorkflowError(f"unsupported 'on' section: {on!r}")


def _parse_matrix(raw: Dict[str, Any]) -> Matrix:
    include = list(raw.get("include") or [])
    exclude = list(raw.get("exclude") or [])
    axes: Dict[str, List[Any]] = {}
    for k, v in raw.items():
        if k in ("include", "exclude"):
            continue
        if not isinstance(v, list):
            raise WorkflowError(f"matrix axis {k!r} must be a list, got {v!r}")
        axes[k] = v
    return Matrix(axes=axes, include=include, exclude=exclude)


def _condition(v: Union[str, bool, None]) -> Optional[str]:
    if v is None:
        return None
    if isinstance(v, bool):
        return "true" if v else "false"
    return v


def _convert_step(s: StepSpec, idx: int, default_shell: Optional[str] = None) -> Step:
    env = {k: str(v) for k, v in s.env.items()}
    if s.uses is not None:
        return Step(
            name=s.name or s.uses,
            kind="uses",
            data={"uses": s.uses, "with": dict(s.with_)},
            if_=_condition(s.if_),
            env=env,
        )
    run = s.run or ""
    shell = s.shell or default_shell
    first_line = run.strip().splitlines()[0] if run.strip() else f"step {idx + 1}"
    return Step(
        name=s.name or f"Run {first_line}",
        run=run,
        cwd=s.working_directory,
        data={"shell": shell} if shell else None,
        if_=_condition(s.if_),
        env=env,
    )


def _convert_job(job_id: str, j: JobSpec, workflow_shell: Optional[str] = None) -> Job:
    runs_on = j.runs_on[0] if isinstance(j.runs_on, list) else j.runs_on
    strategy = j.strategy or StrategySpec()
    run_defaults = j.defaults.run if j.defaults and j.defaults.run else RunDefaults()
    wd = run_defaults.working_directory
    shell = run_defaults.shell or workflow_shell
    return Job(
        id=job_id,
        name=j.name,
        steps=[_convert_step(s, i, shell) for i, s in enumerate(j.steps)],
        needs=list(j.needs),
        runs_on=str(runs_on),
        matrix=_parse_matrix(strategy.matrix) if strategy.matrix else None,
        fail_fast=strategy.fail_fast,
        env={k: str(v) for k, v in j.env.items()},
        working_directory=wd,
        # `if: false` at job level is how a job is parked
        enabled=_condition(j.if_) != "false",
    )


def parse_workflow_yaml(text: str, *, default_name: str = "workflow") -> Workflow:
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise WorkflowError(f"workflow is not valid YAML: {e}") from e
    if not isinstance(raw, dict):
        raise WorkflowError("workflow YAML must be a mapping")
    # YAML 1.1 reads a bare `on:` key as boolean true
    if True in raw and "on" not in raw:
        raw["on"] = raw.pop(True)

    try:
        parsed = WorkflowSpec.model_validate(raw)
    except ValidationError as e:
        raise WorkflowError(f"invalid workflow: {e}") from e

    run_defaults = parsed.defaults.run if parsed.defaults and parsed.defaults.run else RunDefaults()
    return Workflow(
        name=parsed.name or default_name,
        trigger=_parse_trigger(parsed.on),
        jobs=[_convert_job(job_id, j, run_defaults.shell) for job_id, j in parsed.jobs.items()],
        defaults_working_directory=run_defaults.working_directory,
    )


# ----------------------------------------------------------------------
# Workflow loading (local file)
# ----------------------------------------------------------------------

def _coerce(obj: Any, default_name: str) -> Workflow:
    if isinstance(obj, Workflow):
        return obj
    if isinstance(obj, list) and all(isinstance(j, Job) for j in obj):
        return Workflow(name=default_name, trigger=Trigger(), jobs=obj)
    raise TypeError(
        "Workflow must return/define a Workflow or a List[Job]. "
        "Define workflow() -> Workflow, WORKFLOW = wf(...) or JOBS = [Job, ...]."
    )


def load_workflow(path: str | Path) -> Workflow:
    """
    Load a workflow from a python or YAML file path.

    A python file must define one of:
      - workflow() -> Workflow | List[Job]
      - WORKFLOW = Workflow
      - JOBS = [Job, ...]

    A .yml/.yaml file is read as a GitHub Actions workflow.
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")

    if wf_path.suffix in (".yml", ".yaml"):
        return parse_workflow_yaml(wf_path.read_text(encoding="utf-8"), default_name=wf_path.stem)

    if wf_path.suffix != ".py":
        raise ValueError(f"Workflow must be a .py, .yml or .yaml file, got: {wf_path.name}")

    module_name = f"wheelci_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        return _coerce(globals_dict["workflow"](), wf_path.stem)
    if "WORKFLOW" in globals_dict:
        return _coerce(globals_dict["WORKFLOW"], wf_path.stem)
    if "JOBS" in globals_dict:
        return _coerce(globals_dict["JOBS"], wf_path.stem)
    raise TypeError(f"{wf_path.name} defines no workflow(), WORKFLOW or JOBS")
