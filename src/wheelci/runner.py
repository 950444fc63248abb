# runner.py
from __future__ import annotations

import hashlib
import re
import shutil
import subprocess
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import replace
from pathlib import Path
from typing import Deque, Dict, List, Optional

from .artifacts import ArtifactStore
from .config import RunnerConfig
from .context import JobContext
from .dag import InstanceGraph
from .errors import CIError, StepFailure
from .expressions import ExprContext, evaluate_condition, interpolate, interpolate_value
from .git_facts.git import head_sha, is_dirty
from .model import JobInstance, Step, Workflow
from .report import BLOCKED, CANCELLED, DISABLED, FAILED, OK, UNAVAILABLE, RunReport
from .step_workflows import run_step
from .trigger import PushEvent, activates
from .ui.console import get_console


# ----------------------------------------------------------------------
# Naming
# ----------------------------------------------------------------------

def _slug(text: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "-", text).strip("-").lower() or "x"


def workspace_name(key: str) -> str:
    """Directory name for an instance workspace; the hash keeps distinct keys apart."""
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:8]
    return f"{_slug(key)}-{digest}"


def run_id_for(workflow: Workflow, event: PushEvent) -> str:
    """
    Stable id for (workflow, ref).

    Re-running the same tag maps to the same id, so artifacts are
    re-produced under the same names instead of accumulating.
    """
    ref = event.tag if event.tag is not None else f"branch-{event.branch or ''}"
    return f"{_slug(workflow.name)}--{_slug(ref)}"


def source_commit(source: Path) -> Optional[str]:
    """HEAD of the source tree, or None if it is dirty or not a git checkout."""
    try:
        if is_dirty(cwd=str(source)):
            return None
        return head_sha(cwd=str(source))
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None


def runs_on_for(instance: JobInstance) -> str:
    return interpolate(instance.job.runs_on, ExprContext(matrix=instance.matrix_values))


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _resolve_step(step: Step, expr: ExprContext) -> Step:
    return replace(
        step,
        name=interpolate(step.name, expr),
        run=interpolate(step.run, expr),
        cwd=interpolate(step.cwd, expr) if step.cwd is not None else None,
        data=interpolate_value(step.data, expr) if step.data is not None else None,
        env=interpolate_value(dict(step.env or {}), expr),
    )


def _failure_details(exc: Exception) -> tuple[Optional[int], Optional[str]]:
    if isinstance(exc, StepFailure):
        return exc.exit_code, None
    if isinstance(exc, CIError):
        return None, exc.hint
    return None, None


def _run_job(instance: JobInstance, ctx: JobContext, report: RunReport) -> str:
    """
    Run every step of one job instance in order.

    The first failing step fails the job; later steps only run when their
    `if:` asks for it (`always()` / `failure()`). Raises the first failure.
    """
    console = get_console()
    key = instance.key

    console.print_job_start(key)
    report.record(key, "job_started")
    first_failure: Optional[Exception] = None

    try:
        for step in instance.job.steps:
            ctx.expr.job_failed = first_failure is not None
            ctx.expr.env = dict(ctx.env)
            try:
                should_run = evaluate_condition(step.if_, ctx.expr)
                if not should_run:
                    console.print_step_skipped(key, step.name, f"if: {step.if_}" if step.if_ else "earlier step failed")
                    report.record(key, "step_skipped", step=step.name)
                    continue

                resolved = _resolve_step(step, ctx.expr)
                console.print_step(key, resolved.name)
                report.record(key, "step_started", step=resolved.name)
                run_step(ctx, resolved)
                report.record(key, "step_finished", step=resolved.name, status=OK)
            except Exception as e:
                report.record(key, "step_finished", step=step.name, status=FAILED)
                exit_code, hint = _failure_details(e)
                reason = str(e)
                if isinstance(e, StepFailure) and e.stderr:
                    reason = f"{reason}\n{e.stderr}"
                console.print_failure(step.name, reason, exit_code=exit_code, hint=hint)
                if first_failure is None:
                    first_failure = e
    finally:
        report.record(key, "job_finished", status=FAILED if first_failure else OK)

    if first_failure is not None:
        raise first_failure
    console.print_success(key)
    return OK


# ----------------------------------------------------------------------
# Planning
# ----------------------------------------------------------------------

def plan_levels(graph: InstanceGraph) -> List[List[str]]:
    """Job-level topological stages, expanded to instance keys."""
    return [[k for job_id in level for k in graph.by_job[job_id]] for level in graph.levels]


def unavailable_instances(graph: InstanceGraph, config: RunnerConfig) -> List[str]:
    return [k for k, inst in graph.instances.items() if not config.can_run(runs_on_for(inst))]


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

class _Scheduler:
    """
    Ready-queue scheduler over the instance graph.

    An instance becomes ready once every instance it needs finished `ok`.
    Anything else upstream blocks it (and everything below it).
    """

    def __init__(self, graph: InstanceGraph, report: RunReport, config: RunnerConfig):
        self.graph = graph
        self.report = report
        self.config = config
        self.remaining = {k: set(v) for k, v in graph.needs.items()}
        self.ready: Deque[str] = deque(graph.roots())
        self.in_flight: Dict[Future, str] = {}
        self.stopped = False

    def settled(self, key: str) -> bool:
        return key in self.report.results

    def settle(self, key: str, status: str, error: str | None = None) -> None:
        console = get_console()
        self.report.set_result(key, status, error)

        if status == OK:
            for nxt in sorted(self.graph.dependents[key]):
                self.remaining[nxt].discard(key)
                if not self.remaining[nxt] and not self.settled(nxt):
                    self.ready.append(nxt)
            return

        for d in sorted(self.graph.descendants(key)):
            if not self.settled(d):
                self.report.set_result(d, BLOCKED, f"needs {key} ({status})")
                console.print_job_not_run(d, BLOCKED, f"{key} {status}")

        if status != FAILED:
            return

        inst = self.graph.instances[key]
        if inst.matrix_values and inst.job.fail_fast:
            in_flight = set(self.in_flight.values())
            for sib in self.graph.siblings(key):
                if not self.settled(sib) and sib not in in_flight:
                    self.settle(sib, CANCELLED, f"fail-fast: {key} failed")
                    console.print_job_not_run(sib, CANCELLED, f"fail-fast after {key}")

        if self.config.stop_on_failure:
            self.stopped = True


def run_workflow(
    workflow: Workflow,
    event: PushEvent | str,
    *,
    config: RunnerConfig | None = None,
    source_root: str | Path = ".",
) -> RunReport:
    """
    Run `workflow` for a push event (or a bare tag name).

    Returns a RunReport. A trigger mismatch is a silent no-op: the report
    has activated=False and no results.
    """
    console = get_console()
    config = config or RunnerConfig.from_env()
    if isinstance(event, str):
        event = PushEvent.from_ref(event)

    run_id = run_id_for(workflow, event)
    report = RunReport(run_id=run_id, workflow=workflow.name, tag=event.tag, activated=False)

    if not activates(workflow.trigger, event):
        console.print_not_triggered(workflow.name, event.tag if event.tag is not None else event.ref)
        return report
    report.activated = True

    graph = InstanceGraph(workflow.enabled_jobs)
    source = Path(source_root).resolve()
    state = Path(config.state_dir)
    if not state.is_absolute():
        state = source / state

    report.commit = source_commit(source)
    store = ArtifactStore(state, run_id)
    store.reset_run()
    work_root = state / "runs" / run_id / "work"
    if work_root.exists():
        shutil.rmtree(work_root)

    console.print_run_started(workflow.name, event.tag, run_id, len(graph.instances))

    sched = _Scheduler(graph, report, config)
    default_wd = workflow.defaults_working_directory

    def _submit(pool: ThreadPoolExecutor, inst: JobInstance) -> Future:
        expr = ExprContext(matrix=dict(inst.matrix_values))
        env = {k: interpolate(str(v), expr) for k, v in inst.job.env.items()}
        expr.env = dict(env)
        ctx = JobContext(
            instance=inst,
            workspace=work_root / workspace_name(inst.key),
            source_root=source,
            store=store,
            working_directory=inst.job.working_directory or default_wd,
            env=env,
            output_limit=config.output_limit,
            checkout_ignore=(state.name,),
            expr=expr,
        )
        ctx.workspace.mkdir(parents=True, exist_ok=True)
        return pool.submit(_run_job, inst, ctx, report)

    workers = config.workers
    with ThreadPoolExecutor(max_workers=workers) as pool:
        while sched.ready or sched.in_flight:
            # schedule ready instances up to the worker limit
            while sched.ready and not sched.stopped and len(sched.in_flight) < workers:
                key = sched.ready.popleft()
                if sched.settled(key):
                    continue
                inst = graph.instances[key]
                runs_on = runs_on_for(inst)
                if not config.can_run(runs_on):
                    console.print_job_not_run(key, UNAVAILABLE, f"no local runner for {runs_on}")
                    sched.settle(key, UNAVAILABLE, f"no local runner for {runs_on}")
                    continue
                try:
                    fut = _submit(pool, inst)
                except Exception as e:
                    # bad job env expression or unwritable workspace
                    console.print_failure(key, str(e), is_job=True)
                    sched.settle(key, FAILED, str(e))
                    continue
                sched.in_flight[fut] = key

            if not sched.in_flight:
                break

            # wait for one completion, then loop to schedule newly-ready jobs
            done, _ = wait(list(sched.in_flight), return_when=FIRST_COMPLETED)
            for fut in done:
                key = sched.in_flight.pop(fut)
                try:
                    fut.result()
                    sched.settle(key, OK)
                except Exception as e:
                    sched.settle(key, FAILED, str(e))

                if not config.keep_workspaces:
                    shutil.rmtree(work_root / workspace_name(key), ignore_errors=True)

    # anything never scheduled (stop_on_failure) is cancelled
    for key in graph.instances:
        if not sched.settled(key):
            report.set_result(key, CANCELLED, "run stopped after failure")

    ordered = {k: report.results[k] for k in graph.instances}
    for job in workflow.jobs:
        if not job.enabled:
            ordered[job.id] = DISABLED
    report.results = ordered

    report.save(state / "runs" / run_id / "report.json")
    return report
