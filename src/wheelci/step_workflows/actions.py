# step_workflows/actions.py
"""
Local implementations of the `uses:` actions a wheel release workflow needs.

Each action is a function (ctx, step) registered under its repository
name without the `@version` suffix.
"""
from __future__ import annotations

import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List

from ..context import JobContext
from ..errors import TOOL_HINTS, CIError, StepFailure
from ..model import Step
from ..ui.console import get_console

ActionFn = Callable[[JobContext, Step], None]

ACTIONS: Dict[str, ActionFn] = {}

CHECKOUT_IGNORE = (".git", "__pycache__")


def action(name: str) -> Callable[[ActionFn], ActionFn]:
    def register(fn: ActionFn) -> ActionFn:
        ACTIONS[name] = fn
        return fn
    return register


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def uses(name: str, ref: str, *, with_: Dict[str, Any] | None = None, if_: str | None = None) -> Step:
    """Create a step that runs a built-in action, e.g. uses("Checkout", "actions/checkout@v2")."""
    return Step(name=name, kind="uses", data={"uses": ref, "with": dict(with_ or {})}, if_=if_)


def checkout() -> Step:
    return uses("Checkout", "actions/checkout@v2")


def setup_python(version: str) -> Step:
    return uses("Set up Python", "actions/setup-python@v2", with_={"python-version": version})


def rust_toolchain(toolchain: str, *, profile: str | None = None, override: bool = False) -> Step:
    with_: Dict[str, Any] = {"toolchain": toolchain}
    if profile:
        with_["profile"] = profile
    if override:
        with_["override"] = True
    return uses("Install Rust toolchain", "actions-rs/toolchain@v1", with_=with_)


def upload_artifact(name: str, path: str, *, step_name: str | None = None) -> Step:
    return uses(step_name or f"Upload {name}", "actions/upload-artifact@v2", with_={"name": name, "path": path})


def download_artifact(name: str, path: str | None = None, *, step_name: str | None = None) -> Step:
    with_: Dict[str, Any] = {"name": name}
    if path is not None:
        with_["path"] = path
    return uses(step_name or f"Download {name}", "actions/download-artifact@v2", with_=with_)


# ---------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------

def action_name(ref: str) -> str:
    return ref.split("@", 1)[0].strip()


def _as_bool(v: Any) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes", "on")
    return bool(v)


def _paths(raw: Any) -> List[str]:
    if isinstance(raw, list):
        return [str(p).strip() for p in raw if str(p).strip()]
    return [line.strip() for line in str(raw or "").splitlines() if line.strip()]


def _tool_error(ctx: JobContext, step: Step, tool: str, message: str) -> CIError:
    return CIError(
        kind="tool_unavailable",
        job=ctx.key,
        step=step.name,
        message=message,
        details={"hint": TOOL_HINTS.get(tool, f"Install {tool} or fix PATH."), "tool": tool},
    )


def _run(ctx: JobContext, step: Step, cmd: List[str], cwd: Path) -> None:
    proc = subprocess.run(cmd, cwd=str(cwd), env=ctx.step_env(step), text=True, capture_output=True)
    get_console().print_step_output(ctx.key, proc.stdout)
    if proc.returncode != 0:
        raise StepFailure(
            job=ctx.key,
            step=step.name,
            cmd=" ".join(cmd),
            exit_code=proc.returncode,
            stdout=proc.stdout[-ctx.output_limit:],
            stderr=proc.stderr[-ctx.output_limit:],
        )


@action("actions/checkout")
def _checkout(ctx: JobContext, step: Step) -> None:
    src = ctx.source_root.resolve()
    dest = ctx.workspace.resolve()
    ignore_names = set(CHECKOUT_IGNORE) | set(ctx.checkout_ignore)

    def _ignore(directory: str, names: List[str]) -> List[str]:
        skipped = [n for n in names if n in ignore_names]
        # never copy the workspace into itself
        skipped.extend(n for n in names if (Path(directory) / n).resolve() == dest)
        return skipped

    dest.mkdir(parents=True, exist_ok=True)
    shutil.copytree(src, dest, ignore=_ignore, dirs_exist_ok=True)


@action("actions/upload-artifact")
def _upload(ctx: JobContext, step: Step) -> None:
    w = step.with_
    name = str(w.get("name") or "artifact")
    paths = _paths(w.get("path"))
    if not paths:
        raise CIError(kind="invalid_step", job=ctx.key, step=step.name, message="upload-artifact requires 'path'")
    artifact = ctx.store.upload(name, paths, workspace=ctx.workspace, producer=ctx.key)
    get_console().print_artifact("uploaded", name, len(artifact.files))


@action("actions/download-artifact")
def _download(ctx: JobContext, step: Step) -> None:
    w = step.with_
    dest = ctx.workspace / str(w.get("path") or ".")
    name = w.get("name")
    if name:
        written = ctx.store.download(str(name), dest, consumer=ctx.key)
        get_console().print_artifact("downloaded", str(name), len(written))
        return
    # no name: every artifact of the run, each into its own directory
    for artifact_name in ctx.store.names():
        written = ctx.store.download(artifact_name, dest / artifact_name, consumer=ctx.key)
        get_console().print_artifact("downloaded", artifact_name, len(written))


def find_python(version: str) -> str | None:
    """Locate an interpreter for `version` ("3.10", "3"), preferring the running one."""
    current = f"{sys.version_info.major}.{sys.version_info.minor}"
    if current == version or current.startswith(version + "."):
        return sys.executable
    return shutil.which(f"python{version}")


@action("actions/setup-python")
def _setup_python(ctx: JobContext, step: Step) -> None:
    version = str(step.with_.get("python-version") or "3")
    exe = find_python(version)
    if exe is None:
        raise _tool_error(ctx, step, "python", f"Python {version} is not available on this host")

    bin_dir = str(Path(exe).parent)
    ctx.env["PATH"] = bin_dir + os.pathsep + ctx.env.get("PATH", os.environ.get("PATH", ""))
    ctx.env["pythonLocation"] = str(Path(bin_dir).parent)
    get_console().print_debug(f"[{ctx.key}] python {version}: {exe}")


@action("actions-rs/toolchain")
def _rust_toolchain(ctx: JobContext, step: Step) -> None:
    w = step.with_
    toolchain = str(w.get("toolchain") or "stable")
    if shutil.which("rustup") is None:
        raise _tool_error(ctx, step, "rustup", "rustup is not available")

    cmd = ["rustup", "toolchain", "install", toolchain]
    if w.get("profile"):
        cmd.extend(["--profile", str(w["profile"])])
    _run(ctx, step, cmd, ctx.workspace)

    if _as_bool(w.get("override", False)):
        _run(ctx, step, ["rustup", "override", "set", toolchain], ctx.workspace)


def run_step(ctx: JobContext, step: Step) -> None:
    ref = step.uses
    if not ref:
        raise CIError(kind="invalid_step", job=ctx.key, step=step.name, message="uses step without action reference")
    fn = ACTIONS.get(action_name(ref))
    if fn is None:
        raise CIError(
            kind="unknown_action",
            job=ctx.key,
            step=step.name,
            message=f"action {ref!r} has no local implementation",
            details={"known": ", ".join(sorted(ACTIONS))},
        )
    fn(ctx, step)
