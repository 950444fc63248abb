# step_workflows/docker.py
from __future__ import annotations

import subprocess
from typing import Dict, List

from ..context import JobContext
from ..errors import TOOL_HINTS, CIError, StepFailure
from ..model import Step
from ..ui.console import get_console

DEFAULT_MOUNT = "/io"


# ---------------------------------------------------------------------
# Docker step helper
# ---------------------------------------------------------------------

def docker_step(
    name: str,
    image: str,
    args: List[str],
    *,
    mount: str = DEFAULT_MOUNT,
    workdir: str | None = None,
    volumes: List[str] | None = None,
    env: Dict[str, str] | None = None,
    user: str | None = None,
    if_: str | None = None,
) -> Step:
    """
    Create a step that runs `image` with `args` and the job workspace mounted read-write.

    `workdir` is relative to the mount; it defaults to the job's working directory.
    """
    return Step(
        name=name,
        run=" ".join([image, *args]),
        kind="docker",
        data={
            "image": image,
            "args": list(args),
            "mount": mount,
            "workdir": workdir,
            "volumes": list(volumes or []),
            "user": user,
        },
        if_=if_,
        env=dict(env or {}),
    )


# ---------------------------------------------------------------------
# Docker step execution
# ---------------------------------------------------------------------

def _check_docker_available(ctx: JobContext, step: Step) -> None:
    """Check if Docker is available, raise helpful error if not."""
    try:
        subprocess.run(
            ["docker", "--version"],
            capture_output=True,
            check=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        raise CIError(
            kind="docker_unavailable",
            job=ctx.key,
            step=step.name,
            message="Docker is not available",
            details={"hint": TOOL_HINTS["docker"]},
        )


def build_command(ctx: JobContext, step: Step) -> List[str]:
    data = step.data or {}
    image = data.get("image")
    if not image:
        raise CIError(kind="invalid_step", job=ctx.key, step=step.name, message="docker step without image")

    mount = str(data.get("mount") or DEFAULT_MOUNT).rstrip("/")
    cmd = ["docker", "run", "--rm"]

    # Volume mount: workspace -> mount (read-write)
    cmd.extend(["-v", f"{ctx.workspace.resolve()}:{mount}"])
    for vol in data.get("volumes") or []:
        cmd.extend(["-v", vol])

    rel = data.get("workdir")
    if rel is None:
        rel = step.cwd if step.cwd is not None else (ctx.working_directory or ".")
    rel = str(rel).replace("\\", "/").strip("/")
    if rel in ("", "."):
        cmd.extend(["--workdir", mount])
    else:
        cmd.extend(["--workdir", f"{mount}/{rel.removeprefix('./')}"])

    # Only job + step env crosses into the container
    env = dict(ctx.env)
    env.update(step.env or {})
    env.pop("PATH", None)
    for key, value in sorted(env.items()):
        cmd.extend(["-e", f"{key}={value}"])

    if data.get("user"):
        cmd.extend(["--user", str(data["user"])])

    cmd.append(str(image))
    cmd.extend(str(a) for a in data.get("args") or [])
    return cmd


def run_step(ctx: JobContext, step: Step) -> None:
    """Run a step inside a Docker container."""
    _check_docker_available(ctx, step)
    cmd = build_command(ctx, step)
    get_console().print_debug(" ".join(cmd))

    proc = subprocess.run(
        cmd,
        shell=False,
        text=True,
        capture_output=True,
    )
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
