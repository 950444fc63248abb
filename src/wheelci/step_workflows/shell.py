# step_workflows/shell.py
"""
`run:` steps.

The script is written to a temp file and handed to the step's shell, the
way hosted runners do it:

    bash        bash --noprofile --norc -eo pipefail {0}
    sh          sh -e {0}
    pwsh        pwsh -command ". '{0}'"
    powershell  powershell -command ". '{0}'"
    cmd         cmd /D /E:ON /V:OFF /S /C "CALL "{0}""
    python      python {0}

Any other value must be a command template containing `{0}`.
Without `shell:` the default is bash on POSIX (sh if bash is missing) and
pwsh on Windows (Windows PowerShell if pwsh is missing).
"""
from __future__ import annotations

import os
import shlex
import shutil
import subprocess
import sys
import tempfile
from typing import Dict, List, Tuple

from ..context import JobContext
from ..errors import TOOL_HINTS, CIError, StepFailure
from ..model import Step
from ..ui.console import get_console

SHELLS: Dict[str, Tuple[List[str], str]] = {
    "bash": (["bash", "--noprofile", "--norc", "-eo", "pipefail", "{0}"], ".sh"),
    "sh": (["sh", "-e", "{0}"], ".sh"),
    "pwsh": (["pwsh", "-command", ". '{0}'"], ".ps1"),
    "powershell": (["powershell", "-command", ". '{0}'"], ".ps1"),
    "cmd": (["cmd", "/D", "/E:ON", "/V:OFF", "/S", "/C", 'CALL "{0}"'], ".cmd"),
    "python": (["python", "{0}"], ".py"),
}

# default shell -> what to use when it is not installed
FALLBACKS = {"bash": "sh", "pwsh": "powershell"}

# PowerShell keeps going after a failing cmdlet unless told otherwise,
# and only reports a native command's exit code if asked to
_PS_PROLOGUE = "$ErrorActionPreference = 'stop'\n"
_PS_EPILOGUE = "\nif ((Test-Path -LiteralPath variable:\\LASTEXITCODE)) { exit $LASTEXITCODE }\n"


def sh(
    name: str,
    cmd: str,
    *,
    cwd: str | None = None,
    if_: str | None = None,
    env: dict | None = None,
    shell: str | None = None,
) -> Step:
    """Create a shell step."""
    return Step(
        name=name,
        run=cmd,
        cwd=cwd,
        data={"shell": shell} if shell else None,
        if_=if_,
        env=dict(env or {}),
    )


def default_shell(platform: str | None = None) -> str:
    return "pwsh" if (platform or sys.platform).startswith("win") else "bash"


def script_text(shell: str, script: str) -> str:
    if shell in ("pwsh", "powershell"):
        return _PS_PROLOGUE + script + _PS_EPILOGUE
    return script if script.endswith("\n") else script + "\n"


def shell_command(shell: str, script_path: str) -> List[str]:
    """Argv that runs `script_path` with `shell` (a known name or a `{0}` template)."""
    if shell in SHELLS:
        template, _ = SHELLS[shell]
    elif "{0}" in shell:
        template = shlex.split(shell)
    else:
        raise ValueError(f"unsupported shell {shell!r}: use one of {sorted(SHELLS)} or a template with {{0}}")
    return [part.replace("{0}", script_path) for part in template]


def _script_suffix(shell: str) -> str:
    return SHELLS[shell][1] if shell in SHELLS else ""


def _pick_shell(ctx: JobContext, step: Step, env: Dict[str, str]) -> str:
    """Resolve the shell to run with, falling back only for the platform default."""
    shell = step.shell or default_shell()
    if shell not in SHELLS:
        if "{0}" not in shell:
            raise CIError(
                kind="invalid_step",
                job=ctx.key,
                step=step.name,
                message=f"unsupported shell {shell!r}",
                details={"known": ", ".join(sorted(SHELLS)), "hint": "Use a known shell or a command template containing {0}."},
            )
        return shell
    path = env.get("PATH")
    if shutil.which(SHELLS[shell][0][0], path=path):
        return shell
    if step.shell is None and shell in FALLBACKS and shutil.which(FALLBACKS[shell], path=path):
        return FALLBACKS[shell]
    if shell == "python":
        return shell
    raise CIError(
        kind="tool_unavailable",
        job=ctx.key,
        step=step.name,
        message=f"shell {shell!r} is not available",
        details={"hint": TOOL_HINTS.get(shell, f"Install {shell} or fix PATH."), "tool": shell},
    )


def _argv(shell: str, script_path: str, env: Dict[str, str]) -> List[str]:
    argv = shell_command(shell, script_path)
    # resolve against the step PATH so setup-python's interpreter wins
    exe = shutil.which(argv[0], path=env.get("PATH"))
    if exe:
        argv[0] = exe
    elif shell == "python":
        argv[0] = sys.executable
    return argv


def run_step(ctx: JobContext, step: Step) -> None:
    cwd = ctx.step_cwd(step)
    if not cwd.exists():
        raise FileNotFoundError(f"[{ctx.key}] step '{step.name}' cwd not found: {cwd}")

    env = ctx.step_env(step)
    shell = _pick_shell(ctx, step, env)

    fd, script_path = tempfile.mkstemp(prefix="wheelci-", suffix=_script_suffix(shell))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(script_text(shell, step.run))
        proc = subprocess.run(
            _argv(shell, script_path, env),
            cwd=str(cwd),
            env=env,
            text=True,
            capture_output=True,   # so you can show output on failure
        )
    finally:
        os.unlink(script_path)
    get_console().print_step_output(ctx.key, proc.stdout)

    if proc.returncode != 0:
        raise StepFailure(
            job=ctx.key,
            step=step.name,
            cmd=step.run,
            exit_code=proc.returncode,
            stdout=proc.stdout[-ctx.output_limit:],
            stderr=proc.stderr[-ctx.output_limit:],
        )
