# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - the run report
      - debugging without full tracebacks
    """
    kind: str
    job: str
    step: str | None
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}", f"job={self.job}"]
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)

    @property
    def hint(self) -> str | None:
        return self.details.get("hint")


@dataclass
class StepFailure(Exception):
    job: str
    step: str
    cmd: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    def __str__(self) -> str:
        return f"[{self.job}] step '{self.step}' failed (exit={self.exit_code}): {self.cmd}"


TOOL_HINTS = {
    "docker": "Install Docker and ensure the daemon is running.",
    "rustup": "Install rustup (https://rustup.rs) or fix PATH.",
    "maturin": "Install maturin (e.g., pip install maturin).",
    "git": "Install Git or fix PATH.",
    "bash": "Install bash or set `shell: sh` on the step.",
    "pwsh": "Install PowerShell 7 (pwsh) or set `shell: powershell` on the step.",
    "cmd": "cmd is only available on Windows.",
    "python": "Install the requested Python version or fix PATH.",
}
