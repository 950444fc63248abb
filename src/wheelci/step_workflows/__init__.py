from __future__ import annotations

from typing import Callable, Dict

from ..context import JobContext
from ..model import Step
from . import actions, docker, shell

EXECUTORS: Dict[str, Callable[[JobContext, Step], None]] = {
    "run": shell.run_step,
    "uses": actions.run_step,
    "docker": docker.run_step,
}


def run_step(ctx: JobContext, step: Step) -> None:
    EXECUTORS[step.kind](ctx, step)
