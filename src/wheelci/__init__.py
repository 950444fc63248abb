from .dsl import job, sh, uses, matrix, on_tags, wf, docker_step, JobBuilder, build
from .loader import load_workflow
from .model import Job, Step, Trigger, Workflow
from .runner import run_workflow
from .trigger import PushEvent, match_tag

__all__ = [
    "job", "sh", "uses", "matrix", "on_tags", "wf", "docker_step", "JobBuilder", "build",
    "load_workflow", "run_workflow", "PushEvent", "match_tag", "Job", "Step", "Trigger", "Workflow",
]
