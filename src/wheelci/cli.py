# cli.py
from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import click

from wheelci.artifacts import ArtifactStore, list_runs
from wheelci.config import RunnerConfig
from wheelci.dag import InstanceGraph
from wheelci.git_facts.git import tags_at_head
from wheelci.loader import load_workflow
from wheelci.model import WorkflowError
from wheelci.runner import plan_levels, run_workflow, unavailable_instances
from wheelci.trigger import PushEvent, activates, match_tag
from wheelci.ui.console import Console, get_console, set_console


def find_workflow_files() -> list[Path]:
    """
    Find all workflow files in the current directory.

    Returns:
        List of Path objects for workflow files
    """
    workflow_files = []
    current_dir = Path(".")

    default_workflow = current_dir / "wheelci_workflow.py"
    if default_workflow.exists():
        workflow_files.append(default_workflow)

    for path in current_dir.glob("*_workflow.py"):
        if path != default_workflow:
            workflow_files.append(path)

    return sorted(workflow_files)


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix not in (".py", ".yml", ".yaml"):
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  wheelci run --workflow my_workflow.py",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=[
                "Looked for:",
                "  wheelci_workflow.py",
                "  *_workflow.py",
            ],
            suggestion="Create a workflow file:\n  wheelci_workflow.py\n\nOr specify a workflow explicitly:\n  wheelci run --workflow .github/workflows/python_build.yml",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        file_list = "\n".join(f"  {f}" for f in workflow_files)
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[file_list],
            suggestion="Specify a workflow explicitly:\n  wheelci run --workflow wheelci_workflow.py",
        )
        sys.exit(1)

    return workflow_files[0]


def _load_or_exit(ctx, workflow_path: Path):
    console = get_console()
    try:
        return load_workflow(workflow_path)
    except (WorkflowError, TypeError, ValueError, FileNotFoundError) as e:
        console.print_error(
            "Failed to load workflow",
            f"Could not load workflow from {workflow_path}",
            details=[str(e)],
        )
        if ctx.obj.get("debug", False):
            import traceback
            traceback.print_exc()
        sys.exit(1)


def _resolve_tag(tag: str | None, wf, source: str) -> str:
    if tag:
        return tag
    console = get_console()
    try:
        tags = tags_at_head(cwd=source)
    except (subprocess.CalledProcessError, FileNotFoundError):
        tags = []
    if not tags:
        console.print_error(
            "No tag to run for",
            "HEAD is not at a tag and no --tag was given.",
            suggestion="Pass the tag explicitly:\n  wheelci run --tag 1.2.0-rc1",
        )
        sys.exit(1)
    # a commit tagged both 1.2.0-rc1 and 1.2.0 runs for the tag that activates
    found = next((t for t in tags if activates(wf.trigger, PushEvent(tag=t))), tags[0])
    console.print_debug(f"Using tag at HEAD: {found}")
    return found


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """wheelci: local runner for tag-triggered wheel release workflows."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.py or .yml); defaults to wheelci_workflow.py if present")
@click.option("--tag", default=None, help="Tag being pushed (defaults to the tag at HEAD)")
@click.option("--workers", default=None, type=int, help="Number of parallel job instances")
@click.option("--state-dir", default=None, help="Directory for artifacts, workspaces and reports")
@click.option("--source", default=".", show_default=True, help="Source tree checked out into each job")
@click.option("--fail-fast", is_flag=True, default=False, help="Stop scheduling new jobs after the first failure")
@click.option("--run-anywhere", is_flag=True, default=False, help="Run jobs even when runs-on does not match this host")
@click.pass_context
def run(ctx, workflow, tag, workers, state_dir, source, fail_fast, run_anywhere):
    """Run a workflow for a pushed tag."""
    console = get_console()
    workflow_path = discover_workflow(workflow)
    wf = _load_or_exit(ctx, workflow_path)
    tag = _resolve_tag(tag, wf, source)

    config = RunnerConfig.from_env().override(
        max_workers=workers,
        state_dir=state_dir,
        stop_on_failure=fail_fast or None,
        run_anywhere=run_anywhere or None,
    )

    try:
        report = run_workflow(wf, PushEvent.from_ref(tag), config=config, source_root=source)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)

    if not report.activated:
        # a non-matching tag is not an error
        return

    console.print_results(report.results)
    if report.failed:
        sys.exit(1)


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.py or .yml)")
@click.option("--run-anywhere", is_flag=True, default=False, help="Treat every runs-on label as available")
@click.pass_context
def plan(ctx, workflow, run_anywhere):
    """Show the expanded job instances stage by stage."""
    console = get_console()
    wf = _load_or_exit(ctx, discover_workflow(workflow))
    config = RunnerConfig.from_env().override(run_anywhere=run_anywhere or None)

    try:
        graph = InstanceGraph(wf.enabled_jobs)
    except WorkflowError as e:
        console.print_error("Invalid workflow", str(e))
        sys.exit(1)

    console.print_header(f"{wf.name} (on push tags: {', '.join(wf.trigger.tags) or '*'})")
    console.print_plan(
        plan_levels(graph),
        disabled=[j.id for j in wf.jobs if not j.enabled],
        unavailable=unavailable_instances(graph, config),
    )


@cli.command()
@click.argument("tag")
@click.option("--workflow", default=None, help="Workflow file whose trigger to use")
@click.option("--pattern", "patterns", multiple=True, help="Tag pattern(s) to test instead of a workflow's trigger")
@click.pass_context
def match(ctx, tag, workflow, patterns):
    """Check whether TAG would trigger the workflow (exit 0 if yes, 1 if not)."""
    console = get_console()
    if patterns:
        hit = match_tag(tag, list(patterns))
    else:
        wf = _load_or_exit(ctx, discover_workflow(workflow))
        hit = activates(wf.trigger, PushEvent.from_ref(tag))

    console.print_info(f"{tag}: {'activates' if hit else 'no match'}")
    if not hit:
        sys.exit(1)


@cli.command()
@click.argument("run_id", required=False)
@click.option("--state-dir", default=None, help="Directory for artifacts, workspaces and reports")
def artifacts(run_id, state_dir):
    """List runs, or the artifacts of RUN_ID."""
    console = get_console()
    config = RunnerConfig.from_env().override(state_dir=state_dir)

    if not run_id:
        runs = list_runs(config.state_dir)
        if not runs:
            console.print_info("No runs recorded.")
        for r in runs:
            console.print_info(r)
        return

    if run_id not in list_runs(config.state_dir):
        console.print_error("Unknown run", f"No run {run_id!r} under {config.state_dir}")
        sys.exit(1)

    store = ArtifactStore(config.state_dir, run_id)
    for artifact in store.list():
        console.print_info(f"{artifact.name}  ({len(artifact.files)} file(s); from {', '.join(artifact.producers)})")
        for rel, f in sorted(artifact.files.items()):
            console.print_info(f"  {rel}  {f.size}  {f.sha256[:12]}")


if __name__ == "__main__":
    cli()
