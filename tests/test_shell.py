from __future__ import annotations

import shutil
import sys

import pytest

from wheelci.artifacts import ArtifactStore
from wheelci.context import JobContext
from wheelci.dsl import job, matrix, sh, wf
from wheelci.errors import CIError
from wheelci.model import JobInstance
from wheelci.report import FAILED, OK
from wheelci.runner import run_workflow, workspace_name
from wheelci.step_workflows import shell as shell_steps
from wheelci.step_workflows.shell import default_shell, script_text, shell_command

needs_bash = pytest.mark.skipif(shutil.which("bash") is None, reason="bash not installed")
needs_pwsh = pytest.mark.skipif(shutil.which("pwsh") is None, reason="pwsh not installed")


def _run(steps, source_tree, config, **job_kw):
    workflow = wf(job("j", *steps, **job_kw), name="demo")
    return run_workflow(workflow, "1.0", config=config, source_root=source_tree)


@pytest.mark.parametrize(
    "platform, expected",
    [("linux", "bash"), ("darwin", "bash"), ("win32", "pwsh"), ("cygwin", "bash")],
)
def test_default_shell_per_platform(platform, expected):
    assert default_shell(platform) == expected


def test_known_shell_commands():
    assert shell_command("bash", "/tmp/s.sh") == ["bash", "--noprofile", "--norc", "-eo", "pipefail", "/tmp/s.sh"]
    assert shell_command("sh", "/tmp/s.sh") == ["sh", "-e", "/tmp/s.sh"]
    assert shell_command("pwsh", "C:\\t\\s.ps1") == ["pwsh", "-command", ". 'C:\\t\\s.ps1'"]
    assert shell_command("cmd", "s.cmd")[-1] == 'CALL "s.cmd"'
    assert shell_command("python", "s.py") == ["python", "s.py"]
    assert shell_command("perl -w {0}", "s") == ["perl", "-w", "s"]
    with pytest.raises(ValueError):
        shell_command("fish", "s")


def test_powershell_scripts_stop_on_errors_and_keep_exit_codes():
    text = script_text("pwsh", "rm LICENSE.txt")
    assert text.startswith("$ErrorActionPreference = 'stop'\n")
    assert "rm LICENSE.txt\n" in text
    assert text.rstrip().endswith("{ exit $LASTEXITCODE }")
    assert script_text("bash", "echo hi") == "echo hi\n"


def test_sh_records_explicit_shell():
    assert sh("a", "echo").shell is None
    assert sh("a", "echo", shell="bash").shell == "bash"


def test_python_shell_stops_at_first_failure(source_tree, config):
    script = "import sys\nsys.exit(4)\nopen('reached', 'w').close()\n"
    report = _run([sh("Py", script, shell="python")], source_tree, config)
    assert report.results == {"j": FAILED}
    assert "exit=4" in report.errors["j"]


def test_custom_shell_template(source_tree, config):
    template = f'"{sys.executable}" {{0}}'
    report = _run([sh("Custom", "print('custom')", shell=template)], source_tree, config)
    assert report.results == {"j": OK}


def test_unsupported_shell_fails_the_step(source_tree, config):
    report = _run([sh("Fish", "echo hi", shell="fish")], source_tree, config)
    assert report.results == {"j": FAILED}
    assert "invalid_step" in report.errors["j"]


@needs_bash
def test_bash_multiline_script_fails_on_first_failing_line(source_tree, config):
    report = _run(
        [
            sh("Install dependencies", "false\necho installed > marker.txt", shell="bash"),
            sh("After", "true", shell="bash"),
        ],
        source_tree,
        config,
    )
    assert report.results == {"j": FAILED}
    skipped = [e.step for e in report.events if e.kind == "step_skipped"]
    assert skipped == ["After"]


@needs_bash
def test_bash_pipeline_failure_fails_the_step(source_tree, config):
    report = _run([sh("Pipe", "false | cat", shell="bash")], source_tree, config)
    assert report.results == {"j": FAILED}


@pytest.mark.skipif(sys.platform == "win32", reason="default shell is pwsh on Windows")
def test_default_posix_shell_stops_on_errors(source_tree, config):
    report = _run([sh("Lines", "false\ntrue")], source_tree, config)
    assert report.results == {"j": FAILED}


@needs_pwsh
def test_pwsh_runs_every_line_and_fails_on_error(source_tree, config):
    ok = _run([sh("Remove", "Set-Content -Path LICENSE.txt -Value x\nrm LICENSE.txt\nWrite-Output done", shell="pwsh")], source_tree, config)
    assert ok.results == {"j": OK}

    missing = _run([sh("Remove", "rm LICENSE.txt\nWrite-Output done", shell="pwsh")], source_tree, config)
    assert missing.results == {"j": FAILED}

    failing = _run([sh("Exit", "Write-Output one\nexit 5", shell="pwsh")], source_tree, config)
    assert failing.results == {"j": FAILED}
    assert "exit=5" in failing.errors["j"]


@pytest.fixture
def ctx(tmp_path):
    inst = JobInstance(job=job("j", sh("x", "true")), key="j")
    return JobContext(instance=inst, workspace=tmp_path, source_root=tmp_path, store=ArtifactStore(tmp_path, "r"))


def _which_without(missing):
    return lambda name, path=None: None if name in missing else f"/usr/bin/{name}"


def test_missing_default_shell_falls_back(ctx, monkeypatch):
    monkeypatch.setattr(shell_steps, "default_shell", lambda platform=None: "bash")
    monkeypatch.setattr(shell_steps.shutil, "which", _which_without({"bash"}))
    assert shell_steps._pick_shell(ctx, sh("x", "true"), {}) == "sh"

    monkeypatch.setattr(shell_steps, "default_shell", lambda platform=None: "pwsh")
    monkeypatch.setattr(shell_steps.shutil, "which", _which_without({"pwsh"}))
    assert shell_steps._pick_shell(ctx, sh("x", "true"), {}) == "powershell"


def test_missing_explicit_shell_is_a_tool_error(ctx, monkeypatch):
    monkeypatch.setattr(shell_steps.shutil, "which", _which_without({"bash"}))
    with pytest.raises(CIError) as exc:
        shell_steps._pick_shell(ctx, sh("x", "true", shell="bash"), {})
    assert exc.value.kind == "tool_unavailable"
    assert "bash" in exc.value.hint


def test_matrix_cells_differing_in_case_get_separate_workspaces(source_tree, tmp_path):
    from wheelci.config import RunnerConfig

    assert workspace_name("build (A)") != workspace_name("build (a)")
    assert workspace_name("build (a b)") != workspace_name("build (a-b)")

    config = RunnerConfig(state_dir=str(tmp_path / "state"), max_workers=1, run_anywhere=True)
    script = (
        "import os, sys\n"
        "open('cell-${{ matrix.v }}.marker', 'w').close()\n"
        "markers = [n for n in os.listdir('.') if n.endswith('.marker')]\n"
        "sys.exit(0 if len(markers) == 1 else 1)\n"
    )
    workflow = wf(job("build", sh("Mark", script, shell="python"), matrix=matrix(v=["A", "a"])), name="demo")
    report = run_workflow(workflow, "1.0", config=config, source_root=source_tree)
    assert report.results == {"build (A)": OK, "build (a)": OK}
