from __future__ import annotations

from pathlib import Path

import pytest

from wheelci.loader import load_workflow, parse_workflow_yaml
from wheelci.expansion import combinations
from wheelci.model import WorkflowError
from wheelci.release import release_workflow

DATA = Path(__file__).parent / "data"
ROOT = Path(__file__).parents[1]


def test_github_workflow_yaml_loads():
    workflow = load_workflow(DATA / "python_build.yml")

    assert workflow.name == "Python Release Build"
    assert workflow.trigger.event == "push"
    assert workflow.trigger.tags == ["*-rc*"]
    assert workflow.defaults_working_directory == "./python"
    # the commented-out publish job is not part of the file's jobs
    assert [j.id for j in workflow.jobs] == ["generate-license", "build-python-mac-win", "build-manylinux"]

    mac_win = workflow.job("build-python-mac-win")
    assert mac_win.display_name == "Mac/Win"
    assert mac_win.needs == ["generate-license"]
    assert mac_win.runs_on == "${{ matrix.os }}"
    assert mac_win.fail_fast is False
    assert combinations(mac_win.matrix) == [
        {"python-version": "3.10", "os": "macos-latest"},
        {"python-version": "3.10", "os": "windows-latest"},
    ]


def test_yaml_steps_are_converted():
    workflow = load_workflow(DATA / "python_build.yml")
    license_steps = workflow.job("generate-license").steps
    assert [s.kind for s in license_steps] == ["uses", "uses", "run", "uses"]
    assert license_steps[0].name == "actions/checkout@v2"
    assert license_steps[1].with_ == {"profile": "minimal", "toolchain": "stable", "override": True}
    assert license_steps[2].run == "python ../dev/create_license.py"

    mac_win = workflow.job("build-python-mac-win").steps
    assert mac_win[4].name == "Run rm LICENSE.txt"
    assert mac_win[7].if_ == "matrix.os == 'windows-latest'"
    assert mac_win[3].run.splitlines() == ["python -m pip install --upgrade pip", "pip install maturin==0.11.5"]


def test_yaml_and_python_definitions_agree_on_the_graph():
    from_yaml = load_workflow(DATA / "python_build.yml")
    from_python = release_workflow()
    for job in from_yaml.jobs:
        other = from_python.job(job.id)
        assert job.needs == other.needs
        assert job.fail_fast == other.fail_fast
        assert job.runs_on == other.runs_on


def test_python_workflow_file_loads():
    workflow = load_workflow(ROOT / "wheelci_workflow.py")
    assert workflow.name == "Python Release Build"
    assert workflow.job("release").enabled is False


def test_python_file_with_job_list(tmp_path):
    path = tmp_path / "jobs_workflow.py"
    path.write_text(
        "from wheelci import job, sh\n"
        "JOBS = [job('a', sh('x', 'true')), job('b', sh('y', 'true'), needs=['a'])]\n",
        encoding="utf-8",
    )
    workflow = load_workflow(path)
    assert workflow.name == "jobs_workflow"
    assert [j.id for j in workflow.jobs] == ["a", "b"]


def test_python_file_without_workflow(tmp_path):
    path = tmp_path / "empty_workflow.py"
    path.write_text("X = 1\n", encoding="utf-8")
    with pytest.raises(TypeError):
        load_workflow(path)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_workflow(tmp_path / "nope.yml")


def test_job_level_if_false_disables_job():
    workflow = parse_workflow_yaml(
        """
on: push
jobs:
  build:
    runs-on: ubuntu-latest
    steps:
      - run: make
  publish:
    needs: build
    if: false
    runs-on: ubuntu-latest
    steps:
      - run: twine upload dist/*
"""
    )
    assert workflow.trigger.event == "push"
    assert workflow.trigger.tags == []
    assert workflow.job("publish").needs == ["build"]
    assert workflow.job("publish").enabled is False
    assert [j.id for j in workflow.enabled_jobs] == ["build"]


def test_tags_ignore_and_step_options():
    workflow = parse_workflow_yaml(
        """
name: demo
on:
  push:
    tags: ["v*"]
    tags-ignore: ["v*-dev*"]
jobs:
  build:
    runs-on: [ubuntu-latest]
    env:
      LEVEL: 3
    steps:
      - run: make
        working-directory: native
        env:
          CC: clang
"""
    )
    assert workflow.trigger.tags_ignore == ["v*-dev*"]
    build = workflow.job("build")
    assert build.runs_on == "ubuntu-latest"
    assert build.env == {"LEVEL": "3"}
    assert build.steps[0].cwd == "native"
    assert build.steps[0].env == {"CC": "clang"}


@pytest.mark.parametrize(
    "text",
    [
        "- just\n- a list\n",
        "name: x\njobs: {}\n",
        "jobs:\n  a:\n    steps:\n      - run: x\n",
        "jobs:\n  a:\n    runs-on: ubuntu-latest\n    steps: []\n",
        "jobs:\n  a:\n    runs-on: ubuntu-latest\n    steps:\n      - run: x\n        uses: actions/checkout@v2\n",
        "jobs:\n  a:\n    runs-on: ubuntu-latest\n    strategy:\n      matrix:\n        os: macos-latest\n    steps:\n      - run: x\n",
        "jobs: [unclosed\n",
    ],
)
def test_invalid_workflows_raise(text):
    with pytest.raises(WorkflowError):
        parse_workflow_yaml(text)


def test_shell_defaults_and_overrides():
    workflow = parse_workflow_yaml(
        """
defaults:
  run:
    shell: bash
jobs:
  posix:
    runs-on: ubuntu-latest
    steps:
      - run: make
      - run: print('hi')
        shell: python
      - uses: actions/checkout@v2
  windows:
    runs-on: windows-latest
    defaults:
      run:
        shell: pwsh
    steps:
      - run: rm LICENSE.txt
"""
    )
    assert [s.shell for s in workflow.job("posix").steps] == ["bash", "python", None]
    assert workflow.job("windows").steps[0].shell == "pwsh"


def test_steps_without_shell_use_the_platform_default():
    workflow = load_workflow(DATA / "python_build.yml")
    assert all(s.shell is None for j in workflow.jobs for s in j.steps)
