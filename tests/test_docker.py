from __future__ import annotations

from pathlib import Path

import pytest

from wheelci.artifacts import ArtifactStore
from wheelci.context import JobContext
from wheelci.dsl import docker_step, job
from wheelci.errors import CIError
from wheelci.model import JobInstance, Step
from wheelci.step_workflows.docker import build_command


@pytest.fixture
def ctx(tmp_path):
    build = docker_step("Build wheels", "konstin2/maturin:v0.11.2", ["build", "--release"])
    inst = JobInstance(job=job("build-manylinux", build), key="build-manylinux")
    return JobContext(
        instance=inst,
        workspace=tmp_path / "ws",
        source_root=tmp_path,
        store=ArtifactStore(tmp_path / "state", "r"),
        working_directory="./python",
        env={"CARGO_TERM_COLOR": "always", "PATH": "/host/bin"},
    )


def test_manylinux_command(ctx):
    step = docker_step(
        "Build wheels",
        "konstin2/maturin:v0.11.2",
        ["build", "--release", "--manylinux", "2010"],
        workdir="python",
        env={"RUSTFLAGS": "-C target-cpu=skylake"},
    )
    ws = str(Path(ctx.workspace).resolve())
    assert build_command(ctx, step) == [
        "docker", "run", "--rm",
        "-v", f"{ws}:/io",
        "--workdir", "/io/python",
        "-e", "CARGO_TERM_COLOR=always",
        "-e", "RUSTFLAGS=-C target-cpu=skylake",
        "konstin2/maturin:v0.11.2",
        "build", "--release", "--manylinux", "2010",
    ]


def test_workdir_defaults_to_job_working_directory(ctx):
    step = docker_step("b", "img", ["x"], mount="/src/", volumes=["cache:/root/.cargo"], user="1000:1000")
    cmd = build_command(ctx, step)
    assert cmd[cmd.index("--workdir") + 1] == "/src/python"
    assert f"{Path(ctx.workspace).resolve()}:/src" in cmd
    assert "cache:/root/.cargo" in cmd
    assert cmd[cmd.index("--user") + 1] == "1000:1000"
    assert not any(a.startswith("PATH=") for a in cmd)


def test_workdir_at_mount_root(ctx):
    ctx.working_directory = None
    cmd = build_command(ctx, docker_step("b", "img", []))
    assert cmd[cmd.index("--workdir") + 1] == "/io"


def test_missing_image(ctx):
    with pytest.raises(CIError) as exc:
        build_command(ctx, Step(name="b", kind="docker", data={"args": []}))
    assert exc.value.kind == "invalid_step"
