from __future__ import annotations

import pytest

from wheelci import build, job, matrix, on_tags, sh, uses, wf
from wheelci.dsl import download_artifact, rust_toolchain, setup_python, upload_artifact
from wheelci.model import Step, Trigger, WorkflowError


def test_job_collects_steps_and_defaults_cwd():
    j = job(
        "lint",
        sh("ruff", "ruff check ."),
        sh("mypy", "mypy src", cwd="pkg"),
        uses("Checkout", "actions/checkout@v2"),
        cwd="python",
    )
    assert [s.cwd for s in j.steps] == ["python", "pkg", None]
    assert j.runs_on == "ubuntu-latest"
    assert j.fail_fast is True
    assert j.enabled is True


def test_job_without_steps():
    with pytest.raises(WorkflowError):
        job("empty")


def test_builder():
    j = (
        build("test")
        .named("Tests")
        .depends_on("lint", "license")
        .runs_on("macos-latest")
        .define_step("pytest", "pytest -q")
        .add_step(sh("coverage", "coverage report"))
        .with_env(PYTHONHASHSEED=0)
        .with_matrix(matrix(py=["3.10", "3.11"]), fail_fast=False)
        .in_directory("python")
        .build()
    )
    assert j.display_name == "Tests"
    assert j.needs == ["lint", "license"]
    assert [s.name for s in j.steps] == ["pytest", "coverage"]
    assert j.env == {"PYTHONHASHSEED": "0"}
    assert j.fail_fast is False
    assert j.working_directory == "python"


def test_builder_disabled_and_empty():
    assert build("x").define_step("a", "true").disabled().build().enabled is False
    with pytest.raises(WorkflowError):
        build("x").build()


def test_matrix_forms():
    m = matrix({"python-version": ["3.10"]}, os=["macos-latest"], exclude=[{"os": "windows-latest"}])
    assert m.axes == {"python-version": ["3.10"], "os": ["macos-latest"]}
    assert m.exclude == [{"os": "windows-latest"}]
    with pytest.raises(WorkflowError):
        matrix()


def test_wf_rejects_duplicate_ids():
    with pytest.raises(WorkflowError):
        wf(job("a", sh("x", "true")), job("a", sh("y", "true")))


def test_wf_defaults():
    workflow = wf(job("a", sh("x", "true")))
    assert workflow.name == "workflow"
    assert workflow.trigger == Trigger()
    assert on_tags("*-rc*", ignore=["*-rc0"]) == Trigger(event="push", tags=["*-rc*"], tags_ignore=["*-rc0"])


def test_action_step_helpers():
    assert setup_python("3.10").with_ == {"python-version": "3.10"}
    assert rust_toolchain("stable", profile="minimal", override=True).with_ == {
        "toolchain": "stable",
        "profile": "minimal",
        "override": True,
    }
    assert rust_toolchain("nightly").with_ == {"toolchain": "nightly"}
    up = upload_artifact("dist", "python/target/wheels/*", step_name="Archive wheels")
    assert (up.name, up.uses) == ("Archive wheels", "actions/upload-artifact@v2")
    assert download_artifact("dist").with_ == {"name": "dist"}


def test_step_kind_is_validated():
    with pytest.raises(WorkflowError):
        Step(name="x", kind="ssh")


def test_package_exports_the_matrix_helper():
    import wheelci

    assert callable(wheelci.matrix)
    assert wheelci.matrix(os=["macos-latest"]).axes == {"os": ["macos-latest"]}
