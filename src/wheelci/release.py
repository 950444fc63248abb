# release.py
# The release-candidate wheel pipeline:
#   tag push (*-rc*) -> generate-license -> {Mac/Win matrix, Manylinux} -> dist
# plus an inert publish job kept for reference.
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from .dsl import (
    checkout,
    docker_step,
    download_artifact,
    job,
    matrix,
    on_tags,
    rust_toolchain,
    setup_python,
    sh,
    upload_artifact,
    uses,
    wf,
)
from .model import Workflow

LICENSE_ARTIFACT = "python-wheel-license"
DIST_ARTIFACT = "dist"


@dataclass(frozen=True)
class ReleasePins:
    """Every version and flag the pipeline pins."""
    tag_pattern: str = "*-rc*"
    package_dir: str = "python"
    license_script: str = "../dev/create_license.py"
    license_toolchain: str = "stable"
    python_versions: List[str] = field(default_factory=lambda: ["3.10"])
    operating_systems: List[str] = field(default_factory=lambda: ["macos-latest", "windows-latest"])
    rust_toolchain: str = "nightly-2021-10-23"
    maturin_version: str = "0.11.5"
    manylinux_image: str = "konstin2/maturin:v0.11.2"
    manylinux_policy: str = "2010"
    target_cpu: str = "skylake"


def generate_license_job(p: ReleasePins):
    return job(
        "generate-license",
        checkout(),
        rust_toolchain(p.license_toolchain, profile="minimal", override=True),
        sh("Generate license file", f"python {p.license_script}"),
        upload_artifact(LICENSE_ARTIFACT, f"{p.package_dir}/LICENSE.txt"),
        runs_on="ubuntu-latest",
    )


def _replace_license(p: ReleasePins):
    return [
        sh("Remove placeholder license", "rm LICENSE.txt"),
        download_artifact(LICENSE_ARTIFACT, p.package_dir, step_name="Download LICENSE.txt"),
    ]


def mac_win_job(p: ReleasePins):
    return job(
        "build-python-mac-win",
        checkout(),
        setup_python("${{ matrix.python-version }}"),
        rust_toolchain(p.rust_toolchain),
        sh(
            "Install dependencies",
            f"python -m pip install --upgrade pip\npip install maturin=={p.maturin_version}",
        ),
        *_replace_license(p),
        sh("Build Python package", "maturin build --release --no-sdist --strip"),
        sh("List Windows wheels", "dir target\\wheels\\", if_="matrix.os == 'windows-latest'"),
        sh("List Mac wheels", "find target/wheels/", if_="matrix.os != 'windows-latest'"),
        upload_artifact(DIST_ARTIFACT, f"{p.package_dir}/target/wheels/*", step_name="Archive wheels"),
        name="Mac/Win",
        needs=["generate-license"],
        runs_on="${{ matrix.os }}",
        matrix=matrix({"python-version": p.python_versions, "os": p.operating_systems}),
        fail_fast=False,
    )


def manylinux_job(p: ReleasePins):
    return job(
        "build-manylinux",
        checkout(),
        *_replace_license(p),
        sh("Show license", "cat LICENSE.txt"),
        docker_step(
            "Build wheels",
            p.manylinux_image,
            ["build", "--release", "--manylinux", p.manylinux_policy],
            mount="/io",
            workdir=p.package_dir,
            env={"RUSTFLAGS": f"-C target-cpu={p.target_cpu}"},
        ),
        upload_artifact(DIST_ARTIFACT, f"{p.package_dir}/target/wheels/*", step_name="Archive wheels"),
        name="Manylinux",
        needs=["generate-license"],
        runs_on="ubuntu-latest",
    )


def publish_job(p: ReleasePins):
    # Publishing is done by hand after the release vote; never scheduled.
    return job(
        "release",
        uses("Download wheels", "actions/download-artifact@v2"),
        uses(
            "Publish to PyPI",
            "pypa/gh-action-pypi-publish@master",
            with_={"user": "__token__", "password": "${{ secrets.pypi_password }}"},
        ),
        name="Publish in PyPI",
        needs=["build-manylinux", "build-python-mac-win"],
        runs_on="ubuntu-latest",
        enabled=False,
    )


def release_workflow(pins: ReleasePins | None = None) -> Workflow:
    p = pins or ReleasePins()
    return wf(
        generate_license_job(p),
        mac_win_job(p),
        manylinux_job(p),
        publish_job(p),
        name="Python Release Build",
        on=on_tags(p.tag_pattern),
        working_directory=f"./{p.package_dir}",
    )
