# wheelci_workflow.py
# Release-candidate wheel build: `wheelci run --tag 1.2.0-rc1`
from __future__ import annotations

from wheelci.release import ReleasePins, release_workflow


def workflow():
    return release_workflow(
        ReleasePins(
            python_versions=["3.10"],
            operating_systems=["macos-latest", "windows-latest"],
            rust_toolchain="nightly-2021-10-23",
            maturin_version="0.11.5",
            manylinux_image="konstin2/maturin:v0.11.2",
        )
    )
