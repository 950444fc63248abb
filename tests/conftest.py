from __future__ import annotations

import pytest

from wheelci.config import RunnerConfig
from wheelci.ui.console import Console, set_console


@pytest.fixture(autouse=True)
def _fresh_console():
    set_console(Console(debug=False))
    yield


@pytest.fixture
def source_tree(tmp_path):
    """A minimal project: python/ package dir with a placeholder LICENSE.txt."""
    src = tmp_path / "project"
    pkg = src / "python"
    pkg.mkdir(parents=True)
    (pkg / "LICENSE.txt").write_text("placeholder\n", encoding="utf-8")
    (pkg / "Cargo.toml").write_text("[package]\nname = \"demo\"\n", encoding="utf-8")
    (src / "dev").mkdir()
    (src / "dev" / "create_license.py").write_text("print('license')\n", encoding="utf-8")
    return src


@pytest.fixture
def config(tmp_path):
    return RunnerConfig(
        state_dir=str(tmp_path / "state"),
        max_workers=4,
        runner_labels=["ubuntu-latest"],
        run_anywhere=True,
    )
