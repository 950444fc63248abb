from __future__ import annotations

import shutil
import subprocess

import pytest
from click.testing import CliRunner

from wheelci.cli import cli
from wheelci.git_facts.git import head_sha, is_dirty, tags_at_head
from wheelci.runner import source_commit

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _git(repo, *args):
    subprocess.run(
        ["git", "-c", "user.name=ci", "-c", "user.email=ci@example.com", *args],
        cwd=repo,
        check=True,
        capture_output=True,
    )


@pytest.fixture
def repo(tmp_path):
    root = tmp_path / "repo"
    root.mkdir()
    _git(root, "init", "-q")
    (root / "README").write_text("demo\n", encoding="utf-8")
    _git(root, "add", "README")
    _git(root, "commit", "-q", "-m", "init")
    return root


def test_tags_at_head_sorted(repo):
    assert tags_at_head(cwd=str(repo)) == []
    _git(repo, "tag", "1.2.0")
    _git(repo, "tag", "1.2.0-rc1")
    assert tags_at_head(cwd=str(repo)) == ["1.2.0", "1.2.0-rc1"]


def test_source_commit_only_for_clean_trees(repo):
    assert not is_dirty(cwd=str(repo))
    assert source_commit(repo) == head_sha(cwd=str(repo))
    (repo / "untracked.txt").write_text("x", encoding="utf-8")
    assert is_dirty(cwd=str(repo))
    assert source_commit(repo) is None


def test_run_picks_the_activating_tag_at_head(repo, tmp_path):
    _git(repo, "tag", "1.2.0")
    _git(repo, "tag", "1.2.0-rc1")
    workflow = tmp_path / "tag_workflow.py"
    workflow.write_text(
        "from wheelci import job, sh, on_tags, wf\n"
        "WORKFLOW = wf(job('noop', sh('ok', 'exit 0')), name='tagged', on=on_tags('*-rc*'))\n",
        encoding="utf-8",
    )
    state = tmp_path / "state"
    result = CliRunner().invoke(
        cli,
        ["run", "--workflow", str(workflow), "--source", str(repo), "--state-dir", str(state), "--run-anywhere"],
    )
    assert result.exit_code == 0, result.output
    assert (state / "runs" / "tagged--1.2.0-rc1" / "report.json").exists()


def test_run_without_any_tag_fails(repo, tmp_path):
    workflow = tmp_path / "tag_workflow.py"
    workflow.write_text(
        "from wheelci import job, sh, wf\n"
        "WORKFLOW = wf(job('noop', sh('ok', 'exit 0')))\n",
        encoding="utf-8",
    )
    result = CliRunner().invoke(cli, ["run", "--workflow", str(workflow), "--source", str(repo)])
    assert result.exit_code == 1
    assert "No tag to run for" in result.output
