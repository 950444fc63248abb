# git.py
# Small, focused wrapper around the Git CLI.
# This module centralizes all Git interactions so the rest of the codebase
# never needs to call subprocess("git ...") directly.

from __future__ import annotations

import subprocess
from typing import List, Optional


def _git(args: list[str], cwd: Optional[str] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    This is the single low-level entry point for all Git operations in this file.

    Args:
        args: List of git arguments (e.g. ["status", "--porcelain"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.

    Raises:
        subprocess.CalledProcessError: git exited non-zero.
        FileNotFoundError: git is not installed.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def head_sha(cwd: Optional[str] = None) -> str:
    """Return the full SHA hash of the current HEAD commit."""
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def is_dirty(cwd: Optional[str] = None) -> bool:
    """
    Check whether the working tree has uncommitted changes.

    Any `git status --porcelain` output (modified, staged, untracked)
    counts as dirty.
    """
    return _git(["status", "--porcelain"], cwd=cwd) != ""


def tags_at_head(cwd: Optional[str] = None) -> List[str]:
    """
    Return every tag pointing at HEAD, sorted.

    A release commit can carry several tags (e.g. `1.2.0-rc1` and `1.2.0`).
    """
    out = _git(["tag", "--points-at", "HEAD"], cwd=cwd)
    if not out:
        return []
    return sorted(out.splitlines())
