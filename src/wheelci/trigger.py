# trigger.py
"""
Trigger matching for push events.

Tag filters use workflow glob syntax, which differs from fnmatch:
`*` stops at `/`, `**` does not, and a leading `!` negates a pattern.
Patterns are applied in order so a later pattern overrides an earlier one.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional

from .model import Trigger

TAG_PREFIX = "refs/tags/"
BRANCH_PREFIX = "refs/heads/"


@dataclass(frozen=True)
class PushEvent:
    """A repository push. Exactly one of `tag` / `branch` is set."""
    tag: Optional[str] = None
    branch: Optional[str] = None

    @classmethod
    def from_ref(cls, ref: str) -> "PushEvent":
        if ref.startswith(TAG_PREFIX):
            return cls(tag=ref[len(TAG_PREFIX):])
        if ref.startswith(BRANCH_PREFIX):
            return cls(branch=ref[len(BRANCH_PREFIX):])
        # bare names are treated as tags: that is what `wheelci run --tag` passes
        return cls(tag=ref)

    @property
    def ref(self) -> str:
        if self.tag is not None:
            return TAG_PREFIX + self.tag
        return BRANCH_PREFIX + (self.branch or "")


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern:
    out = []
    i = 0
    n = len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if i + 1 < n and pattern[i + 1] == "*":
                out.append(".*")
                i += 2
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1:end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = end + 1
                continue
        elif c == "\\" and i + 1 < n:
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("".join(out) + r"\Z")


def glob_match(name: str, pattern: str) -> bool:
    return _compile(pattern).match(name) is not None


def match_tag(tag: str, patterns: Iterable[str]) -> bool:
    """
    True iff `tag` is selected by the ordered pattern list.

    Positive patterns select, `!pattern` deselects; the last pattern that
    matches wins.
    """
    selected = False
    for pattern in patterns:
        if pattern.startswith("!"):
            if glob_match(tag, pattern[1:]):
                selected = False
        elif glob_match(tag, pattern):
            selected = True
    return selected


def activates(trigger: Trigger, event: PushEvent) -> bool:
    """
    Whether `event` starts the workflow.

    A non-matching event is a silent no-op for the caller, never an error.
    """
    if trigger.event != "push":
        return False
    if event.tag is None:
        # tag-filtered triggers ignore branch pushes
        return not trigger.tags and not trigger.tags_ignore
    if trigger.tags_ignore and match_tag(event.tag, trigger.tags_ignore):
        return False
    if not trigger.tags:
        return True
    return match_tag(event.tag, trigger.tags)
