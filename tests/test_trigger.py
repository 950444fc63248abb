from __future__ import annotations

import pytest

from wheelci.dsl import on_tags
from wheelci.model import Trigger
from wheelci.trigger import PushEvent, activates, glob_match, match_tag


@pytest.mark.parametrize(
    "tag, expected",
    [
        ("1.2.0-rc1", True),
        ("0.7.0-rc12", True),
        ("v2.0.0-rc", True),
        ("1.2.0", False),
        ("1.2.0-beta1", False),
        ("rc1", False),
        ("release/1.0-rc1", False),
    ],
)
def test_rc_pattern(tag, expected):
    assert match_tag(tag, ["*-rc*"]) is expected


def test_single_star_does_not_cross_slash_but_double_star_does():
    assert not glob_match("release/1.0", "*")
    assert glob_match("release/1.0", "**")
    assert glob_match("release/1.0", "release/*")


def test_question_mark_and_char_class():
    assert glob_match("v1", "v?")
    assert not glob_match("v10", "v?")
    assert glob_match("v3.1", "v[0-9].*")
    assert not glob_match("vx.1", "v[0-9].*")
    assert glob_match("vx.1", "v[!0-9].*")


def test_negation_later_pattern_wins():
    patterns = ["*-rc*", "!*-rc0"]
    assert match_tag("1.0-rc1", patterns)
    assert not match_tag("1.0-rc0", patterns)
    assert match_tag("1.0-rc0", patterns + ["*-rc0"])


def test_regex_metacharacters_are_literal():
    assert glob_match("1.2.0", "1.2.0")
    assert not glob_match("1x2x0", "1.2.0")
    assert glob_match("a+b", "a+b")


def test_event_from_ref():
    assert PushEvent.from_ref("refs/tags/1.0-rc1").tag == "1.0-rc1"
    assert PushEvent.from_ref("refs/heads/main").branch == "main"
    assert PushEvent.from_ref("1.0-rc1").tag == "1.0-rc1"
    assert PushEvent(tag="1.0").ref == "refs/tags/1.0"


def test_activation():
    trigger = on_tags("*-rc*")
    assert activates(trigger, PushEvent.from_ref("refs/tags/1.2.0-rc1"))
    assert not activates(trigger, PushEvent.from_ref("refs/tags/1.2.0"))
    # branch pushes never start a tag-filtered workflow
    assert not activates(trigger, PushEvent.from_ref("refs/heads/main-rc1"))


def test_tags_ignore_excludes():
    trigger = on_tags("*-rc*", ignore=["*-rc0"])
    assert activates(trigger, PushEvent(tag="1.0-rc1"))
    assert not activates(trigger, PushEvent(tag="1.0-rc0"))


def test_unfiltered_push_trigger_and_other_events():
    assert activates(Trigger(), PushEvent(branch="main"))
    assert activates(Trigger(), PushEvent(tag="anything"))
    assert not activates(Trigger(event="pull_request"), PushEvent(tag="1.0-rc1"))
