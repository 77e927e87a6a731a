"""Unit tests for ContentRepairer: JSON closure, fences, idempotence."""

import json
from unittest.mock import patch

import pytest

from turnkeeper.continuation.repair import ContentRepairer, close_json


# ---------------------------------------------------------------------------
# Already well-formed input
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "fragment",
    [
        '{"a": 1}',
        "[1, 2, 3]",
        '  {"nested": {"list": [true, false, null]}}  ',
        "Plain prose without structure.",
        "Code:\n```python\nprint(1)\n```\n",
        "",
    ],
)
def test_valid_input_is_unchanged(fragment):
    result = ContentRepairer().repair(fragment)
    assert result.repaired_text == fragment
    assert result.was_modified is False


# ---------------------------------------------------------------------------
# JSON closure
# ---------------------------------------------------------------------------


def test_closes_nested_structures():
    result = ContentRepairer().repair('{"a": 1, "b": [1, 2')
    assert result.was_modified
    assert json.loads(result.repaired_text) == {"a": 1, "b": [1, 2]}
    assert result.incomplete_value is False


def test_closes_open_string_and_flags_incomplete():
    result = ContentRepairer().repair('{"name": "Al')
    assert json.loads(result.repaired_text) == {"name": "Al"}
    assert result.incomplete_value is True


def test_drops_trailing_comma():
    result = ContentRepairer().repair('{"a": 1,')
    assert json.loads(result.repaired_text) == {"a": 1}


def test_dangling_colon_gets_null():
    result = ContentRepairer().repair('{"a":')
    assert json.loads(result.repaired_text) == {"a": None}
    assert result.incomplete_value


def test_cut_key_gets_null_value():
    result = ContentRepairer().repair('{"ke')
    assert json.loads(result.repaired_text) == {"ke": None}


def test_completes_partial_literal():
    result = ContentRepairer().repair('{"ok": tr')
    assert json.loads(result.repaired_text) == {"ok": True}
    assert result.incomplete_value


def test_trims_partial_number():
    result = ContentRepairer().repair("[1, 2.")
    assert json.loads(result.repaired_text) == [1, 2]


def test_dangling_escape_inside_string():
    result = ContentRepairer().repair('{"a": "x\\')
    assert json.loads(result.repaired_text) == {"a": "x"}


def test_array_of_objects():
    result = ContentRepairer().repair('[{"id": 1}, {"id": 2, "tags": ["a", "b')
    assert json.loads(result.repaired_text) == [{"id": 1}, {"id": 2, "tags": ["a", "b"]}]


@pytest.mark.parametrize(
    "fragment",
    [
        "[1] First point is fine. [2] Second point that got cut off mid",
        '{"a": "b"}\n\nThe object above shows the shape; the explanation is cut',
        '{"a": 1} trailing words',
        "[Note] remember to",
        '{"count": 12abc',
    ],
)
def test_non_json_prefix_is_left_intact(fragment):
    result = ContentRepairer().repair(fragment)
    assert result.repaired_text == fragment
    assert result.was_modified is False


def test_unrepairable_fragment_is_closed_at_most_once():
    fragment = "[" + "1] prose with [brackets] and words " * 900
    with patch("turnkeeper.continuation.repair.close_json", wraps=close_json) as spy:
        result = ContentRepairer().repair(fragment)
    assert result.repaired_text == fragment
    assert spy.call_count == 1


def test_close_json_returns_candidate_without_validating():
    closed, incomplete = close_json("[")
    assert closed == "[]"
    assert incomplete is False


def test_json_recovery_can_be_disabled():
    result = ContentRepairer(enable_json=False).repair('{"a": 1')
    assert result.repaired_text == '{"a": 1'
    assert not result.was_modified


# ---------------------------------------------------------------------------
# Code fences
# ---------------------------------------------------------------------------


def test_closes_open_fence():
    result = ContentRepairer().repair("Here:\n```python\nprint(1)\n")
    assert result.repaired_text == "Here:\n```python\nprint(1)\n```"
    assert result.was_modified


def test_closes_open_fence_without_trailing_newline():
    result = ContentRepairer().repair("```\nx = 1")
    assert result.repaired_text == "```\nx = 1\n```"


def test_repairs_json_inside_open_fence():
    result = ContentRepairer().repair('```json\n{"a": [1, 2')
    assert result.repaired_text == '```json\n{"a": [1, 2]}\n```'
    assert "closed code fence" in result.description


def test_fence_recovery_can_be_disabled():
    result = ContentRepairer(enable_code_blocks=False).repair("```\nx = 1")
    assert not result.was_modified


# ---------------------------------------------------------------------------
# Idempotence
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "fragment",
    [
        '{"a": 1, "b": [1, 2',
        '{"name": "Al',
        '{"ke',
        "[1, 2.",
        "Here:\n```python\nprint(1)\n",
        '```json\n{"a": [1, 2',
        '{"a": 1} trailing words',
    ],
)
def test_repair_is_idempotent(fragment):
    repairer = ContentRepairer()
    once = repairer.repair(fragment)
    twice = repairer.repair(once.repaired_text)
    assert twice.repaired_text == once.repaired_text
    assert twice.was_modified is False
