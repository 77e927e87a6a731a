"""Unit tests for TokenEstimator: script buckets, rounding, message overhead."""

import pytest

from turnkeeper.tokens.estimator import Script, ScriptRatios, TokenEstimator, detect_script
from turnkeeper.transport import Message


# ---------------------------------------------------------------------------
# Script detection
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "ch,expected",
    [
        ("a", Script.LATIN),
        ("é", Script.LATIN),
        ("한", Script.HANGUL),
        ("ㄱ", Script.HANGUL),
        ("ひ", Script.KANA),
        ("カ", Script.KANA),
        ("中", Script.CJK),
        ("1", Script.OTHER),
        ("!", Script.OTHER),
        ("д", Script.OTHER),
        (" ", None),
        ("\n", None),
        ("\x00", None),
    ],
)
def test_detect_script(ch, expected):
    assert detect_script(ch) == expected


# ---------------------------------------------------------------------------
# count()
# ---------------------------------------------------------------------------


def test_empty_and_none_are_zero():
    est = TokenEstimator()
    assert est.count("") == 0
    assert est.count(None) == 0
    assert est.count("   \n\t  ") == 0


def test_latin_rounds_up():
    est = TokenEstimator()
    assert est.count("hello") == 2  # 5 / 4.0 = 1.25
    assert est.count("hello world") == 3  # 10 / 4.0 = 2.5


def test_other_scripts_use_their_ratio():
    est = TokenEstimator()
    assert est.count("안녕하세요") == 4  # 5 / 1.5
    assert est.count("こんにちは") == 4  # 5 / 1.5
    assert est.count("你好") == 2  # 2 / 1.2
    assert est.count("12345") == 2  # 5 / 3.5


def test_mixed_scripts_sum_before_rounding():
    est = TokenEstimator()
    # 5/4.0 + 2/1.2 = 2.92
    assert est.count("hello 你好") == 3


def test_custom_ratios():
    est = TokenEstimator(ScriptRatios(latin=1.0))
    assert est.count("abc") == 3


def test_ratios_must_be_positive():
    with pytest.raises(ValueError):
        ScriptRatios(latin=0)


@pytest.mark.parametrize(
    "a,b",
    [
        ("hello", "world"),
        ("a", "b"),
        ("你好", "hello"),
        ("{", "}"),
        ("안녕", "こんにちは世界"),
        ("x" * 7, "1"),
    ],
)
def test_concatenation_is_monotonic(a, b):
    est = TokenEstimator()
    assert est.count(a + b) >= max(est.count(a), est.count(b))


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def test_message_adds_overhead():
    est = TokenEstimator()
    assert est.count(Message("user", "hello")) == 2 + TokenEstimator.MESSAGE_OVERHEAD
    assert est.count_message(Message("user", "")) == TokenEstimator.MESSAGE_OVERHEAD


def test_count_messages_sums():
    est = TokenEstimator()
    msgs = [Message("system", "hello"), Message("user", "hello world")]
    assert est.count_messages(msgs) == (2 + 4) + (3 + 4)


def test_supports_every_model():
    est = TokenEstimator()
    assert est.supports_model("gpt-4o")
    assert est.supports_model("some-unknown-model")
    assert est.supports_model(None)
