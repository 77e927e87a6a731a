"""Script-aware approximate token counting.

Exact tokenization is model specific and usually unavailable before a
request is sent. Characters are bucketed by Unicode script and each
bucket is divided by its characters-per-token ratio; the sum is rounded
up so budget decisions stay conservative across mixed-language text.
"""

from __future__ import annotations

import math
import unicodedata
from dataclasses import dataclass
from enum import StrEnum
from typing import Iterable

from turnkeeper.transport import Message


class Script(StrEnum):
    LATIN = "latin"
    HANGUL = "hangul"
    KANA = "kana"
    CJK = "cjk"
    OTHER = "other"


@dataclass(frozen=True)
class ScriptRatios:
    """Characters per token for each script bucket."""

    latin: float = 4.0
    hangul: float = 1.5
    kana: float = 1.5
    cjk: float = 1.2
    other: float = 3.5

    def __post_init__(self) -> None:
        for name in ("latin", "hangul", "kana", "cjk", "other"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} ratio must be positive")

    def for_script(self, script: Script) -> float:
        return getattr(self, script.value)


def _is_hangul(code: int) -> bool:
    return 0xAC00 <= code <= 0xD7AF or 0x1100 <= code <= 0x11FF or 0x3130 <= code <= 0x318F


def _is_kana(code: int) -> bool:
    return 0x3040 <= code <= 0x30FF


def _is_cjk(code: int) -> bool:
    return 0x4E00 <= code <= 0x9FFF or 0x3400 <= code <= 0x4DBF


def detect_script(ch: str) -> Script | None:
    """Bucket for one character, or None for whitespace and control characters."""
    if ch.isspace() or unicodedata.category(ch) == "Cc":
        return None
    code = ord(ch)
    if code <= 0x024F and ch.isalpha():
        return Script.LATIN
    if _is_hangul(code):
        return Script.HANGUL
    if _is_kana(code):
        return Script.KANA
    if _is_cjk(code):
        return Script.CJK
    return Script.OTHER


class TokenEstimator:
    """Universal fallback counter; supports every model id."""

    MESSAGE_OVERHEAD = 4

    def __init__(self, ratios: ScriptRatios | None = None, message_overhead: int = MESSAGE_OVERHEAD):
        self.ratios = ratios or ScriptRatios()
        self.message_overhead = message_overhead

    def count(self, value: str | Message | None) -> int:
        if value is None:
            return 0
        if isinstance(value, Message):
            return self.count_message(value)
        if not value:
            return 0

        counts: dict[Script, int] = {}
        for ch in value:
            script = detect_script(ch)
            if script is not None:
                counts[script] = counts.get(script, 0) + 1

        total = sum(n / self.ratios.for_script(script) for script, n in counts.items())
        return math.ceil(total)

    def count_message(self, message: Message) -> int:
        return self.count(message.content) + self.message_overhead

    def count_messages(self, messages: Iterable[Message]) -> int:
        return sum(self.count_message(m) for m in messages)

    def supports_model(self, model_id: str | None) -> bool:
        return True
