"""Structural repair of truncated JSON and fenced code.

The repairer closes what a truncated response left open so the caller
always receives well-formed content. It does not guess at missing
semantics: an open string is closed where it stopped, a dangling key
gets ``null``, and the value that was being written is flagged as
possibly incomplete.

Repair is idempotent. Already well-formed input comes back unchanged
with ``was_modified=False``.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^```[\w+#-]*[ \t]*$", re.MULTILINE)
_TRAILING_SCALAR = re.compile(r'[^\s{}\[\],:"]+$')
_NUMBER_PREFIX = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?")
# Anything a number can look like when cut mid-way, e.g. "2.", "1e", "-".
_PARTIAL_NUMBER = re.compile(r"-?\d*(?:\.\d*)?(?:[eE][+-]?\d*)?")
_LITERALS = ("true", "false", "null")


@dataclass(frozen=True)
class RepairResult:
    repaired_text: str
    was_modified: bool
    incomplete_value: bool = False  # last string/value was cut mid-way
    description: str | None = None


def is_valid_json(text: str) -> bool:
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


def looks_like_json(text: str) -> bool:
    return text.lstrip()[:1] in ("{", "[")


def _complete_scalar(token: str) -> str:
    """Finish a cut literal or trim a cut number. Other tokens come back as-is."""
    for literal in _LITERALS:
        if literal.startswith(token):
            return literal
    if _PARTIAL_NUMBER.fullmatch(token):
        m = _NUMBER_PREFIX.match(token)
        if m:
            return m.group()
    return token


def close_json(text: str) -> tuple[str, bool]:
    """Append the minimal closing sequence for a JSON prefix.

    Returns the closed text and whether the last value was cut mid-way.
    The result is not guaranteed to parse; callers validate it.
    """
    stack: list[str] = []
    in_string = escaped = False
    string_is_key = False
    # last significant token outside strings: one of "{[,:", "k" (key), "v" (value), "s" (bare scalar)
    last = ""

    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
                last = "k" if string_is_key else "v"
            continue
        if ch == '"':
            in_string = True
            string_is_key = bool(stack) and stack[-1] == "}" and last in ("{", ",")
        elif ch in "{[":
            stack.append("}" if ch == "{" else "]")
            last = ch
        elif ch in "}]":
            if stack and stack[-1] == ch:
                stack.pop()
            last = "v"
        elif ch in ",:":
            last = ch
        elif not ch.isspace():
            last = "s"

    out = text.rstrip()
    incomplete = False

    if in_string:
        if escaped:
            out = out[:-1]
        out += '"'
        incomplete = True
        last = "k" if string_is_key else "v"
    elif last == "s":
        m = _TRAILING_SCALAR.search(out)
        if m:
            token = m.group()
            fixed = _complete_scalar(token)
            incomplete = fixed != token
            out = out[: m.start()] + fixed
        last = "v"

    if last == ",":
        out = out[:-1].rstrip()
    elif last == ":":
        out += "null"
        incomplete = True
    elif last == "k":
        out += ":null"
        incomplete = True

    out += "".join(reversed(stack))
    return out, incomplete


class ContentRepairer:
    """Best-effort structural closure for JSON fragments and fenced code."""

    def __init__(self, enable_json: bool = True, enable_code_blocks: bool = True):
        self.enable_json = enable_json
        self.enable_code_blocks = enable_code_blocks

    def repair(self, fragment: str | None) -> RepairResult:
        if not fragment or not fragment.strip():
            return RepairResult(fragment or "", False)

        if self.enable_code_blocks and len(_FENCE.findall(fragment)) % 2 == 1:
            return self._repair_fence(fragment)

        if self.enable_json and looks_like_json(fragment):
            return self.repair_json(fragment)

        return RepairResult(fragment, False)

    def repair_json(self, fragment: str) -> RepairResult:
        """Close a JSON prefix by appending only.

        Text that is not a JSON prefix (prose that happens to start with a
        bracket, an object followed by commentary) is returned unchanged.
        """
        if is_valid_json(fragment):
            return RepairResult(fragment, False)

        closed, incomplete = close_json(fragment)
        if is_valid_json(closed):
            return RepairResult(closed, True, incomplete, "closed open JSON structures")

        logger.debug("Fragment is not a JSON prefix (%d chars); left unchanged", len(fragment))
        return RepairResult(fragment, False, False, "not a JSON prefix")

    def _repair_fence(self, fragment: str) -> RepairResult:
        last_fence = list(_FENCE.finditer(fragment))[-1]
        head, body = fragment[: last_fence.end()], fragment[last_fence.end() :]
        incomplete = False
        notes = []

        if self.enable_json and looks_like_json(body) and not is_valid_json(body):
            fixed = self.repair_json(body)
            if fixed.was_modified:
                body = fixed.repaired_text
                incomplete = fixed.incomplete_value
                notes.append(fixed.description)

        out = head + body
        if not out.endswith("\n"):
            out += "\n"
        out += "```"
        notes.append("closed code fence")
        return RepairResult(out, True, incomplete, "; ".join(notes))
