"""Ignore patterns read from ``.nutignore`` and the matching rules for them."""

from __future__ import annotations

import functools
import os
import re
from pathlib import Path

IGNORE_FILE = ".nutignore"
_ESCAPES = os.sep != "\\"


def load_ignore_patterns(root: str | Path = ".") -> list[str]:
    """Non-blank, non-comment lines of ``root/.nutignore``; empty if it is absent."""
    try:
        text = (Path(root) / IGNORE_FILE).read_text()
    except FileNotFoundError:
        return []
    patterns = []
    for line in text.split("\n"):
        line = line.strip()
        if line and not line.startswith("#"):
            patterns.append(line)
    return patterns


def _class_char(pattern: str, i: int) -> tuple[str, int] | None:
    if i >= len(pattern) or pattern[i] in "-]":
        return None
    if pattern[i] == "\\" and _ESCAPES:
        i += 1
        if i >= len(pattern):
            return None
    return pattern[i], i + 1


def _class_char_code(ch: str) -> str:
    return f"\\U{ord(ch):08x}"


def _parse_class(pattern: str, i: int) -> tuple[str, int] | None:
    negated = False
    if i < len(pattern) and pattern[i] == "^":
        negated = True
        i += 1
    ranges: list[tuple[str, str]] = []
    while True:
        if i < len(pattern) and pattern[i] == "]" and ranges:
            i += 1
            break
        low = _class_char(pattern, i)
        if low is None:
            return None
        lo, i = low
        hi = lo
        if i < len(pattern) and pattern[i] == "-":
            high = _class_char(pattern, i + 1)
            if high is None:
                return None
            hi, i = high
        ranges.append((lo, hi))

    parts = [f"{_class_char_code(lo)}-{_class_char_code(hi)}" for lo, hi in ranges if lo <= hi]
    if not parts:
        return (".", i) if negated else ("(?!)", i)
    return f"[{'^' if negated else ''}{''.join(parts)}]", i


@functools.lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str] | None:
    """Shell-style pattern where wildcards never cross a path separator."""
    not_sep = f"[^{re.escape(os.sep)}]"
    out: list[str] = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        i += 1
        if ch == "*":
            out.append(not_sep + "*")
        elif ch == "?":
            out.append(not_sep)
        elif ch == "\\" and _ESCAPES:
            if i >= len(pattern):
                return None
            out.append(re.escape(pattern[i]))
            i += 1
        elif ch == "[":
            parsed = _parse_class(pattern, i)
            if parsed is None:
                return None
            expr, i = parsed
            out.append(expr)
        else:
            out.append(re.escape(ch))
    return re.compile("".join(out), re.DOTALL)


def _matches(pattern: str, rel_path: str) -> bool:
    compiled = _compile(pattern)
    return compiled is not None and compiled.fullmatch(rel_path) is not None


def should_ignore(rel_path: str, patterns: list[str]) -> bool:
    """True if a pattern matches the whole path or occurs anywhere within it."""
    return any(_matches(p, rel_path) or p in rel_path for p in patterns)