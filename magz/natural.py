"""Natural ordering for page names.

Page order: digit runs compare as numbers (1, 2, ..., 10), everything else by
code point, so "page2.jpg" sorts before "page10.jpg".
"""

from __future__ import annotations

import re
from typing import Iterable, List, Tuple

_DIGIT_RUN = re.compile(r"[0-9]+")

# Every digit run is keyed with the code point of "0". Non-digit characters never
# fall inside "0".."9", so a run still orders against them like its first digit.
_DIGIT_CODE = ord("0")


def _tokens(name: str) -> Tuple[Tuple[int, int], ...]:
    tokens: List[Tuple[int, int]] = []
    pos = 0
    for match in _DIGIT_RUN.finditer(name):
        tokens.extend((ord(ch), 0) for ch in name[pos:match.start()])
        tokens.append((_DIGIT_CODE, int(match.group())))
        pos = match.end()
    tokens.extend((ord(ch), 0) for ch in name[pos:])
    return tuple(tokens)


def natural_sort_key(name: str) -> tuple:
    """Sort key for natural ordering.

    Equal token sequences fall back to total length (shorter first), then to the
    raw string, so "a7" < "a007" and the ordering stays total.
    """
    return (_tokens(name), len(name), name)


def natural_compare(a: str, b: str) -> int:
    """Return -1, 0 or 1 as ``a`` sorts before, equal to, or after ``b``."""
    key_a, key_b = natural_sort_key(a), natural_sort_key(b)
    if key_a < key_b:
        return -1
    if key_a > key_b:
        return 1
    return 0


def natural_sorted(names: Iterable[str]) -> List[str]:
    return sorted(names, key=natural_sort_key)
