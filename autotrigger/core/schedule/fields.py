"""Cron time-field parsing — the restricted subset used for previews.

Supported forms for a single field:

    *        every value 0..max
    a,b,c    literal values, input order, not range-checked
    a-b      inclusive range (empty when a > b)
    a/b      steps of b starting at 0, ceil(max / b) terms (left side ignored)
    n        a single value

Tokens that are not integers come back as ``None``; callers filter them.
"""

from __future__ import annotations

import math


def _to_int(token: str) -> int | None:
    try:
        return int(token.strip())
    except ValueError:
        return None


def parse_field(expression: str, max_value: int) -> list[int | None]:
    """Expand one cron field into candidate integers.

    Never raises. Order follows the expression: ascending for ``*``, ranges
    and steps, input order for comma lists.
    """
    field = expression.strip()

    if field == "*":
        return list(range(max_value + 1))

    if "," in field:
        return [_to_int(part) for part in field.split(",")]

    if "-" in field:
        start, _, end = field.partition("-")
        lo, hi = _to_int(start), _to_int(end)
        if lo is None or hi is None:
            return [None]
        return list(range(lo, hi + 1))

    if "/" in field:
        _, _, step_token = field.partition("/")
        step = _to_int(step_token)
        if step is None or step <= 0:
            return [None]
        # Last term is not clipped to max_value
        return [i * step for i in range(math.ceil(max_value / step))]

    return [_to_int(field)]


def clean_candidates(values: list[int | None], max_value: int) -> list[int]:
    """Drop unparseable and out-of-range entries; sort and de-duplicate."""
    return sorted({v for v in values if v is not None and 0 <= v <= max_value})
