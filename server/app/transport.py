"""Canonicalize and total trade values by mode of transport."""

from __future__ import annotations

from typing import Iterable

MODES = ("Sea", "Air", "Postal", "Courier", "Other")

# Tested in order: "Airmail" is Air, not Postal.
_MODE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Sea", ("sea",)),
    ("Air", ("air",)),
    ("Postal", ("post", "mail")),
    ("Courier", ("courier",)),
)


def canonical_mode(label: object) -> str:
    """Map a free-text transport label onto one of ``MODES``."""
    text = str(label or "").lower()
    for mode, keywords in _MODE_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return mode
    return "Other"


def aggregate_modes(pairs: Iterable[tuple[object, float]]) -> list[dict[str, object]]:
    """
    Sum ``(label, value)`` pairs per canonical mode.

    Modes are emitted in the order they are first seen, with the absolute
    total. Modes whose total is zero are dropped.
    """
    totals: dict[str, float] = {}
    for label, value in pairs:
        mode = canonical_mode(label)
        totals[mode] = totals.get(mode, 0) + value
    return [
        {"mode": mode, "value": abs(total)}
        for mode, total in totals.items()
        if abs(total) > 0
    ]
