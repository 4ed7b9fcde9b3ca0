"""Mountain zone classification for Whistler Blackcomb lifts.

The allowlists below are the single canonical source; the extraction prompt
and the heuristic scraper both read them from here. Checks run in a fixed
order:

1. Peak 2 Peak phrases in the lift name -> ``Both`` (overrides everything).
2. Any Blackcomb token in name, sector or grouping -> ``Blackcomb``.
3. Any Whistler token -> ``Whistler``.
4. Whole-word abbreviations in the grouping name.
5. ``Unknown``.

Blackcomb is checked before Whistler, so a name carrying tokens from both
lists (``Whistler Blackcomb Glacier``) resolves to Blackcomb. Names in neither
list stay ``Unknown`` rather than being guessed.
"""
from __future__ import annotations

import re
from typing import Iterable, Optional, Tuple

from .models import Mountain

BOTH_PHRASES: Tuple[str, ...] = (
    "peak 2 peak",
    "peak-2-peak",
    "peak to peak",
    "peak2peak",
    "p2p",
)

BLACKCOMB_TOKENS: Tuple[str, ...] = (
    "blackcomb",
    "excalibur",
    "excelerator",
    "jersey cream",
    "crystal",
    "glacier",
    "7th heaven",
    "seventh heaven",
    "catskinner",
    "showcase",
    "horstman",
    "solar coaster",
    "wizard",
    "magic chair",
)

WHISTLER_TOKENS: Tuple[str, ...] = (
    "whistler",
    "creekside",
    "fitzsimmons",
    "peak express",
    "peak chair",
    "big red",
    "olympic",
    "franz",
    "emerald",
    "symphony",
    "garbanzo",
    "harmony",
    "red chair",
    "orange chair",
)

GROUPING_ABBREVIATIONS: Tuple[Tuple[str, Mountain], ...] = (
    ("bc", Mountain.BLACKCOMB),
    ("bcomb", Mountain.BLACKCOMB),
    ("wh", Mountain.WHISTLER),
    ("whis", Mountain.WHISTLER),
)


def _fold(value: Optional[str]) -> str:
    return " ".join((value or "").lower().split())


def _contains_any(haystacks: Iterable[str], tokens: Iterable[str]) -> bool:
    tokens = tuple(tokens)
    return any(token in haystack for haystack in haystacks for token in tokens)


def is_peak_to_peak(lift_name: Optional[str]) -> bool:
    return _contains_any((_fold(lift_name),), BOTH_PHRASES)


def classify(
    lift_name: Optional[str],
    sector: Optional[str] = None,
    page_grouping: Optional[str] = None,
) -> Mountain:
    """Map a lift name plus optional sector/grouping hints onto a mountain zone."""
    if is_peak_to_peak(lift_name):
        return Mountain.BOTH

    haystacks = tuple(text for text in (_fold(lift_name), _fold(sector), _fold(page_grouping)) if text)
    if _contains_any(haystacks, BLACKCOMB_TOKENS):
        return Mountain.BLACKCOMB
    if _contains_any(haystacks, WHISTLER_TOKENS):
        return Mountain.WHISTLER

    grouping_words = set(re.findall(r"[a-z0-9]+", _fold(page_grouping)))
    for abbreviation, mountain in GROUPING_ABBREVIATIONS:
        if abbreviation in grouping_words:
            return mountain

    return Mountain.UNKNOWN
