"""
Timeframe registry.

Canonical bar timeframes, their duration in minutes and their importance
weight for confluence and scoring. Unknown labels never raise: they get
duration 0 (never expire), weight 1 and sort after every known timeframe.
"""

import re
from enum import Enum
from typing import Dict, Iterable, List, Union


class Timeframe(str, Enum):
    """Supported pattern detection timeframes."""

    ONE_MINUTE = "1m"
    THREE_MINUTES = "3m"
    FIVE_MINUTES = "5m"
    FIFTEEN_MINUTES = "15m"
    THIRTY_MINUTES = "30m"
    ONE_HOUR = "1h"
    TWO_HOURS = "2h"
    FOUR_HOURS = "4h"
    ONE_DAY = "1D"

    @property
    def minutes(self) -> int:
        """Bar duration in minutes."""
        return _DURATION_MINUTES[self.value]

    @property
    def seconds(self) -> int:
        """Bar duration in seconds."""
        return self.minutes * 60

    @property
    def weight(self) -> int:
        """Importance weight (higher = more significant)."""
        return _WEIGHTS[self.value]

    @property
    def label(self) -> str:
        """Human readable name."""
        return TIMEFRAME_LABELS[self.value]


_DURATION_MINUTES: Dict[str, int] = {
    "1m": 1, "3m": 3, "5m": 5, "15m": 15, "30m": 30,
    "1h": 60, "2h": 120, "4h": 240, "1D": 1440,
}

_WEIGHTS: Dict[str, int] = {
    "1D": 8, "4h": 7, "2h": 6, "1h": 5, "30m": 4, "15m": 3, "5m": 2, "3m": 1, "1m": 1,
}

TIMEFRAME_LABELS: Dict[str, str] = {
    "1D": "Daily", "4h": "4-Hour", "2h": "2-Hour", "1h": "Hourly",
    "30m": "30-Min", "15m": "15-Min", "5m": "5-Min", "3m": "3-Min", "1m": "1-Min",
}

# Highest weight first. 3m and 1m share weight 1; the longer bar leads.
CANONICAL_ORDER: List[str] = ["1D", "4h", "2h", "1h", "30m", "15m", "5m", "3m", "1m"]

UNKNOWN_WEIGHT = 1
UNKNOWN_ORDER_INDEX = 99

_ALIAS_PATTERN = re.compile(r"^(\d+)\s*(m|min|mins|minute|minutes|h|hr|hrs|hour|hours|d|day|days)$")


TimeframeLike = Union[Timeframe, str, None]


def _raw(timeframe: TimeframeLike) -> str:
    if timeframe is None:
        return ""
    if isinstance(timeframe, Timeframe):
        return timeframe.value
    return str(timeframe)


def canonical_timeframe(label: TimeframeLike) -> str:
    """
    Canonicalize a timeframe label.

    The feed sends '1d' in lower case while everything else is already
    lower case; aliases such as '15min', '60m' or '1hr' are folded onto the
    registry tag. Labels that do not resolve are returned stripped and
    lower-cased, so "7M" and "7m" share a bucket.
    """
    raw = _raw(label).strip()
    if not raw:
        return ""

    lowered = raw.lower()
    match = _ALIAS_PATTERN.match(lowered)
    if not match:
        return lowered

    amount = int(match.group(1))
    unit = match.group(2)[0]
    if unit == "m":
        minutes = amount
    elif unit == "h":
        minutes = amount * 60
    else:
        minutes = amount * 1440

    for tag, duration in _DURATION_MINUTES.items():
        if duration == minutes:
            return tag
    return lowered


def is_known(timeframe: TimeframeLike) -> bool:
    """True when the label resolves to a registry timeframe."""
    return canonical_timeframe(timeframe) in _DURATION_MINUTES


def duration_minutes(timeframe: TimeframeLike) -> int:
    """Bar duration in minutes; 0 for unknown timeframes."""
    return _DURATION_MINUTES.get(canonical_timeframe(timeframe), 0)


def weight(timeframe: TimeframeLike) -> int:
    """Importance weight; unknown timeframes get the lowest weight."""
    return _WEIGHTS.get(canonical_timeframe(timeframe), UNKNOWN_WEIGHT)


def order_index(timeframe: TimeframeLike) -> int:
    """Position in CANONICAL_ORDER; unknown timeframes sort last."""
    tag = canonical_timeframe(timeframe)
    try:
        return CANONICAL_ORDER.index(tag)
    except ValueError:
        return UNKNOWN_ORDER_INDEX


def sort_timeframes(labels: Iterable[TimeframeLike]) -> List[str]:
    """Canonical labels ordered highest weight first, unknown tags last by name."""
    canonical = {canonical_timeframe(label) for label in labels}
    return sorted(canonical, key=lambda tag: (order_index(tag), tag))


def timeframe_label(timeframe: TimeframeLike) -> str:
    tag = canonical_timeframe(timeframe)
    return TIMEFRAME_LABELS.get(tag, tag or "N/A")
