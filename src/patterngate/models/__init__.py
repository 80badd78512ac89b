"""
PatternGate data models.

Immutable pattern-signal records and the timeframe registry they are
keyed against.
"""

from .signals import (
    Direction,
    LevelStatus,
    PatternSignal,
    SignalStatus,
    TradingRegime,
    coerce_datetime,
    coerce_price,
    format_level,
    instrument_display_name,
    level_status,
)
from .timeframes import (
    CANONICAL_ORDER,
    TIMEFRAME_LABELS,
    Timeframe,
    canonical_timeframe,
    duration_minutes,
    order_index,
    sort_timeframes,
    weight,
)

__all__ = [
    "Direction",
    "LevelStatus",
    "PatternSignal",
    "SignalStatus",
    "TradingRegime",
    "coerce_datetime",
    "coerce_price",
    "format_level",
    "instrument_display_name",
    "level_status",
    "CANONICAL_ORDER",
    "TIMEFRAME_LABELS",
    "Timeframe",
    "canonical_timeframe",
    "duration_minutes",
    "order_index",
    "sort_timeframes",
    "weight",
]
