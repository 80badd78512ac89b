"""
Confluence Classifier

Cross-timeframe verdict for one instrument. Each active timeframe bucket
collapses to a single direction (or MIXED, or nothing when all neutral);
the remaining directions are compared with the highest-weight bucket as
anchor.
"""

from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field

from ..models.signals import Direction, PatternSignal

if TYPE_CHECKING:
    from .grouper import InstrumentGroup


class ConfluenceType(str, Enum):
    """Cross-timeframe agreement verdict."""
    STRONG = "STRONG"               # Every directional timeframe agrees
    DIVERGENT = "DIVERGENT"         # Lower timeframes mostly disagree with the anchor
    CONFLICTING = "CONFLICTING"     # Disagreement without a clear split against the anchor
    NONE = "NONE"                   # Fewer than two directional timeframes


MIXED = "MIXED"


class ConfluenceVerdict(BaseModel):
    """Verdict plus the evidence it was derived from."""

    type: ConfluenceType
    dominant_direction: Direction = Direction.NEUTRAL
    label: str = ""
    directional_timeframes: List[Tuple[str, Direction]] = Field(
        default_factory=list,
        description="(timeframe, direction) pairs that took part, anchor first"
    )

    model_config = ConfigDict(frozen=True)

    @computed_field
    @property
    def is_actionable(self) -> bool:
        """Only a strong verdict is treated as a high-conviction setup."""
        return self.type is ConfluenceType.STRONG


def bucket_direction(signals: List[PatternSignal]) -> Optional[str]:
    """
    Direction shared by a bucket's signals.

    Returns the common non-neutral direction, MIXED when they disagree, or
    None when every signal is neutral (the bucket contributes nothing).
    """
    directions = {s.direction for s in signals if s.direction.is_directional}
    if not directions:
        return None
    if len(directions) > 1:
        return MIXED
    return directions.pop()


def _pretty(direction: Direction) -> str:
    return direction.value.capitalize()


def classify_confluence(group: "InstrumentGroup") -> ConfluenceVerdict:
    """
    Classify cross-timeframe agreement for an instrument.

    Only active signals participate. With fewer than two directional
    buckets the verdict is NONE. A DIVERGENT verdict needs a strict
    majority of the lower buckets against the anchor; an exact half split
    is CONFLICTING.
    """
    active_buckets = [tf for tf in group.timeframes if tf.signals]
    if not active_buckets:
        return ConfluenceVerdict(
            type=ConfluenceType.NONE,
            dominant_direction=Direction.NEUTRAL,
            label="All Patterns Expired",
        )

    entries: List[Tuple[str, Direction]] = []
    for bucket in active_buckets:
        direction = bucket_direction(bucket.signals)
        if direction is None or direction == MIXED:
            continue
        entries.append((bucket.timeframe, direction))

    if len(entries) < 2:
        dominant = entries[0][1] if entries else Direction.NEUTRAL
        return ConfluenceVerdict(
            type=ConfluenceType.NONE,
            dominant_direction=dominant,
            directional_timeframes=entries,
        )

    directions = [direction for _, direction in entries]
    if len(set(directions)) == 1:
        dominant = directions[0]
        return ConfluenceVerdict(
            type=ConfluenceType.STRONG,
            dominant_direction=dominant,
            label=f"Strong {_pretty(dominant)} Confluence",
            directional_timeframes=entries,
        )

    anchor = directions[0]
    lower = directions[1:]
    disagreeing = sum(1 for d in lower if d != anchor)
    if disagreeing > len(lower) / 2:
        return ConfluenceVerdict(
            type=ConfluenceType.DIVERGENT,
            dominant_direction=anchor,
            label=f"HTF {_pretty(anchor)} Divergence",
            directional_timeframes=entries,
        )

    return ConfluenceVerdict(
        type=ConfluenceType.CONFLICTING,
        dominant_direction=Direction.NEUTRAL,
        label="Conflicting Signals",
        directional_timeframes=entries,
    )
