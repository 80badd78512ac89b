"""
Strength Scorer

Single 0-100 conviction score per instrument from timeframe-weighted
confidence, directional alignment and a timeframe coverage bonus. Several
independently confirming timeframes beat one very confident signal; the
coverage bonus is capped so it never dominates confidence.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Iterable

from ..models.signals import PatternSignal
from ..models.timeframes import weight

if TYPE_CHECKING:
    from .grouper import InstrumentGroup

ALIGNED_FACTOR = 1.0
MIXED_FACTOR = 0.7
COVERAGE_PER_TIMEFRAME = 2
MAX_COVERAGE_BONUS = 10
MAX_SCORE = 100


def _round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def score_signals(active: Iterable[PatternSignal]) -> int:
    """Score an already-filtered collection of active signals."""
    signals = list(active)
    if not signals:
        return 0

    weighted_sum = 0.0
    total_weight = 0
    for signal in signals:
        w = weight(signal.timeframe)
        weighted_sum += signal.confidence * w
        total_weight += w
    base_score = (weighted_sum / total_weight) * 100 if total_weight > 0 else 0.0

    directions = {s.direction for s in signals if s.direction.is_directional}
    alignment = ALIGNED_FACTOR if len(directions) <= 1 else MIXED_FACTOR

    distinct_timeframes = len({s.timeframe for s in signals})
    coverage_bonus = min(MAX_COVERAGE_BONUS, COVERAGE_PER_TIMEFRAME * distinct_timeframes)

    score = _round_half_up(base_score * alignment + coverage_bonus)
    return max(0, min(MAX_SCORE, score))


def strength_score(group: "InstrumentGroup") -> int:
    """Conviction score for an instrument; an all-expired group scores 0."""
    return score_signals(group.active_signals)


def strength_label(score: int) -> str:
    if score >= 70:
        return "Strong"
    if score >= 40:
        return "Moderate"
    if score > 0:
        return "Weak"
    return "Expired"
