"""
Chronological Narrator

Reads an instrument's signal history newest first and classifies how the
setup evolved: momentum building, reversal in progress, indecision or
fully expired. Output is a list of typed findings carrying their own
evidence (signals, counts, timestamps) so callers can render or test them
without re-deriving anything or matching on text.

Also produces the multi-timeframe summary: anchor timeframe, alignment,
best risk:reward and fully expired timeframes.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..models.signals import Direction, LevelStatus, PatternSignal, level_status
from .confluence import ConfluenceType, ConfluenceVerdict
from .normalizer import partition_active

if TYPE_CHECKING:
    from .grouper import InstrumentGroup

RECENT_WINDOW = 3
MIN_RECENT_FOR_MOMENTUM = 2


class FindingKind(str, Enum):
    """Chronological finding tags."""
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
    ALL_EXPIRED = "ALL_EXPIRED"
    REVERSAL_SUSPECTED = "REVERSAL_SUSPECTED"
    MOMENTUM_BUILDING = "MOMENTUM_BUILDING"
    MIXED_SIGNALS = "MIXED_SIGNALS"
    EXPIRY_NOTE = "EXPIRY_NOTE"


class _Finding(BaseModel):
    model_config = ConfigDict(frozen=True)


class InsufficientData(_Finding):
    """Exactly one dated signal: no progression to read."""
    kind: Literal[FindingKind.INSUFFICIENT_DATA] = FindingKind.INSUFFICIENT_DATA
    signal: PatternSignal


class AllExpired(_Finding):
    kind: Literal[FindingKind.ALL_EXPIRED] = FindingKind.ALL_EXPIRED
    expired_count: int


class ReversalSuspected(_Finding):
    """Latest expired and latest active signals point opposite ways."""
    kind: Literal[FindingKind.REVERSAL_SUSPECTED] = FindingKind.REVERSAL_SUSPECTED
    from_direction: Direction
    to_direction: Direction
    expired_signal: PatternSignal
    active_signal: PatternSignal

    @property
    def shifted_at(self) -> Optional[datetime]:
        return self.active_signal.triggered_at


class MomentumBuilding(_Finding):
    kind: Literal[FindingKind.MOMENTUM_BUILDING] = FindingKind.MOMENTUM_BUILDING
    direction: Direction
    recent_direction_count: int
    signals: List[PatternSignal]
    best_risk_reward: Optional[PatternSignal] = None


class MixedSignals(_Finding):
    kind: Literal[FindingKind.MIXED_SIGNALS] = FindingKind.MIXED_SIGNALS
    active_count: int
    directions: List[Direction]
    best_risk_reward: Optional[PatternSignal] = None


class ExpiryNote(_Finding):
    """Expired predecessors of the still-active signals."""
    kind: Literal[FindingKind.EXPIRY_NOTE] = FindingKind.EXPIRY_NOTE
    expired_count: int
    expired_signals: List[PatternSignal]
    latest_active: PatternSignal


Finding = Annotated[
    Union[InsufficientData, AllExpired, ReversalSuspected, MomentumBuilding, MixedSignals, ExpiryNote],
    Field(discriminator="kind"),
]


class TimeframeFindingKind(str, Enum):
    """Multi-timeframe summary tags."""
    NO_ACTIVE_TIMEFRAMES = "NO_ACTIVE_TIMEFRAMES"
    ANCHOR = "ANCHOR"
    ALIGNMENT = "ALIGNMENT"
    BEST_RISK_REWARD = "BEST_RISK_REWARD"
    EXPIRED_TIMEFRAMES = "EXPIRED_TIMEFRAMES"


class NoActiveTimeframes(_Finding):
    kind: Literal[TimeframeFindingKind.NO_ACTIVE_TIMEFRAMES] = TimeframeFindingKind.NO_ACTIVE_TIMEFRAMES


class AnchorTimeframe(_Finding):
    """Highest-weight timeframe that still has active signals."""
    kind: Literal[TimeframeFindingKind.ANCHOR] = TimeframeFindingKind.ANCHOR
    timeframe: str
    direction: Direction
    pattern_types: List[str]


class TimeframeAlignment(_Finding):
    kind: Literal[TimeframeFindingKind.ALIGNMENT] = TimeframeFindingKind.ALIGNMENT
    verdict: ConfluenceVerdict
    active_timeframe_count: int


class BestRiskReward(_Finding):
    kind: Literal[TimeframeFindingKind.BEST_RISK_REWARD] = TimeframeFindingKind.BEST_RISK_REWARD
    signal: PatternSignal
    risk_reward_ratio: float
    stop_loss_status: LevelStatus
    target1_status: LevelStatus


class ExpiredTimeframes(_Finding):
    kind: Literal[TimeframeFindingKind.EXPIRED_TIMEFRAMES] = TimeframeFindingKind.EXPIRED_TIMEFRAMES
    timeframes: List[str]


TimeframeFinding = Annotated[
    Union[NoActiveTimeframes, AnchorTimeframe, TimeframeAlignment, BestRiskReward, ExpiredTimeframes],
    Field(discriminator="kind"),
]


def best_risk_reward(signals: List[PatternSignal]) -> Optional[PatternSignal]:
    """Signal with the highest positive risk:reward, first one on ties."""
    best: Optional[PatternSignal] = None
    for signal in signals:
        rr = signal.risk_reward_ratio
        if rr is None or rr <= 0:
            continue
        if best is None or rr > best.risk_reward_ratio:
            best = signal
    return best


def narrate(group: "InstrumentGroup") -> List[Finding]:
    """
    Chronological findings for an instrument.

    At most one primary finding is produced, in priority order
    ALL_EXPIRED, REVERSAL_SUSPECTED, MOMENTUM_BUILDING, MIXED_SIGNALS.
    EXPIRY_NOTE is appended whenever both expired and active signals exist.
    """
    dated = [s for s in group.all_signals if s.triggered_at is not None]
    dated.sort(key=lambda s: s.triggered_at, reverse=True)

    if not dated:
        return []
    if len(dated) == 1:
        return [InsufficientData(signal=dated[0])]

    active, expired = partition_active(dated, group.evaluated_at)
    findings: List[Finding] = []

    recent = [s for s in active[:RECENT_WINDOW] if s.direction.is_directional]
    recent_directions = {s.direction for s in recent}
    momentum = len(recent) >= MIN_RECENT_FOR_MOMENTUM and len(recent_directions) == 1

    latest_expired = expired[0] if expired else None
    latest_active = active[0] if active else None
    flipped = (
        latest_expired is not None
        and latest_active is not None
        and latest_expired.direction.is_directional
        and latest_active.direction.is_directional
        and latest_expired.direction != latest_active.direction
    )

    if not active:
        findings.append(AllExpired(expired_count=len(expired)))
    elif flipped:
        findings.append(ReversalSuspected(
            from_direction=latest_expired.direction,
            to_direction=latest_active.direction,
            expired_signal=latest_expired,
            active_signal=latest_active,
        ))
    elif momentum:
        findings.append(MomentumBuilding(
            direction=recent[0].direction,
            recent_direction_count=len(recent),
            signals=recent,
            best_risk_reward=best_risk_reward(active),
        ))
    elif len(active) >= 2:
        findings.append(MixedSignals(
            active_count=len(active),
            directions=[s.direction for s in active],
            best_risk_reward=best_risk_reward(active),
        ))

    if expired and active:
        findings.append(ExpiryNote(
            expired_count=len(expired),
            expired_signals=expired,
            latest_active=active[0],
        ))

    return findings


def summarize_timeframes(group: "InstrumentGroup", verdict: ConfluenceVerdict) -> List[TimeframeFinding]:
    """Multi-timeframe summary: anchor, alignment, best R:R, expired timeframes."""
    active_tfs = [tf for tf in group.timeframes if tf.signals]
    expired_tfs = [tf for tf in group.timeframes if tf.is_fully_expired]

    if not active_tfs:
        return [NoActiveTimeframes()]

    findings: List[TimeframeFinding] = []

    anchor = active_tfs[0]
    findings.append(AnchorTimeframe(
        timeframe=anchor.timeframe,
        direction=anchor.signals[0].direction,
        pattern_types=[s.pattern_type for s in anchor.signals],
    ))

    if verdict.type is not ConfluenceType.NONE:
        findings.append(TimeframeAlignment(verdict=verdict, active_timeframe_count=len(active_tfs)))

    best = best_risk_reward([s for tf in active_tfs for s in tf.signals])
    if best is not None:
        findings.append(BestRiskReward(
            signal=best,
            risk_reward_ratio=best.risk_reward_ratio,
            stop_loss_status=level_status(best.stop_loss),
            target1_status=level_status(best.target1),
        ))

    if expired_tfs:
        findings.append(ExpiredTimeframes(timeframes=[tf.timeframe for tf in expired_tfs]))

    return findings
