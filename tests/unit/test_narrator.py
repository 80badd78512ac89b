"""
Unit tests for the chronological narrator and timeframe summary.
"""

from pydantic import TypeAdapter

from patterngate.engine.confluence import ConfluenceType, classify_confluence
from patterngate.engine.grouper import group_signals
from patterngate.engine.narrator import (
    AllExpired,
    ExpiryNote,
    Finding,
    FindingKind,
    InsufficientData,
    MixedSignals,
    MomentumBuilding,
    ReversalSuspected,
    TimeframeFindingKind,
    best_risk_reward,
    narrate,
    summarize_timeframes,
)
from patterngate.models.signals import Direction, LevelStatus


def _narrate(signals, now):
    return narrate(group_signals(signals, now)[0])


def _kinds(findings):
    return [f.kind for f in findings]


class TestNarrate:
    """Test chronological findings."""

    def test_reversal_with_expiry_note(self, make_signal, now):
        daily = make_signal(timeframe="1D", direction="BEARISH", minutes_ago=1500)
        fresh = make_signal(timeframe="15m", direction="BULLISH", minutes_ago=5)

        findings = _narrate([daily, fresh], now)

        assert _kinds(findings) == [FindingKind.REVERSAL_SUSPECTED, FindingKind.EXPIRY_NOTE]
        reversal, note = findings
        assert isinstance(reversal, ReversalSuspected)
        assert reversal.from_direction is Direction.BEARISH
        assert reversal.to_direction is Direction.BULLISH
        assert reversal.expired_signal == daily
        assert reversal.shifted_at == fresh.triggered_at
        assert isinstance(note, ExpiryNote)
        assert note.expired_count == 1
        assert note.latest_active == fresh

    def test_momentum_building(self, make_signal, now):
        signals = [
            make_signal(timeframe="1D", minutes_ago=30),
            make_signal(timeframe="4h", minutes_ago=20, risk_reward_ratio=3.5),
            make_signal(timeframe="1h", minutes_ago=10),
        ]

        findings = _narrate(signals, now)

        assert _kinds(findings) == [FindingKind.MOMENTUM_BUILDING]
        momentum = findings[0]
        assert isinstance(momentum, MomentumBuilding)
        assert momentum.direction is Direction.BULLISH
        assert momentum.recent_direction_count == 3
        assert momentum.best_risk_reward == signals[1]

    def test_momentum_ignores_older_than_three(self, make_signal, now):
        signals = [
            make_signal(timeframe="1D", direction="BEARISH", minutes_ago=40),
            make_signal(timeframe="4h", minutes_ago=30),
            make_signal(timeframe="2h", minutes_ago=20),
            make_signal(timeframe="1h", minutes_ago=10),
        ]
        assert _kinds(_narrate(signals, now)) == [FindingKind.MOMENTUM_BUILDING]

    def test_same_direction_expired_is_momentum_plus_note(self, make_signal, now):
        signals = [
            make_signal(timeframe="5m", minutes_ago=30),
            make_signal(timeframe="4h", minutes_ago=20),
            make_signal(timeframe="1h", minutes_ago=10),
        ]

        findings = _narrate(signals, now)

        assert _kinds(findings) == [FindingKind.MOMENTUM_BUILDING, FindingKind.EXPIRY_NOTE]
        assert findings[1].expired_count == 1

    def test_mixed_signals(self, make_signal, now):
        signals = [
            make_signal(timeframe="4h", direction="BEARISH", minutes_ago=20),
            make_signal(timeframe="1h", direction="BULLISH", minutes_ago=10),
        ]

        findings = _narrate(signals, now)

        assert _kinds(findings) == [FindingKind.MIXED_SIGNALS]
        assert isinstance(findings[0], MixedSignals)
        assert findings[0].active_count == 2
        assert findings[0].directions == [Direction.BULLISH, Direction.BEARISH]

    def test_all_expired(self, make_signal, now):
        signals = [make_signal(timeframe="5m", minutes_ago=30), make_signal(timeframe="1m", minutes_ago=20)]

        findings = _narrate(signals, now)

        assert findings == [AllExpired(expired_count=2)]

    def test_closed_status_counts_as_expired(self, make_signal, now):
        signals = [
            make_signal(timeframe="4h", minutes_ago=3, status="INVALIDATED"),
            make_signal(timeframe="1h", minutes_ago=5, status="COMPLETED_LOSS"),
        ]

        assert _narrate(signals, now) == [AllExpired(expired_count=2)]

    def test_single_dated_signal(self, make_signal, now):
        signal = make_signal()
        findings = _narrate([signal, make_signal(triggered_at=None)], now)

        assert len(findings) == 1
        assert isinstance(findings[0], InsufficientData)
        assert findings[0].signal == signal

    def test_no_dated_signals(self, make_signal, now):
        assert _narrate([make_signal(triggered_at=None)], now) == []

    def test_neutral_expired_is_not_a_reversal(self, make_signal, now):
        signals = [
            make_signal(timeframe="5m", direction="NEUTRAL", minutes_ago=30),
            make_signal(timeframe="1h", direction="BULLISH", minutes_ago=10),
        ]
        assert _kinds(_narrate(signals, now)) == [FindingKind.EXPIRY_NOTE]

    def test_findings_are_tagged_variants(self):
        adapter = TypeAdapter(Finding)
        finding = adapter.validate_python({"kind": "ALL_EXPIRED", "expired_count": 3})
        assert isinstance(finding, AllExpired)
        assert finding.expired_count == 3


class TestSummarizeTimeframes:
    """Test the multi-timeframe summary."""

    def _summary(self, signals, now):
        group = group_signals(signals, now)[0]
        return summarize_timeframes(group, classify_confluence(group))

    def test_aligned_summary(self, make_signal, now):
        signals = [
            make_signal(timeframe="1h", confidence=0.8, pattern_type="HAMMER"),
            make_signal(timeframe="4h", confidence=0.75, pattern_type="BREAKOUT", risk_reward_ratio=2.5),
        ]

        findings = self._summary(signals, now)

        assert _kinds(findings) == [
            TimeframeFindingKind.ANCHOR,
            TimeframeFindingKind.ALIGNMENT,
            TimeframeFindingKind.BEST_RISK_REWARD,
        ]
        anchor, alignment, best = findings
        assert anchor.timeframe == "4h"
        assert anchor.direction is Direction.BULLISH
        assert anchor.pattern_types == ["BREAKOUT"]
        assert alignment.verdict.type is ConfluenceType.STRONG
        assert alignment.active_timeframe_count == 2
        assert best.signal == signals[1]
        assert best.stop_loss_status is LevelStatus.OK

    def test_no_active_timeframes(self, make_signal, now):
        findings = self._summary([make_signal(timeframe="5m", minutes_ago=30)], now)
        assert _kinds(findings) == [TimeframeFindingKind.NO_ACTIVE_TIMEFRAMES]

    def test_expired_timeframes_listed(self, make_signal, now):
        signals = [
            make_signal(timeframe="1D", minutes_ago=2000, risk_reward_ratio=None),
            make_signal(timeframe="1h", risk_reward_ratio=None),
        ]

        findings = self._summary(signals, now)

        assert _kinds(findings) == [TimeframeFindingKind.ANCHOR, TimeframeFindingKind.EXPIRED_TIMEFRAMES]
        assert findings[-1].timeframes == ["1D"]

    def test_best_risk_reward_reports_level_sentinels(self, make_signal, now):
        signals = [make_signal(stop_loss=0, target1=None, risk_reward_ratio=1.5)]
        best = self._summary(signals, now)[-1]

        assert best.kind is TimeframeFindingKind.BEST_RISK_REWARD
        assert best.stop_loss_status is LevelStatus.ERROR
        assert best.target1_status is LevelStatus.MISSING


class TestBestRiskReward:
    """Test best positive R:R selection."""

    def test_ignores_non_positive(self, make_signal):
        signals = [make_signal(risk_reward_ratio=0), make_signal(risk_reward_ratio=None)]
        assert best_risk_reward(signals) is None

    def test_first_on_tie(self, make_signal):
        a, b = make_signal(risk_reward_ratio=2.0), make_signal(risk_reward_ratio=2.0)
        assert best_risk_reward([a, b]) is a
