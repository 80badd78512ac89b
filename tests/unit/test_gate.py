"""
Unit tests for the trade gate and sizer.
"""

import pytest

from patterngate.config import GateConfig
from patterngate.engine.gate import (
    GateContext,
    OptionType,
    RejectionReason,
    approximate_delta,
    compute_sizing,
    estimate_contract_price,
    evaluate_trade,
    map_to_contract_levels,
    otm_strike,
    select_candidate,
    strike_interval,
)
from patterngate.engine.grouper import group_signals
from patterngate.exceptions import LevelOrderingError


@pytest.fixture
def context():
    return GateContext(available_capital=100000.0)


def _gate(signals, now, context, config=None):
    return evaluate_trade(group_signals(signals, now)[0], context, config)


class TestStrikes:
    """Test strike interval and OTM strike selection."""

    @pytest.mark.parametrize("price,interval", [
        (45000, 500), (22000, 200), (15000, 100), (8000, 50), (3000, 20),
        (1500, 10), (1000, 5), (250, 2.5), (80, 1),
    ])
    def test_strike_interval(self, price, interval):
        assert strike_interval(price) == interval

    def test_otm_strike(self):
        assert otm_strike(1000, OptionType.CALL) == 1005
        assert otm_strike(1000, OptionType.PUT) == 995
        assert otm_strike(2953, OptionType.CALL) == 2980

    def test_otm_strike_never_non_positive(self):
        assert otm_strike(0.4, OptionType.PUT) == 1

    def test_delta(self):
        assert approximate_delta(1000, 1000, OptionType.CALL) == pytest.approx(0.5)
        call = approximate_delta(1000, 1005, OptionType.CALL)
        put = approximate_delta(1000, 995, OptionType.PUT)
        assert call == pytest.approx(0.48757, abs=1e-4)
        assert put == pytest.approx(0.48744, abs=1e-4)


class TestSizing:
    """Test lot sizing."""

    def test_high_confidence_allocation(self):
        sizing = compute_sizing(0.8, 100000, 12.0, 50, GateConfig())
        assert sizing.allocation == 0.75
        assert sizing.lots == 125
        assert sizing.quantity == 6250
        assert sizing.confidence_pct == 80

    def test_threshold_is_strict(self):
        assert compute_sizing(0.75, 100000, 12.0, 50, GateConfig()).allocation == 0.5
        assert compute_sizing(0.755, 100000, 12.0, 50, GateConfig()).allocation == 0.75

    def test_cannot_buy_one_lot(self):
        assert compute_sizing(0.9, 500, 12.0, 50, GateConfig()) is None

    def test_non_positive_cost(self):
        assert compute_sizing(0.9, 100000, 0.0, 50, GateConfig()) is None

    def test_premium_estimate(self, make_signal):
        config = GateConfig()
        assert estimate_contract_price(make_signal(), config) == pytest.approx(12.0)
        assert estimate_contract_price(make_signal(atr=10.0), config) == pytest.approx(30.0)
        assert estimate_contract_price(make_signal(atr=1.0), config) == pytest.approx(8.0)


class TestLevelMapping:
    """Contract levels must keep stop <= entry <= targets."""

    def test_call_levels(self, make_signal):
        levels = map_to_contract_levels(make_signal(), 12.0)

        assert levels.option_type is OptionType.CALL
        assert levels.strike == 1005
        assert levels.stop_loss == pytest.approx(2.25)
        assert levels.targets[0] == pytest.approx(31.5)
        assert levels.targets[1:] == [None, None, None]

    def test_put_levels(self, make_signal):
        levels = map_to_contract_levels(make_signal(direction="BEARISH"), 12.0)

        assert levels.option_type is OptionType.PUT
        assert levels.strike == 995
        assert levels.stop_loss == pytest.approx(2.25)
        assert levels.targets[0] == pytest.approx(31.5)

    def test_stop_floor(self, make_signal):
        levels = map_to_contract_levels(make_signal(stop_loss=800.0), 12.0)
        assert levels.stop_loss == 0.5

    def test_zero_target_not_mapped(self, make_signal):
        levels = map_to_contract_levels(make_signal(target2=0.0, target3=1080.0), 12.0)
        assert levels.targets[1] is None
        assert levels.targets[2] is not None

    @pytest.mark.parametrize("direction,stop,target", [
        ("BULLISH", 1020.0, 1040.0),
        ("BULLISH", 980.0, 960.0),
        ("BEARISH", 980.0, 960.0),
        ("BEARISH", 1020.0, 1040.0),
    ])
    def test_levels_against_direction_raise(self, make_signal, direction, stop, target):
        signal = make_signal(direction=direction, stop_loss=stop, target1=target)

        with pytest.raises(LevelOrderingError):
            map_to_contract_levels(signal, 12.0)

    @pytest.mark.parametrize("direction", ["BULLISH", "BEARISH"])
    @pytest.mark.parametrize("entry,stop_gap,price", [
        (95.0, 2.0, 0.9), (1000.0, 20.0, 12.0), (2950.0, 300.0, 5.0), (48000.0, 150.0, 400.0),
    ])
    def test_ordering_preserved(self, make_signal, direction, entry, stop_gap, price):
        sign = 1 if direction == "BULLISH" else -1
        signal = make_signal(
            direction=direction,
            entry_price=entry,
            stop_loss=entry - sign * stop_gap,
            target1=entry + sign * stop_gap,
            target2=entry + sign * stop_gap * 2,
        )

        levels = map_to_contract_levels(signal, price)

        assert levels.stop_loss <= levels.entry
        assert all(t >= levels.entry for t in levels.targets if t is not None)


class TestSelectCandidate:
    """Test candidate selection."""

    def test_highest_confidence(self, make_signal, now):
        low = make_signal(timeframe="4h", confidence=0.65)
        high = make_signal(timeframe="15m", confidence=0.85)

        assert select_candidate(group_signals([low, high], now)[0]) == high

    def test_requires_levels_and_confidence(self, make_signal, now):
        signals = [
            make_signal(confidence=0.59),
            make_signal(confidence=0.9, stop_loss=None),
            make_signal(confidence=0.9, target1=0.0),
            make_signal(confidence=0.9, entry_price=None),
            make_signal(confidence=0.9, entry_price=0.0),
            make_signal(confidence=0.95, status="INVALIDATED"),
            make_signal(confidence=0.95, status="COMPLETED_WIN"),
            make_signal(confidence=0.9, timeframe="5m", minutes_ago=30),
        ]
        assert select_candidate(group_signals(signals, now)[0]) is None


class TestEvaluateTrade:
    """Gate order: candidate, volume, regime, direction, sizing, level mapping."""

    def test_proposal(self, make_signal, now, context):
        result = _gate([make_signal(confidence=0.8)], now, context)

        assert result.approved
        assert result.rejection is None
        proposal = result.proposal
        assert proposal.side == "BUY"
        assert proposal.option_type is OptionType.CALL
        assert proposal.lots == 125
        assert proposal.lot_size == 50
        assert proposal.contract_entry == 12.0
        assert proposal.contract_stop <= proposal.contract_entry <= proposal.contract_targets[0]
        assert proposal.underlying_stop == 980.0

    def test_context_overrides(self, make_signal, now):
        context = GateContext(available_capital=10000.0, lot_size=25, estimated_contract_price=20.0)
        result = _gate([make_signal(confidence=0.8)], now, context)

        assert result.proposal.lots == 15
        assert result.proposal.quantity == 375
        assert result.proposal.capital_used == pytest.approx(7500.0)

    def test_unconfirmed_volume_rejected_first(self, make_signal, now):
        signal = make_signal(confidence=0.9, volume_confirmed=False, trading_regime="AVOID")

        result = _gate([signal], now, GateContext(available_capital=1e9))

        assert result.rejection is RejectionReason.NO_VOLUME_CONFIRMATION
        assert result.proposal is None
        assert result.candidate == signal

    def test_unconfirmed_volume_even_when_unsizeable(self, make_signal, now):
        signal = make_signal(confidence=0.9, volume_confirmed=False)
        result = _gate([signal], now, GateContext(available_capital=1.0))
        assert result.rejection is RejectionReason.NO_VOLUME_CONFIRMATION

    def test_regime_avoid(self, make_signal, now, context):
        result = _gate([make_signal(trading_regime="AVOID")], now, context)
        assert result.rejection is RejectionReason.REGIME_AVOID

    def test_neutral_has_no_side(self, make_signal, now, context):
        result = _gate([make_signal(direction="NEUTRAL")], now, context)
        assert result.rejection is RejectionReason.NO_DIRECTION

    def test_cannot_size(self, make_signal, now):
        result = _gate([make_signal()], now, GateContext(available_capital=100.0))

        assert result.rejection is RejectionReason.CANNOT_SIZE
        assert result.proposal is None
        assert not result.approved

    def test_no_candidate(self, make_signal, now, context):
        result = _gate([make_signal(confidence=0.4)], now, context)

        assert result.rejection is RejectionReason.NO_CANDIDATE
        assert result.candidate is None

    def test_config_min_confidence(self, make_signal, now, context):
        config = GateConfig(min_confidence=0.9)
        result = _gate([make_signal(confidence=0.85)], now, context, config)
        assert result.rejection is RejectionReason.NO_CANDIDATE

    @pytest.mark.parametrize("status", ["INVALIDATED", "COMPLETED_WIN", "COMPLETED_LOSS", "EXPIRED"])
    def test_closed_signal_never_proposed(self, make_signal, now, context, status):
        result = _gate([make_signal(confidence=0.9, status=status)], now, context)

        assert result.rejection is RejectionReason.NO_CANDIDATE
        assert not result.approved

    def test_closed_signal_does_not_outrank_live_one(self, make_signal, now, context):
        won = make_signal(timeframe="4h", confidence=0.8, status="COMPLETED_WIN")
        live = make_signal(timeframe="1h", confidence=0.8, volume_confirmed=False)

        result = _gate([won, live], now, context)

        assert result.candidate == live
        assert result.rejection is RejectionReason.NO_VOLUME_CONFIRMATION

    @pytest.mark.parametrize("entry", [None, 0.0])
    def test_unusable_entry_never_sized(self, make_signal, now, context, entry):
        result = _gate([make_signal(confidence=0.9, entry_price=entry)], now, context)

        assert result.rejection is RejectionReason.NO_CANDIDATE
        assert result.proposal is None

    def test_inverted_levels_rejected(self, make_signal, now, context):
        signal = make_signal(confidence=0.9, stop_loss=1020.0, target1=960.0)

        result = _gate([signal], now, GateContext(available_capital=100000.0, estimated_contract_price=12.0))

        assert result.rejection is RejectionReason.INCONSISTENT_LEVELS
        assert result.candidate == signal
        assert result.proposal is None
