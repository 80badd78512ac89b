"""
Unit tests for pattern signal models.

Covers field coercion, confidence clamping and the missing-vs-zero
distinction on price levels.
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from patterngate.models.signals import (
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


def _signal(**overrides) -> PatternSignal:
    fields = dict(pattern_id="p1", instrument_id="N:2885", timeframe="1h", entry_price=100.0)
    fields.update(overrides)
    return PatternSignal(**fields)


class TestDirection:
    """Test Direction enum helpers."""

    def test_opposite(self):
        assert Direction.BULLISH.opposite is Direction.BEARISH
        assert Direction.BEARISH.opposite is Direction.BULLISH
        assert Direction.NEUTRAL.opposite is Direction.NEUTRAL

    def test_is_directional(self):
        assert Direction.BULLISH.is_directional
        assert not Direction.NEUTRAL.is_directional


class TestCoercion:
    """Test best-effort parsing helpers."""

    def test_iso_with_z(self):
        parsed = coerce_datetime("2024-06-03T09:50:00Z")
        assert parsed == datetime(2024, 6, 3, 9, 50, tzinfo=timezone.utc)

    def test_naive_is_utc(self):
        parsed = coerce_datetime("2024-06-03T09:50:00")
        assert parsed.tzinfo is not None
        assert parsed.utcoffset().total_seconds() == 0

    def test_epoch_millis_and_seconds(self):
        expected = datetime(2024, 6, 3, 9, 50, tzinfo=timezone.utc)
        millis = int(expected.timestamp() * 1000)
        assert coerce_datetime(millis) == expected
        assert coerce_datetime(int(expected.timestamp())) == expected
        assert coerce_datetime(str(millis)) == expected

    @pytest.mark.parametrize("value", [None, "", "not a date", True, float("nan"), object()])
    def test_unparseable_datetime(self, value):
        assert coerce_datetime(value) is None

    def test_price_coercion(self):
        assert coerce_price(None) is None
        assert coerce_price("abc") is None
        assert coerce_price(float("nan")) is None
        assert coerce_price(0) == 0.0
        assert coerce_price("12.5") == 12.5


class TestPriceLevelSentinels:
    """Missing and zero levels must never render or propagate the same way."""

    def test_level_status(self):
        assert level_status(None) is LevelStatus.MISSING
        assert level_status(0.0) is LevelStatus.ERROR
        assert level_status(95.0) is LevelStatus.OK

    def test_missing_and_zero_stop_differ(self):
        missing = _signal(stop_loss=None)
        zero = _signal(stop_loss=0)

        assert missing.stop_loss is None
        assert zero.stop_loss == 0.0
        assert missing.level_status("stop_loss") != zero.level_status("stop_loss")
        assert missing.format_level("stop_loss") == "DM"
        assert zero.format_level("stop_loss") == "ERR"
        assert not missing.has_usable_level("stop_loss")
        assert not zero.has_usable_level("stop_loss")

    def test_missing_and_zero_entry_differ(self):
        missing = _signal(entry_price=None)
        zero = _signal(entry_price=0)

        assert missing.entry_price is None
        assert missing.format_level("entry_price") == "DM"
        assert zero.format_level("entry_price") == "ERR"
        assert not missing.has_usable_level("entry_price")
        assert _signal().has_usable_level("entry_price")

    def test_format_level_value(self):
        assert format_level(1234.5) == "1234.50"
        assert _signal(target1=105.123).format_level("target1", 1) == "105.1"

    def test_unknown_level_field(self):
        with pytest.raises(ValueError):
            _signal().level_status("confidence")


class TestPatternSignal:
    """Test PatternSignal validation."""

    @pytest.mark.parametrize("raw,expected", [(1.7, 1.0), (-0.3, 0.0), ("0.55", 0.55), (None, 0.0)])
    def test_confidence_clamped(self, raw, expected):
        assert _signal(confidence=raw).confidence == expected

    def test_enum_coercion(self):
        signal = _signal(
            direction="bearish",
            trading_regime="avoid",
            status="completed_win",
            pattern_type="bullish engulfing",
            timeframe="60min",
        )
        assert signal.direction is Direction.BEARISH
        assert signal.trading_regime is TradingRegime.AVOID
        assert signal.status is SignalStatus.COMPLETED_WIN
        assert signal.status.is_completed
        assert signal.pattern_type == "BULLISH_ENGULFING"
        assert signal.timeframe == "1h"

    def test_unknown_enum_values_degrade(self):
        signal = _signal(direction="sideways", trading_regime="???", status="weird")
        assert signal.direction is Direction.NEUTRAL
        assert signal.trading_regime is TradingRegime.UNKNOWN
        assert signal.status is SignalStatus.ACTIVE

    def test_computed_fields(self):
        signal = _signal(timeframe="4h")
        assert signal.timeframe_weight == 7
        assert signal.timeframe_minutes == 240
        dumped = signal.model_dump()
        assert dumped["timeframe_weight"] == 7

    def test_display_name_fallback(self):
        assert _signal().display_name == "N:2885"
        assert _signal(company_name="RELIANCE").display_name == "RELIANCE"
        assert _signal(symbol="RELIANCE-EQ", company_name="RELIANCE").display_name == "RELIANCE-EQ"

    def test_instrument_display_name_skips_unnamed(self):
        signals = [_signal(), _signal(company_name="RELIANCE"), _signal(symbol="RIL")]
        assert instrument_display_name(signals, "N:2885") == "RELIANCE"
        assert instrument_display_name([_signal()], "N:2885") == "N:2885"
        assert instrument_display_name([], "N:1") == "N:1"

    def test_targets(self):
        signal = _signal(target1=110, target3=130)
        assert signal.targets == [110.0, None, 130.0, None]

    def test_frozen(self):
        signal = _signal()
        with pytest.raises(ValidationError):
            signal.confidence = 0.9

    def test_pattern_id_required(self):
        with pytest.raises(ValidationError):
            PatternSignal(pattern_id="", instrument_id="N:1")
