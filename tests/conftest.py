"""
Pytest configuration and fixtures for PatternGate tests.
"""

import itertools
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Generator

import pytest
from unittest.mock import patch

from patterngate.config import Config
from patterngate.models.signals import PatternSignal

NOW = datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc)

_ids = itertools.count(1)


@pytest.fixture
def now() -> datetime:
    """Fixed evaluation instant."""
    return NOW


@pytest.fixture
def make_signal() -> Callable[..., PatternSignal]:
    """
    Factory for PatternSignal objects.

    ``minutes_ago`` sets triggered_at relative to NOW; the default of one
    minute keeps every known timeframe active at NOW.
    """

    def _make(
        instrument_id: str = "N:2885",
        timeframe: str = "1h",
        direction: str = "BULLISH",
        confidence: float = 0.8,
        minutes_ago: float = 1,
        pattern_type: str = "HAMMER",
        **overrides,
    ) -> PatternSignal:
        fields = dict(
            pattern_id=f"p{next(_ids)}",
            instrument_id=instrument_id,
            pattern_type=pattern_type,
            timeframe=timeframe,
            direction=direction,
            confidence=confidence,
            triggered_at=NOW - timedelta(minutes=minutes_ago),
            entry_price=1000.0,
            stop_loss=980.0 if direction != "BEARISH" else 1020.0,
            target1=1040.0 if direction != "BEARISH" else 960.0,
            risk_reward_ratio=2.0,
            volume_confirmed=True,
        )
        fields.update(overrides)
        return PatternSignal(**fields)

    return _make


@pytest.fixture
def raw_record() -> dict:
    """A feed record in the feed's camelCase shape."""
    return {
        "patternId": "PAT-001",
        "scripCode": "N:2885",
        "companyName": "RELIANCE",
        "exchange": "N",
        "patternType": "bullish_engulfing",
        "timeframe": "15min",
        "direction": "bullish",
        "confidence": 0.82,
        "triggeredAt": "2024-06-03T09:50:00Z",
        "entryPrice": 2950.0,
        "stopLoss": 2930.0,
        "target1": 2990.0,
        "target2": None,
        "volumeConfirmed": "true",
        "tradingRegime": "NORMAL",
        "atr30m": 12.5,
        "status": "ACTIVE",
    }


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def mock_env_vars() -> Generator[dict, None, None]:
    """Mock environment variables for testing."""
    test_env = {
        "PATTERNGATE_RECOMPUTE_INTERVAL": "2.5",
        "PATTERNGATE_RETENTION_HOURS": "48",
        "PATTERNGATE_HORIZON_HOURS": "12",
        "PATTERNGATE_MIN_CONFIDENCE": "0.65",
        "PATTERNGATE_DEFAULT_LOT_SIZE": "25",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, test_env, clear=False):
        yield test_env


@pytest.fixture
def test_config(mock_env_vars: dict) -> Config:
    """Create a test configuration instance."""
    return Config.load_from_env()
