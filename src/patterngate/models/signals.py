"""
Pattern Signal Models

This module contains the Pydantic models for detected chart-pattern signals:
- Direction / SignalStatus / TradingRegime: enumerated tags carried by the feed
- LevelStatus: distinguishes a missing price level from a zero (erroneous) one
- PatternSignal: one immutable pattern occurrence keyed by pattern_id

Signals are never mutated in place. A feed update produces a new record
that replaces the old one under the same pattern_id.
"""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from .timeframes import canonical_timeframe, duration_minutes, weight


class Direction(str, Enum):
    """Directional bias of a pattern."""
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"

    @property
    def opposite(self) -> "Direction":
        if self is Direction.BULLISH:
            return Direction.BEARISH
        if self is Direction.BEARISH:
            return Direction.BULLISH
        return Direction.NEUTRAL

    @property
    def is_directional(self) -> bool:
        return self is not Direction.NEUTRAL


class SignalStatus(str, Enum):
    """Lifecycle status reported by the feed."""
    ACTIVE = "ACTIVE"
    COMPLETED_WIN = "COMPLETED_WIN"
    COMPLETED_LOSS = "COMPLETED_LOSS"
    EXPIRED = "EXPIRED"
    INVALIDATED = "INVALIDATED"

    @property
    def is_completed(self) -> bool:
        return self in (SignalStatus.COMPLETED_WIN, SignalStatus.COMPLETED_LOSS)


class TradingRegime(str, Enum):
    """Market regime tag attached to a signal."""
    FULL = "FULL"
    NORMAL = "NORMAL"
    CAUTIOUS = "CAUTIOUS"
    AVOID = "AVOID"
    UNKNOWN = "UNKNOWN"


class LevelStatus(str, Enum):
    """State of an optional price level."""
    OK = "OK"
    MISSING = "DM"   # Data missing: the feed never supplied the level
    ERROR = "ERR"    # Present but zero: never a meaningful price


PRICE_LEVEL_FIELDS = ("entry_price", "stop_loss", "target1", "target2", "target3", "target4")


def coerce_datetime(value: Any) -> Optional[datetime]:
    """
    Best-effort timestamp parsing.

    Accepts datetimes, ISO-8601 strings (with or without 'Z'), and epoch
    milliseconds (seconds when the magnitude is clearly seconds). Naive
    values are taken as UTC. Anything unparseable yields None.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        seconds = value / 1000.0 if abs(value) >= 1e11 else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lstrip("-").isdigit():
            return coerce_datetime(int(text))
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def coerce_price(value: Any) -> Optional[float]:
    """None/NaN/unparseable become None; zero stays 0.0."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def level_status(value: Optional[float]) -> LevelStatus:
    """Classify an optional price level."""
    if value is None:
        return LevelStatus.MISSING
    if value == 0:
        return LevelStatus.ERROR
    return LevelStatus.OK


def format_level(value: Optional[float], decimals: int = 2) -> str:
    """Render a price level: 'DM' when missing, 'ERR' when zero."""
    status = level_status(value)
    if status is not LevelStatus.OK:
        return status.value
    return f"{value:.{decimals}f}"


def normalize_pattern_type(value: Any) -> str:
    text = str(value).strip().upper() if value is not None else ""
    text = text.replace("-", "_").replace(" ", "_")
    return text or "UNKNOWN"


class PatternSignal(BaseModel):
    """
    One detected occurrence of a named chart pattern.

    Price levels keep the missing/zero distinction: ``None`` means the feed
    did not supply the level, ``0.0`` means it supplied a broken value.
    """

    # Identity
    pattern_id: str = Field(..., min_length=1, description="Unique pattern identifier")
    instrument_id: str = Field(..., description="Instrument code, e.g. exchange + scrip code")
    pattern_type: str = Field(default="UNKNOWN", description="Upper-case pattern tag")
    timeframe: str = Field(default="", description="Canonical timeframe tag, raw label if unknown")

    # Display context
    company_name: str = Field(default="")
    symbol: str = Field(default="")
    exchange: str = Field(default="")

    # Temporal
    triggered_at: Optional[datetime] = Field(None, description="Instant the pattern was confirmed")
    expires_at: Optional[datetime] = Field(None, description="Explicit expiry override")

    # Trade context
    direction: Direction = Field(default=Direction.NEUTRAL)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0, description="Confidence in [0, 1]")
    entry_price: Optional[float] = Field(None, description="Underlying entry; None when the feed omits it")
    stop_loss: Optional[float] = None
    target1: Optional[float] = None
    target2: Optional[float] = None
    target3: Optional[float] = None
    target4: Optional[float] = None
    risk_reward_ratio: Optional[float] = None
    volume_confirmed: bool = Field(default=False)
    trading_regime: TradingRegime = Field(default=TradingRegime.UNKNOWN)
    spread_impact_pct: Optional[float] = None
    atr: Optional[float] = Field(None, description="Average true range of the underlying, if known")

    # Lifecycle
    status: SignalStatus = Field(default=SignalStatus.ACTIVE)
    actual_pnl: Optional[float] = None
    r_multiple: Optional[float] = None

    model_config = ConfigDict(
        frozen=True,
        json_encoders={
            datetime: lambda v: v.isoformat(),
        }
    )

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        number = coerce_price(v)
        if number is None:
            return 0.0
        return max(0.0, min(1.0, number))

    @field_validator("timeframe", mode="before")
    @classmethod
    def canonicalize_timeframe(cls, v: Any) -> str:
        return canonical_timeframe(v)

    @field_validator("pattern_type", mode="before")
    @classmethod
    def canonicalize_pattern_type(cls, v: Any) -> str:
        return normalize_pattern_type(v)

    @field_validator("direction", mode="before")
    @classmethod
    def coerce_direction(cls, v: Any) -> Direction:
        if isinstance(v, Direction):
            return v
        try:
            return Direction(str(v).strip().upper())
        except ValueError:
            return Direction.NEUTRAL

    @field_validator("trading_regime", mode="before")
    @classmethod
    def coerce_regime(cls, v: Any) -> TradingRegime:
        if isinstance(v, TradingRegime):
            return v
        if v is None:
            return TradingRegime.UNKNOWN
        try:
            return TradingRegime(str(v).strip().upper())
        except ValueError:
            return TradingRegime.UNKNOWN

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, v: Any) -> SignalStatus:
        if isinstance(v, SignalStatus):
            return v
        try:
            return SignalStatus(str(v).strip().upper())
        except ValueError:
            return SignalStatus.ACTIVE

    @field_validator("triggered_at", "expires_at", mode="before")
    @classmethod
    def coerce_timestamps(cls, v: Any) -> Optional[datetime]:
        return coerce_datetime(v)

    @field_validator(
        "entry_price", "stop_loss", "target1", "target2", "target3", "target4",
        "risk_reward_ratio", "spread_impact_pct", "atr", "actual_pnl", "r_multiple",
        mode="before",
    )
    @classmethod
    def coerce_optional_numbers(cls, v: Any) -> Optional[float]:
        return coerce_price(v)

    @computed_field
    @property
    def timeframe_weight(self) -> int:
        """Registry weight of this signal's timeframe."""
        return weight(self.timeframe)

    @computed_field
    @property
    def timeframe_minutes(self) -> int:
        """Bar duration in minutes, 0 when the timeframe is unknown."""
        return duration_minutes(self.timeframe)

    @property
    def display_name(self) -> str:
        return self.symbol or self.company_name or self.instrument_id

    @property
    def targets(self) -> List[Optional[float]]:
        return [self.target1, self.target2, self.target3, self.target4]

    def level_status(self, field_name: str) -> LevelStatus:
        """Missing/error/ok state of one of the optional price levels."""
        if field_name not in PRICE_LEVEL_FIELDS:
            raise ValueError(f"Not a price level field: {field_name}")
        return level_status(getattr(self, field_name))

    def format_level(self, field_name: str, decimals: int = 2) -> str:
        if field_name not in PRICE_LEVEL_FIELDS:
            raise ValueError(f"Not a price level field: {field_name}")
        return format_level(getattr(self, field_name), decimals)

    def has_usable_level(self, field_name: str) -> bool:
        return self.level_status(field_name) is LevelStatus.OK


def instrument_display_name(signals: Iterable[PatternSignal], instrument_id: str) -> str:
    """First symbol or company name any signal carries, else the instrument id."""
    for signal in signals:
        name = signal.symbol or signal.company_name
        if name:
            return name
    return instrument_id
