"""
Signal Normalizer

Turns raw feed records into PatternSignal models and classifies signals
as active or inactive. Malformed fields degrade to safe defaults: an
unparseable timestamp or unknown timeframe makes a signal never-expiring,
an absent price level stays None and an explicit zero stays 0.0.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from ..exceptions import MalformedSignalError
from ..models.signals import LevelStatus, PatternSignal, SignalStatus, coerce_price, level_status
from ..models.timeframes import duration_minutes

logger = logging.getLogger(__name__)


def _first_present(raw: Mapping[str, Any], *keys: str) -> Any:
    """First value among keys that is present, non-null and non-blank."""
    for key in keys:
        value = raw.get(key)
        if value is None:
            continue
        if isinstance(value, str) and (not value.strip() or value.strip() == "null"):
            continue
        return value
    return None


def _nullable(raw: Mapping[str, Any], key: str) -> Optional[float]:
    """Absent or JSON null -> None; explicit zero -> 0.0."""
    if key not in raw or raw[key] is None:
        return None
    return coerce_price(raw[key])


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "y")
    return bool(value)


def derive_risk_reward(entry: Optional[float], stop: Optional[float], target: Optional[float]) -> Optional[float]:
    """Reward-to-risk of the first target, or None when any level is unusable."""
    if entry is None or level_status(entry) is not LevelStatus.OK:
        return None
    if level_status(stop) is not LevelStatus.OK or level_status(target) is not LevelStatus.OK:
        return None
    risk = abs(entry - stop)
    if risk == 0:
        return None
    return round(abs(target - entry) / risk, 4)


def parse_signal(raw: Mapping[str, Any]) -> PatternSignal:
    """
    Build a PatternSignal from a raw feed record.

    Keys follow the feed's camelCase naming. Identity falls back from
    patternId to id to a generated UUID; the instrument falls back from
    instrumentId to scripCode to familyId.

    Raises:
        MalformedSignalError: if the record is not a mapping or lacks an instrument
    """
    if not isinstance(raw, Mapping):
        raise MalformedSignalError(f"Expected a mapping, got {type(raw).__name__}")

    pattern_id = _first_present(raw, "patternId", "pattern_id", "id")
    if pattern_id is None:
        pattern_id = str(uuid.uuid4())

    instrument_id = _first_present(raw, "instrumentId", "instrument_id", "scripCode", "familyId")
    if instrument_id is None:
        raise MalformedSignalError(f"Signal {pattern_id} has no instrument identifier")

    entry = _nullable(raw, "entryPrice") if "entryPrice" in raw else _nullable(raw, "entry_price")
    stop = _nullable(raw, "stopLoss")
    target1 = _nullable(raw, "target1")
    risk_reward = _nullable(raw, "riskRewardRatio")
    if risk_reward is None:
        risk_reward = derive_risk_reward(entry, stop, target1)

    regime = _first_present(raw, "tradingRegime", "tradingMode")

    try:
        return PatternSignal(
            pattern_id=str(pattern_id),
            instrument_id=str(instrument_id),
            pattern_type=_first_present(raw, "patternType", "type") or "UNKNOWN",
            timeframe=_first_present(raw, "timeframe") or "",
            company_name=str(_first_present(raw, "companyName") or ""),
            symbol=str(_first_present(raw, "symbol", "companyName") or ""),
            exchange=str(_first_present(raw, "exchange") or ""),
            triggered_at=_first_present(raw, "triggeredAt", "timestamp"),
            expires_at=_first_present(raw, "expiresAt"),
            direction=_first_present(raw, "direction") or "NEUTRAL",
            confidence=_first_present(raw, "confidence"),
            entry_price=entry,
            stop_loss=stop,
            target1=target1,
            target2=_nullable(raw, "target2"),
            target3=_nullable(raw, "target3"),
            target4=_nullable(raw, "target4"),
            risk_reward_ratio=risk_reward,
            volume_confirmed=_flag(raw.get("volumeConfirmed")),
            trading_regime=regime,
            spread_impact_pct=_nullable(raw, "spreadImpactPct"),
            atr=_nullable(raw, "atr30m") if "atr30m" in raw else _nullable(raw, "atr"),
            status=_first_present(raw, "status") or "ACTIVE",
            actual_pnl=_nullable(raw, "actualPnl"),
            r_multiple=_nullable(raw, "rMultiple"),
        )
    except ValidationError as e:
        raise MalformedSignalError(f"Signal {pattern_id} failed validation: {e}") from e


def parse_batch(raws: Iterable[Any]) -> List[PatternSignal]:
    """Parse a batch, logging and skipping records that cannot be interpreted."""
    signals: List[PatternSignal] = []
    skipped = 0
    for raw in raws:
        if isinstance(raw, PatternSignal):
            signals.append(raw)
            continue
        try:
            signals.append(parse_signal(raw))
        except MalformedSignalError as e:
            skipped += 1
            logger.warning(f"Skipping malformed signal record: {e}")
    if skipped:
        logger.info(f"Parsed {len(signals)} signals, skipped {skipped} malformed records")
    return signals


def effective_expiry(signal: PatternSignal) -> Optional[datetime]:
    """
    Instant after which the signal is expired.

    An explicit ``expires_at`` wins; otherwise the triggering bar's close,
    ``triggered_at + duration(timeframe)``. None when neither is derivable.
    """
    if signal.expires_at is not None:
        return signal.expires_at
    if signal.triggered_at is None:
        return None
    minutes = duration_minutes(signal.timeframe)
    if minutes == 0:
        return None
    return signal.triggered_at + timedelta(minutes=minutes)


def is_expired(signal: PatternSignal, now: datetime) -> bool:
    """
    True once the triggering bar has closed.

    Pure in (signal, now). Missing time data or an unknown timeframe means
    the signal never expires.
    """
    expiry = effective_expiry(signal)
    if expiry is None:
        return False
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now > expiry


def is_active(signal: PatternSignal, now: datetime) -> bool:
    """
    Still tradeable at ``now``.

    The feed's lifecycle status must be ACTIVE; completed, expired and
    invalidated signals are inactive however recent they are.
    """
    return signal.status is SignalStatus.ACTIVE and not is_expired(signal, now)


def partition_active(
    signals: Iterable[PatternSignal], now: datetime
) -> Tuple[List[PatternSignal], List[PatternSignal]]:
    """Split signals into (active, inactive), preserving input order."""
    active: List[PatternSignal] = []
    inactive: List[PatternSignal] = []
    for signal in signals:
        (active if is_active(signal, now) else inactive).append(signal)
    return active, inactive
