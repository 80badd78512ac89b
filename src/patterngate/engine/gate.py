"""
Trade Gate & Sizer

Turns an instrument's best active signal into a sized option order
proposal, or a named rejection. Rejections are ordinary results, not
errors: most instruments fail a gate most of the time.

Gate order is fixed: candidate, volume confirmation, regime, direction,
sizing, level mapping. The first failure wins, so an unconfirmed signal
is never proposed however good its regime or sizing would be.
"""

import logging
import math
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..config import GateConfig
from ..exceptions import LevelOrderingError
from ..logger import get_instrument_adapter
from ..models.signals import Direction, PatternSignal, TradingRegime
from .grouper import InstrumentGroup, confidence_order_key

logger = logging.getLogger(__name__)


class RejectionReason(str, Enum):
    """Why no proposal was produced."""
    NO_CANDIDATE = "NO_CANDIDATE"
    NO_VOLUME_CONFIRMATION = "NO_VOLUME_CONFIRMATION"
    REGIME_AVOID = "REGIME_AVOID"
    NO_DIRECTION = "NO_DIRECTION"
    CANNOT_SIZE = "CANNOT_SIZE"
    INCONSISTENT_LEVELS = "INCONSISTENT_LEVELS"


class OptionType(str, Enum):
    CALL = "CE"
    PUT = "PE"


class GateContext(BaseModel):
    """Market and account context supplied by the caller."""

    available_capital: float = Field(..., ge=0.0)
    lot_size: Optional[int] = Field(None, ge=1, description="Contract multiplier; config default if None")
    estimated_contract_price: Optional[float] = Field(None, gt=0.0)


class PositionSize(BaseModel):
    """Lot count for a contract price, never fewer than one lot."""

    lots: int = Field(..., ge=1)
    lot_size: int
    quantity: int
    confidence_pct: int
    allocation: float
    capital_used: float

    model_config = ConfigDict(frozen=True)


class ContractLevels(BaseModel):
    option_type: OptionType
    strike: float
    delta: float
    entry: float
    stop_loss: float
    targets: List[Optional[float]]

    model_config = ConfigDict(frozen=True)


class OrderProposal(BaseModel):
    """A sized BUY of an out-of-the-money option on the signal's underlying."""

    instrument_id: str
    signal: PatternSignal
    side: str = "BUY"
    option_type: OptionType
    strike: float
    delta: float
    lots: int
    lot_size: int
    quantity: int
    allocation: float
    capital_used: float
    contract_entry: float
    contract_stop: float
    contract_targets: List[Optional[float]]
    underlying_entry: float
    underlying_stop: float
    underlying_targets: List[Optional[float]]

    model_config = ConfigDict(frozen=True)


class GateResult(BaseModel):
    """Proposal or rejection for one instrument."""

    instrument_id: str
    candidate: Optional[PatternSignal] = None
    proposal: Optional[OrderProposal] = None
    rejection: Optional[RejectionReason] = None
    detail: str = ""

    model_config = ConfigDict(frozen=True)

    @property
    def approved(self) -> bool:
        return self.proposal is not None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def strike_interval(price: float) -> float:
    """Listed strike spacing for an underlying price."""
    if price > 40000:
        return 500
    if price > 20000:
        return 200
    if price > 10000:
        return 100
    if price > 5000:
        return 50
    if price > 2000:
        return 20
    if price > 1000:
        return 10
    if price > 500:
        return 5
    if price > 100:
        return 2.5
    return 1


def otm_strike(price: float, option_type: OptionType) -> float:
    """Strike one interval out of the money from the nearest at-the-money strike."""
    interval = strike_interval(price)
    atm = round(price / interval) * interval
    strike = atm + interval if option_type is OptionType.CALL else atm - interval
    return strike if strike > 0 else interval


def approximate_delta(spot: float, strike: float, option_type: OptionType) -> float:
    """Logistic moneyness approximation of the option delta magnitude."""
    call_delta = 1.0 / (1.0 + math.exp(-10.0 * (spot - strike) / strike))
    return call_delta if option_type is OptionType.CALL else 1.0 - call_delta


def estimate_contract_price(signal: PatternSignal, config: GateConfig) -> float:
    """Premium estimate from the underlying's ATR, floored at a share of entry."""
    entry = signal.entry_price
    atr = signal.atr if signal.atr and signal.atr > 0 else entry * config.premium_atr_fallback_pct
    return max(config.premium_atr_multiple * atr, entry * config.premium_floor_pct)


def compute_sizing(
    confidence: float,
    capital: float,
    contract_price: float,
    lot_size: int,
    config: GateConfig,
) -> Optional[PositionSize]:
    """
    Whole lots affordable with a confidence-scaled share of capital.

    Returns None when not even one lot fits; a zero-lot proposal is never
    produced.
    """
    confidence_pct = _round_half_up(confidence * 100)
    allocation = config.high_allocation if confidence_pct > config.high_confidence_pct else config.base_allocation

    cost_per_lot = contract_price * lot_size
    if cost_per_lot <= 0:
        return None

    lots = math.floor(capital * allocation / cost_per_lot)
    if lots < 1:
        return None

    return PositionSize(
        lots=lots,
        lot_size=lot_size,
        quantity=lots * lot_size,
        confidence_pct=confidence_pct,
        allocation=allocation,
        capital_used=round(lots * cost_per_lot, 2),
    )


def map_to_contract_levels(
    signal: PatternSignal,
    contract_entry: float,
    config: Optional[GateConfig] = None,
) -> ContractLevels:
    """
    Express the signal's underlying levels in contract price terms.

    Underlying moves are signed in the option's favour (up for a call,
    down for a put), scaled by delta and applied to the contract entry.
    Levels on the wrong side of the underlying entry stay on the wrong
    side in contract terms and fail the ordering check.

    Raises:
        LevelOrderingError: if the mapped levels break stop <= entry <= targets
    """
    config = config or GateConfig()
    option_type = OptionType.PUT if signal.direction is Direction.BEARISH else OptionType.CALL
    sign = -1.0 if option_type is OptionType.PUT else 1.0
    spot = signal.entry_price
    strike = otm_strike(spot, option_type)
    delta = approximate_delta(spot, strike, option_type)

    floor = min(config.min_contract_stop, contract_entry / 2)
    stop_move = sign * (spot - signal.stop_loss) if signal.has_usable_level("stop_loss") else 0.0
    contract_stop = round(max(floor, contract_entry - delta * stop_move), 2)

    targets: List[Optional[float]] = []
    for field_name in ("target1", "target2", "target3", "target4"):
        if signal.has_usable_level(field_name):
            level = getattr(signal, field_name)
            targets.append(round(contract_entry + delta * sign * (level - spot), 2))
        else:
            targets.append(None)

    entry = round(contract_entry, 2)
    present = [t for t in targets if t is not None]
    if contract_stop > entry or any(t < entry for t in present):
        raise LevelOrderingError(contract_stop, entry, present)

    return ContractLevels(
        option_type=option_type,
        strike=strike,
        delta=round(delta, 4),
        entry=entry,
        stop_loss=contract_stop,
        targets=targets,
    )


def select_candidate(group: InstrumentGroup, min_confidence: float = 0.6) -> Optional[PatternSignal]:
    """Highest-confidence active signal with usable entry, stop and first target."""
    eligible = [
        s for s in group.active_signals
        if s.has_usable_level("entry_price")
        and s.has_usable_level("stop_loss")
        and s.has_usable_level("target1")
        and s.confidence >= min_confidence
    ]
    if not eligible:
        return None
    return sorted(eligible, key=confidence_order_key)[0]


def evaluate_trade(
    group: InstrumentGroup,
    context: GateContext,
    config: Optional[GateConfig] = None,
) -> GateResult:
    """Run the gates for one instrument and size a proposal if all pass."""
    config = config or GateConfig()
    instrument_id = group.instrument_id

    candidate = select_candidate(group, config.min_confidence)
    if candidate is None:
        return GateResult(
            instrument_id=instrument_id,
            rejection=RejectionReason.NO_CANDIDATE,
            detail=f"No active signal with entry, stop, target and confidence >= {config.min_confidence}",
        )

    log = get_instrument_adapter(instrument_id, candidate.pattern_id, logger=logger)

    def reject(reason: RejectionReason, detail: str) -> GateResult:
        log.info(f"Gate rejected {candidate.pattern_type}: {reason.value} ({detail})")
        return GateResult(instrument_id=instrument_id, candidate=candidate, rejection=reason, detail=detail)

    if not candidate.volume_confirmed:
        return reject(RejectionReason.NO_VOLUME_CONFIRMATION, "Volume not confirmed")

    if candidate.trading_regime is TradingRegime.AVOID:
        return reject(RejectionReason.REGIME_AVOID, "Trading regime is AVOID")

    if not candidate.direction.is_directional:
        return reject(RejectionReason.NO_DIRECTION, "Neutral signal has no option side")

    contract_price = context.estimated_contract_price or estimate_contract_price(candidate, config)
    lot_size = context.lot_size or config.default_lot_size

    sizing = compute_sizing(candidate.confidence, context.available_capital, contract_price, lot_size, config)
    if sizing is None:
        return reject(
            RejectionReason.CANNOT_SIZE,
            f"Capital {context.available_capital:.2f} cannot buy one lot of {lot_size} at {contract_price:.2f}",
        )

    try:
        levels = map_to_contract_levels(candidate, contract_price, config)
    except LevelOrderingError as e:
        log.warning(f"{candidate.direction.value} levels inconsistent with direction: {e}")
        return reject(RejectionReason.INCONSISTENT_LEVELS, str(e))

    proposal = OrderProposal(
        instrument_id=instrument_id,
        signal=candidate,
        option_type=levels.option_type,
        strike=levels.strike,
        delta=levels.delta,
        lots=sizing.lots,
        lot_size=sizing.lot_size,
        quantity=sizing.quantity,
        allocation=sizing.allocation,
        capital_used=sizing.capital_used,
        contract_entry=levels.entry,
        contract_stop=levels.stop_loss,
        contract_targets=levels.targets,
        underlying_entry=candidate.entry_price,
        underlying_stop=candidate.stop_loss,
        underlying_targets=candidate.targets,
    )
    log.info(
        f"Proposed BUY {sizing.lots} x {levels.strike:g} {levels.option_type.value} "
        f"@ {levels.entry:.2f} (SL {levels.stop_loss:.2f})"
    )
    return GateResult(instrument_id=instrument_id, candidate=candidate, proposal=proposal)
