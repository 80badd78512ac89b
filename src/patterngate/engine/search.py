"""
Multi-Rule Confluence Search

Finds every instrument that has, at some point, shown each of a set of
(pattern type, timeframe) pairs. Expiry is ignored: a historical match is
still evidence of the confluence, whether or not it is tradeable now.
"""

from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.signals import PatternSignal, instrument_display_name, normalize_pattern_type
from ..models.timeframes import canonical_timeframe

MIN_RULES = 2


class ConfluenceRule(BaseModel):
    """One (pattern type, timeframe) requirement."""

    pattern_type: str = Field(default="")
    timeframe: str = Field(default="")

    model_config = ConfigDict(frozen=True)

    @field_validator("pattern_type", mode="before")
    @classmethod
    def canonicalize_pattern_type(cls, v: Any) -> str:
        if v is None or not str(v).strip():
            return ""
        return normalize_pattern_type(v)

    @field_validator("timeframe", mode="before")
    @classmethod
    def canonicalize_timeframe(cls, v: Any) -> str:
        return canonical_timeframe(v)

    @property
    def is_complete(self) -> bool:
        return bool(self.pattern_type) and bool(self.timeframe)

    @classmethod
    def parse(cls, text: str) -> "ConfluenceRule":
        """Parse 'PATTERN:TIMEFRAME', e.g. 'hammer:15m'."""
        pattern, _, timeframe = text.partition(":")
        return cls(pattern_type=pattern, timeframe=timeframe)

    def matches(self, signal: PatternSignal) -> bool:
        return signal.pattern_type == self.pattern_type and signal.timeframe == self.timeframe

    def __str__(self) -> str:
        return f"{self.pattern_type}:{self.timeframe}"


class RuleMatch(BaseModel):
    rule: ConfluenceRule
    signal: PatternSignal

    model_config = ConfigDict(frozen=True)


class ConfluenceMatch(BaseModel):
    """An instrument satisfying every rule, with one signal per rule."""

    instrument_id: str
    display_name: str = ""
    matches: List[RuleMatch] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @property
    def match_count(self) -> int:
        return len(self.matches)


def _first_match(rule: ConfluenceRule, signals: Sequence[PatternSignal]) -> Optional[PatternSignal]:
    for signal in signals:
        if rule.matches(signal):
            return signal
    return None


def search_confluence(
    rules: Iterable[ConfluenceRule],
    signals: Iterable[PatternSignal],
) -> List[ConfluenceMatch]:
    """
    Instruments where every complete rule is matched by some signal.

    Incomplete rules are ignored. With fewer than two complete rules the
    result is always empty: a single rule is not a confluence.
    """
    complete = [rule for rule in rules if rule.is_complete]
    if len(complete) < MIN_RULES:
        return []

    by_instrument: Dict[str, List[PatternSignal]] = defaultdict(list)
    for signal in signals:
        by_instrument[signal.instrument_id].append(signal)

    results: List[ConfluenceMatch] = []
    for instrument_id, instrument_signals in by_instrument.items():
        matches: List[RuleMatch] = []
        for rule in complete:
            signal = _first_match(rule, instrument_signals)
            if signal is None:
                break
            matches.append(RuleMatch(rule=rule, signal=signal))
        else:
            results.append(ConfluenceMatch(
                instrument_id=instrument_id,
                display_name=instrument_display_name(instrument_signals, instrument_id),
                matches=matches,
            ))

    results.sort(key=lambda m: (-m.match_count, m.instrument_id))
    return results
