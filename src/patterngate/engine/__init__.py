"""
Analysis engine: normalization, snapshot store, grouping, confluence,
scoring, narration, search, trade gating and the async facade tying them
together.
"""

from .confluence import ConfluenceType, ConfluenceVerdict, classify_confluence
from .engine import EngineStatus, EngineView, PatternEngine
from .gate import (
    GateContext,
    GateResult,
    OptionType,
    OrderProposal,
    RejectionReason,
    compute_sizing,
    evaluate_trade,
    map_to_contract_levels,
    select_candidate,
)
from .grouper import InstrumentGroup, TimeframeGroup, analyze_group, build_instrument_groups, group_signals
from .narrator import Finding, FindingKind, TimeframeFinding, TimeframeFindingKind, narrate, summarize_timeframes
from .normalizer import effective_expiry, is_active, is_expired, parse_batch, parse_signal
from .scoring import strength_label, strength_score
from .search import ConfluenceMatch, ConfluenceRule, RuleMatch, search_confluence
from .stats import ConfidenceBand, PatternStats, PatternSummary, SignalFilter, pattern_stats, summarize
from .store import SignalSnapshot, SignalStore

__all__ = [
    "ConfluenceType",
    "ConfluenceVerdict",
    "classify_confluence",
    "EngineStatus",
    "EngineView",
    "PatternEngine",
    "GateContext",
    "GateResult",
    "OptionType",
    "OrderProposal",
    "RejectionReason",
    "compute_sizing",
    "evaluate_trade",
    "map_to_contract_levels",
    "select_candidate",
    "InstrumentGroup",
    "TimeframeGroup",
    "analyze_group",
    "build_instrument_groups",
    "group_signals",
    "Finding",
    "FindingKind",
    "TimeframeFinding",
    "TimeframeFindingKind",
    "narrate",
    "summarize_timeframes",
    "effective_expiry",
    "is_active",
    "is_expired",
    "parse_batch",
    "parse_signal",
    "strength_label",
    "strength_score",
    "ConfluenceMatch",
    "ConfluenceRule",
    "RuleMatch",
    "search_confluence",
    "ConfidenceBand",
    "PatternStats",
    "PatternSummary",
    "SignalFilter",
    "pattern_stats",
    "summarize",
    "SignalSnapshot",
    "SignalStore",
]
