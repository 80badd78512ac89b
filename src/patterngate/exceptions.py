"""
Exception hierarchy for PatternGate.

Expected business outcomes (unknown timeframes, unparseable timestamps,
insufficient data, gate rejections) are returned as typed values and never
raised. The exceptions below cover genuine faults only.
"""


class PatternGateError(Exception):
    """Base class for all PatternGate errors."""


class MalformedSignalError(PatternGateError):
    """Raised when a raw feed record cannot be interpreted as a signal at all."""


class LevelOrderingError(PatternGateError):
    """Raised when contract level mapping breaks stop <= entry <= target ordering."""

    def __init__(self, stop: float, entry: float, targets):
        self.stop = stop
        self.entry = entry
        self.targets = list(targets)
        super().__init__(
            f"Contract levels out of order: stop={stop} entry={entry} targets={self.targets}"
        )


class ConfigurationError(PatternGateError):
    """Raised when configuration cannot be loaded or validated."""
