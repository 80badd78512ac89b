"""
PatternGate: Pattern Confluence & Trade-Gating Engine

Groups detected chart-pattern signals by instrument and timeframe, judges
cross-timeframe confluence, scores conviction, narrates how each setup
evolved, and gates the best candidate into a sized option order proposal.
"""

__version__ = "0.1.0"
__author__ = "PatternGate Team"
__description__ = "Pattern Confluence & Trade-Gating Engine"

# Package-level imports for convenience
from .config import Config
from .logger import get_logger

__all__ = ["Config", "get_logger", "__version__"]
