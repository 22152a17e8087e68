"""
blocktune - GEMM block-size auto-tuning.

Rebuild, benchmark, keep the fastest kernel configuration.
"""

from blocktune.extract import MetricExtractor
from blocktune.guard import RollbackGuard
from blocktune.header import ConfigWriter
from blocktune.search import SearchController, SearchOutcome
from blocktune.space import CandidateSpace, ParameterSpec
from blocktune.trials import TrialLog

__version__ = "0.1.0"
__all__ = [
    "CandidateSpace",
    "ConfigWriter",
    "MetricExtractor",
    "ParameterSpec",
    "RollbackGuard",
    "SearchController",
    "SearchOutcome",
    "TrialLog",
    "__version__",
]
