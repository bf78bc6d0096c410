"""Context window management: token estimation, compression and summaries."""

from codeloop.context.compression import (
    CompressionLevel,
    CompressionState,
    ContextCompressor,
    select_level,
)
from codeloop.context.estimator import (
    HeuristicEstimator,
    TiktokenEstimator,
    TokenEstimator,
    get_estimator,
)
from codeloop.context.summary import HeuristicSummarizer, LLMSummarizer, Summarizer

__all__ = [
    "CompressionLevel",
    "CompressionState",
    "ContextCompressor",
    "HeuristicEstimator",
    "HeuristicSummarizer",
    "LLMSummarizer",
    "Summarizer",
    "TiktokenEstimator",
    "TokenEstimator",
    "get_estimator",
    "select_level",
]
