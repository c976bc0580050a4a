from .gemini_client import (
    GeminiAnalyst,
    MarketAnalysis,
    StockPick,
    AnalysisError,
    MissingApiKeyError,
    ModelNotFoundError,
    MalformedAnalysisError,
)

__all__ = [
    "GeminiAnalyst",
    "MarketAnalysis",
    "StockPick",
    "AnalysisError",
    "MissingApiKeyError",
    "ModelNotFoundError",
    "MalformedAnalysisError",
]
