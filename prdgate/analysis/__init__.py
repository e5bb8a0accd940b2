"""
prdgate Analysis Package

Semantic result normalization, AI analysis and issue aggregation.
"""

from prdgate.analysis.aggregator import AggregatedAnalysis, AnalysisAggregator, navigation_target
from prdgate.analysis.normalizer import normalize_semantic_payload, parse_semantic_analysis_response
from prdgate.analysis.semantic import SemanticAnalysisService

__all__ = [
    "AggregatedAnalysis",
    "AnalysisAggregator",
    "SemanticAnalysisService",
    "navigation_target",
    "normalize_semantic_payload",
    "parse_semantic_analysis_response",
]
