"""
服务层模块
包含各种业务逻辑服务
"""

from .analysis_service import StoryAnalysisService, analyze_snapshot
from .arc_service import CharacterArcService
from .consistency_service import ConsistencyService
from .insight_service import InsightResponse, InsightService
from .llm_service import GeminiService, LLMService, OpenAIService
from .recommendation_service import RecommendationService
from .scoring_service import ScoringService
from .snapshot_service import build_snapshot, load_snapshot
from .structure_service import PlotStructureService
from .telemetry import InMemoryMetricsSink, MetricsSink, NullMetricsSink

__all__ = [
    "StoryAnalysisService",
    "analyze_snapshot",
    "ConsistencyService",
    "CharacterArcService",
    "PlotStructureService",
    "RecommendationService",
    "ScoringService",
    "InsightService",
    "InsightResponse",
    "LLMService",
    "OpenAIService",
    "GeminiService",
    "build_snapshot",
    "load_snapshot",
    "MetricsSink",
    "NullMetricsSink",
    "InMemoryMetricsSink",
]
