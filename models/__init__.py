"""
数据模型模块
定义叙事快照（输入）与分析结果（输出）的数据结构
"""

from .analysis import (
    AnalysisResult,
    ArcMoment,
    CharacterArcAnalysis,
    Conflict,
    PacingAnalysis,
    PacingIssue,
    PlotHole,
    PlotStructureAnalysis,
    Recommendation,
    TensionPoint,
)
from .narrative import (
    THREAD_BEAT_MAPPING,
    Chapter,
    Character,
    CharacterRole,
    EventType,
    NarrativeSnapshot,
    PlotEvent,
    Relationship,
    normalize_event_type,
)

__all__ = [
    "NarrativeSnapshot",
    "Character",
    "CharacterRole",
    "Chapter",
    "PlotEvent",
    "EventType",
    "Relationship",
    "THREAD_BEAT_MAPPING",
    "normalize_event_type",
    "AnalysisResult",
    "Conflict",
    "CharacterArcAnalysis",
    "ArcMoment",
    "PlotStructureAnalysis",
    "PacingAnalysis",
    "PacingIssue",
    "PlotHole",
    "TensionPoint",
    "Recommendation",
]
