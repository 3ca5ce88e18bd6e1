"""
分析结果相关的数据模型
每次分析都会重新创建，调用方消费后即可丢弃
"""

from dataclasses import dataclass, field
from typing import Any

SEVERITY_LEVELS = ("high", "medium", "low")
CONFLICT_TYPES = ("character", "timeline", "logic", "motivation")


@dataclass
class Conflict:
    """一致性检查发现的冲突"""

    id: str
    type: str  # character|timeline|logic|motivation
    severity: str  # low|medium|high
    description: str
    suggested_fix: str | None = None
    confidence: float = 1.0
    character_id: str | None = None

    def __post_init__(self):
        if self.severity not in SEVERITY_LEVELS:
            raise ValueError(f"未知的严重程度: {self.severity}")
        if self.type not in CONFLICT_TYPES:
            raise ValueError(f"未知的冲突类型: {self.type}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("confidence 必须在 [0, 1] 区间")

    def to_dict(self) -> dict[str, Any]:
        """转换为字典格式（用于JSON序列化）"""
        data = {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "description": self.description,
            "suggestedFix": self.suggested_fix,
            "confidence": self.confidence,
        }
        if self.character_id is not None:
            data["characterId"] = self.character_id
        return data


@dataclass
class ArcMoment:
    """角色弧关键时刻"""

    chapter_id: str
    type: str  # introduction|development|resolution
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {"chapterId": self.chapter_id, "type": self.type, "description": self.description}


@dataclass
class CharacterArcAnalysis:
    """单个人物的角色弧分析"""

    character_id: str
    arc_type: str  # positive|negative|flat
    completeness: int
    key_moments: list[ArcMoment] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "characterId": self.character_id,
            "arcType": self.arc_type,
            "completeness": self.completeness,
            "keyMoments": [m.to_dict() for m in self.key_moments],
            "issues": list(self.issues),
        }


@dataclass
class PacingIssue:
    """节奏问题"""

    chapter_id: str
    type: str  # slow_start|rushed_middle|anticlimactic_end|pacing_inconsistency
    description: str
    suggestion: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "chapterId": self.chapter_id,
            "type": self.type,
            "description": self.description,
            "suggestion": self.suggestion,
        }


@dataclass
class PacingAnalysis:
    """节奏分析"""

    overall_pace: str  # too_slow|appropriate|too_fast
    action_density: float = 0.0
    issues: list[PacingIssue] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "overallPace": self.overall_pace,
            "actionDensity": self.action_density,
            "issues": [i.to_dict() for i in self.issues],
        }


@dataclass
class PlotHole:
    """情节漏洞"""

    id: str
    type: str
    description: str
    chapters_involved: list[str]
    severity: str
    suggested_fix: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "description": self.description,
            "chaptersInvolved": list(self.chapters_involved),
            "severity": self.severity,
            "suggestedFix": self.suggested_fix,
        }


@dataclass
class TensionPoint:
    """张力曲线上的一个点"""

    chapter_id: str
    tension_level: int
    events: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"chapterId": self.chapter_id, "tensionLevel": self.tension_level, "events": list(self.events)}


@dataclass
class PlotStructureAnalysis:
    """情节结构分析"""

    structure: str
    pacing: PacingAnalysis
    plot_holes: list[PlotHole] = field(default_factory=list)
    tension_curve: list[TensionPoint] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "structure": self.structure,
            "pacing": self.pacing.to_dict(),
            "plotHoles": [h.to_dict() for h in self.plot_holes],
            "tensionCurve": [p.to_dict() for p in self.tension_curve],
        }


@dataclass
class Recommendation:
    """改进建议"""

    id: str
    type: str
    priority: str  # high|medium|low
    title: str
    description: str
    suggested_action: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "priority": self.priority,
            "title": self.title,
            "description": self.description,
            "suggestedAction": self.suggested_action,
        }


@dataclass
class AnalysisResult:
    """分析引擎的最终输出"""

    conflicts: list[Conflict]
    overall_score: int
    recommendations: list[Recommendation]
    character_arcs: list[CharacterArcAnalysis]
    plot_structure: PlotStructureAnalysis

    def to_dict(self) -> dict[str, Any]:
        """转换为字典格式（用于JSON序列化）"""
        return {
            "conflicts": [c.to_dict() for c in self.conflicts],
            "overallScore": self.overall_score,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "characterArcs": [a.to_dict() for a in self.character_arcs],
            "plotStructure": self.plot_structure.to_dict(),
        }

    def conflicts_by_severity(self, severity: str) -> list[Conflict]:
        """按严重程度筛选冲突"""
        return [c for c in self.conflicts if c.severity == severity]

    def get_summary(self) -> dict[str, Any]:
        """获取分析摘要"""
        return {
            "overall_score": self.overall_score,
            "conflicts": len(self.conflicts),
            "high_severity": len(self.conflicts_by_severity("high")),
            "recommendations": len(self.recommendations),
            "plot_holes": len(self.plot_structure.plot_holes),
            "structure": self.plot_structure.structure,
            "pace": self.plot_structure.pacing.overall_pace,
        }
