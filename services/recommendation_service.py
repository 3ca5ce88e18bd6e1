"""
建议生成服务模块
把冲突、角色弧和结构分析的结果转换为按优先级排列的建议列表（不做新的分析）
"""
import logging

from config import AnalysisWeights, DEFAULT_WEIGHTS
from models.analysis import CharacterArcAnalysis, Conflict, PlotStructureAnalysis, Recommendation

logger = logging.getLogger(__name__)

FALLBACK_ACTION = "Review and revise this element"


class RecommendationService:
    """建议生成服务类"""

    def __init__(self, weights: AnalysisWeights | None = None):
        self.weights = weights or DEFAULT_WEIGHTS

    def generate(
        self,
        conflicts: list[Conflict],
        character_arcs: list[CharacterArcAnalysis],
        plot_structure: PlotStructureAnalysis,
    ) -> list[Recommendation]:
        """生成建议，同一ID只出现一次"""
        candidates: list[Recommendation] = []

        high_conflicts = [c for c in conflicts if c.severity == "high"]
        for conflict in high_conflicts[:self.weights.max_high_priority_recommendations]:
            candidates.append(Recommendation(
                id=f"rec-{conflict.id}",
                type=conflict.type,
                priority="high",
                title=f"Address {conflict.type} issue",
                description=conflict.description,
                suggested_action=conflict.suggested_fix or FALLBACK_ACTION,
            ))

        incomplete = [a for a in character_arcs if a.completeness < self.weights.incomplete_arc_threshold]
        if incomplete:
            candidates.append(Recommendation(
                id="develop-characters",
                type="character",
                priority="medium",
                title="Develop character arcs",
                description=f"{len(incomplete)} characters need more development",
                suggested_action="Focus on character backstory, motivations, and growth throughout the story",
            ))

        if plot_structure.pacing.overall_pace == "too_slow":
            candidates.append(Recommendation(
                id="improve-pacing",
                type="structure",
                priority="medium",
                title="Improve story pacing",
                description="Story pacing appears too slow",
                suggested_action="Add more conflict, tension, or action to maintain reader engagement",
            ))

        recommendations: list[Recommendation] = []
        seen: set[str] = set()
        for recommendation in candidates:
            if recommendation.id in seen:
                continue
            seen.add(recommendation.id)
            recommendations.append(recommendation)

        logger.debug(f"生成 {len(recommendations)} 条建议")
        return recommendations
