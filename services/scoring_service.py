"""
评分服务模块
"""
import logging

from config import AnalysisWeights, DEFAULT_WEIGHTS
from models.analysis import CharacterArcAnalysis, Conflict, PlotStructureAnalysis
from utils import clamp, round_half_up

logger = logging.getLogger(__name__)


class ScoringService:
    """把全部发现折算为 0-100 的总分"""

    def __init__(self, weights: AnalysisWeights | None = None):
        self.weights = weights or DEFAULT_WEIGHTS

    def calculate(
        self,
        conflicts: list[Conflict],
        character_arcs: list[CharacterArcAnalysis],
        plot_structure: PlotStructureAnalysis,
    ) -> int:
        score = 100.0

        for conflict in conflicts:
            score -= self.weights.severity_penalties[conflict.severity]

        # 没有人物时该项不扣分
        if character_arcs:
            average = sum(arc.completeness for arc in character_arcs) / len(character_arcs)
            score -= (100 - average) * self.weights.arc_penalty_factor

        score -= len(plot_structure.plot_holes) * self.weights.plot_hole_penalty

        return round_half_up(clamp(score, 0, 100))
