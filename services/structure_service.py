"""
情节结构分析服务模块
结构分类、节奏评估、情节漏洞检测和张力曲线计算
"""
import logging
import math

from config import AnalysisWeights, DEFAULT_WEIGHTS
from models.analysis import (
    PacingAnalysis,
    PacingIssue,
    PlotHole,
    PlotStructureAnalysis,
    TensionPoint,
)
from models.narrative import EventType, NarrativeSnapshot
from utils import clamp, round_half_up, stable_id

logger = logging.getLogger(__name__)

THREE_ACT_STRUCTURE = "Three-Act Structure"
CUSTOM_STRUCTURE = "Custom Structure"

THREE_ACT_BEATS = frozenset({EventType.INCITING_INCIDENT, EventType.CLIMAX, EventType.RESOLUTION})
CONFLICT_BEATS = (EventType.RISING_ACTION, EventType.CLIMAX)


class PlotStructureService:
    """情节结构分析服务类"""

    def __init__(self, weights: AnalysisWeights | None = None):
        self.weights = weights or DEFAULT_WEIGHTS

    def analyze(self, snapshot: NarrativeSnapshot) -> PlotStructureAnalysis:
        """运行全部结构分析"""
        analysis = PlotStructureAnalysis(
            structure=self.identify_structure(snapshot),
            pacing=self.analyze_pacing(snapshot),
            plot_holes=self.find_plot_holes(snapshot),
            tension_curve=self.calculate_tension_curve(snapshot),
        )
        logger.debug(
            f"结构分析完成: {analysis.structure}, 节奏={analysis.pacing.overall_pace}, "
            f"漏洞={len(analysis.plot_holes)}"
        )
        return analysis

    @staticmethod
    def identify_structure(snapshot: NarrativeSnapshot) -> str:
        if THREE_ACT_BEATS <= snapshot.event_types():
            return THREE_ACT_STRUCTURE
        return CUSTOM_STRUCTURE

    def analyze_pacing(self, snapshot: NarrativeSnapshot) -> PacingAnalysis:
        """分析节奏

        前三分之一章节（向上取整）内没有引发事件时标记 slow_start；
        动作密度 = 事件总数 / 章节总数。
        """
        chapters = snapshot.chapters
        if not chapters:
            return PacingAnalysis(overall_pace="appropriate", action_density=0.0)

        issues: list[PacingIssue] = []
        window = chapters[:math.ceil(len(chapters) / 3)]
        if not any(ch.has_event(EventType.INCITING_INCIDENT) for ch in window):
            issues.append(PacingIssue(
                chapter_id=window[-1].id,
                type="slow_start",
                description="Story may start too slowly - no inciting incident in first third",
                suggestion="Consider introducing conflict or tension earlier",
            ))

        action_density = sum(len(ch.plot_events) for ch in chapters) / len(chapters)
        if action_density < self.weights.slow_pace_density:
            overall_pace = "too_slow"
        elif action_density > self.weights.fast_pace_density:
            overall_pace = "too_fast"
        else:
            overall_pace = "appropriate"

        return PacingAnalysis(overall_pace=overall_pace, action_density=action_density, issues=issues)

    @staticmethod
    def find_plot_holes(snapshot: NarrativeSnapshot) -> list[PlotHole]:
        """查找未解决的主线冲突"""
        plot_holes: list[PlotHole] = []
        event_types = snapshot.event_types()

        has_conflict = any(beat in event_types for beat in CONFLICT_BEATS)
        if has_conflict and EventType.RESOLUTION not in event_types:
            involved = [ch.id for ch in snapshot.chapters if ch.has_event(*CONFLICT_BEATS)]
            plot_holes.append(PlotHole(
                id=stable_id("unresolved-conflict", *involved),
                type="unresolved_thread",
                description="Main conflict introduced but never resolved",
                chapters_involved=involved,
                severity="high",
                suggested_fix="Add a resolution that addresses the main conflict",
            ))

        return plot_holes

    def calculate_tension_curve(self, snapshot: NarrativeSnapshot) -> list[TensionPoint]:
        """计算每章张力值（0-100）"""
        curve = []
        for chapter in snapshot.chapters:
            event_intensity = sum(
                self.weights.tension_weights.get(event.type.value, self.weights.default_tension_weight)
                for event in chapter.plot_events
            )
            character_load = len(set(chapter.characters)) * self.weights.tension_per_character
            curve.append(TensionPoint(
                chapter_id=chapter.id,
                tension_level=round_half_up(clamp(event_intensity + character_load, 0, 100)),
                events=[event.description for event in chapter.plot_events],
            ))
        return curve
