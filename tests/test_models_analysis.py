"""
分析结果模型测试
"""

import pytest

from models.analysis import (
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


def _structure(**kwargs):
    defaults = dict(structure="Custom Structure", pacing=PacingAnalysis("appropriate"))
    defaults.update(kwargs)
    return PlotStructureAnalysis(**defaults)


class TestConflict:
    """测试Conflict"""

    def test_to_dict(self):
        conflict = Conflict(
            id="x", type="character", severity="high", description="d",
            suggested_fix="f", confidence=0.85, character_id="hero",
        )
        assert conflict.to_dict() == {
            "id": "x",
            "type": "character",
            "severity": "high",
            "description": "d",
            "suggestedFix": "f",
            "confidence": 0.85,
            "characterId": "hero",
        }

    def test_character_id_omitted_for_aggregate(self):
        conflict = Conflict(id="multiple-climax", type="timeline", severity="high", description="d")
        assert "characterId" not in conflict.to_dict()

    def test_invalid_severity(self):
        with pytest.raises(ValueError, match="严重程度"):
            Conflict(id="x", type="character", severity="critical", description="d")

    def test_invalid_type(self):
        with pytest.raises(ValueError, match="冲突类型"):
            Conflict(id="x", type="pacing", severity="low", description="d")

    def test_invalid_confidence(self):
        with pytest.raises(ValueError):
            Conflict(id="x", type="logic", severity="low", description="d", confidence=1.5)


class TestNestedSerialization:
    """测试嵌套结构的序列化"""

    def test_arc(self):
        arc = CharacterArcAnalysis(
            character_id="a", arc_type="flat", completeness=50,
            key_moments=[ArcMoment("c1", "introduction", "A is introduced to the story")],
            issues=["Insufficient character development"],
        )
        assert arc.to_dict() == {
            "characterId": "a",
            "arcType": "flat",
            "completeness": 50,
            "keyMoments": [{"chapterId": "c1", "type": "introduction", "description": "A is introduced to the story"}],
            "issues": ["Insufficient character development"],
        }

    def test_structure(self):
        structure = _structure(
            pacing=PacingAnalysis("too_slow", 0.5, [PacingIssue("c1", "slow_start", "d", "s")]),
            plot_holes=[PlotHole("h", "unresolved_thread", "d", ["c1"], "high", "f")],
            tension_curve=[TensionPoint("c1", 40, ["Inciting"])],
        )
        data = structure.to_dict()
        assert data["pacing"] == {
            "overallPace": "too_slow",
            "actionDensity": 0.5,
            "issues": [{"chapterId": "c1", "type": "slow_start", "description": "d", "suggestion": "s"}],
        }
        assert data["plotHoles"][0]["chaptersInvolved"] == ["c1"]
        assert data["tensionCurve"] == [{"chapterId": "c1", "tensionLevel": 40, "events": ["Inciting"]}]

    def test_recommendation(self):
        recommendation = Recommendation("improve-pacing", "pacing", "medium", "t", "d", "a")
        assert recommendation.to_dict()["suggestedAction"] == "a"


class TestAnalysisResult:
    """测试AnalysisResult"""

    def _result(self):
        return AnalysisResult(
            conflicts=[
                Conflict(id="a", type="character", severity="high", description="d"),
                Conflict(id="b", type="logic", severity="medium", description="d"),
            ],
            overall_score=70,
            recommendations=[Recommendation("rec-a", "character", "high", "t", "d", "a")],
            character_arcs=[],
            plot_structure=_structure(plot_holes=[PlotHole("h", "unresolved_thread", "d", [], "high", "f")]),
        )

    def test_to_dict_keys(self):
        data = self._result().to_dict()
        assert set(data) == {"conflicts", "overallScore", "recommendations", "characterArcs", "plotStructure"}
        assert data["overallScore"] == 70

    def test_conflicts_by_severity(self):
        assert [c.id for c in self._result().conflicts_by_severity("high")] == ["a"]

    def test_summary(self):
        assert self._result().get_summary() == {
            "overall_score": 70,
            "conflicts": 2,
            "high_severity": 1,
            "recommendations": 1,
            "plot_holes": 1,
            "structure": "Custom Structure",
            "pace": "appropriate",
        }
