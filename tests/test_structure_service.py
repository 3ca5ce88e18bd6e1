"""
情节结构分析服务测试
"""

import pytest

from config import AnalysisWeights
from models.narrative import Chapter, Character, NarrativeSnapshot, PlotEvent
from services.structure_service import CUSTOM_STRUCTURE, THREE_ACT_STRUCTURE, PlotStructureService


@pytest.fixture
def service():
    return PlotStructureService()


def _chapters(count, events=None, characters=None):
    events = events or {}
    characters = characters or {}
    return [
        Chapter(
            f"c{n}", n,
            characters=tuple(characters.get(n, ())),
            plot_events=tuple(PlotEvent(t, description=f"{t} {n}") for t in events.get(n, ())),
        )
        for n in range(1, count + 1)
    ]


class TestIdentifyStructure:
    """测试结构分类"""

    def test_three_act(self, service):
        snapshot = NarrativeSnapshot(chapters=_chapters(3, {1: ["inciting_incident"], 2: ["climax"], 3: ["resolution"]}))
        assert service.identify_structure(snapshot) == THREE_ACT_STRUCTURE

    def test_missing_beat_is_custom(self, service):
        snapshot = NarrativeSnapshot(chapters=_chapters(2, {1: ["inciting_incident"], 2: ["climax"]}))
        assert service.identify_structure(snapshot) == CUSTOM_STRUCTURE

    def test_empty_is_custom(self, service):
        assert service.identify_structure(NarrativeSnapshot()) == "Custom Structure"


class TestPacing:
    """测试节奏分析"""

    def test_density_exactly_one_is_appropriate(self, service):
        snapshot = NarrativeSnapshot(chapters=_chapters(10, {n: ["setup"] for n in range(1, 11)}))
        pacing = service.analyze_pacing(snapshot)
        assert pacing.action_density == 1
        assert pacing.overall_pace == "appropriate"

    def test_too_slow(self, service):
        snapshot = NarrativeSnapshot(chapters=_chapters(4, {1: ["inciting_incident"]}))
        pacing = service.analyze_pacing(snapshot)
        assert pacing.action_density == 0.25
        assert pacing.overall_pace == "too_slow"
        assert pacing.issues == []

    def test_too_fast(self, service):
        snapshot = NarrativeSnapshot(chapters=_chapters(1, {1: ["inciting_incident", "setup", "climax", "resolution"]}))
        assert service.analyze_pacing(snapshot).overall_pace == "too_fast"

    def test_density_three_is_appropriate(self, service):
        snapshot = NarrativeSnapshot(chapters=_chapters(1, {1: ["inciting_incident", "climax", "resolution"]}))
        assert service.analyze_pacing(snapshot).overall_pace == "appropriate"

    def test_slow_start_window_rounds_up(self, service):
        # 4 章 -> 前 2 章；引发事件在第 3 章
        snapshot = NarrativeSnapshot(chapters=_chapters(4, {3: ["inciting_incident"]}))
        issues = service.analyze_pacing(snapshot).issues
        assert len(issues) == 1
        assert issues[0].type == "slow_start"
        assert issues[0].chapter_id == "c2"

    def test_inciting_incident_at_end_of_window(self, service):
        snapshot = NarrativeSnapshot(chapters=_chapters(4, {2: ["inciting_incident"]}))
        assert service.analyze_pacing(snapshot).issues == []

    def test_no_chapters(self, service):
        pacing = service.analyze_pacing(NarrativeSnapshot())
        assert pacing.overall_pace == "appropriate"
        assert pacing.action_density == 0
        assert pacing.issues == []

    def test_custom_thresholds(self):
        service = PlotStructureService(AnalysisWeights(slow_pace_density=2.0, fast_pace_density=5.0))
        snapshot = NarrativeSnapshot(chapters=_chapters(1, {1: ["inciting_incident"]}))
        assert service.analyze_pacing(snapshot).overall_pace == "too_slow"


class TestPlotHoles:
    """测试情节漏洞"""

    def test_unresolved_rising_action(self, service):
        snapshot = NarrativeSnapshot(chapters=_chapters(4, {1: ["inciting_incident"], 3: ["rising_action"]}))
        holes = service.find_plot_holes(snapshot)
        assert len(holes) == 1
        assert holes[0].type == "unresolved_thread"
        assert holes[0].severity == "high"
        assert holes[0].chapters_involved == ["c3"]

    def test_resolved_conflict(self, service):
        snapshot = NarrativeSnapshot(chapters=_chapters(2, {1: ["climax"], 2: ["resolution"]}))
        assert service.find_plot_holes(snapshot) == []

    def test_no_conflict_no_hole(self, service):
        snapshot = NarrativeSnapshot(chapters=_chapters(2, {1: ["setup"]}))
        assert service.find_plot_holes(snapshot) == []

    def test_hole_id_stable_across_runs(self, service):
        snapshot = NarrativeSnapshot(chapters=_chapters(3, {1: ["rising_action"], 3: ["climax"]}))
        first = service.find_plot_holes(snapshot)[0]
        second = service.find_plot_holes(snapshot)[0]
        assert first.id == second.id
        assert first.chapters_involved == ["c1", "c3"]


class TestTensionCurve:
    """测试张力曲线"""

    def test_event_weights(self, service):
        snapshot = NarrativeSnapshot(chapters=_chapters(
            4, {1: ["inciting_incident"], 2: ["rising_action", "setup"], 3: ["climax"], 4: ["resolution"]},
        ))
        curve = service.calculate_tension_curve(snapshot)
        assert [p.tension_level for p in curve] == [40, 70, 100, 20]
        assert curve[1].events == ["rising_action 2", "setup 2"]

    def test_character_load_and_clamp(self, service):
        characters = [Character(f"p{i}", f"P{i}", "minor") for i in range(3)]
        snapshot = NarrativeSnapshot(
            characters=characters,
            chapters=_chapters(2, {1: ["falling_action"], 2: ["climax"]}, {1: ["p0", "p1", "p2"], 2: ["p0"]}),
        )
        curve = service.calculate_tension_curve(snapshot)
        assert [p.tension_level for p in curve] == [45, 100]

    def test_repeated_character_counted_once(self, service):
        snapshot = NarrativeSnapshot(
            characters=[Character("p", "P", "minor")],
            chapters=_chapters(1, {}, {1: ["p", "p"]}),
        )
        assert service.calculate_tension_curve(snapshot)[0].tension_level == 5

    def test_levels_are_bounded(self, service):
        snapshot = NarrativeSnapshot(chapters=_chapters(1, {1: ["climax", "climax", "climax"]}))
        assert service.calculate_tension_curve(snapshot)[0].tension_level == 100

    def test_fractional_weights_round_half_up(self):
        service = PlotStructureService(AnalysisWeights(
            tension_weights={"climax": 60.5, "resolution": 20.4},
            tension_per_character=2.5,
        ))
        snapshot = NarrativeSnapshot(
            characters=[Character("p", "P", "minor")],
            chapters=_chapters(3, {1: ["climax"], 2: ["resolution"]}, {3: ["p"]}),
        )
        levels = [p.tension_level for p in service.calculate_tension_curve(snapshot)]
        assert levels == [61, 20, 3]
        assert all(isinstance(level, int) for level in levels)


def test_analyze_combines_all_parts(service):
    snapshot = NarrativeSnapshot(chapters=_chapters(5, {3: ["rising_action"]}))
    analysis = service.analyze(snapshot)
    assert analysis.structure == CUSTOM_STRUCTURE
    assert len(analysis.plot_holes) == 1
    assert analysis.plot_holes[0].chapters_involved == ["c3"]
    assert len(analysis.tension_curve) == 5
    assert analysis.pacing.overall_pace == "too_slow"
