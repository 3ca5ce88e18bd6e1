"""
一致性检查服务模块
四个相互独立、无状态的检查：人物一致性、时间线、情节逻辑、人物动机
"""
import logging

from config import AnalysisWeights, DEFAULT_WEIGHTS
from models.analysis import Conflict
from models.narrative import CharacterRole, EventType, NarrativeSnapshot
from utils import round_half_up, stable_id

logger = logging.getLogger(__name__)

# 聚合类冲突使用固定ID
MULTIPLE_CLIMAX_ID = "multiple-climax"
CLIMAX_BEFORE_RISING_ACTION_ID = "climax-before-rising-action"
MISSING_INCITING_INCIDENT_ID = "missing-inciting-incident"
RESOLUTION_WITHOUT_CLIMAX_ID = "resolution-without-climax"


def find_significant_gaps(chapter_numbers: list[int], threshold: int) -> list[tuple[int, int]]:
    """找出相邻章节编号之差超过阈值的区间

    Args:
        chapter_numbers: 章节编号（会先去重并排序）
        threshold: 允许的最大间隔

    Returns:
        list: (起始编号, 结束编号) 列表，每个间隔一项
    """
    numbers = sorted(set(chapter_numbers))
    return [
        (start, end)
        for start, end in zip(numbers, numbers[1:])
        if end - start > threshold
    ]


class ConsistencyService:
    """一致性检查服务类"""

    def __init__(self, weights: AnalysisWeights | None = None):
        self.weights = weights or DEFAULT_WEIGHTS

    def check_all(self, snapshot: NarrativeSnapshot) -> list[Conflict]:
        """按固定顺序运行全部检查"""
        conflicts: list[Conflict] = []
        conflicts.extend(self.check_character_consistency(snapshot))
        conflicts.extend(self.check_timeline(snapshot))
        conflicts.extend(self.check_plot_logic(snapshot))
        conflicts.extend(self.check_motivations(snapshot))
        return conflicts

    def check_character_consistency(self, snapshot: NarrativeSnapshot) -> list[Conflict]:
        """检查人物出场：未使用的人物、长时间消失、主角缺席"""
        conflicts: list[Conflict] = []
        total_chapters = snapshot.total_chapters

        for character in snapshot.characters:
            appearances = snapshot.appearance_chapters(character)

            if not appearances:
                conflicts.append(Conflict(
                    id=stable_id("char-unused", character.id),
                    type="character",
                    severity="medium",
                    description=f'Character "{character.name}" is defined but never appears in any chapters',
                    suggested_fix="Consider removing this character or adding them to relevant chapters",
                    confidence=0.9,
                    character_id=character.id,
                ))

            if len(appearances) > 1:
                gaps = find_significant_gaps(
                    [chapter.number for chapter in appearances], self.weights.gap_threshold
                )
                for start, end in gaps:
                    conflicts.append(Conflict(
                        id=stable_id("char-gap", character.id, start, end),
                        type="character",
                        severity="low",
                        description=(
                            f'Character "{character.name}" disappears between chapters '
                            f"{start} and {end} without explanation"
                        ),
                        suggested_fix=(
                            "Consider adding a brief mention of what happened to this "
                            "character during their absence"
                        ),
                        confidence=0.7,
                        character_id=character.id,
                    ))

            if (character.role is CharacterRole.PROTAGONIST
                    and len(character.appearances) < total_chapters * self.weights.protagonist_presence_ratio):
                absent = round_half_up((1 - len(character.appearances) / total_chapters) * 100)
                conflicts.append(Conflict(
                    id=stable_id("protag-absent", character.id),
                    type="character",
                    severity="high",
                    description=f'Protagonist "{character.name}" is absent from {absent}% of chapters',
                    suggested_fix="Protagonists should have a presence in most chapters, even if not physically present",
                    confidence=0.85,
                    character_id=character.id,
                ))

        logger.debug(f"人物一致性检查完成，发现 {len(conflicts)} 个冲突")
        return conflicts

    def check_timeline(self, snapshot: NarrativeSnapshot) -> list[Conflict]:
        """检查高潮事件的数量与位置"""
        conflicts: list[Conflict] = []
        events = snapshot.all_events

        climax_chapters = [chapter.number for chapter, event in events if event.type is EventType.CLIMAX]
        if len(climax_chapters) > 1:
            conflicts.append(Conflict(
                id=MULTIPLE_CLIMAX_ID,
                type="timeline",
                severity="high",
                description="Multiple climax events detected - stories should typically have only one main climax",
                suggested_fix="Consider restructuring to have one main climax with supporting tensions",
                confidence=0.8,
            ))

        rising_chapters = [chapter.number for chapter, event in events if event.type is EventType.RISING_ACTION]
        # 没有上升动作时跳过该检查
        if climax_chapters and rising_chapters:
            first_climax_chapter = climax_chapters[0]
            last_rising_action_chapter = max(rising_chapters)
            if first_climax_chapter < last_rising_action_chapter:
                conflicts.append(Conflict(
                    id=CLIMAX_BEFORE_RISING_ACTION_ID,
                    type="timeline",
                    severity="high",
                    description="Climax occurs before the end of rising action - this disrupts story structure",
                    suggested_fix="Move rising action events before the climax, or restructure the plot events",
                    confidence=0.9,
                ))

        logger.debug(f"时间线检查完成，发现 {len(conflicts)} 个冲突")
        return conflicts

    def check_plot_logic(self, snapshot: NarrativeSnapshot) -> list[Conflict]:
        """检查缺失的关键情节元素"""
        conflicts: list[Conflict] = []
        if not snapshot.chapters:
            return conflicts

        event_types = snapshot.event_types()

        if EventType.INCITING_INCIDENT not in event_types:
            conflicts.append(Conflict(
                id=MISSING_INCITING_INCIDENT_ID,
                type="logic",
                severity="high",
                description="No inciting incident found - stories need a clear event that starts the main conflict",
                suggested_fix="Add an inciting incident early in your story to kick off the main plot",
                confidence=0.85,
            ))

        if EventType.RESOLUTION in event_types and EventType.CLIMAX not in event_types:
            conflicts.append(Conflict(
                id=RESOLUTION_WITHOUT_CLIMAX_ID,
                type="logic",
                severity="medium",
                description="Story has resolution but no clear climax",
                suggested_fix="Add a climactic moment before the resolution where the main conflict reaches its peak",
                confidence=0.8,
            ))

        logger.debug(f"情节逻辑检查完成，发现 {len(conflicts)} 个冲突")
        return conflicts

    def check_motivations(self, snapshot: NarrativeSnapshot) -> list[Conflict]:
        """检查主角与反派的动机描述和人物关系"""
        conflicts: list[Conflict] = []

        for character in snapshot.characters:
            if not character.is_major:
                continue

            role = character.role.value
            if len(character.description) < self.weights.min_motivation_length:
                conflicts.append(Conflict(
                    id=stable_id("weak-motivation", character.id),
                    type="motivation",
                    severity="high" if character.role is CharacterRole.PROTAGONIST else "medium",
                    description=f'{role} "{character.name}" lacks sufficient background or motivation description',
                    suggested_fix="Develop this character's backstory, goals, and motivations more clearly",
                    confidence=0.75,
                    character_id=character.id,
                ))

            if not character.relationships:
                conflicts.append(Conflict(
                    id=stable_id("isolated-character", character.id),
                    type="motivation",
                    severity="medium",
                    description=f'Important character "{character.name}" has no defined relationships with other characters',
                    suggested_fix="Define relationships with other characters to create more engaging interactions",
                    confidence=0.7,
                    character_id=character.id,
                ))

        logger.debug(f"人物动机检查完成，发现 {len(conflicts)} 个冲突")
        return conflicts
