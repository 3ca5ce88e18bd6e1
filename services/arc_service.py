"""
角色弧分析服务模块
"""
import logging

from config import AnalysisWeights, DEFAULT_WEIGHTS
from models.analysis import ArcMoment, CharacterArcAnalysis
from models.narrative import Chapter, Character, CharacterRole, NarrativeSnapshot

logger = logging.getLogger(__name__)

# 弧线类型目前只由角色决定
ARC_TYPE_BY_ROLE = {
    CharacterRole.PROTAGONIST: "positive",
    CharacterRole.ANTAGONIST: "negative",
}


class CharacterArcService:
    """角色弧分析服务类"""

    def __init__(self, weights: AnalysisWeights | None = None):
        self.weights = weights or DEFAULT_WEIGHTS

    def analyze(self, snapshot: NarrativeSnapshot) -> list[CharacterArcAnalysis]:
        """分析快照中的全部人物，顺序与输入一致"""
        arcs = []
        for character in snapshot.characters:
            appearances = snapshot.appearance_chapters(character)
            arcs.append(CharacterArcAnalysis(
                character_id=character.id,
                arc_type=self.determine_arc_type(character),
                completeness=self.calculate_completeness(character, appearances),
                key_moments=self.identify_key_moments(character, appearances),
                issues=self.identify_issues(character, appearances),
            ))

        logger.debug(f"角色弧分析完成: {len(arcs)} 个人物")
        return arcs

    def calculate_completeness(self, character: Character, appearances: list[Chapter]) -> int:
        """计算角色弧完整度（0-100）"""
        w = self.weights.completeness_weights
        factors = [
            w["detailed_description"]
            if len(character.description) > self.weights.detailed_description_length
            else w["brief_description"],
            w["relationships"] if character.relationships else 0,
            w["multiple_appearances"] if len(appearances) > 1 else 0,
            w["minor_role"] if character.role is CharacterRole.MINOR else w["major_role"],
        ]
        return max(0, min(100, sum(factors)))

    @staticmethod
    def determine_arc_type(character: Character) -> str:
        return ARC_TYPE_BY_ROLE.get(character.role, "flat")

    @staticmethod
    def identify_key_moments(character: Character, appearances: list[Chapter]) -> list[ArcMoment]:
        """提取关键时刻：首次出场、中点发展、结局"""
        moments: list[ArcMoment] = []
        if not appearances:
            return moments

        moments.append(ArcMoment(
            chapter_id=appearances[0].id,
            type="introduction",
            description=f"{character.name} is introduced to the story",
        ))

        if len(appearances) > 1:
            midpoint = len(appearances) // 2
            moments.append(ArcMoment(
                chapter_id=appearances[midpoint].id,
                type="development",
                description=f"Key development moment for {character.name}",
            ))
            moments.append(ArcMoment(
                chapter_id=appearances[-1].id,
                type="resolution",
                description=f"{character.name}'s arc concludes",
            ))

        return moments

    def identify_issues(self, character: Character, appearances: list[Chapter]) -> list[str]:
        issues = []

        if not appearances:
            issues.append("Character never appears in the story")

        if len(character.description) < self.weights.min_motivation_length:
            issues.append("Insufficient character development")

        if not character.relationships and character.role is not CharacterRole.MINOR:
            issues.append("No relationships with other characters")

        return issues
