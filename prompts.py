"""
LLM提示词模板模块
定义补充分析（人物、连贯性、关系、角色弧）使用的提示词
"""
import os
from typing import Dict


INSIGHT_ANALYSIS_TYPES = ("character", "story-coherence", "relationships", "character-arcs")

INSIGHT_INSTRUCTIONS: Dict[str, str] = {
    "character": """请逐个分析下列人物，输出 JSON 列表，每个元素包含：
   - "nodeId": 人物节点ID
   - "role": 推断的叙事角色
   - "traits": 性格特征列表
   - "suggestions": 完善该人物的建议列表
   - "confidence": 0-1 之间的置信度""",
    "story-coherence": """请检查故事的整体连贯性，输出 JSON 对象，包含：
   - "overallScore": 0-100 的连贯性评分
   - "issues": 问题列表，每项包含 "type"（character_inconsistency / plot_contradiction / timeline_error / motivation_gap）、
     "severity"（critical / moderate / minor）、"description"、"affectedNodes"、"suggestedFix"
   - "suggestions": 改进建议列表
   - "plotHoles": 情节漏洞列表，每项包含 "id"、"description"、"location"、"severity"、"suggestedResolution"、"affectedCharacters" 字段""",
    "relationships": """请为尚未建立联系的人物提出关系建议，输出 JSON 列表，每个元素包含：
   - "fromNodeId" / "toNodeId": 人物节点ID
   - "relationshipType": friend / enemy / family / mentor / love / affects / causes / prevents
   - "strength": 1-10
   - "reasoning": 理由
   - "confidence": 0-1 之间的置信度""",
    "character-arcs": """请分析每个人物的成长弧线，输出 JSON 列表，每个元素包含：
   - "characterId": 人物节点ID
   - "stages": 阶段列表，每项包含 "plotPointId"、"stage"（introduction / development / crisis / resolution）、"characterState"、"growth"
   - "conflicts": 人物面临的冲突列表
   - "growth": 0-100 的整体成长度""",
}

DEFAULT_INSIGHT_PROMPT_TEMPLATE = """你是专业文学编辑，正在审阅一部小说的结构数据。

{instructions}

只输出 JSON，不要输出任何解释性文字。

补充说明：
{content}

故事结构图（nodes 为章节与人物，edges 为章节顺序、出场与人物关系）：
{graph}
"""


def _load_template_from_env() -> str:
    """获取由环境变量 INSIGHT_PROMPT_TEMPLATE 配置的模板，支持使用 \\n 表示换行。"""
    template = os.getenv("INSIGHT_PROMPT_TEMPLATE")
    if not template:
        return DEFAULT_INSIGHT_PROMPT_TEMPLATE
    return template.replace("\\n", "\n")


def _apply_template(template: str, instructions: str, content: str, graph: str) -> str:
    """填充模板中的占位符；自定义模板缺少图数据占位符时追加在末尾。"""
    filled = template
    for key, value in (
        ("{instructions}", instructions),
        ("{content}", content),
    ):
        filled = filled.replace(key, value)

    if "{graph}" in filled:
        filled = filled.replace("{graph}", graph)
    else:
        filled = f"{filled}\n\n故事结构图：\n{graph}"

    return filled


def insight_prompt(analysis_type: str, content: str, graph: str) -> str:
    """
    生成补充分析的提示词

    Args:
        analysis_type: 分析类型，见 INSIGHT_ANALYSIS_TYPES
        content: 调用方提供的补充说明，可为空
        graph: 序列化后的故事结构图（JSON）

    Raises:
        ValueError: 未知的分析类型
    """
    instructions = INSIGHT_INSTRUCTIONS.get(analysis_type)
    if instructions is None:
        raise ValueError(
            f"不支持的分析类型: {analysis_type}. 支持的类型: {', '.join(INSIGHT_ANALYSIS_TYPES)}"
        )
    template = _load_template_from_env()
    return _apply_template(template, instructions, content or "无", graph)
