"""
补充分析服务模块
把叙事快照转换为故事结构图，请求大模型给出补充意见；
补充分析失败不会影响确定性的分析结果
"""
import json
import logging
import re
import time
from dataclasses import dataclass, replace
from typing import Any, Optional

from models.analysis import AnalysisResult, Recommendation
from models.narrative import NarrativeSnapshot
from prompts import INSIGHT_ANALYSIS_TYPES, insight_prompt
from services.llm_service import LLMService, create_llm_service
from services.telemetry import MetricsSink, NullMetricsSink

logger = logging.getLogger(__name__)

UNAVAILABLE_RECOMMENDATION_ID = "supplementary-analysis-unavailable"


@dataclass
class InsightResponse:
    """补充分析响应"""

    analysis_type: str
    success: bool
    data: Any = None
    error: Optional[str] = None
    processing_time: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.analysis_type,
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "processingTime": self.processing_time,
        }


def parse_json_reply(reply: str) -> Any:
    """解析模型回复中的JSON，允许外层包裹说明文字或代码块

    Raises:
        ValueError: 回复中没有可解析的JSON
    """
    text = (reply or "").strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    json_match = re.search(r'[\[{].*[\]}]', text, re.DOTALL)
    if json_match:
        try:
            return json.loads(json_match.group())
        except json.JSONDecodeError as e:
            raise ValueError(f"模型回复不是合法的JSON: {e}") from e

    raise ValueError("模型回复中没有JSON内容")


class InsightService:
    """补充分析服务类"""

    def __init__(self, llm_service: Optional[LLMService] = None, metrics: Optional[MetricsSink] = None):
        self._llm_service = llm_service
        self.metrics = metrics or NullMetricsSink()

    @property
    def llm_service(self) -> LLMService:
        """首次使用时才创建LLM客户端（需要API密钥）"""
        if self._llm_service is None:
            self._llm_service = create_llm_service()
        return self._llm_service

    @staticmethod
    def build_graph(snapshot: NarrativeSnapshot) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        """把快照转换为节点与边

        节点：每个章节、每个人物；
        边：相邻章节的顺序边、人物到出场章节的边、人物之间的关系边。
        """
        nodes: list[dict[str, Any]] = []
        edges: list[dict[str, Any]] = []
        chapters_by_id = snapshot.chapters_by_id
        character_ids = {character.id for character in snapshot.characters}

        for chapter in snapshot.chapters:
            nodes.append({
                "id": f"chapter-{chapter.id}",
                "type": "chapter",
                "data": {
                    "chapterNumber": chapter.number,
                    "title": chapter.title,
                    "mainCharacters": list(chapter.characters),
                    "plotEvents": [event.to_dict() for event in chapter.plot_events],
                },
            })

        for character in snapshot.characters:
            nodes.append({
                "id": f"character-{character.id}",
                "type": "character",
                "data": {
                    "name": character.name,
                    "role": character.role.value,
                    "description": character.description,
                },
            })

        for current, following in zip(snapshot.chapters, snapshot.chapters[1:]):
            edges.append({
                "id": f"flow-{current.id}-{following.id}",
                "source": f"chapter-{current.id}",
                "target": f"chapter-{following.id}",
                "label": "Next",
            })

        for character in snapshot.characters:
            for chapter_id in character.appearances:
                if chapter_id in chapters_by_id:
                    edges.append({
                        "id": f"appearance-{character.id}-{chapter_id}",
                        "source": f"character-{character.id}",
                        "target": f"chapter-{chapter_id}",
                        "label": "Appears in",
                    })
            for relationship in character.relationships:
                if relationship.character_id in character_ids:
                    edges.append({
                        "id": f"relationship-{character.id}-{relationship.character_id}",
                        "source": f"character-{character.id}",
                        "target": f"character-{relationship.character_id}",
                        "label": relationship.type,
                    })

        return nodes, edges

    async def request(
        self,
        content: str,
        analysis_type: str,
        nodes: Optional[list[dict[str, Any]]] = None,
        edges: Optional[list[dict[str, Any]]] = None,
    ) -> InsightResponse:
        """请求一次补充分析，任何失败都体现在 success=False 中而不是抛出异常"""
        start = time.perf_counter()
        self.metrics.increment(f"insights.{analysis_type}")

        try:
            if analysis_type not in INSIGHT_ANALYSIS_TYPES:
                raise ValueError(f"不支持的分析类型: {analysis_type}")
            graph = json.dumps({"nodes": nodes or [], "edges": edges or []}, ensure_ascii=False)
            prompt = insight_prompt(analysis_type, content, graph)
            llm_response = await self.llm_service.call(prompt, request_label=analysis_type)
            data = parse_json_reply(llm_response.content)
        except Exception as e:
            elapsed = time.perf_counter() - start
            self.metrics.increment("insights.failures")
            logger.warning(f"补充分析失败 ({analysis_type}): {e}")
            return InsightResponse(
                analysis_type=analysis_type,
                success=False,
                error=str(e),
                processing_time=elapsed,
            )

        elapsed = time.perf_counter() - start
        self.metrics.observe("insights.seconds", elapsed)
        logger.info(f"补充分析完成 ({analysis_type})，耗时: {elapsed:.2f}秒")
        return InsightResponse(
            analysis_type=analysis_type,
            success=True,
            data=data,
            processing_time=elapsed,
        )

    async def augment(
        self,
        result: AnalysisResult,
        snapshot: NarrativeSnapshot,
        analysis_type: str = "story-coherence",
        content: str = "",
    ) -> tuple[AnalysisResult, InsightResponse]:
        """为确定性结果附加补充分析

        成功时原样返回结果；失败时返回附加了一条低优先级占位建议的新结果。
        """
        nodes, edges = self.build_graph(snapshot)
        response = await self.request(content, analysis_type, nodes, edges)
        if response.success:
            return result, response

        if any(r.id == UNAVAILABLE_RECOMMENDATION_ID for r in result.recommendations):
            return result, response

        placeholder = Recommendation(
            id=UNAVAILABLE_RECOMMENDATION_ID,
            type="supplementary",
            priority="low",
            title="Supplementary analysis unavailable",
            description="AI analysis temporarily unavailable. Please try again later.",
            suggested_action="Retry the supplementary analysis later",
        )
        return replace(result, recommendations=[*result.recommendations, placeholder]), response
