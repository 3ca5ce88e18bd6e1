"""
故事结构分析编排服务模块
校验快照，运行各检查器与分析器，然后生成建议和总分
"""
import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional, Protocol

from config import AnalysisWeights, get_analysis_config, get_analysis_weights
from exceptions import AnalysisCancelledError, AnalysisError, SnapshotValidationError
from models.analysis import AnalysisResult
from models.narrative import NarrativeSnapshot
from services.arc_service import CharacterArcService
from services.consistency_service import ConsistencyService
from services.recommendation_service import RecommendationService
from services.scoring_service import ScoringService
from services.structure_service import PlotStructureService
from services.telemetry import MetricsSink, NullMetricsSink
from validators import validate_snapshot

logger = logging.getLogger(__name__)

# 结果合并顺序固定，与执行完成顺序无关
CHECKER_ORDER = ("character", "timeline", "logic", "motivation")


class CancelToken(Protocol):
    def is_set(self) -> bool: ...


class StoryAnalysisService:
    """故事结构分析服务类"""

    def __init__(self, weights: Optional[AnalysisWeights] = None):
        self.weights = weights or get_analysis_weights()
        self.analysis_config = get_analysis_config()
        self.consistency_service = ConsistencyService(self.weights)
        self.arc_service = CharacterArcService(self.weights)
        self.structure_service = PlotStructureService(self.weights)
        self.recommendation_service = RecommendationService(self.weights)
        self.scoring_service = ScoringService(self.weights)

    def _components(self) -> dict[str, Callable[[NarrativeSnapshot], Any]]:
        """相互独立、只读快照的分析组件"""
        return {
            "character": self.consistency_service.check_character_consistency,
            "timeline": self.consistency_service.check_timeline,
            "logic": self.consistency_service.check_plot_logic,
            "motivation": self.consistency_service.check_motivations,
            "arcs": self.arc_service.analyze,
            "structure": self.structure_service.analyze,
        }

    @staticmethod
    def _check_cancelled(cancel_event: Optional[CancelToken], stage: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"分析在阶段 {stage} 之前被取消")
            raise AnalysisCancelledError(stage)

    @staticmethod
    def _timed(name: str, func: Callable, snapshot: NarrativeSnapshot, metrics: MetricsSink):
        start = time.perf_counter()
        result = func(snapshot)
        metrics.observe(f"analysis.{name}.seconds", time.perf_counter() - start)
        return result

    def analyze(
        self,
        snapshot: NarrativeSnapshot,
        metrics: Optional[MetricsSink] = None,
        cancel_event: Optional[CancelToken] = None,
        parallel: Optional[bool] = None,
    ) -> AnalysisResult:
        """同步分析叙事快照

        Args:
            snapshot: 叙事快照
            metrics: 调用方提供的指标接收器
            cancel_event: 取消标志，只在阶段边界检查
            parallel: 是否用线程池并行运行独立组件，默认读取配置

        Returns:
            AnalysisResult: 分析结果

        Raises:
            SnapshotValidationError: 快照不满足不变量
            AnalysisCancelledError: 被取消
            AnalysisError: 组件内部出现未预期的错误
        """
        metrics = metrics or NullMetricsSink()
        if parallel is None:
            parallel = self.analysis_config.parallel

        self._begin(snapshot, metrics, cancel_event)
        try:
            self._check_cancelled(cancel_event, "components")
            components = self._components()
            if parallel:
                with ThreadPoolExecutor(max_workers=self.analysis_config.max_workers) as executor:
                    futures = {
                        name: executor.submit(self._timed, name, func, snapshot, metrics)
                        for name, func in components.items()
                    }
                    findings = {name: future.result() for name, future in futures.items()}
            else:
                findings = {
                    name: self._timed(name, func, snapshot, metrics)
                    for name, func in components.items()
                }
            return self._assemble(findings, metrics, cancel_event)
        except (SnapshotValidationError, AnalysisCancelledError):
            raise
        except Exception as e:
            logger.error(f"故事结构分析失败: {e}")
            raise AnalysisError(f"Plot analysis failed: {e}") from e

    async def analyze_async(
        self,
        snapshot: NarrativeSnapshot,
        metrics: Optional[MetricsSink] = None,
        cancel_event: Optional[CancelToken] = None,
    ) -> AnalysisResult:
        """异步分析：独立组件在默认线程池中并发运行"""
        metrics = metrics or NullMetricsSink()

        self._begin(snapshot, metrics, cancel_event)
        try:
            self._check_cancelled(cancel_event, "components")
            loop = asyncio.get_running_loop()
            components = self._components()
            results = await asyncio.gather(*(
                loop.run_in_executor(None, self._timed, name, func, snapshot, metrics)
                for name, func in components.items()
            ))
            findings = dict(zip(components, results))
            return self._assemble(findings, metrics, cancel_event)
        except (SnapshotValidationError, AnalysisCancelledError):
            raise
        except Exception as e:
            logger.error(f"故事结构分析失败: {e}")
            raise AnalysisError(f"Plot analysis failed: {e}") from e

    def _begin(
        self,
        snapshot: NarrativeSnapshot,
        metrics: MetricsSink,
        cancel_event: Optional[CancelToken],
    ) -> None:
        self._check_cancelled(cancel_event, "validation")
        validate_snapshot(snapshot)
        metrics.increment("analysis.runs")
        if snapshot.is_empty:
            logger.warning("快照中没有人物和章节，只会得到默认结果")
        logger.info(
            f"开始分析: {len(snapshot.characters)} 个人物, {snapshot.total_chapters} 个章节"
        )

    def _assemble(
        self,
        findings: dict[str, Any],
        metrics: MetricsSink,
        cancel_event: Optional[CancelToken],
    ) -> AnalysisResult:
        """在所有上游组件完成后生成建议与总分"""
        self._check_cancelled(cancel_event, "recommendations")

        conflicts = [conflict for name in CHECKER_ORDER for conflict in findings[name]]
        character_arcs = findings["arcs"]
        plot_structure = findings["structure"]

        recommendations = self.recommendation_service.generate(conflicts, character_arcs, plot_structure)
        overall_score = self.scoring_service.calculate(conflicts, character_arcs, plot_structure)

        metrics.increment("analysis.conflicts", len(conflicts))
        metrics.observe("analysis.score", overall_score)
        logger.info(
            f"分析完成: 总分 {overall_score}, 冲突 {len(conflicts)} 个, "
            f"建议 {len(recommendations)} 条"
        )

        return AnalysisResult(
            conflicts=conflicts,
            overall_score=overall_score,
            recommendations=recommendations,
            character_arcs=character_arcs,
            plot_structure=plot_structure,
        )


def analyze_snapshot(snapshot: NarrativeSnapshot, **kwargs) -> AnalysisResult:
    """便捷函数：使用默认权重分析快照"""
    return StoryAnalysisService().analyze(snapshot, **kwargs)
