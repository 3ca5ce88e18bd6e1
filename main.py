"""
故事结构分析工具 - 命令行入口
读取叙事快照JSON，运行分析引擎并输出结果
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from config import get_analysis_config, init_config
from exceptions import (
    APIKeyError,
    ConfigurationError,
    FileValidationError,
    SnapshotValidationError,
    StoryAnalysisError,
)
from models.analysis import AnalysisResult
from services.analysis_service import StoryAnalysisService
from services.insight_service import InsightResponse, InsightService
from services.llm_service import OpenAIService
from services.snapshot_service import load_snapshot
from services.telemetry import InMemoryMetricsSink
from utils import atomic_write_json, setup_logging, truncate_text

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID_INPUT = 2


class StoryAnalysisApp:
    """故事结构分析应用主类"""

    def __init__(self):
        self.analysis_config = get_analysis_config()
        self.metrics = InMemoryMetricsSink()
        self.analysis_service = StoryAnalysisService()

    async def run(self, args: argparse.Namespace) -> int:
        """运行一次分析，返回进程退出码"""
        try:
            snapshot = load_snapshot(args.snapshot, unify_thread_beats=args.unify_thread_beats)
            parallel = args.parallel or self.analysis_config.parallel
            result = self.analysis_service.analyze(snapshot, metrics=self.metrics, parallel=parallel)

            insight = None
            if args.insights or self.analysis_config.insights_enabled:
                insight_service = InsightService(metrics=self.metrics)
                try:
                    result, insight = await insight_service.augment(
                        result, snapshot, analysis_type=args.insight_type
                    )
                finally:
                    # 共享连接池绑定在本次事件循环上
                    await OpenAIService.close_http_clients()

            self._show_results(result, insight)

            if args.output:
                payload = result.to_dict()
                if insight is not None:
                    payload["supplementary"] = insight.to_dict()
                atomic_write_json(args.output, payload, backup=args.backup)
                print(f"📁 结果已保存: {args.output}")

            return EXIT_OK

        except (SnapshotValidationError, FileValidationError) as e:
            print(f"\n❌ 快照无效: {e}")
            return EXIT_INVALID_INPUT
        except (APIKeyError, ConfigurationError) as e:
            print(f"\n❌ 配置错误: {e}")
            print("\n💡 请检查环境变量或.env文件中的配置")
            return EXIT_ERROR
        except StoryAnalysisError as e:
            print(f"\n❌ 分析错误: {e}")
            return EXIT_ERROR

    def _show_results(self, result: AnalysisResult, insight: Optional[InsightResponse]) -> None:
        """打印分析摘要"""
        summary = result.get_summary()
        print("\n" + "=" * 60)
        print("📖 故事结构分析结果")
        print("=" * 60)
        print(f"🎯 总分: {summary['overall_score']}/100")
        print(f"🏗️  结构: {summary['structure']}")
        print(f"⏱️  节奏: {summary['pace']}")
        print(f"⚠️  冲突: {summary['conflicts']} 个（高严重度 {summary['high_severity']} 个）")
        print(f"🕳️  情节漏洞: {summary['plot_holes']} 个")

        if result.recommendations:
            print("\n建议:")
            for recommendation in result.recommendations:
                action = truncate_text(recommendation.suggested_action, max_length=80)
                print(f"   [{recommendation.priority}] {recommendation.title}: {action}")

        if insight is not None:
            status = "成功" if insight.success else f"失败 ({truncate_text(insight.error or '', max_length=80)})"
            print(f"\n🤖 补充分析 ({insight.analysis_type}): {status}")
        print("=" * 60)


def _start_web_ui(host: str, port: int) -> int:
    """启动 HTTP 服务（FastAPI + uvicorn）"""
    import uvicorn

    print(f"\n🚀 正在启动分析服务（http://{host}:{port}）...")
    uvicorn.run("web_api:app", host=host, port=port)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="分析小说的人物一致性、角色弧与情节结构。",
    )
    parser.add_argument('snapshot', nargs='?', help='叙事快照 JSON 文件（characters / chapters / plotThreads）')
    parser.add_argument('-o', '--output', help='把完整结果写入该 JSON 文件')
    parser.add_argument('--backup', action='store_true', help='覆盖输出文件前保留带时间戳的 .bak 备份')
    parser.add_argument('--parallel', action='store_true', help='用线程池并行运行各分析组件')
    parser.add_argument('--insights', action='store_true', help='附加大模型补充分析（需要 API 密钥）')
    parser.add_argument(
        '--insight-type',
        default='story-coherence',
        choices=['character', 'story-coherence', 'relationships', 'character-arcs'],
        help='补充分析类型（默认 story-coherence）',
    )
    parser.add_argument('--unify-thread-beats', action='store_true', help='把情节线事件类型映射到结构分析词汇')
    parser.add_argument('--env-file', help='.env 文件路径')
    parser.add_argument('--serve', action='store_true', help='启动 HTTP 服务而不是分析单个文件')
    parser.add_argument('--host', default='127.0.0.1', help='HTTP 服务监听地址')
    parser.add_argument('--port', type=int, default=8000, help='HTTP 服务端口')
    parser.add_argument('--debug', action='store_true', help='输出调试日志')
    parser.add_argument('--log-dir', help='日志文件目录（默认当前目录）')
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """主入口函数"""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(level=logging.DEBUG if args.debug else logging.INFO, log_dir=args.log_dir)
    init_config(args.env_file)

    if args.serve:
        return _start_web_ui(args.host, args.port)

    if not args.snapshot:
        parser.error("缺少快照文件参数（或使用 --serve 启动服务）")

    if args.output and Path(args.output).suffix.lower() != '.json':
        parser.error("输出文件必须是 .json")

    if args.backup and not args.output:
        parser.error("--backup 需要与 -o/--output 一起使用")

    try:
        app = StoryAnalysisApp()
    except ConfigurationError as e:
        print(f"\n❌ 配置错误: {e}")
        return EXIT_ERROR
    return asyncio.run(app.run(args))


if __name__ == "__main__":
    sys.exit(main())
