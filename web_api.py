"""
FastAPI 后端接口：
- /analyze   POST 分析叙事快照，返回确定性分析结果
- /insights  POST 分析快照并附加大模型补充分析
- /weights   GET  当前生效的评分权重表
- /env       GET/POST 读取与更新 .env（可视化配置编辑）
- /health    GET  健康检查与运行统计

启动方式：
  uvicorn web_api:app --reload --port 8000
"""
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from config import get_analysis_weights, reset_config
from exceptions import AnalysisError, ConfigurationError, SnapshotValidationError
from models.narrative import NarrativeSnapshot
from prompts import INSIGHT_ANALYSIS_TYPES
from services.analysis_service import StoryAnalysisService
from services.insight_service import InsightService
from services.llm_service import OpenAIService
from services.snapshot_service import build_snapshot
from services.telemetry import InMemoryMetricsSink

logger = logging.getLogger(__name__)

ENV_PATH = Path(".env")
ALLOWED_KEYS = {
    "API_PROVIDER",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_API_BASE",
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "GEMINI_SAFETY_SETTINGS",
    "MAX_RETRY",
    "ANALYSIS_PARALLEL",
    "ANALYSIS_MAX_WORKERS",
    "ANALYSIS_WEIGHTS_FILE",
    "INSIGHTS_ENABLED",
    "INSIGHT_PROMPT_TEMPLATE",
    "LOG_LEVEL",
}

METRICS = InMemoryMetricsSink()


def load_env_file() -> Dict[str, str]:
    if not ENV_PATH.exists():
        return {}
    data: Dict[str, str] = {}
    for line in ENV_PATH.read_text(encoding="utf-8").splitlines():
        if not line or line.strip().startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        data[key.strip()] = value.strip()
    return data


def save_env_file(updates: Dict[str, str]) -> None:
    existing = load_env_file()
    existing.update(updates)
    for key, value in updates.items():
        os.environ[key] = value
    lines = [f"{k}={v}" for k, v in existing.items()]
    ENV_PATH.write_text("\n".join(lines) + "\n", encoding="utf-8")
    # 配置单例需要按新的环境变量重新读取
    reset_config()


def mask_value(key: str, value: str) -> str:
    if "KEY" in key.upper():
        if not value:
            return ""
        return "*" * max(4, len(value) - 4) + value[-4:]
    return value


class EnvUpdate(BaseModel):
    updates: Dict[str, str]


class SnapshotRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    characters: List[Dict[str, Any]] = Field(default_factory=list)
    chapters: List[Dict[str, Any]] = Field(default_factory=list)
    plot_threads: Optional[List[Dict[str, Any]]] = Field(default=None, alias="plotThreads")
    unify_thread_beats: bool = Field(default=False, alias="unifyThreadBeats")


class AnalyzeRequest(SnapshotRequest):
    parallel: Optional[bool] = None


class InsightRequest(SnapshotRequest):
    analysis_type: str = Field(default="story-coherence", alias="analysisType")
    content: str = ""


def get_insight_service() -> InsightService:
    return InsightService(metrics=METRICS)


def _to_snapshot(body: SnapshotRequest) -> NarrativeSnapshot:
    try:
        return build_snapshot(
            body.characters,
            body.chapters,
            plot_threads=body.plot_threads,
            unify_thread_beats=body.unify_thread_beats,
        )
    except SnapshotValidationError as e:
        raise HTTPException(status_code=422, detail=e.to_dict()) from e


def _analysis_service() -> StoryAnalysisService:
    try:
        return StoryAnalysisService()
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=f"配置错误: {e}") from e


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    await OpenAIService.close_http_clients()


app = FastAPI(title="Story Structure Analysis API", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health() -> Dict[str, Any]:
    return {"status": "ok", "metrics": METRICS.get_stats()}


@app.get("/weights")
def get_weights() -> Dict[str, Any]:
    try:
        return get_analysis_weights().to_dict()
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=f"配置错误: {e}") from e


@app.get("/env")
def get_env() -> Dict[str, Any]:
    data = load_env_file()
    masked = {k: mask_value(k, v) for k, v in data.items()}
    return {"masked": masked}


@app.post("/env")
def update_env(body: EnvUpdate):
    bad_keys = [k for k in body.updates if k not in ALLOWED_KEYS]
    if bad_keys:
        raise HTTPException(status_code=400, detail=f"不允许修改的键: {bad_keys}")
    save_env_file(body.updates)
    return {"ok": True}


@app.post("/analyze")
def analyze(body: AnalyzeRequest) -> Dict[str, Any]:
    snapshot = _to_snapshot(body)
    service = _analysis_service()
    try:
        result = service.analyze(snapshot, metrics=METRICS, parallel=body.parallel)
    except SnapshotValidationError as e:
        raise HTTPException(status_code=422, detail=e.to_dict()) from e
    except AnalysisError as e:
        logger.error(f"分析失败: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e
    return result.to_dict()


@app.post("/insights")
async def insights(
    body: InsightRequest,
    insight_service: InsightService = Depends(get_insight_service),
) -> Dict[str, Any]:
    if body.analysis_type not in INSIGHT_ANALYSIS_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"不支持的分析类型: {body.analysis_type}. 支持的类型: {', '.join(INSIGHT_ANALYSIS_TYPES)}",
        )

    snapshot = _to_snapshot(body)
    service = _analysis_service()
    try:
        result = await service.analyze_async(snapshot, metrics=METRICS)
    except SnapshotValidationError as e:
        raise HTTPException(status_code=422, detail=e.to_dict()) from e
    except AnalysisError as e:
        logger.error(f"分析失败: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e

    result, response = await insight_service.augment(
        result, snapshot, analysis_type=body.analysis_type, content=body.content
    )
    payload = result.to_dict()
    payload["supplementary"] = response.to_dict()
    return payload


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("web_api:app", host="0.0.0.0", port=8000, reload=True)
