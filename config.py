"""
配置管理模块
使用环境变量管理配置；评分与阈值策略集中定义在 AnalysisWeights 中
"""

import os
from dataclasses import asdict, dataclass, field, fields
from typing import Any

from dotenv import load_dotenv

from exceptions import APIKeyError, ConfigurationError
from utils import safe_read_json

SUPPORTED_API_PROVIDERS = ("openai", "gemini")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class APIConfig:
    """补充分析（大模型）API配置类"""

    provider: str = field(default_factory=lambda: os.getenv("API_PROVIDER", "openai"))
    openai_key: str | None = field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    openai_base: str | None = field(default_factory=lambda: os.getenv("OPENAI_API_BASE"))
    openai_model: str = field(default_factory=lambda: os.getenv("OPENAI_MODEL", "gpt-4o-mini"))
    gemini_key: str | None = field(default_factory=lambda: os.getenv("GEMINI_API_KEY"))
    gemini_model: str = field(default_factory=lambda: os.getenv("GEMINI_MODEL", "gemini-2.5-flash"))
    gemini_safety: str = field(default_factory=lambda: os.getenv("GEMINI_SAFETY_SETTINGS", "BLOCK_ONLY_HIGH"))
    _validated: bool = field(default=False, init=False)

    def validate(self) -> None:
        """验证配置（延迟到实际使用时）"""
        if self._validated:
            return

        if self.provider not in SUPPORTED_API_PROVIDERS:
            raise ConfigurationError(
                f"不支持的API提供商: {self.provider}. "
                f"支持的提供商: {', '.join(SUPPORTED_API_PROVIDERS)}"
            )

        key = self.openai_key if self.provider == "openai" else self.gemini_key
        if not key or "your_" in key.lower() or "here" in key.lower():
            raise ConfigurationError(
                f"使用{self.provider} API时必须设置 {self.provider.upper()}_API_KEY 环境变量。\n"
                "当前值为空或看起来像是占位符，请在 .env 文件中填入真实的 API Key"
            )

        self._validated = True

    @property
    def api_key(self) -> str:
        """获取当前API密钥"""
        self.validate()

        key = self.openai_key if self.provider == "openai" else self.gemini_key
        if not key:
            raise APIKeyError(f"{self.provider} API密钥未配置")
        return key

    @property
    def base_url(self) -> str | None:
        """获取API基础URL"""
        if self.provider == "openai":
            return self.openai_base
        return None

    @property
    def model_name(self) -> str:
        """获取模型名称"""
        if self.provider == "openai":
            return self.openai_model
        return self.gemini_model


@dataclass
class AnalysisConfig:
    """分析运行配置类"""

    parallel: bool = field(default_factory=lambda: _env_bool("ANALYSIS_PARALLEL", "false"))
    max_workers: int = field(default_factory=lambda: int(os.getenv("ANALYSIS_MAX_WORKERS", "4")))
    insights_enabled: bool = field(default_factory=lambda: _env_bool("INSIGHTS_ENABLED", "false"))
    max_retry: int = field(default_factory=lambda: int(os.getenv("MAX_RETRY", "3")))
    weights_file: str | None = field(default_factory=lambda: os.getenv("ANALYSIS_WEIGHTS_FILE"))

    # 代理配置
    use_proxy: bool = field(default_factory=lambda: _env_bool("USE_PROXY", "false"))
    proxy_url: str = field(default_factory=lambda: os.getenv("PROXY_URL", "http://127.0.0.1:7897"))

    def validate(self) -> None:
        """验证配置"""
        if self.max_workers <= 0:
            raise ConfigurationError("ANALYSIS_MAX_WORKERS必须大于0")

        if self.max_retry <= 0:
            raise ConfigurationError("MAX_RETRY必须大于0")


@dataclass(frozen=True)
class AnalysisWeights:
    """评分与启发式阈值表

    所有检查器、分析器和评分引擎都从这里读取常量，
    替换此对象即可整体替换评分策略。
    """

    # 评分
    severity_penalties: dict[str, float] = field(
        default_factory=lambda: {"high": 15, "medium": 8, "low": 3}
    )
    arc_penalty_factor: float = 0.2
    plot_hole_penalty: float = 5

    # 一致性检查
    gap_threshold: int = 2
    protagonist_presence_ratio: float = 0.6
    min_motivation_length: int = 50

    # 角色弧完整度
    detailed_description_length: int = 100
    completeness_weights: dict[str, int] = field(
        default_factory=lambda: {
            "detailed_description": 25,
            "brief_description": 10,
            "relationships": 25,
            "multiple_appearances": 25,
            "major_role": 25,
            "minor_role": 15,
        }
    )

    # 节奏
    slow_pace_density: float = 1.0
    fast_pace_density: float = 3.0

    # 张力曲线
    tension_weights: dict[str, int] = field(
        default_factory=lambda: {
            "climax": 100,
            "rising_action": 60,
            "inciting_incident": 40,
            "falling_action": 30,
            "resolution": 20,
        }
    )
    default_tension_weight: int = 10
    tension_per_character: int = 5

    # 建议
    max_high_priority_recommendations: int = 3
    incomplete_arc_threshold: float = 60

    def validate(self) -> None:
        """验证权重表"""
        missing = {"high", "medium", "low"} - set(self.severity_penalties)
        if missing:
            raise ConfigurationError(f"severity_penalties 缺少等级: {sorted(missing)}")

        if any(value < 0 for value in self.severity_penalties.values()):
            raise ConfigurationError("severity_penalties 不能为负数")

        if self.slow_pace_density > self.fast_pace_density:
            raise ConfigurationError("slow_pace_density 不能大于 fast_pace_density")

        if not 0 <= self.protagonist_presence_ratio <= 1:
            raise ConfigurationError("protagonist_presence_ratio 必须在 [0, 1] 区间")

        if self.gap_threshold < 0 or self.max_high_priority_recommendations < 0:
            raise ConfigurationError("gap_threshold 与 max_high_priority_recommendations 不能为负数")

    def to_dict(self) -> dict[str, Any]:
        """转换为字典格式（用于JSON序列化）"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AnalysisWeights":
        """从字典创建实例，未给出的字段使用默认值；字典字段按键合并"""
        defaults = cls()
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"未知的权重字段: {sorted(unknown)}")

        values: dict[str, Any] = {}
        for name, value in data.items():
            default_value = getattr(defaults, name)
            if isinstance(default_value, dict):
                if not isinstance(value, dict):
                    raise ConfigurationError(f"权重字段 {name} 必须是对象")
                values[name] = {**default_value, **value}
            else:
                values[name] = value

        weights = cls(**values)
        weights.validate()
        return weights


DEFAULT_WEIGHTS = AnalysisWeights()

# 创建全局配置实例
_api_config = None
_analysis_config = None
_analysis_weights = None


def init_config(env_file: str | None = None) -> None:
    """加载 .env 文件并重置配置单例"""
    load_dotenv(env_file)
    reset_config()


def reset_config() -> None:
    """清空配置单例（环境变量变化后重新读取）"""
    global _api_config, _analysis_config, _analysis_weights
    _api_config = None
    _analysis_config = None
    _analysis_weights = None


def get_api_config() -> APIConfig:
    """获取API配置单例"""
    global _api_config
    if _api_config is None:
        _api_config = APIConfig()
    return _api_config


def get_analysis_config() -> AnalysisConfig:
    """获取分析配置单例"""
    global _analysis_config
    if _analysis_config is None:
        _analysis_config = AnalysisConfig()
        _analysis_config.validate()
    return _analysis_config


def get_analysis_weights() -> AnalysisWeights:
    """获取权重表单例；配置了 ANALYSIS_WEIGHTS_FILE 时从文件加载覆盖项"""
    global _analysis_weights
    if _analysis_weights is None:
        weights_file = get_analysis_config().weights_file
        if weights_file:
            if not os.path.exists(weights_file):
                raise ConfigurationError(f"权重文件不存在: {weights_file}")
            try:
                overrides = safe_read_json(weights_file)
            except ValueError as e:
                raise ConfigurationError(f"权重文件格式错误: {weights_file}", details=str(e)) from e
            _analysis_weights = AnalysisWeights.from_dict(overrides)
        else:
            _analysis_weights = DEFAULT_WEIGHTS
    return _analysis_weights
