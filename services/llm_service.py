"""
LLM服务模块
为补充分析提供统一的大模型调用接口（重试、退避与熔断）

结构分析本身从不调用这里；只有 InsightService 在需要补充分析时才会创建服务实例。
"""
import asyncio
import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from config import get_analysis_config, get_api_config
from exceptions import APIError, APIKeyError, RateLimitError
from validators import validate_api_provider

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 60.0


@dataclass
class LLMResponse:
    """LLM响应模型"""
    content: str
    token_usage: Optional[Dict[str, int]] = None
    response_time: Optional[float] = None
    model: Optional[str] = None
    finish_reason: Optional[str] = None


class CircuitBreaker:
    """熔断器

    连续失败达到阈值后进入 OPEN，冷却时间过后放行一次试探（HALF_OPEN），
    试探成功回到 CLOSED。
    """

    def __init__(self, failure_threshold: int = 5, timeout_seconds: float = 60):
        self.failure_threshold = failure_threshold
        self.timeout_seconds = timeout_seconds
        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = 'CLOSED'

    def call_allowed(self) -> bool:
        if self.state != 'OPEN':
            return True
        cooled_down = (
            self.last_failure_time is not None
            and time.monotonic() - self.last_failure_time >= self.timeout_seconds
        )
        if cooled_down:
            self.state = 'HALF_OPEN'
        return cooled_down

    def record_success(self) -> None:
        self.failure_count = 0
        self.state = 'CLOSED'

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.monotonic()
        if self.state == 'HALF_OPEN' or self.failure_count >= self.failure_threshold:
            self.state = 'OPEN'
            logger.warning(f"熔断器打开，失败次数: {self.failure_count}")


def _backoff(attempt: int) -> float:
    return (2 ** attempt) + random.uniform(0, 1)


class LLMService(ABC):
    """LLM服务基类"""

    def __init__(self):
        self.api_config = get_api_config()
        self.analysis_config = get_analysis_config()
        self.circuit_breaker = CircuitBreaker()
        self._init_client()

    @abstractmethod
    def _init_client(self) -> None:
        """初始化客户端"""

    @abstractmethod
    async def _call_api(self, prompt: str, **kwargs) -> LLMResponse:
        """调用API的具体实现"""

    def _retry_delay(self, error: Exception, attempt: int) -> float:
        """返回重试前的等待秒数；不可重试的错误直接抛出"""
        if isinstance(error, APIKeyError):
            raise error
        if isinstance(error, RateLimitError):
            return error.retry_after or _backoff(attempt)
        if isinstance(error, APIError) and not error.is_retryable:
            raise error
        return _backoff(attempt)

    async def call(self, prompt: str, request_label: Optional[str] = None) -> LLMResponse:
        """统一的调用接口，失败时按指数退避重试

        Raises:
            APIKeyError: 密钥无效
            APIError: 熔断器打开、不可重试的错误或重试耗尽
        """
        label = f" [{request_label}]" if request_label else ""

        if not self.circuit_breaker.call_allowed():
            raise APIError("服务暂时不可用，请稍后再试", is_retryable=True)

        for attempt in range(self.analysis_config.max_retry):
            start = time.perf_counter()
            try:
                llm_response = await self._call_api(prompt)
            except Exception as e:
                if not isinstance(e, (APIError, APIKeyError)):
                    logger.error(f"未知错误{label}: {e}")
                try:
                    wait_time = self._retry_delay(e, attempt)
                except (APIError, APIKeyError):
                    self.circuit_breaker.record_failure()
                    raise
                logger.warning(f"LLM API调用失败{label}，{wait_time:.1f}秒后重试: {e}")
                await asyncio.sleep(wait_time)
                continue

            llm_response.response_time = time.perf_counter() - start
            self.circuit_breaker.record_success()
            logger.debug(f"LLM API调用成功{label}，耗时: {llm_response.response_time:.2f}秒")
            return llm_response

        self.circuit_breaker.record_failure()
        raise APIError(f"LLM API多次失败{label}", is_retryable=False)


def _classify_openai_error(error: Exception) -> Exception:
    """把 openai SDK 抛出的异常归类为项目异常"""
    status = getattr(error, 'status_code', None)
    message = str(error).lower()

    if status == 401 or "authentication" in message or "unauthorized" in message:
        return APIKeyError("API密钥无效或已过期")

    # 配额耗尽同样返回 429，但重试没有意义
    if "quota" in message or "exceeded" in message:
        return APIError("API配额已用尽", is_retryable=False)

    if status == 429 or ("rate" in message and "limit" in message):
        retry_after = None
        response = getattr(error, 'response', None)
        if response is not None:
            header = response.headers.get('retry-after')
            if header and header.isdigit():
                retry_after = int(header)
        return RateLimitError("API速率限制", retry_after=retry_after)

    return APIError(f"OpenAI API错误: {error}", is_retryable=status is None or status >= 500)


class OpenAIService(LLMService):
    """OpenAI（及兼容接口）服务实现"""

    # 按代理地址共享连接池，None 表示直连
    _http_clients: Dict[Optional[str], Any] = {}

    @classmethod
    def get_http_client(cls, proxy_url: Optional[str] = None):
        """获取共享的 httpx.AsyncClient"""
        import httpx

        client = cls._http_clients.get(proxy_url)
        if client is None:
            client = httpx.AsyncClient(
                proxy=proxy_url,
                limits=httpx.Limits(max_connections=20),
                timeout=REQUEST_TIMEOUT,
            )
            cls._http_clients[proxy_url] = client
        return client

    @classmethod
    async def close_http_clients(cls) -> None:
        """关闭所有共享连接池"""
        clients = list(cls._http_clients.items())
        cls._http_clients.clear()
        for proxy_url, client in clients:
            try:
                await client.aclose()
            except Exception as e:
                logger.warning(f"关闭HTTP客户端失败 ({proxy_url or '直连'}): {e}")

    def _init_client(self) -> None:
        try:
            from openai import AsyncOpenAI
        except ImportError as e:
            raise APIKeyError("未安装openai库，请运行: pip install openai") from e

        proxy_url = self.analysis_config.proxy_url if self.analysis_config.use_proxy else None
        if proxy_url:
            logger.debug(f"OpenAI客户端配置代理: {proxy_url}")
        try:
            self.client = AsyncOpenAI(
                api_key=self.api_config.api_key,
                base_url=self.api_config.base_url,
                http_client=self.get_http_client(proxy_url),
            )
        except Exception as e:
            raise APIKeyError(f"OpenAI API配置失败: {e}") from e
        logger.info(f"OpenAI API客户端初始化成功 (模型: {self.api_config.model_name})")

    async def _call_api(self, prompt: str, **kwargs) -> LLMResponse:
        try:
            response = await self.client.chat.completions.create(
                model=self.api_config.model_name,
                messages=[{"role": "user", "content": prompt}],
                temperature=0.2,
                timeout=REQUEST_TIMEOUT,
                **kwargs
            )
        except Exception as e:
            raise _classify_openai_error(e) from e

        choice = response.choices[0]
        return LLMResponse(
            content=choice.message.content or "",
            token_usage=response.usage.model_dump() if response.usage else None,
            model=response.model,
            finish_reason=choice.finish_reason,
        )


class GeminiService(LLMService):
    """Gemini服务实现（google-generativeai 是同步 SDK）"""

    def _init_client(self) -> None:
        try:
            import google.generativeai as genai
        except ImportError as e:
            raise APIKeyError("未安装google-generativeai库，请运行: pip install google-generativeai") from e

        try:
            genai.configure(api_key=self.api_config.api_key)
            threshold = getattr(
                genai.types.HarmBlockThreshold,
                self.api_config.gemini_safety,
                genai.types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
            )
            # 小说常涉及暴力等题材，四类过滤使用同一阈值
            self.safety_settings = [
                {"category": category, "threshold": threshold}
                for category in (
                    genai.types.HarmCategory.HARM_CATEGORY_HARASSMENT,
                    genai.types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
                    genai.types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
                    genai.types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
                )
            ]
            self.model = genai.GenerativeModel(
                self.api_config.model_name,
                generation_config={"temperature": 0.2, "response_mime_type": "application/json"},
            )
        except Exception as e:
            raise APIKeyError(f"Gemini API配置失败: {e}") from e
        logger.info(
            f"Gemini API初始化成功 (模型: {self.api_config.model_name}, 安全设置: {self.api_config.gemini_safety})"
        )

    async def _call_api(self, prompt: str, **kwargs) -> LLMResponse:
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None,
                lambda: self.model.generate_content(prompt, safety_settings=self.safety_settings),
            )
        except Exception as e:
            message = str(e).lower()
            if "permission" in message or "api key" in message:
                raise APIKeyError("API密钥无效或无权限") from e
            if "quota" in message or "exhausted" in message:
                raise APIError("API配额已用尽", is_retryable=False) from e
            raise APIError(f"Gemini API错误: {e}", is_retryable=True) from e

        feedback = getattr(response, 'prompt_feedback', None)
        if feedback is not None and getattr(feedback, 'block_reason', None):
            raise APIError(f"内容被安全过滤器阻止: {feedback.block_reason}", is_retryable=False)

        try:
            text = response.text
        except ValueError as e:
            # 候选结果被过滤时 .text 会抛出 ValueError
            raise APIError(f"Gemini API没有返回可用内容: {e}", is_retryable=False) from e
        if not text:
            raise APIError("Gemini API返回空内容", is_retryable=True)

        return LLMResponse(content=text, model=self.api_config.model_name)


_SERVICES: Dict[str, Any] = {
    'openai': OpenAIService,
    'gemini': GeminiService,
}


def create_llm_service() -> LLMService:
    """工厂函数：按 API_PROVIDER 创建LLM服务实例"""
    provider = validate_api_provider(get_api_config().provider)
    return _SERVICES[provider]()
