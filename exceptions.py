"""
自定义异常类模块
定义故事结构分析引擎中使用的各种异常类型
"""


class StoryAnalysisError(Exception):
    """基础异常类，所有项目相关的异常都应继承此类"""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(self.message)


class ConfigurationError(StoryAnalysisError):
    """配置相关错误"""

    pass


class SnapshotValidationError(StoryAnalysisError):
    """叙事快照校验失败（输入不满足不变量）"""

    def __init__(self, message: str, entity_id: str | None = None, details: str | None = None):
        self.entity_id = entity_id
        super().__init__(message, details=details)

    def to_dict(self) -> dict:
        return {"message": self.message, "entity_id": self.entity_id, "details": self.details}


class FileValidationError(StoryAnalysisError):
    """文件验证错误"""

    pass


class AnalysisError(StoryAnalysisError):
    """分析过程中的错误"""

    pass


class AnalysisCancelledError(AnalysisError):
    """分析在阶段边界被调用方取消"""

    def __init__(self, stage: str):
        self.stage = stage
        super().__init__(f"Analysis cancelled before stage: {stage}")


class APIKeyError(StoryAnalysisError):
    """API密钥相关错误"""

    pass


class APIError(StoryAnalysisError):
    """API调用错误"""

    def __init__(self, message: str, error_code: str | None = None, is_retryable: bool = False):
        self.error_code = error_code
        self.is_retryable = is_retryable
        super().__init__(message)


class RateLimitError(APIError):
    """API速率限制错误"""

    def __init__(self, message: str, retry_after: int | None = None):
        self.retry_after = retry_after
        super().__init__(message, is_retryable=True)
