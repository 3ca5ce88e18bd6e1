"""
Pytest 配置文件
为测试提供隔离的环境变量与配置单例
"""
import pytest

import config

ANALYSIS_ENV_VARS = (
    "ANALYSIS_PARALLEL",
    "ANALYSIS_MAX_WORKERS",
    "ANALYSIS_WEIGHTS_FILE",
    "INSIGHTS_ENABLED",
    "MAX_RETRY",
    "USE_PROXY",
    "INSIGHT_PROMPT_TEMPLATE",
)


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """为所有测试设置必要的环境变量"""
    monkeypatch.setenv('API_PROVIDER', 'openai')

    # 测试使用 mock，不需要真实的 key
    monkeypatch.setenv('OPENAI_API_KEY', 'test-key-for-ci')
    monkeypatch.setenv('OPENAI_MODEL', 'gpt-4o-mini')
    monkeypatch.setenv('GEMINI_API_KEY', 'test-gemini-key')

    for name in ANALYSIS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def fresh_config():
    """每个测试前后清空配置单例，避免环境变量修改相互影响"""
    config.reset_config()
    yield
    config.reset_config()
