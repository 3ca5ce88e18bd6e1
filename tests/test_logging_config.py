"""测试日志配置功能"""

import logging

import pytest

import utils
from utils import setup_logging


@pytest.fixture(autouse=True)
def reset_logging_state():
    """每次测试前重置日志配置状态"""
    utils._logging_configured = False
    root = logging.getLogger()
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)
    yield
    # 显式关闭处理器以释放文件句柄
    utils._logging_configured = False
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)


def test_log_directory_created(tmp_path):
    """测试日志目录自动创建"""
    log_dir = tmp_path / "sub_logs"
    setup_logging(log_dir=str(log_dir))
    assert log_dir.is_dir()


def test_log_file_has_content(tmp_path):
    """测试日志文件可以正确写入内容"""
    setup_logging(log_dir=str(tmp_path))

    logging.getLogger("test_module").info("Test log message")

    content = (tmp_path / "story_analysis.log").read_text(encoding="utf-8")
    assert "Test log message" in content
    assert "test_module" in content
    assert "INFO" in content


def test_console_only(tmp_path):
    """log_file 为 None 时只输出到控制台"""
    setup_logging(log_file=None)
    root_logger = logging.getLogger()
    assert not any(isinstance(h, logging.FileHandler) for h in root_logger.handlers)
    assert any(isinstance(h, logging.StreamHandler) for h in root_logger.handlers)


def test_log_level_from_env(tmp_path, monkeypatch):
    """测试从环境变量读取日志级别"""
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    setup_logging(log_dir=str(tmp_path))
    assert logging.getLogger().level == logging.DEBUG


def test_invalid_level_falls_back_to_info(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "CHATTY")
    setup_logging(log_dir=str(tmp_path))
    assert logging.getLogger().level == logging.INFO


def test_explicit_level_wins(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    setup_logging(level=logging.WARNING, log_dir=str(tmp_path))
    assert logging.getLogger().level == logging.WARNING


def test_logging_idempotent(tmp_path):
    """测试多次调用 setup_logging 不会重复添加处理器"""
    setup_logging(log_dir=str(tmp_path))
    root_logger = logging.getLogger()
    handler_count_before = len(root_logger.handlers)

    setup_logging(log_dir=str(tmp_path))
    assert len(root_logger.handlers) == handler_count_before
