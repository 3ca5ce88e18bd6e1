"""
通用工具模块
包含日志配置、原子文件操作、JSON读取以及稳定ID生成等实用功能
"""
import os
import json
import math
import hashlib
import tempfile
import shutil
from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging
from datetime import datetime

# 日志配置函数
_logging_configured = False


def setup_logging(level=None, log_file='story_analysis.log', log_dir=None):
    """统一配置日志系统，避免重复配置

    Args:
        level: 日志级别，默认从环境变量 LOG_LEVEL 读取，若未设置则使用 INFO
        log_file: 日志文件名，为 None 时只输出到控制台
        log_dir: 日志目录（不存在时自动创建）
    """
    global _logging_configured
    if _logging_configured:
        return

    # 支持通过环境变量控制日志级别
    if level is None:
        level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
        level = getattr(logging, level_str, logging.INFO)

    handlers = [logging.StreamHandler()]
    if log_file:
        if log_dir:
            Path(log_dir).mkdir(parents=True, exist_ok=True)
            log_file = os.path.join(log_dir, log_file)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True  # 强制重新配置，即使已经配置过
    )
    _logging_configured = True


logger = logging.getLogger(__name__)


def _backup_file(file_path: Path) -> Optional[Path]:
    """把已有文件复制为带时间戳的 .bak，失败时只记录警告"""
    if not file_path.exists():
        return None
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    backup_path = file_path.with_name(f"{file_path.stem}.{stamp}{file_path.suffix}.bak")
    try:
        shutil.copy2(file_path, backup_path)
    except OSError as e:
        logger.warning(f"创建备份文件失败: {e}")
        return None
    logger.debug(f"创建备份文件: {backup_path}")
    return backup_path


def atomic_write_json(file_path: Union[str, Path],
                      data: Dict[str, Any],
                      backup: bool = False,
                      indent: int = 2) -> None:
    """原子性写入JSON文件

    先写入同目录下的临时文件，再用 os.replace 覆盖目标，
    读者不会看到写了一半的分析结果。

    Args:
        file_path: 目标文件路径
        data: 要写入的数据
        backup: 覆盖前是否保留旧文件的备份
        indent: JSON缩进

    Raises:
        OSError: 文件操作失败
        TypeError: 数据无法序列化
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    if backup:
        _backup_file(file_path)

    payload = json.dumps(data, ensure_ascii=False, indent=indent)
    temp_fd, temp_path = tempfile.mkstemp(prefix=f".{file_path.name}.", suffix=".tmp", dir=file_path.parent)
    try:
        with os.fdopen(temp_fd, 'w', encoding='utf-8') as f:
            f.write(payload)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, file_path)
    except OSError as e:
        Path(temp_path).unlink(missing_ok=True)
        logger.error(f"写入文件失败: {file_path}, 错误: {e}")
        raise
    logger.debug(f"原子性写入成功: {file_path}")


def safe_read_json(file_path: Union[str, Path],
                   default: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """安全读取JSON文件

    文件不存在时返回默认值；文件损坏时记录错误并抛出 ValueError，
    不把损坏的输入当作空数据处理。

    Args:
        file_path: 文件路径
        default: 文件不存在时的默认值

    Returns:
        Dict: 解析后的JSON数据
    """
    file_path = Path(file_path)

    if not file_path.exists():
        return default or {}

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"JSON文件损坏: {file_path}, 错误: {e}")
        raise ValueError(f"Invalid JSON in {file_path}: {e}") from e


def truncate_text(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """截断文本

    Args:
        text: 原始文本
        max_length: 最大长度
        suffix: 截断后的后缀

    Returns:
        str: 截断后的文本
    """
    if len(text) <= max_length:
        return text
    return text[:max_length-len(suffix)] + suffix


def stable_id(prefix: str, *parts: Any) -> str:
    """根据实体ID生成稳定的标识符

    与数组下标或插入顺序无关，同一组实体总是得到同一个ID。
    """
    content = "\x1f".join(str(part) for part in parts)
    digest = hashlib.sha1(content.encode("utf-8")).hexdigest()[:12]
    return f"{prefix}-{digest}"


def round_half_up(value: float) -> int:
    """四舍五入到整数（0.5 向上取整，不使用银行家舍入）"""
    return int(math.floor(value + 0.5))


def clamp(value: float, lower: float, upper: float) -> float:
    """将数值限制在 [lower, upper] 区间"""
    return max(lower, min(upper, value))
