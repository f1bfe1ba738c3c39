"""pipedrain 环境变量配置管理。

环境变量:
    PIPEDRAIN_TERM_TIMEOUT: 取消时发送 SIGTERM 后的等待时间（秒）
        - 默认 2.0，限制在 0.1-60 范围

    PIPEDRAIN_KILL_TIMEOUT: 发送 SIGKILL 后的等待时间（秒）
        - 默认 1.0，限制在 0.1-60 范围

    PIPEDRAIN_READ_CHUNK_SIZE: sink 每次读取的字节数
        - 默认 4096，限制在 1-1048576 范围

    PIPEDRAIN_MAX_LINE_BYTES: 日志 sink 单行最大字节数，超出部分按多行记录
        - 默认 1048576，限制在 1-67108864 范围

    PIPEDRAIN_LOG_DEBUG: 日志调试模式
        - true/1/yes/on = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_TERM_TIMEOUT = 2.0
DEFAULT_KILL_TIMEOUT = 1.0
DEFAULT_READ_CHUNK_SIZE = 4096
MAX_READ_CHUNK_SIZE = 1024 * 1024
DEFAULT_MAX_LINE_BYTES = 1024 * 1024
MAX_MAX_LINE_BYTES = 64 * 1024 * 1024


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_timeout(value: str | None, default: float) -> float:
    """解析超时时间环境变量。"""
    if not value:
        return default
    try:
        timeout = float(value)
    except ValueError:
        return default
    return max(0.1, min(timeout, 60.0))  # 限制在 0.1-60 秒范围


def _parse_size(value: str | None, default: int, maximum: int) -> int:
    """解析字节数环境变量。"""
    if not value:
        return default
    try:
        size = int(value)
    except ValueError:
        return default
    return max(1, min(size, maximum))


@dataclass
class Config:
    """pipedrain 配置。

    Attributes:
        term_timeout: SIGTERM 后等待退出的时间（秒）
        kill_timeout: SIGKILL 后等待退出的时间（秒）
        read_chunk_size: sink 单次读取字节数
        max_line_bytes: 日志 sink 单行最大字节数
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(term_timeout={self.term_timeout}, "
            f"kill_timeout={self.kill_timeout}, "
            f"read_chunk_size={self.read_chunk_size}, "
            f"max_line_bytes={self.max_line_bytes}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "pipedrain"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"pipedrain_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("PIPEDRAIN_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        term_timeout=_parse_timeout(
            os.environ.get("PIPEDRAIN_TERM_TIMEOUT"), DEFAULT_TERM_TIMEOUT
        ),
        kill_timeout=_parse_timeout(
            os.environ.get("PIPEDRAIN_KILL_TIMEOUT"), DEFAULT_KILL_TIMEOUT
        ),
        read_chunk_size=_parse_size(
            os.environ.get("PIPEDRAIN_READ_CHUNK_SIZE"),
            DEFAULT_READ_CHUNK_SIZE,
            MAX_READ_CHUNK_SIZE,
        ),
        max_line_bytes=_parse_size(
            os.environ.get("PIPEDRAIN_MAX_LINE_BYTES"),
            DEFAULT_MAX_LINE_BYTES,
            MAX_MAX_LINE_BYTES,
        ),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
