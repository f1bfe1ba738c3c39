"""pipedrain 异常类。"""

from __future__ import annotations

from collections.abc import Sequence

__all__ = [
    "PipeDrainError",
    "LaunchError",
    "StreamDrainError",
]


class PipeDrainError(Exception):
    """pipedrain 基础异常。"""
    pass


class LaunchError(PipeDrainError):
    """子进程无法启动（程序不存在、无执行权限、资源耗尽等）。

    Attributes:
        argv: 启动时使用的参数列表
        reason: 失败原因
    """

    def __init__(self, argv: Sequence[str], reason: str) -> None:
        self.argv = tuple(argv)
        self.reason = reason
        program = self.argv[0] if self.argv else "<empty>"
        super().__init__(f"Failed to launch {program}: {reason}")


class StreamDrainError(PipeDrainError):
    """读取子进程输出流时的 I/O 错误。

    只用于日志记录，不会抛给 Executor 的调用方。

    Attributes:
        stream_name: 流名称（stdout/stderr）
    """

    def __init__(self, stream_name: str, message: str) -> None:
        self.stream_name = stream_name
        super().__init__(f"[{stream_name}] {message}")
