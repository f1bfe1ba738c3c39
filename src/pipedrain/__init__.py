"""pipedrain - 运行外部命令并并发排空其 stdout/stderr。

环境变量:
    PIPEDRAIN_TERM_TIMEOUT: SIGTERM 后等待时间 (默认 2.0s)
    PIPEDRAIN_KILL_TIMEOUT: SIGKILL 后等待时间 (默认 1.0s)
    PIPEDRAIN_READ_CHUNK_SIZE: sink 单次读取字节数 (默认 4096)
    PIPEDRAIN_LOG_DEBUG: 日志调试模式 (默认 false)

用法:
    python -m pipedrain -- mysqldump --all-databases
"""

__version__ = "0.1.0"

from .errors import LaunchError, PipeDrainError, StreamDrainError
from .runtime import (
    AsyncSink,
    CollectingAsyncSink,
    Executor,
    LoggingAsyncSink,
    NullAsyncSink,
    current_environment_as_list,
    execute,
    run_command,
)

__all__ = [
    "__version__",
    "AsyncSink",
    "CollectingAsyncSink",
    "Executor",
    "LaunchError",
    "LoggingAsyncSink",
    "NullAsyncSink",
    "PipeDrainError",
    "StreamDrainError",
    "current_environment_as_list",
    "execute",
    "run_command",
]
