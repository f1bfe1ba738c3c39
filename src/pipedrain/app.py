"""pipedrain 命令行应用。

运行一个外部程序，把它的 stdout/stderr 逐行写入日志，并以子进程的退出码退出。

用法:
    python -m pipedrain [--quiet] [--clear-env] [--env KEY=VALUE ...] -- PROGRAM [ARGS...]
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

from .config import Config, get_config
from .errors import LaunchError
from .runtime import (
    AsyncSink,
    LoggingAsyncSink,
    NullAsyncSink,
    current_environment_as_list,
    envp_to_mapping,
    execute,
    mapping_to_envp,
)

__all__ = ["main", "configure_logging", "build_envp"]

logger = logging.getLogger(__name__)

# 无法启动程序时的退出码（与 shell 的 "command not found" 一致）
EXIT_LAUNCH_FAILED = 127


def configure_logging(config: Config) -> None:
    """配置日志输出。

    - LOG_DEBUG 模式：DEBUG 级别输出到临时文件
    - 默认模式：INFO 级别输出到 stderr
    """
    log_handlers: list[logging.Handler] = []
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(formatter)
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    # 只对 pipedrain 命名空间启用详细日志
    logging.getLogger("pipedrain").setLevel(log_level)


def build_envp(overrides: Sequence[str], clear: bool = False) -> list[str] | None:
    """构建子进程的环境变量列表。

    Args:
        overrides: KEY=VALUE 形式的覆盖项，按 key 覆盖基础环境
        clear: 为 True 时从空环境开始，否则从当前进程环境开始

    Returns:
        KEY=VALUE 列表（按 key 排序）；未指定任何覆盖且不清空时返回 None（继承当前环境）

    Raises:
        ValueError: 覆盖项格式错误
    """
    if not overrides and not clear:
        return None

    base = [] if clear else (current_environment_as_list() or [])
    # 后出现的 key 覆盖先出现的
    return mapping_to_envp(envp_to_mapping([*base, *overrides]))


def _exit_status(returncode: int) -> int:
    """把子进程退出码转换为本进程的退出码（被信号杀死时为 128 + 信号）。"""
    if returncode < 0:
        return 128 - returncode
    return returncode


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pipedrain",
        description="Run a program while draining its stdout/stderr into the log",
    )
    parser.add_argument("--quiet", action="store_true", help="Discard program output")
    parser.add_argument(
        "--env",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Set an environment variable for the program (repeatable)",
    )
    parser.add_argument(
        "--clear-env",
        action="store_true",
        help="Start the program with an empty environment",
    )
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Program and arguments")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """主入口点。

    Returns:
        子进程的退出码；无法启动时为 127
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        parser.error("a program to run is required")

    try:
        envp = build_envp(args.env, clear=args.clear_env)
    except ValueError as e:
        parser.error(str(e))

    configure_logging(get_config())

    out_sink: AsyncSink
    err_sink: AsyncSink
    if args.quiet:
        out_sink, err_sink = NullAsyncSink(), NullAsyncSink()
    else:
        program = command[0]
        out_sink = LoggingAsyncSink(logger, logging.INFO, prefix=f"[{program}] ")
        err_sink = LoggingAsyncSink(logger, logging.WARNING, prefix=f"[{program}] ")

    logger.info(f"Executing: {' '.join(command)}")
    try:
        returncode = execute(command, envp, out_sink, err_sink)
    except LaunchError as e:
        logger.error(str(e))
        return EXIT_LAUNCH_FAILED

    if returncode != 0:
        logger.warning(f"{command[0]} exited with code {returncode}")
    return _exit_status(returncode)


if __name__ == "__main__":
    sys.exit(main())
