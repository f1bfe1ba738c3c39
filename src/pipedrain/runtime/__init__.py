"""Runtime module for subprocess execution and stream draining.

This module launches child processes and drains their stdout/stderr on
independent tasks so the child can never stall on a full pipe buffer.
"""

from __future__ import annotations

from .environment import current_environment_as_list, envp_to_mapping, mapping_to_envp
from .executor import Executor, execute, run_command
from .sinks import AsyncSink, CollectingAsyncSink, LoggingAsyncSink, NullAsyncSink

__all__ = [
    "AsyncSink",
    "CollectingAsyncSink",
    "Executor",
    "LoggingAsyncSink",
    "NullAsyncSink",
    "current_environment_as_list",
    "envp_to_mapping",
    "execute",
    "mapping_to_envp",
    "run_command",
]
