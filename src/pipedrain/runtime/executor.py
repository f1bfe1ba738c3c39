"""Process executor with concurrent stdout/stderr draining.

pipedrain runtime module v0.1.0

This module provides:
- Launching a child process from an argument vector and optional envp list
- Binding a sink to each output stream before waiting, so the child never
  blocks on a full pipe buffer
- A wait for exit that survives spurious cancellation
- Explicit cancellation through an anyio.CancelScope
  (SIGTERM -> timeout -> SIGKILL)

Key design points:
- Sinks are attached immediately after spawn and before the wait begins
- The wait is shielded, so a retried wait never loses the exit status
- The exit status is returned once, after the child has terminated; sinks may
  still be draining at that point (use AsyncSink.join())
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from functools import partial

import anyio
from anyio.lowlevel import checkpoint

from ..config import get_config
from ..errors import LaunchError
from .environment import envp_to_mapping
from .sinks import AsyncSink, NullAsyncSink

__all__ = [
    "Executor",
    "run_command",
    "execute",
]

logger = logging.getLogger(__name__)

# How often a supplied cancel_scope is checked while waiting
CANCEL_POLL_INTERVAL = 0.05


async def _watch_cancel_scope(cancel_scope: anyio.CancelScope) -> None:
    while not cancel_scope.cancel_called:
        await asyncio.sleep(CANCEL_POLL_INTERVAL)


def _default_term_timeout() -> float:
    return get_config().term_timeout


def _default_kill_timeout() -> float:
    return get_config().kill_timeout


@dataclass
class Executor:
    """Runs external programs and returns their exit status.

    Example:
        executor = Executor()
        out = LoggingAsyncSink(prefix="[mysqldump] ")
        err = CollectingAsyncSink(max_bytes=64 * 1024)

        code = await executor.run(["mysqldump", "--all-databases"], None, out, err)
        await err.join()
        if code != 0:
            raise ExportFailed(err.text)
    """

    term_timeout: float = field(default_factory=_default_term_timeout)
    kill_timeout: float = field(default_factory=_default_kill_timeout)

    async def run(
        self,
        argv: Sequence[str],
        envp: Sequence[str] | None = None,
        out_sink: AsyncSink | None = None,
        err_sink: AsyncSink | None = None,
        *,
        cancel_scope: anyio.CancelScope | None = None,
    ) -> int:
        """Run a program and wait for it to exit.

        This method:
        1. Starts the program with stdin on /dev/null and stdout/stderr piped
        2. Binds out_sink to stdout and err_sink to stderr
        3. Waits for exit, retrying the wait if it is interrupted
        4. Returns the exit status

        When both sinks are omitted each stream gets its own NullAsyncSink.
        When only one is omitted, that stream is left undrained and a chatty
        child may block on it.

        Args:
            argv: Program and arguments (first element is the executable)
            envp: KEY=VALUE strings replacing the environment (None = inherit)
            out_sink: Sink for stdout
            err_sink: Sink for stderr
            cancel_scope: Scope whose cancellation terminates the child. Any
                other cancellation of the wait is ignored.

        Returns:
            The child's exit status. Negative values mean the child was
            killed by that signal number.

        Raises:
            ValueError: If argv is empty, envp is malformed, or a sink is
                already bound
            LaunchError: If the program cannot be started, or argv or envp
                contains a null byte
            asyncio.CancelledError: If cancel_scope was cancelled
        """
        argv = tuple(argv)
        if not argv:
            raise ValueError("argv must contain at least the program to run")
        env = envp_to_mapping(envp)

        if out_sink is None and err_sink is None:
            out_sink, err_sink = NullAsyncSink(), NullAsyncSink()
        self._check_sinks(out_sink, err_sink)

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            raise LaunchError(argv, e.strerror or str(e)) from e
        except ValueError as e:
            # e.g. an embedded null byte in argv or envp
            raise LaunchError(argv, str(e)) from e

        logger.debug(
            f"Started subprocess pid={process.pid} argv={argv[0]} "
            f"env={'inherited' if env is None else f'{len(env)} vars'}"
        )

        # Attach sinks before blocking on the child
        self._attach(process.stdout, out_sink, "stdout", process.pid)
        self._attach(process.stderr, err_sink, "stderr", process.pid)

        returncode = await self._wait_for_exit(process, cancel_scope)

        logger.debug(
            f"Subprocess completed pid={process.pid} returncode={returncode}"
        )
        return returncode

    def _check_sinks(self, out_sink: AsyncSink | None, err_sink: AsyncSink | None) -> None:
        """Reject sinks that cannot be bound, before anything is spawned."""
        if out_sink is not None and out_sink is err_sink:
            raise ValueError("stdout and stderr need separate sink instances")
        for sink in (out_sink, err_sink):
            if sink is not None and sink.is_bound:
                raise ValueError(
                    f"{type(sink).__name__} is already bound to {sink.stream_name}"
                )

    def _attach(
        self,
        stream: asyncio.StreamReader | None,
        sink: AsyncSink | None,
        name: str,
        pid: int,
    ) -> None:
        if stream is None:
            return
        if sink is None:
            logger.debug(f"No sink for {name} of pid={pid}, stream left undrained")
            return
        sink.process_stream(stream, name=name)

    async def _wait_for_exit(
        self,
        process: asyncio.subprocess.Process,
        cancel_scope: anyio.CancelScope | None,
    ) -> int:
        """Block until the child exits.

        The wait runs in a shielded anyio scope, so cancellation of any
        enclosing scope is not delivered here at all. A plain
        ``Task.cancel()`` still interrupts it once per call; that request is
        withdrawn and the wait retried against the same wait task.

        ``cancel_scope`` is watched by a separate task. Once it is cancelled
        the child is terminated and the scope's cancellation is let through.
        """
        wait_task = asyncio.ensure_future(process.wait())
        watcher = None
        if cancel_scope is not None:
            watcher = asyncio.ensure_future(_watch_cancel_scope(cancel_scope))
        pending = {wait_task} if watcher is None else {wait_task, watcher}

        try:
            while not wait_task.done():
                try:
                    with anyio.CancelScope(shield=True):
                        await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                except asyncio.CancelledError:
                    task = asyncio.current_task()
                    if task is not None:
                        task.uncancel()
                    logger.debug(
                        f"Wait for pid={process.pid} interrupted, retrying"
                    )
                    continue

                if watcher is not None and watcher.done():
                    break
        finally:
            if watcher is not None:
                watcher.cancel()

        if wait_task.done():
            return wait_task.result()

        logger.info(f"Cancelling subprocess pid={process.pid}")
        with anyio.CancelScope(shield=True):
            await self._terminate_process(process)
        wait_task.cancel()

        # Outside the shield the cancelled scope delivers its own cancellation
        await checkpoint()
        raise asyncio.CancelledError(f"cancel scope cancelled, pid={process.pid}")

    async def _terminate_process(
        self,
        process: asyncio.subprocess.Process,
    ) -> None:
        """Terminate subprocess gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM
        2. Wait up to term_timeout for graceful exit
        3. If still running, send SIGKILL
        4. Wait up to kill_timeout for forced exit

        Args:
            process: The subprocess to terminate
        """
        pid = process.pid
        if process.returncode is not None:
            logger.debug(f"Subprocess already exited pid={pid}")
            return

        try:
            # Step 1: Graceful termination
            process.terminate()

            # Step 2: Wait for graceful exit
            try:
                await asyncio.wait_for(process.wait(), timeout=self.term_timeout)
                logger.debug(
                    f"Subprocess terminated gracefully pid={pid} "
                    f"returncode={process.returncode}"
                )
                return
            except asyncio.TimeoutError:
                pass

            # Step 3: Force kill
            logger.debug(f"Force killing subprocess pid={pid}")
            process.kill()

            # Step 4: Wait for forced exit
            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
                logger.debug(
                    f"Subprocess killed pid={pid} "
                    f"returncode={process.returncode}"
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"Subprocess did not exit after kill pid={pid}"
                )

        except ProcessLookupError:
            # Process already exited
            logger.debug(f"Subprocess already exited pid={pid}")
        except OSError as e:
            logger.warning(f"Error terminating subprocess pid={pid}: {e}")


# Convenience functions for simple use cases
async def run_command(
    argv: Sequence[str],
    envp: Sequence[str] | None = None,
    out_sink: AsyncSink | None = None,
    err_sink: AsyncSink | None = None,
    *,
    wait_for_sinks: bool = False,
    cancel_scope: anyio.CancelScope | None = None,
) -> int:
    """Run a program with a default Executor.

    Args:
        argv: Program and arguments
        envp: KEY=VALUE strings replacing the environment (None = inherit)
        out_sink: Sink for stdout
        err_sink: Sink for stderr
        wait_for_sinks: Also wait until both sinks finished draining
        cancel_scope: Scope whose cancellation terminates the child

    Returns:
        The child's exit status
    """
    if out_sink is None and err_sink is None:
        out_sink, err_sink = NullAsyncSink(), NullAsyncSink()

    returncode = await Executor().run(
        argv, envp, out_sink, err_sink, cancel_scope=cancel_scope
    )

    if wait_for_sinks:
        for sink in (out_sink, err_sink):
            if sink is not None:
                await sink.join()

    return returncode


def execute(
    argv: Sequence[str],
    envp: Sequence[str] | None = None,
    out_sink: AsyncSink | None = None,
    err_sink: AsyncSink | None = None,
) -> int:
    """Blocking form of run_command for synchronous callers.

    Runs on a fresh event loop. The loop is closed on return, so both sinks
    are always joined before the exit status is returned.

    Returns:
        The child's exit status
    """
    return anyio.run(
        partial(run_command, argv, envp, out_sink, err_sink, wait_for_sinks=True)
    )
