"""Subprocess runner for the external CLI.

Handles the subprocess lifecycle: spawn, capture, timeout, cancellation,
cleanup. Every call spawns at most one process and guarantees that the
process (and its process group) is gone by the time ``run`` returns.

Security Note: uses asyncio.create_subprocess_exec(), so arguments are
passed as a list and never interpolated into a shell command. Arguments are
additionally run through the sanitizer before launch.

Example:

    runner = ProcessRunner()
    token = CancellationToken()
    result = await runner.run(
        Invocation("gemini", ("generate", "--model", "gemini-2.0-flash"),
                   stdin=prompt, timeout_seconds=30),
        token,
    )
    if not result.success:
        print(result.error.format_for_user())
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
import time
from typing import TYPE_CHECKING, Any

from conduit.backends.base import ExecutionOutcome, ExecutionResult, Invocation
from conduit.backends.sanitizer import sanitize_arguments
from conduit.core.constants import GRACEFUL_TERMINATION_SECONDS, PROCESS_EXIT_TIMEOUT_SECONDS
from conduit.core.errors import ClassifiedError, ErrorClassifier, ErrorCode
from conduit.core.logging import get_logger

if TYPE_CHECKING:
    from conduit.execution.cancellation import CancellationToken

_logger = get_logger("process_runner")


class ProcessRunner:
    """Runs one external command per call with bounded runtime.

    Features:
    - Process group isolation (start_new_session=True)
    - Timeout and cancellation with graceful then forced termination
    - stdin payload piping
    - Cleanup on every exit path to prevent leaked processes
    - Never raises for process failures; errors come back classified
    """

    def __init__(
        self,
        classifier: ErrorClassifier | None = None,
        grace_period_seconds: float = GRACEFUL_TERMINATION_SECONDS,
        exit_timeout_seconds: float = PROCESS_EXIT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the runner.

        Args:
            classifier: Classifier for failed runs (default: one for "gemini").
            grace_period_seconds: Wait between SIGTERM and SIGKILL.
            exit_timeout_seconds: Wait for output pipes to drain after the
                process has been stopped.
        """
        if grace_period_seconds <= 0:
            raise ValueError("grace_period_seconds must be positive")
        self.classifier = classifier or ErrorClassifier()
        self.grace_period_seconds = grace_period_seconds
        self.exit_timeout_seconds = exit_timeout_seconds

    async def run(
        self,
        invocation: Invocation,
        cancel_token: CancellationToken | None = None,
    ) -> ExecutionResult:
        """Run the invocation to completion, timeout, or cancellation.

        Args:
            invocation: What to run.
            cancel_token: Optional token; when cancelled the process is
                stopped and an EXEC_ABORTED result is returned.

        Returns:
            ExecutionResult; ``error`` is set whenever ``success`` is False.
        """
        start_time = time.monotonic()

        if cancel_token is not None and cancel_token.cancelled:
            return ExecutionResult.failure(
                ClassifiedError.from_code(ErrorCode.EXEC_ABORTED),
                outcome="cancelled",
                attempts=1,
            )

        cmd = [invocation.program, *sanitize_arguments(invocation.args)]
        env = None
        if invocation.env:
            env = {**os.environ, **invocation.env}

        _logger.debug(
            "process.starting",
            command=invocation.program,
            args_count=len(cmd) - 1,
            has_stdin=invocation.stdin is not None,
            timeout_seconds=invocation.timeout_seconds,
        )

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=(
                    asyncio.subprocess.PIPE
                    if invocation.stdin is not None
                    else asyncio.subprocess.DEVNULL
                ),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=invocation.cwd,
                env=env,
                start_new_session=True,
            )
        except OSError as e:
            error = self.classifier.classify_exception(e)
            _logger.warning(
                "process.launch_failed",
                command=invocation.program,
                error=str(e),
                code=error.code.value,
            )
            return ExecutionResult(
                success=False,
                stderr=str(e),
                error=error,
                duration_seconds=time.monotonic() - start_time,
                outcome="launch_error",
            )

        stdin_bytes = invocation.stdin.encode("utf-8") if invocation.stdin is not None else None
        io_task = asyncio.ensure_future(process.communicate(stdin_bytes))
        cancel_task: asyncio.Future[None] | None = None
        if cancel_token is not None:
            cancel_task = asyncio.ensure_future(cancel_token.wait())

        try:
            waiters: set[asyncio.Future[Any]] = {io_task}
            if cancel_task is not None:
                waiters.add(cancel_task)
            done, _ = await asyncio.wait(
                waiters,
                timeout=invocation.timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )

            if io_task in done:
                stdout_bytes, stderr_bytes = io_task.result()
                # Leader exited; sweep any children it left in its group
                self._signal_group(process, signal.SIGKILL)
                return self._completed_result(
                    process, stdout_bytes, stderr_bytes, time.monotonic() - start_time
                )

            outcome: ExecutionOutcome = (
                "cancelled" if cancel_task is not None and cancel_task in done else "timeout"
            )
            return await self._stop_and_report(process, io_task, invocation, outcome, start_time)

        except asyncio.CancelledError:
            # Caller task cancelled: stop the process, then propagate
            await self._terminate_process(process)
            io_task.cancel()
            raise

        except Exception as e:
            duration = time.monotonic() - start_time
            if process.returncode is None:
                _logger.warning(
                    "process.killing_orphan",
                    pid=process.pid,
                    reason="exception",
                    error=str(e),
                )
                await self._kill_process_group(process)
            io_task.cancel()
            _logger.exception("process.exception", error=str(e), duration_seconds=duration)
            return ExecutionResult(
                success=False,
                stderr=str(e),
                error=self.classifier.classify_exception(e),
                duration_seconds=duration,
                outcome="error",
            )

        finally:
            if cancel_task is not None and not cancel_task.done():
                cancel_task.cancel()

    def _completed_result(
        self,
        process: asyncio.subprocess.Process,
        stdout_bytes: bytes,
        stderr_bytes: bytes,
        duration: float,
    ) -> ExecutionResult:
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        returncode = process.returncode

        _logger.debug(
            "process.completed",
            pid=process.pid,
            returncode=returncode,
            duration_seconds=round(duration, 3),
            stdout_bytes=len(stdout_bytes),
            stderr_bytes=len(stderr_bytes),
        )

        if returncode == 0:
            return ExecutionResult(
                success=True,
                stdout=stdout.strip(),
                stderr=stderr,
                exit_code=0,
                duration_seconds=duration,
            )

        combined = "\n".join(part for part in (stderr.strip(), stdout.strip()) if part)
        return ExecutionResult(
            success=False,
            stdout=stdout,
            stderr=stderr,
            exit_code=returncode,
            error=self.classifier.classify(combined, exit_code=returncode),
            duration_seconds=duration,
        )

    async def _stop_and_report(
        self,
        process: asyncio.subprocess.Process,
        io_task: asyncio.Future[tuple[bytes, bytes]],
        invocation: Invocation,
        outcome: ExecutionOutcome,
        start_time: float,
    ) -> ExecutionResult:
        signals_sent = await self._terminate_process(process)

        # Collect whatever output was produced before the process stopped
        stdout_bytes, stderr_bytes = b"", b""
        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                io_task, timeout=self.exit_timeout_seconds
            )
        except (TimeoutError, asyncio.CancelledError):
            io_task.cancel()
        except Exception as e:
            _logger.debug("process.output_lost", pid=process.pid, error=str(e))

        duration = time.monotonic() - start_time

        if outcome == "cancelled":
            _logger.info(
                "process.cancelled",
                pid=process.pid,
                duration_seconds=round(duration, 3),
                signals=list(signals_sent),
            )
            error = ClassifiedError.from_code(
                ErrorCode.EXEC_ABORTED,
                context={"command": invocation.program},
            )
        else:
            _logger.warning(
                "process.timeout",
                pid=process.pid,
                timeout_seconds=invocation.timeout_seconds,
                duration_seconds=round(duration, 3),
                signals=list(signals_sent),
            )
            error = ClassifiedError.from_code(
                ErrorCode.EXEC_TIMEOUT,
                message=f"CLI command timed out after {invocation.timeout_seconds:g}s",
                context={"command": invocation.program},
            )

        return ExecutionResult(
            success=False,
            stdout=stdout_bytes.decode("utf-8", errors="replace"),
            stderr=stderr_bytes.decode("utf-8", errors="replace"),
            exit_code=process.returncode,
            error=error,
            duration_seconds=duration,
            outcome=outcome,
            termination_signals=signals_sent,
        )

    async def _terminate_process(self, process: asyncio.subprocess.Process) -> tuple[str, ...]:
        """Gracefully terminate, then force kill the group if needed.

        Returns:
            Names of the signals sent, in order.
        """
        if process.returncode is not None:
            self._signal_group(process, signal.SIGKILL)
            return ()
        sent: list[str] = []
        try:
            os.killpg(process.pid, signal.SIGTERM)
            sent.append("SIGTERM")
        except ProcessLookupError:
            return ()
        except PermissionError:
            # Group already gone and its id reused; fall back to the leader
            process.terminate()
            sent.append("SIGTERM")
        try:
            await asyncio.wait_for(process.wait(), timeout=self.grace_period_seconds)
        except TimeoutError:
            await self._kill_process_group(process)
            sent.append("SIGKILL")
        else:
            # Leader exited; children may still hold the output pipes
            self._signal_group(process, signal.SIGKILL)
        return tuple(sent)

    @staticmethod
    def _signal_group(process: asyncio.subprocess.Process, sig: int) -> None:
        # start_new_session=True makes the child its own group leader, so the
        # group id equals its pid even after the leader has been reaped
        with contextlib.suppress(OSError):
            os.killpg(process.pid, sig)

    async def _kill_process_group(self, process: asyncio.subprocess.Process) -> None:
        """Kill the entire process group (process + all children)."""
        pid = process.pid
        if pid is None:
            return

        self._signal_group(process, signal.SIGKILL)

        with contextlib.suppress(ProcessLookupError):
            process.kill()

        with contextlib.suppress(Exception):
            await process.wait()
