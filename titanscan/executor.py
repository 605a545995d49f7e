"""
Command execution sink for local tool adapters.

Runs one external command without a shell, enforcing a wall-clock timeout
and an output-capture cap. The process group is killed when either limit is hit.
"""
import asyncio
import logging
import os
import signal
from typing import List, Optional, Sequence, Tuple

from .errors import AdapterExecutionError, AdapterOutputLimitExceeded, AdapterTimeout

logger = logging.getLogger(__name__)

READ_CHUNK = 64 * 1024
KILL_GRACE_SECONDS = 3


class _OutputBudget:
    def __init__(self, limit: int):
        self.limit = limit
        self.used = 0

    def consume(self, size: int):
        self.used += size
        if self.used > self.limit:
            raise AdapterOutputLimitExceeded(
                f"Output exceeded the {self.limit} byte capture limit"
            )


class CommandRunner:
    """
    Spawns local scanner processes.

    Args:
        use_sudo: Prefix privileged commands with ``sudo -n`` (non-interactive)
    """

    def __init__(self, use_sudo: bool = True):
        self.use_sudo = use_sudo

    def build_argv(self, argv: Sequence[str], privileged: bool = False) -> List[str]:
        if privileged and self.use_sudo:
            return ["sudo", "-n", *argv]
        return list(argv)

    async def run(
        self,
        argv: Sequence[str],
        *,
        timeout: float,
        max_output_bytes: int,
        stdin_data: Optional[str] = None,
        privileged: bool = False,
    ) -> str:
        """
        Execute a command and return its stdout, falling back to stderr.

        Raises:
            AdapterTimeout: The process ran longer than ``timeout`` seconds
            AdapterOutputLimitExceeded: Combined output exceeded ``max_output_bytes``
            AdapterExecutionError: Binary missing or non-zero exit status
        """
        cmd = self.build_argv(argv, privileged)
        logger.info("Executing %s", " ".join(cmd))

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE if stdin_data is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except FileNotFoundError:
            raise AdapterExecutionError(f"{cmd[0]} is not installed on this worker")
        except PermissionError as e:
            raise AdapterExecutionError(f"Cannot execute {cmd[0]}: {e}")

        try:
            returncode, stdout, stderr = await asyncio.wait_for(
                self._communicate(process, stdin_data, _OutputBudget(max_output_bytes)),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            await self._kill(process)
            raise AdapterTimeout(f"{argv[0]} timed out after {timeout:g} seconds")
        except AdapterOutputLimitExceeded:
            await self._kill(process)
            raise

        if returncode != 0:
            tail = (stderr or stdout).strip()[-500:]
            raise AdapterExecutionError(
                f"{argv[0]} exited with status {returncode}" + (f": {tail}" if tail else "")
            )

        return stdout or stderr

    async def _communicate(
        self, process, stdin_data: Optional[str], budget: _OutputBudget
    ) -> Tuple[int, str, str]:
        if stdin_data is not None:
            process.stdin.write(stdin_data.encode())
            await process.stdin.drain()
            process.stdin.close()

        stdout, stderr = await asyncio.gather(
            self._read_stream(process.stdout, budget),
            self._read_stream(process.stderr, budget),
        )
        returncode = await process.wait()
        return returncode, stdout, stderr

    @staticmethod
    async def _read_stream(stream, budget: _OutputBudget) -> str:
        chunks = []
        while True:
            chunk = await stream.read(READ_CHUNK)
            if not chunk:
                break
            budget.consume(len(chunk))
            chunks.append(chunk)
        return b"".join(chunks).decode("utf-8", "replace")

    @staticmethod
    def _signal_group(process, sig):
        try:
            os.killpg(process.pid, sig)
        except ProcessLookupError:
            pass
        except PermissionError as e:
            logger.warning("Cannot signal process group %s: %s", process.pid, e)

    async def _kill(self, process):
        """
        Terminate the whole process group, escalating to SIGKILL.

        The group holds every child (the command under ``sudo``, the helpers
        testssl.sh spawns); the output pipes stay open until all of them exit.
        """
        for sig in (signal.SIGTERM, signal.SIGKILL):
            self._signal_group(process, sig)
            try:
                await asyncio.wait_for(process.wait(), timeout=KILL_GRACE_SECONDS)
                return
            except asyncio.TimeoutError:
                logger.warning("Process %s ignored %s", process.pid, sig.name)
        logger.error("Process %s still running after SIGKILL, abandoning it", process.pid)
