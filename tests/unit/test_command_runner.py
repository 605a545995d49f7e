"""
Unit tests for CommandRunner

Spawns the current interpreter or sh as stand-in scanner binaries.
"""
import sys
import time

import pytest

from titanscan.errors import AdapterExecutionError, AdapterOutputLimitExceeded, AdapterTimeout
from titanscan.executor import CommandRunner


def script(code):
    return [sys.executable, "-c", code]


@pytest.fixture
def runner():
    return CommandRunner(use_sudo=False)


class TestBuildArgv:

    def test_privileged_commands_use_non_interactive_sudo(self):
        runner = CommandRunner(use_sudo=True)
        assert runner.build_argv(["nmap", "-sV"], privileged=True) == ["sudo", "-n", "nmap", "-sV"]

    def test_unprivileged_commands_run_directly(self):
        runner = CommandRunner(use_sudo=True)
        assert runner.build_argv(["amass", "enum"]) == ["amass", "enum"]

    def test_sudo_disabled(self):
        runner = CommandRunner(use_sudo=False)
        assert runner.build_argv(["nikto"], privileged=True) == ["nikto"]


class TestRun:

    @pytest.mark.asyncio
    async def test_returns_stdout(self, runner):
        output = await runner.run(
            script("print('80/tcp open http')"), timeout=10, max_output_bytes=1024
        )
        assert output.strip() == "80/tcp open http"

    @pytest.mark.asyncio
    async def test_falls_back_to_stderr(self, runner):
        output = await runner.run(
            script("import sys; sys.stderr.write('banner on stderr')"),
            timeout=10, max_output_bytes=1024,
        )
        assert output == "banner on stderr"

    @pytest.mark.asyncio
    async def test_stdin_delivery(self, runner):
        output = await runner.run(
            script("import sys; print(sys.stdin.read().strip().upper())"),
            timeout=10, max_output_bytes=1024, stdin_data="example.com\n",
        )
        assert output.strip() == "EXAMPLE.COM"

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, runner):
        with pytest.raises(AdapterTimeout, match="timed out after 0.5 seconds"):
            await runner.run(
                script("import time; time.sleep(30)"), timeout=0.5, max_output_bytes=1024
            )

    @pytest.mark.asyncio
    async def test_output_cap(self, runner):
        with pytest.raises(AdapterOutputLimitExceeded):
            await runner.run(
                script("import sys; sys.stdout.write('A' * 200000)"),
                timeout=10, max_output_bytes=1000,
            )

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, runner):
        with pytest.raises(AdapterExecutionError, match="exited with status 3: boom"):
            await runner.run(
                script("import sys; sys.stderr.write('boom'); sys.exit(3)"),
                timeout=10, max_output_bytes=1024,
            )

    @pytest.mark.asyncio
    async def test_missing_binary(self, runner):
        with pytest.raises(AdapterExecutionError, match="not installed"):
            await runner.run(
                ["titanscan-no-such-binary"], timeout=10, max_output_bytes=1024
            )

    @pytest.mark.asyncio
    async def test_timeout_kills_background_children(self, runner):
        started = time.monotonic()

        with pytest.raises(AdapterTimeout):
            await runner.run(["sh", "-c", "sleep 30 & wait"], timeout=1, max_output_bytes=1024)

        assert time.monotonic() - started < 5

    @pytest.mark.asyncio
    async def test_output_cap_kills_background_children(self, runner):
        started = time.monotonic()

        with pytest.raises(AdapterOutputLimitExceeded):
            await runner.run(
                ["sh", "-c", "sleep 30 & head -c 5000 /dev/zero; wait"],
                timeout=20, max_output_bytes=1000,
            )

        assert time.monotonic() - started < 5
