"""ProcessRunner 测试（使用真实子进程）"""

from __future__ import annotations

import sys

import pytest

from dotdeploy.context.session import BufferSink
from dotdeploy.runner import ProcessRunner


@pytest.mark.asyncio
async def test_run_streams_output_to_sink() -> None:
    sink = BufferSink()
    result = await ProcessRunner().run(
        sys.executable, ["-c", "print('hello'); import sys; sys.stderr.write('oops')"], sink=sink
    )
    assert result.success is True
    assert "hello" in result.stdout
    assert "oops" in result.stderr
    assert "hello" in sink.text
    assert "oops" in sink.text


@pytest.mark.asyncio
async def test_run_nonzero_exit() -> None:
    result = await ProcessRunner().run(sys.executable, ["-c", "raise SystemExit(3)"])
    assert result.success is False
    assert result.exit_code == 3
    assert result.error is None


@pytest.mark.asyncio
async def test_run_env_overlay() -> None:
    result = await ProcessRunner().run(
        sys.executable,
        ["-c", "import os; print(os.environ['DOTDEPLOY_TEST'])"],
        env={"DOTDEPLOY_TEST": "value"},
    )
    assert result.stdout.strip() == "value"


@pytest.mark.asyncio
async def test_run_missing_program() -> None:
    result = await ProcessRunner().run("definitely-not-a-real-program-xyz", [])
    assert result.success is False
    assert result.exit_code == -1
    assert result.error is not None
