"""子进程执行 - 输出实时转发到输出通道"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Mapping
from typing import Optional

from dotdeploy.types import OutputSink, ProcessResult

logger = logging.getLogger(__name__)

_READ_CHUNK = 4096


class ProcessRunner:
    """外部命令执行器

    dotnet publish / upx / xwin / brew 等都通过这里启动。
    stdout 和 stderr 同时读取并按到达顺序追加到输出通道。
    """

    async def run(
        self,
        program: str,
        args: list[str],
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        sink: Optional[OutputSink] = None,
    ) -> ProcessResult:
        """执行命令并等待退出

        Args:
            program: 可执行文件
            args: 参数列表
            cwd: 工作目录
            env: 追加到当前进程环境变量之上的覆盖项
            sink: 输出通道，None 时只收集不转发

        Returns:
            ProcessResult；进程无法启动时 exit_code=-1 且 error 非空
        """
        process_env = dict(os.environ)
        if env:
            process_env.update(env)

        logger.debug("spawn %s %s (cwd=%s)", program, " ".join(args), cwd)
        try:
            process = await asyncio.create_subprocess_exec(
                program,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL,
                cwd=cwd,
                env=process_env,
            )
        except OSError as e:
            logger.debug("spawn failed: %s", e)
            return ProcessResult(exit_code=-1, error=f"{program}: {e}")

        stdout_parts: list[str] = []
        stderr_parts: list[str] = []
        await asyncio.gather(
            _pump(process.stdout, stdout_parts, sink),
            _pump(process.stderr, stderr_parts, sink),
        )
        exit_code = await process.wait()

        return ProcessResult(
            exit_code=exit_code,
            stdout="".join(stdout_parts),
            stderr="".join(stderr_parts),
        )


async def _pump(
    stream: Optional[asyncio.StreamReader],
    parts: list[str],
    sink: Optional[OutputSink],
) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        text = chunk.decode("utf-8", errors="replace")
        parts.append(text)
        if sink is not None:
            sink.append(text)
