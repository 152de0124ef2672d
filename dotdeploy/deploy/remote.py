"""上传完成后在服务器上执行启动命令"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Optional, Protocol

from dotdeploy.deploy.session import DataCallback, SshShell
from dotdeploy.deploy.template import CommandVariables, expand_command
from dotdeploy.types import (
    ConfigurationError,
    ConnectionProfile,
    ExecResult,
    OutputSink,
)

logger = logging.getLogger(__name__)


class CommandShell(Protocol):
    async def connect(self, profile: ConnectionProfile) -> None: ...
    async def exec(self, command: str, on_data: DataCallback) -> int: ...
    async def close(self) -> None: ...


ShellFactory = Callable[[], CommandShell]


class RemoteExecutor:
    """展开命令模板，在伪终端中执行并实时输出"""

    def __init__(
        self,
        sink: OutputSink,
        shell_factory: Optional[ShellFactory] = None,
        connect_timeout: int = 10,
        command_timeout: float = 600,
    ) -> None:
        self._sink = sink
        self._shell_factory: ShellFactory = shell_factory or (
            lambda: SshShell(connect_timeout)
        )
        self._command_timeout = command_timeout

    async def run(
        self,
        profile: ConnectionProfile,
        template: str,
        variables: CommandVariables,
    ) -> ExecResult:
        """执行上传后命令

        Returns:
            ExecResult；退出码为 0 才算成功
        """
        command = expand_command(template, variables)

        try:
            profile.validate_for_connect()
        except ConfigurationError as e:
            return ExecResult(success=False, command=command, error=str(e))

        self._sink.append_line(f"[Deploy] Executing: {command}")
        self._sink.append_line()

        shell = self._shell_factory()
        try:
            await shell.connect(profile)
            exit_code = await asyncio.wait_for(
                shell.exec(command, self._sink.append),
                timeout=self._command_timeout,
            )
        except asyncio.TimeoutError:
            error = f"Command timed out after {self._command_timeout}s"
            self._sink.append_line(f"[Deploy] ✗ {error}")
            return ExecResult(success=False, command=command, error=error)
        except Exception as e:
            logger.warning("remote command failed: %s", e)
            self._sink.append_line(f"[Deploy] ✗ Connection error: {e}")
            return ExecResult(success=False, command=command, error=str(e))
        finally:
            await self._close(shell)

        self._sink.append_line()
        if exit_code == 0:
            self._sink.append_line("[Deploy] ✓ Command executed successfully")
            return ExecResult(success=True, command=command, exit_code=0)

        self._sink.append_line(f"[Deploy] ✗ Command exited with code {exit_code}")
        return ExecResult(
            success=False,
            command=command,
            exit_code=exit_code,
            error=f"Exit code: {exit_code}",
        )

    async def _close(self, shell: CommandShell) -> None:
        try:
            await shell.close()
        except Exception as e:
            logger.warning("failed to close ssh session: %s", e)
