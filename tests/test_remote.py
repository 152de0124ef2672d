"""上传后命令执行测试"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import pytest

from dotdeploy.context.session import BufferSink
from dotdeploy.deploy.remote import RemoteExecutor
from dotdeploy.deploy.session import connect_options
from dotdeploy.deploy.template import CommandVariables, expand_command
from dotdeploy.types import ConnectionProfile, RemoteLayout


class FakeShell:
    def __init__(
        self,
        exit_code: int = 0,
        output: tuple[str, ...] = (),
        connect_error: Optional[Exception] = None,
        delay: float = 0,
    ) -> None:
        self.exit_code = exit_code
        self.output = output
        self.connect_error = connect_error
        self.delay = delay
        self.commands: list[str] = []
        self.closed = 0

    async def connect(self, profile: ConnectionProfile) -> None:
        if self.connect_error:
            raise self.connect_error

    async def exec(self, command: str, on_data) -> int:
        self.commands.append(command)
        for chunk in self.output:
            on_data(chunk)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.exit_code

    async def close(self) -> None:
        self.closed += 1


@pytest.fixture
def profile(tmp_path: Path) -> ConnectionProfile:
    return ConnectionProfile(host="example.com", auth_type="password", password="secret")


@pytest.fixture
def variables() -> CommandVariables:
    return CommandVariables.from_layout(RemoteLayout(remote_path="/opt/apps", assembly_name="MyApp"))


# ------------------------------------------------------------------
# 模板展开
# ------------------------------------------------------------------


def test_variables_from_layout(variables: CommandVariables) -> None:
    assert variables.app_name == "MyApp"
    assert variables.remote_path == "/opt/apps/MyApp"
    assert variables.app_path == "/opt/apps/MyApp/MyApp"


def test_expand_default_command(variables: CommandVariables) -> None:
    assert expand_command("", variables) == "sudo /opt/apps/MyApp/MyApp start"


def test_expand_all_placeholders(variables: CommandVariables) -> None:
    command = expand_command("cd {remote_path} && {app_path} --name {app_name}", variables)
    assert command == "cd /opt/apps/MyApp && /opt/apps/MyApp/MyApp --name MyApp"


def test_unknown_placeholder_left_verbatim(variables: CommandVariables) -> None:
    command = expand_command("systemctl restart {service} # {app_name}", variables)
    assert command == "systemctl restart {service} # MyApp"


# ------------------------------------------------------------------
# RemoteExecutor
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_run_success_streams_output(profile: ConnectionProfile, variables: CommandVariables) -> None:
    sink = BufferSink()
    shell = FakeShell(output=("Starting MyApp...\r\n", "started\r\n"))
    executor = RemoteExecutor(sink, shell_factory=lambda: shell)

    result = await executor.run(profile, "{app_path} start", variables)

    assert result.success is True
    assert result.exit_code == 0
    assert shell.commands == ["/opt/apps/MyApp/MyApp start"]
    assert "Starting MyApp..." in sink.text
    assert "started" in sink.text
    assert shell.closed == 1


@pytest.mark.asyncio
async def test_run_nonzero_exit(profile: ConnectionProfile, variables: CommandVariables) -> None:
    shell = FakeShell(exit_code=127)
    executor = RemoteExecutor(BufferSink(), shell_factory=lambda: shell)

    result = await executor.run(profile, "missing-binary", variables)

    assert result.success is False
    assert result.exit_code == 127
    assert result.error == "Exit code: 127"


@pytest.mark.asyncio
async def test_connection_error_short_circuits(
    profile: ConnectionProfile, variables: CommandVariables
) -> None:
    shell = FakeShell(connect_error=OSError("Permission denied"))
    executor = RemoteExecutor(BufferSink(), shell_factory=lambda: shell)

    result = await executor.run(profile, "{app_path}", variables)

    assert result.success is False
    assert "Permission denied" in (result.error or "")
    assert shell.commands == []
    assert shell.closed == 1


@pytest.mark.asyncio
async def test_invalid_profile_does_not_connect(variables: CommandVariables) -> None:
    created: list[FakeShell] = []

    def factory() -> FakeShell:
        shell = FakeShell()
        created.append(shell)
        return shell

    executor = RemoteExecutor(BufferSink(), shell_factory=factory)
    result = await executor.run(ConnectionProfile(host=""), "{app_path}", variables)

    assert result.success is False
    assert result.error == "Missing host"
    assert created == []


@pytest.mark.asyncio
async def test_command_timeout(profile: ConnectionProfile, variables: CommandVariables) -> None:
    shell = FakeShell(delay=1)
    executor = RemoteExecutor(BufferSink(), shell_factory=lambda: shell, command_timeout=0.05)

    result = await executor.run(profile, "sleep 100", variables)

    assert result.success is False
    assert "timed out" in (result.error or "")
    assert shell.closed == 1


# ------------------------------------------------------------------
# asyncssh 连接参数
# ------------------------------------------------------------------


def test_connect_options_password(profile: ConnectionProfile) -> None:
    options = connect_options(profile, 10)
    assert options["host"] == "example.com"
    assert options["password"] == "secret"
    assert options["known_hosts"] is None
    assert options["connect_timeout"] == 10


def test_connect_options_key(tmp_path: Path) -> None:
    key = tmp_path / "id_ed25519"
    key.write_text("key")
    profile = ConnectionProfile(host="example.com", port=2222, private_key_path=str(key))

    options = connect_options(profile, 5)
    assert options["port"] == 2222
    assert options["client_keys"] == [str(key)]
    assert "password" not in options
