"""asyncssh 会话封装

SftpSession 与 SshShell 只暴露部署流程用到的少量操作，
便于在测试中用假会话替换。
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Optional

import asyncssh

from dotdeploy.types import ConnectionProfile, RemoteStat

logger = logging.getLogger(__name__)

DataCallback = Callable[[str], None]

_READ_CHUNK = 4096


def connect_options(profile: ConnectionProfile, connect_timeout: int) -> dict[str, object]:
    """由连接参数生成 asyncssh.connect 的关键字参数"""
    options: dict[str, object] = {
        "host": profile.host,
        "port": profile.port,
        "username": profile.username,
        "known_hosts": None,
        "connect_timeout": connect_timeout,
    }
    if profile.auth_type == "password":
        options["password"] = profile.password
        options["client_keys"] = None
    else:
        key_path = profile.resolved_key_path()
        options["client_keys"] = [str(key_path)] if key_path else None
    return options


class SftpSession:
    """一次同步使用的 SFTP 会话（连接一次，复用到结束）"""

    def __init__(self, connect_timeout: int = 10) -> None:
        self._connect_timeout = connect_timeout
        self._conn: Optional[asyncssh.SSHClientConnection] = None
        self._sftp: Optional[asyncssh.SFTPClient] = None

    def _client(self) -> asyncssh.SFTPClient:
        if self._sftp is None:
            raise RuntimeError("SFTP session is not connected")
        return self._sftp

    async def connect(self, profile: ConnectionProfile) -> None:
        logger.debug("opening sftp session to %s", profile.describe())
        self._conn = await asyncssh.connect(**connect_options(profile, self._connect_timeout))  # type: ignore[arg-type]
        self._sftp = await self._conn.start_sftp_client()

    async def mkdir(self, path: str) -> None:
        """递归创建目录，已存在视为成功"""
        try:
            await self._client().makedirs(path, exist_ok=True)
        except asyncssh.SFTPFileAlreadyExists:
            pass

    async def stat(self, path: str) -> RemoteStat:
        attrs = await self._client().stat(path)
        return RemoteStat(size=attrs.size or 0, modify_time=int(attrs.mtime or 0))

    async def put(self, local_path: Path, remote_path: str) -> None:
        await self._client().put(str(local_path), remote_path)

    async def chmod(self, path: str, mode: int) -> None:
        await self._client().chmod(path, mode)

    async def end(self) -> None:
        if self._sftp is not None:
            self._sftp.exit()
            await self._sftp.wait_closed()
            self._sftp = None
        if self._conn is not None:
            self._conn.close()
            await self._conn.wait_closed()
            self._conn = None


class SshShell:
    """执行单条远程命令的 SSH 会话"""

    def __init__(self, connect_timeout: int = 10) -> None:
        self._connect_timeout = connect_timeout
        self._conn: Optional[asyncssh.SSHClientConnection] = None

    async def connect(self, profile: ConnectionProfile) -> None:
        self._conn = await asyncssh.connect(**connect_options(profile, self._connect_timeout))  # type: ignore[arg-type]

    async def exec(self, command: str, on_data: DataCallback) -> int:
        """在伪终端中执行命令，输出实时回调，返回退出码"""
        if self._conn is None:
            raise RuntimeError("SSH session is not connected")

        process = await self._conn.create_process(
            command,
            term_type="xterm",
            encoding="utf-8",
            errors="replace",
        )
        async with process:
            while True:
                data = await process.stdout.read(_READ_CHUNK)
                if not data:
                    break
                on_data(data)
            # pty 模式下 stderr 通常已并入 stdout，这里读出残留内容
            remaining = await process.stderr.read()
            if remaining:
                on_data(remaining)
            completed = await process.wait()

        exit_status = completed.exit_status
        return exit_status if exit_status is not None else -1

    async def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            await self._conn.wait_closed()
            self._conn = None
