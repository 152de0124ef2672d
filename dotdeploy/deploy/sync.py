"""增量同步：把发布目录镜像到远程应用目录

判断规则：远程不存在、大小不同、或本地 mtime（向下取整到秒）更新时上传。
整个同步复用一个 SFTP 会话，无论成功失败都会关闭。
"""

from __future__ import annotations

import logging
import math
import os
import posixpath
from collections.abc import Callable
from pathlib import Path
from typing import Optional, Protocol

from dotdeploy.deploy.session import SftpSession
from dotdeploy.types import (
    ConfigurationError,
    ConnectionProfile,
    FileSyncDecision,
    OutputSink,
    RemoteLayout,
    RemoteStat,
    SyncResult,
)

logger = logging.getLogger(__name__)

EXECUTABLE_MODE = 0o755

# 每上传多少个文件输出一次进度
_PROGRESS_EVERY = 10


class FileTransferSession(Protocol):
    """同步所需的最小 SFTP 操作集合"""

    async def connect(self, profile: ConnectionProfile) -> None: ...
    async def mkdir(self, path: str) -> None: ...
    async def stat(self, path: str) -> RemoteStat: ...
    async def put(self, local_path: Path, remote_path: str) -> None: ...
    async def chmod(self, path: str, mode: int) -> None: ...
    async def end(self) -> None: ...


SessionFactory = Callable[[], FileTransferSession]


def list_local_files(root: Path) -> list[Path]:
    """递归列出普通文件，按名称排序深度优先；符号链接不跟随"""
    files: list[Path] = []
    with os.scandir(root) as it:
        entries = sorted(it, key=lambda e: e.name)
    for entry in entries:
        if entry.is_dir(follow_symlinks=False):
            files.extend(list_local_files(Path(entry.path)))
        elif entry.is_file(follow_symlinks=False):
            files.append(Path(entry.path))
    return files


def remote_path_for(local_root: Path, local_file: Path, remote_root: str) -> str:
    """本地相对路径映射为远程 POSIX 路径"""
    relative = local_file.relative_to(local_root).as_posix()
    return posixpath.join(remote_root, relative)


def decide_upload(
    local_path: Path,
    remote_path: str,
    local_size: int,
    local_mtime: float,
    remote: Optional[RemoteStat],
) -> FileSyncDecision:
    """纯函数：决定单个文件是否需要上传"""
    if remote is None:
        needs_upload = True
    elif local_size != remote.size:
        needs_upload = True
    else:
        needs_upload = math.floor(local_mtime) > remote.modify_time
    return FileSyncDecision(
        local_path=local_path, remote_path=remote_path, needs_upload=needs_upload
    )


class SyncEngine:
    """SFTP 增量同步引擎"""

    def __init__(
        self,
        sink: OutputSink,
        session_factory: Optional[SessionFactory] = None,
        connect_timeout: int = 10,
    ) -> None:
        self._sink = sink
        self._session_factory: SessionFactory = session_factory or (
            lambda: SftpSession(connect_timeout)
        )

    async def sync(
        self,
        profile: ConnectionProfile,
        local_root: Path,
        layout: RemoteLayout,
        incremental: bool = True,
    ) -> SyncResult:
        """同步 local_root 下的所有文件到 layout.remote_root

        Raises:
            NotADirectoryError: local_root 不是目录（调用方契约错误）
        """
        if not local_root.is_dir():
            raise NotADirectoryError(f"Local directory not found: {local_root}")

        try:
            profile.validate_for_connect()
        except ConfigurationError as e:
            return SyncResult(success=False, error=str(e))

        remote_root = layout.remote_root
        session = self._session_factory()
        uploaded = 0
        skipped = 0
        current: Optional[str] = None
        step: Optional[str] = None

        try:
            self._sink.append_line(f"[Deploy] Connecting to {profile.describe()}...")
            await session.connect(profile)

            step = f"Failed to create remote directory {remote_root}"
            await session.mkdir(remote_root)
            step = None

            files = list_local_files(local_root)
            self._sink.append_line(f"[Deploy] Found {len(files)} files to check")

            for local_file in files:
                remote_file = remote_path_for(local_root, local_file, remote_root)
                relative = local_file.relative_to(local_root).as_posix()

                if incremental:
                    decision = await self._decide(session, local_file, remote_file)
                    if not decision.needs_upload:
                        skipped += 1
                        continue

                current = relative
                step = f"Failed to upload {relative}"
                await session.mkdir(posixpath.dirname(remote_file))
                await session.put(local_file, remote_file)
                current = step = None
                uploaded += 1
                if uploaded % _PROGRESS_EVERY == 0:
                    self._sink.append_line(f"[Deploy] Uploaded {uploaded} files...")

            self._sink.append_line(
                f"[Deploy] ✓ Upload complete: {uploaded} uploaded, {skipped} skipped (unchanged)"
            )

            step = f"Failed to set permissions on {layout.executable_path}"
            await session.chmod(layout.executable_path, EXECUTABLE_MODE)
            step = None
            self._sink.append_line(f"[Deploy] ✓ Set executable permission: {layout.executable_path}")
        except Exception as e:
            logger.warning("sync failed (%s): %s", step, e)
            error = f"{step}: {e}" if step else str(e)
            self._sink.append_line(f"[Deploy] ✗ {error}")
            return SyncResult(
                success=False,
                uploaded=uploaded,
                skipped=skipped,
                error=error,
                failed_file=current,
            )
        finally:
            await self._close(session)

        return SyncResult(success=True, uploaded=uploaded, skipped=skipped)

    async def _decide(
        self, session: FileTransferSession, local_file: Path, remote_file: str
    ) -> FileSyncDecision:
        stat = local_file.stat()
        try:
            remote: Optional[RemoteStat] = await session.stat(remote_file)
        except Exception as e:
            # 远程 stat 失败一律按需要上传处理
            logger.debug("remote stat failed for %s: %s", remote_file, e)
            remote = None
        return decide_upload(local_file, remote_file, stat.st_size, stat.st_mtime, remote)

    async def _close(self, session: FileTransferSession) -> None:
        try:
            await session.end()
        except Exception as e:
            logger.warning("failed to close sftp session: %s", e)
