"""部署流程编排

状态流转：
    idle → publishing → done                    （本地模式）
    idle → publishing → uploading → starting → done   （服务器模式）
任一阶段失败进入 failed，并记录失败阶段。
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Literal, Optional, Union

from dotdeploy.context.session import DeployContext
from dotdeploy.deploy.remote import RemoteExecutor
from dotdeploy.deploy.sync import SyncEngine
from dotdeploy.deploy.template import CommandVariables
from dotdeploy.notify.telegram import TelegramNotifier
from dotdeploy.publish.publisher import PublishOptions, Publisher
from dotdeploy.types import (
    ConfigurationError,
    ConnectionProfile,
    DeployPhase,
    DeployResult,
    DeployTarget,
    FailedStage,
    PublishPhase,
    RemoteLayout,
    join_warnings,
)

logger = logging.getLogger(__name__)

DeployState = Literal["idle", "publishing", "uploading", "starting", "done", "failed"]

# 阶段回调：服务器模式收到 publish/upload/start，本地模式收到 compile/upx/package
PhaseCallback = Optional[Callable[[Union[PublishPhase, DeployPhase], str], None]]

_PUBLISH_PHASE_LABELS: dict[PublishPhase, str] = {
    "compile": "编译中",
    "upx": "压缩中",
    "package": "打包中",
}


def server_publish_dir(project_name: str) -> Path:
    """服务器模式的临时发布目录"""
    return Path(tempfile.gettempdir()) / "dotdeploy" / project_name


@dataclass
class DeployRequest:
    """一次部署请求"""

    publish: PublishOptions
    assembly_name: str
    target: DeployTarget = "local"
    local_path: Optional[Path] = None
    clean_destination: bool = False
    connection: Optional[ConnectionProfile] = None
    remote_path: str = "/opt/apps"
    after_upload_command: str = ""
    incremental: bool = True

    @property
    def layout(self) -> RemoteLayout:
        return RemoteLayout(remote_path=self.remote_path, assembly_name=self.assembly_name)


class DeploySequencer:
    """串联发布、上传、远程启动"""

    def __init__(
        self,
        context: DeployContext,
        publisher: Optional[Publisher] = None,
        sync_engine: Optional[SyncEngine] = None,
        executor: Optional[RemoteExecutor] = None,
        notifier: Optional[TelegramNotifier] = None,
    ) -> None:
        config = context.config
        sink = context.output
        self._sink = sink
        self._publisher = publisher or Publisher(sink, config.cross_compile)
        self._sync = sync_engine or SyncEngine(sink, connect_timeout=config.remote.connect_timeout)
        self._executor = executor or RemoteExecutor(
            sink,
            connect_timeout=config.remote.connect_timeout,
            command_timeout=config.remote.command_timeout,
        )
        self._notifier = notifier or TelegramNotifier(config.telegram)
        self.state: DeployState = "idle"

    def _emit(
        self, on_phase: PhaseCallback, phase: Union[PublishPhase, DeployPhase], message: str
    ) -> None:
        if on_phase:
            on_phase(phase, message)

    async def deploy(self, request: DeployRequest, on_phase: PhaseCallback = None) -> DeployResult:
        self.state = "idle"
        if request.target == "server":
            return await self._deploy_server(request, on_phase)
        return await self._deploy_local(request, on_phase)

    def _fail(
        self, stage: FailedStage, message: str, **kwargs: object
    ) -> DeployResult:
        self.state = "failed"
        self._sink.append_line(f"[Deploy] ✗ {message}")
        return DeployResult(success=False, error=message, failed_stage=stage, **kwargs)  # type: ignore[arg-type]

    async def _deploy_local(self, request: DeployRequest, on_phase: PhaseCallback) -> DeployResult:
        publish_dir = request.local_path or request.publish.publish_dir
        warning: Optional[str] = None

        if request.clean_destination and publish_dir.exists():
            self._sink.append_line(f"[Deploy] Cleaning local output directory: {publish_dir}")
            try:
                shutil.rmtree(publish_dir)
            except OSError as e:
                logger.warning("failed to clean %s: %s", publish_dir, e)
                warning = f"Failed to clean output directory: {e}"
                self._sink.append_line(f"[Deploy] Warning: {warning}")

        def on_status(phase: PublishPhase, message: str) -> None:
            self._emit(on_phase, phase, _PUBLISH_PHASE_LABELS.get(phase, message))

        self.state = "publishing"
        self._sink.append_line(f"[Deploy] Publishing {request.publish.project_name} to {publish_dir}...")
        options = replace(request.publish, output_dir=publish_dir, on_status=on_status)
        published = await self._publisher.publish(options)
        if not published.success:
            return self._fail(
                "publish",
                f"publish failed: {published.error}",
                warning=join_warnings(warning, published.warning),
            )

        self.state = "done"
        return DeployResult(
            success=True,
            output_path=published.output_path,
            warning=join_warnings(warning, published.warning),
        )

    async def _deploy_server(self, request: DeployRequest, on_phase: PhaseCallback) -> DeployResult:
        try:
            if request.connection is None:
                raise ConfigurationError("Missing host")
            request.connection.validate_for_connect()
        except ConfigurationError as e:
            return self._fail("config", f"configuration error: {e}")
        profile = request.connection

        publish_dir = server_publish_dir(request.publish.project_name)
        self.state = "publishing"
        self._emit(on_phase, "publish", "发布中")
        self._sink.append_line(f"[Deploy] Publishing {request.publish.project_name} to {publish_dir}...")
        options = replace(request.publish, output_dir=publish_dir)
        published = await self._publisher.publish(options)
        if not published.success:
            return self._fail("publish", f"publish failed: {published.error}", warning=published.warning)
        warnings: list[Optional[str]] = [published.warning]

        self.state = "uploading"
        self._emit(on_phase, "upload", "上传中")
        self._sink.append_line(f"[Deploy] Uploading to {profile.host}...")
        layout = request.layout
        synced = await self._sync.sync(profile, publish_dir, layout, request.incremental)
        warnings.append(await self._notify_upload(request, profile, publish_dir, synced.success, synced.error))
        if not synced.success:
            return self._fail(
                "upload",
                f"upload failed: {synced.error}",
                warning=join_warnings(*warnings),
                uploaded=synced.uploaded,
                skipped=synced.skipped,
            )

        self.state = "starting"
        self._emit(on_phase, "start", "启动中")
        self._sink.append_line("[Deploy] Starting service...")
        executed = await self._executor.run(
            profile, request.after_upload_command, CommandVariables.from_layout(layout)
        )
        if not executed.success:
            return self._fail(
                "start",
                f"start failed: {executed.error}",
                warning=join_warnings(*warnings),
                uploaded=synced.uploaded,
                skipped=synced.skipped,
            )

        self.state = "done"
        self._sink.append_line(f"[Deploy] ✓ {request.publish.project_name} deployed successfully")
        return DeployResult(
            success=True,
            output_path=layout.remote_root,
            warning=join_warnings(*warnings),
            uploaded=synced.uploaded,
            skipped=synced.skipped,
        )

    async def _notify_upload(
        self,
        request: DeployRequest,
        profile: ConnectionProfile,
        publish_dir: Path,
        success: bool,
        error: Optional[str],
    ) -> Optional[str]:
        if not self._notifier.enabled:
            return None
        layout = request.layout
        if success:
            detail = f"主机: {profile.host}\n路径: {layout.remote_root}"
        else:
            detail = f"主机: {profile.host}\n错误: {error}"
        warning = await self._notifier.notify_deploy(
            request.assembly_name,
            success,
            detail,
            artifact=publish_dir / request.assembly_name,
        )
        if warning:
            self._sink.append_line(f"[Telegram] {warning}")
        return warning
