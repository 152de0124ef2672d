"""核心类型定义"""

from __future__ import annotations

import posixpath
from pathlib import Path
from typing import Literal, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field

# 部署目标：本地目录或远程服务器
DeployTarget = Literal["local", "server"]

# SSH 认证方式
AuthType = Literal["key", "password"]

# 本地发布阶段 / 服务器部署阶段
PublishPhase = Literal["compile", "upx", "package"]
DeployPhase = Literal["publish", "upload", "start"]

# 失败所在阶段（用于区分 publish/upload/start 失败）
FailedStage = Literal["config", "publish", "upload", "start"]

# 交叉编译目标系统族
TargetFamily = Literal["linux", "windows", "macos", "native"]

# 可安装工具
ToolName = Literal["zig", "lld", "xwin", "llvm", "windowsSdk"]


class ConfigurationError(Exception):
    """配置错误（缺少主机、私钥不存在等），在任何 I/O 之前检测"""


@runtime_checkable
class OutputSink(Protocol):
    """输出通道协议：构建输出、上传进度、远程命令输出都追加到这里"""

    def append(self, text: str) -> None: ...
    def append_line(self, text: str = "") -> None: ...


# ======== 连接与远程布局 ========


class ConnectionProfile(BaseModel):
    """SSH/SFTP 连接参数，每次部署重新构造"""

    host: str = Field(..., description="主机地址")
    port: int = Field(default=22, description="SSH 端口")
    username: str = Field(default="root", description="SSH 用户名")
    auth_type: AuthType = Field(default="key", description="认证方式")
    private_key_path: Optional[str] = Field(default=None, description="私钥路径，支持 ~")
    password: Optional[str] = Field(default=None, description="密码")

    def resolved_key_path(self) -> Optional[Path]:
        if not self.private_key_path:
            return None
        return Path(self.private_key_path).expanduser()

    def validate_for_connect(self) -> None:
        """连接前校验

        Raises:
            ConfigurationError: 缺少主机、私钥不存在或缺少密码
        """
        if not self.host.strip():
            raise ConfigurationError("Missing host")
        if self.auth_type == "key":
            key_path = self.resolved_key_path()
            if key_path is None or not key_path.is_file():
                raise ConfigurationError(f"Private key not found: {key_path}")
        elif not self.password:
            raise ConfigurationError("Password authentication selected but no password given")

    def describe(self) -> str:
        return f"{self.username}@{self.host}:{self.port}"


class RemoteLayout(BaseModel):
    """远程目录布局：remote_path/assembly_name/assembly_name"""

    remote_path: str = Field(..., description="远程部署根目录")
    assembly_name: str = Field(..., description="程序集名称")

    @property
    def remote_root(self) -> str:
        return posixpath.join(self.remote_path, self.assembly_name)

    @property
    def executable_path(self) -> str:
        return posixpath.join(self.remote_root, self.assembly_name)


class RemoteStat(BaseModel):
    """远程文件 stat 结果（mtime 为秒）"""

    size: int
    modify_time: int


class FileSyncDecision(BaseModel):
    """单个本地文件的上传决策"""

    local_path: Path
    remote_path: str
    needs_upload: bool


# ======== 工具链 ========


class ToolStatus(BaseModel):
    """单个工具的检测结果"""

    installed: bool = False
    version: Optional[str] = None
    path: Optional[str] = None


class WindowsSdkStatus(BaseModel):
    """Windows SDK 缓存状态"""

    installed: bool = False
    path: Optional[str] = None
    size: Optional[str] = None


class LlvmStatus(BaseModel):
    """LLVM（llvm-objcopy）状态，path 为 bin 目录"""

    installed: bool = False
    has_objcopy: bool = False
    path: Optional[str] = None


class ToolchainStatus(BaseModel):
    """交叉编译工具链完整状态"""

    zig: ToolStatus = Field(default_factory=ToolStatus)
    lld: ToolStatus = Field(default_factory=ToolStatus)
    xwin: ToolStatus = Field(default_factory=ToolStatus)
    windows_sdk: WindowsSdkStatus = Field(default_factory=WindowsSdkStatus)
    llvm: LlvmStatus = Field(default_factory=LlvmStatus)


class ToolchainSummary(BaseModel):
    """平台就绪摘要（用于展示）"""

    linux_ready: bool
    windows_ready: bool
    linux_missing: list[str] = Field(default_factory=list)
    windows_missing: list[str] = Field(default_factory=list)


class CrossCompileArgs(BaseModel):
    """交叉编译参数构建结果，失败时只报告不抛出"""

    success: bool
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    linker_args: list[str] = Field(default_factory=list, description="逐条库搜索路径参数")
    error: Optional[str] = None


class ToolInstallResult(BaseModel):
    """工具安装结果"""

    success: bool
    tool: str
    error: Optional[str] = None
    path: Optional[str] = None


# ======== 结果 ========


class ProcessResult(BaseModel):
    """子进程执行结果"""

    exit_code: int
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = Field(default=None, description="进程无法启动时的错误")

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and self.error is None


class PublishResult(BaseModel):
    """发布结果"""

    success: bool
    output_path: str
    assembly_name: str
    error: Optional[str] = None
    warning: Optional[str] = None


class SyncResult(BaseModel):
    """增量同步结果"""

    success: bool
    uploaded: int = 0
    skipped: int = 0
    error: Optional[str] = None
    failed_file: Optional[str] = None


class ExecResult(BaseModel):
    """远程命令执行结果"""

    success: bool
    command: str = ""
    exit_code: Optional[int] = None
    error: Optional[str] = None


class DeployResult(BaseModel):
    """部署流程的最终结果"""

    success: bool
    output_path: Optional[str] = None
    error: Optional[str] = None
    warning: Optional[str] = None
    failed_stage: Optional[FailedStage] = None
    uploaded: int = 0
    skipped: int = 0


def join_warnings(*warnings: Optional[str]) -> Optional[str]:
    """合并多个非致命警告，全部为空时返回 None"""
    parts = [w for w in warnings if w]
    return "; ".join(parts) if parts else None
