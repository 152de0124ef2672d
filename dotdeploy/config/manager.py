"""配置文件管理模块"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from dotdeploy.types import AuthType, ConnectionProfile, DeployTarget

DEFAULT_AFTER_UPLOAD_COMMAND = "sudo {remote_path}/{app_name} start"
DEFAULT_XWIN_SDK_PATH = "~/.local/share/xwin-sdk"


class ServerConfig(BaseModel):
    """远程服务器连接配置"""

    host: str = Field(default="", description="服务器地址")
    port: int = Field(default=22, description="SSH 端口")
    username: str = Field(default="root", description="SSH 用户名")
    auth_type: AuthType = Field(default="key", description="认证方式：key/password")
    private_key_path: str = Field(default="~/.ssh/id_rsa", description="SSH 私钥路径")
    password: str = Field(default="", description="SSH 密码（仅 password 认证）")

    def to_profile(self) -> ConnectionProfile:
        return ConnectionProfile(
            host=self.host,
            port=self.port,
            username=self.username,
            auth_type=self.auth_type,
            private_key_path=self.private_key_path or None,
            password=self.password or None,
        )


class DeploySettings(BaseModel):
    """部署配置"""

    target: DeployTarget = Field(default="local", description="部署目标：local/server")
    local_path: str = Field(default="", description="本地输出目录，留空则为 bin/publish")
    clean_destination: bool = Field(default=False, description="发布前清空本地输出目录")
    remote_path: str = Field(default="/opt/apps", description="远程部署根目录")
    after_upload_command: str = Field(
        default=DEFAULT_AFTER_UPLOAD_COMMAND,
        description="上传后执行的命令，支持 {app_name} {remote_path} {app_path}",
    )
    incremental_upload: bool = Field(default=True, description="增量上传：只上传有变化的文件")


class PublishSettings(BaseModel):
    """dotnet publish 配置"""

    runtime: str = Field(default="linux-x64", description="目标运行时")
    self_contained: bool = Field(default=True, description="自包含发布")
    single_file: bool = Field(default=False, description="单文件发布")
    disable_symbols: bool = Field(default=False, description="不生成调试符号")
    aot: bool = Field(default=False, description="Native AOT 发布")
    strip_symbols: bool = Field(default=False, description="剥离符号")
    invariant_globalization: bool = Field(default=False, description="InvariantGlobalization")


class UpxConfig(BaseModel):
    """UPX 压缩配置"""

    enabled: bool = Field(default=False, description="启用 UPX 压缩")
    level: str = Field(default="--best", description="压缩级别参数")


class CrossCompileConfig(BaseModel):
    """交叉编译配置"""

    enabled: bool = Field(default=True, description="启用交叉编译")
    zig_path: str = Field(default="", description="Zig 路径（留空自动检测）")
    lld_path: str = Field(default="", description="lld-link 路径（留空自动检测）")
    xwin_sdk_path: str = Field(default=DEFAULT_XWIN_SDK_PATH, description="Windows SDK 缓存路径")
    strip_symbols: bool = Field(default=False, description="交叉编译时剥离符号")

    def sdk_path(self) -> Path:
        return Path(self.xwin_sdk_path or DEFAULT_XWIN_SDK_PATH).expanduser()


class MacOSConfig(BaseModel):
    """macOS 打包配置"""

    enabled: bool = Field(default=False, description="启用 macOS 打包")
    app_name: str = Field(default="", description="应用名称，留空使用项目名")
    bundle_id: str = Field(default="com.example.app", description="Bundle Identifier")
    version: str = Field(default="1.0.0", description="版本号")
    build_number: str = Field(default="1", description="Build 号")
    icon_path: str = Field(default="", description="图标路径 (.icns/.png)")
    format: Literal["app", "dmg", "pkg"] = Field(default="app", description="打包格式")
    minimum_os_version: str = Field(default="10.15", description="最低 macOS 版本")
    code_sign_identity: str = Field(default="", description="代码签名证书，留空不签名")


class TelegramConfig(BaseModel):
    """Telegram 通知配置"""

    enabled: bool = Field(default=False, description="部署完成后发送通知")
    upload: bool = Field(default=False, description="同时上传产物")
    bot_token: str = Field(default="", description="Bot Token")
    chat_id: str = Field(default="", description="Chat ID")

    @property
    def ready(self) -> bool:
        return self.enabled and bool(self.bot_token) and bool(self.chat_id)


class RemoteConfig(BaseModel):
    """SSH 超时配置"""

    connect_timeout: int = Field(default=10, description="连接超时(秒)")
    command_timeout: int = Field(default=600, description="远程命令超时(秒)")


class DotDeployConfig(BaseModel):
    """dotdeploy 完整配置"""

    server: ServerConfig = Field(default_factory=ServerConfig)
    deploy: DeploySettings = Field(default_factory=DeploySettings)
    publish: PublishSettings = Field(default_factory=PublishSettings)
    upx: UpxConfig = Field(default_factory=UpxConfig)
    cross_compile: CrossCompileConfig = Field(default_factory=CrossCompileConfig)
    macos: MacOSConfig = Field(default_factory=MacOSConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)


class ConfigManager:
    """配置文件管理器"""

    def __init__(self, config_path: Optional[Path] = None) -> None:
        """初始化配置管理器

        Args:
            config_path: 自定义配置文件路径，默认为 ~/.dotdeploy/config.json
        """
        self._config_path = config_path

    def get_config_path(self) -> Path:
        """获取配置文件路径"""
        if self._config_path:
            return self._config_path
        return Path.home() / ".dotdeploy" / "config.json"

    def load(self) -> DotDeployConfig:
        """加载配置，如果不存在则创建默认配置

        Returns:
            DotDeployConfig: 配置对象

        Raises:
            ValueError: 配置文件格式错误或验证失败
            OSError: 文件读取错误
        """
        config_path = self.get_config_path()

        if not config_path.exists():
            config = DotDeployConfig()
            self.save(config)
            return config

        try:
            with open(config_path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"配置文件格式错误: {config_path} - {e}") from e
        except OSError as e:
            raise OSError(f"无法读取配置文件: {config_path} - {e}") from e

        try:
            return DotDeployConfig.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"配置文件验证失败: {config_path} - {e}") from e

    def save(self, config: DotDeployConfig) -> None:
        """保存配置到文件

        Raises:
            OSError: 文件写入错误
        """
        config_path = self.get_config_path()
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OSError(f"无法创建配置目录: {config_path.parent} - {e}") from e

        try:
            with open(config_path, "w", encoding="utf-8") as f:
                f.write(config.model_dump_json(indent=2))
        except OSError as e:
            raise OSError(f"无法写入配置文件: {config_path} - {e}") from e
