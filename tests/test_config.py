"""配置管理模块测试"""

from pathlib import Path

import pytest

from dotdeploy.config.manager import (
    DEFAULT_AFTER_UPLOAD_COMMAND,
    ConfigManager,
    DotDeployConfig,
    ServerConfig,
    TelegramConfig,
)


class TestDotDeployConfig:
    """测试配置数据模型"""

    def test_default_config_creation(self) -> None:
        """测试默认配置创建"""
        config = DotDeployConfig()
        assert config.deploy.target == "local"
        assert config.deploy.remote_path == "/opt/apps"
        assert config.deploy.after_upload_command == DEFAULT_AFTER_UPLOAD_COMMAND
        assert config.deploy.incremental_upload is True
        assert config.publish.runtime == "linux-x64"
        assert config.upx.level == "--best"
        assert config.cross_compile.enabled is True
        assert config.remote.command_timeout == 600

    def test_config_serialization(self) -> None:
        """测试配置序列化"""
        config = DotDeployConfig()
        json_str = config.model_dump_json()
        restored = DotDeployConfig.model_validate_json(json_str)
        assert restored == config

    def test_server_to_profile(self) -> None:
        server = ServerConfig(host="10.0.0.5", port=2222, username="deploy", password="")
        profile = server.to_profile()
        assert profile.host == "10.0.0.5"
        assert profile.port == 2222
        assert profile.username == "deploy"
        assert profile.password is None

    def test_telegram_ready_requires_token_and_chat(self) -> None:
        assert TelegramConfig(enabled=True, bot_token="t").ready is False
        assert TelegramConfig(enabled=False, bot_token="t", chat_id="c").ready is False
        assert TelegramConfig(enabled=True, bot_token="t", chat_id="c").ready is True

    def test_sdk_path_expands_home(self) -> None:
        config = DotDeployConfig()
        assert "~" not in str(config.cross_compile.sdk_path())


class TestConfigManager:
    """测试配置管理器"""

    def test_get_default_config_path(self) -> None:
        """测试默认配置路径"""
        manager = ConfigManager()
        path = manager.get_config_path()
        assert path.name == "config.json"
        assert ".dotdeploy" in str(path)

    def test_load_creates_default_if_not_exists(self, tmp_path: Path) -> None:
        """测试配置文件不存在时创建默认配置"""
        config_path = tmp_path / ".dotdeploy" / "config.json"
        manager = ConfigManager(config_path=config_path)
        config = manager.load()

        assert config_path.exists()
        assert config.deploy.target == "local"

    def test_save_and_load_roundtrip(self, tmp_path: Path) -> None:
        """测试保存和加载往返"""
        config_path = tmp_path / ".dotdeploy" / "config.json"
        manager = ConfigManager(config_path=config_path)

        config = DotDeployConfig(server=ServerConfig(host="example.com", username="ops"))
        config.deploy.target = "server"
        config.upx.enabled = True
        manager.save(config)

        loaded = manager.load()
        assert loaded.server.host == "example.com"
        assert loaded.server.username == "ops"
        assert loaded.deploy.target == "server"
        assert loaded.upx.enabled is True

    def test_load_invalid_json_raises(self, tmp_path: Path) -> None:
        config_path = tmp_path / "config.json"
        config_path.write_text("{ not json", encoding="utf-8")
        manager = ConfigManager(config_path=config_path)

        with pytest.raises(ValueError, match="配置文件格式错误"):
            manager.load()

    def test_load_invalid_values_raises(self, tmp_path: Path) -> None:
        config_path = tmp_path / "config.json"
        config_path.write_text('{"deploy": {"target": "cloud"}}', encoding="utf-8")
        manager = ConfigManager(config_path=config_path)

        with pytest.raises(ValueError, match="配置文件验证失败"):
            manager.load()
