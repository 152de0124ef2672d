"""配置模块"""

from dotdeploy.config.manager import ConfigManager, DotDeployConfig

__all__ = ["ConfigManager", "DotDeployConfig"]
