"""目标运行时与主机平台判断"""

from __future__ import annotations

import platform
import sys
from pathlib import Path
from typing import Literal, Optional

from dotdeploy.types import TargetFamily

HostFamily = Literal["linux", "windows", "macos"]

SUPPORTED_RUNTIMES: list[str] = [
    "linux-x64",
    "linux-arm64",
    "linux-musl-x64",
    "linux-musl-arm64",
    "win-x64",
    "win-x86",
    "win-arm64",
    "osx-x64",
    "osx-arm64",
]

# Zig 目标三元组（OS + 架构 + libc）
ZIG_TARGETS: dict[str, str] = {
    "linux-x64": "x86_64-linux-gnu",
    "linux-arm64": "aarch64-linux-gnu",
    "linux-musl-x64": "x86_64-linux-musl",
    "linux-musl-arm64": "aarch64-linux-musl",
}
DEFAULT_ZIG_TARGET = "x86_64-linux-gnu"

# 目标平台的路径列表分隔符（与主机无关）
TARGET_PATH_SEPARATORS: dict[str, str] = {
    "windows": ";",
    "linux": ":",
    "macos": ":",
}

_RUNTIME_PREFIXES: dict[str, HostFamily] = {
    "linux-": "linux",
    "win-": "windows",
    "osx-": "macos",
}


def host_family() -> Optional[HostFamily]:
    """当前主机系统族，未知平台返回 None"""
    if sys.platform == "darwin":
        return "macos"
    if sys.platform.startswith("linux"):
        return "linux"
    if sys.platform == "win32":
        return "windows"
    return None


def target_family(runtime: str) -> TargetFamily:
    """运行时标识对应的系统族"""
    for prefix, family in _RUNTIME_PREFIXES.items():
        if runtime.startswith(prefix):
            return family
    return "native"


def is_cross_compile_needed(runtime: str, host: Optional[str] = None) -> bool:
    """目标系统族与主机不同时需要交叉编译"""
    current = host if host is not None else host_family()
    if current is None:
        return False
    return target_family(runtime) != current


def zig_target(runtime: str) -> str:
    return ZIG_TARGETS.get(runtime, DEFAULT_ZIG_TARGET)


def windows_arch(runtime: str) -> str:
    """Windows SDK 目录使用的架构名"""
    if runtime.endswith("-x64"):
        return "x64"
    if runtime.endswith("-x86"):
        return "x86"
    if runtime.endswith("-arm64"):
        return "arm64"
    return "x64"


def target_path_separator(family: str) -> str:
    return TARGET_PATH_SEPARATORS.get(family, ":")


def supports_upx(runtime: str) -> bool:
    """UPX 不能处理 Mach-O，只支持 Linux/Windows 目标"""
    return target_family(runtime) in ("linux", "windows")


def brew_prefix() -> Path:
    """Homebrew 安装前缀"""
    if platform.machine().lower() in ("arm64", "aarch64"):
        return Path("/opt/homebrew")
    return Path("/usr/local")
