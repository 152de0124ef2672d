"""交叉编译工具链检测

检测当前主机上交叉编译所需的工具：
- Zig（Linux 目标的 C 编译器/链接器）
- lld-link（Windows PE/COFF 链接器）
- xwin（下载 Windows SDK）
- Windows SDK 缓存
- llvm-objcopy（Linux 目标符号剥离）

检测失败一律视为"未安装"，detect() 不会抛出异常。
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from collections.abc import Awaitable
from pathlib import Path
from typing import Optional, TypeVar

from dotdeploy.config.manager import CrossCompileConfig
from dotdeploy.toolchain.platforms import brew_prefix, target_family
from dotdeploy.types import (
    LlvmStatus,
    ToolchainStatus,
    ToolchainSummary,
    ToolStatus,
    WindowsSdkStatus,
)

logger = logging.getLogger(__name__)

VERSION_PROBE_TIMEOUT = 5.0

T = TypeVar("T")


class ToolchainDetector:
    """工具链检测器"""

    def __init__(
        self,
        config: Optional[CrossCompileConfig] = None,
        timeout: float = VERSION_PROBE_TIMEOUT,
    ) -> None:
        self._config = config or CrossCompileConfig()
        self._timeout = timeout

    async def detect(self) -> ToolchainStatus:
        """检测完整工具链状态

        Returns:
            ToolchainStatus，缺失的工具 installed=False
        """
        zig, lld, xwin, llvm, sdk = await asyncio.gather(
            self._guard(self.check_zig(), ToolStatus()),
            self._guard(self.check_lld(), ToolStatus()),
            self._guard(self.check_xwin(), ToolStatus()),
            self._guard(self.check_llvm(), LlvmStatus()),
            self._guard(self.check_windows_sdk(), WindowsSdkStatus()),
        )
        return ToolchainStatus(zig=zig, lld=lld, xwin=xwin, llvm=llvm, windows_sdk=sdk)

    async def _guard(self, probe: Awaitable[T], fallback: T) -> T:
        try:
            return await probe
        except Exception as e:  # 探测失败等同于未安装
            logger.debug("toolchain probe failed: %s", e)
            return fallback

    async def check_zig(self) -> ToolStatus:
        path = self._resolve("zig", override=self._config.zig_path)
        if path is None:
            return ToolStatus(installed=False)
        version = await self._probe_version(path, ["version"])
        if version is None:
            return ToolStatus(installed=False)
        return ToolStatus(installed=True, version=version, path=path)

    async def check_lld(self) -> ToolStatus:
        path = self._resolve(
            "lld-link",
            override=self._config.lld_path,
            fallbacks=[brew_prefix() / "opt" / "lld" / "bin" / "lld-link"],
        )
        if path is None:
            return ToolStatus(installed=False)
        version = await self._probe_version(path, ["--version"])
        if version is None:
            return ToolStatus(installed=False)
        return ToolStatus(installed=True, version=version, path=path)

    async def check_xwin(self) -> ToolStatus:
        path = self._resolve(
            "xwin",
            fallbacks=[Path.home() / ".cargo" / "bin" / "xwin"],
        )
        if path is None:
            return ToolStatus(installed=False)
        version = await self._probe_version(path, ["--version"])
        if version is None:
            return ToolStatus(installed=False)
        return ToolStatus(installed=True, version=version, path=path)

    async def check_llvm(self) -> LlvmStatus:
        path = self._resolve(
            "llvm-objcopy",
            fallbacks=[brew_prefix() / "opt" / "llvm" / "bin" / "llvm-objcopy"],
        )
        if path is None:
            return LlvmStatus(installed=False, has_objcopy=False)
        return LlvmStatus(installed=True, has_objcopy=True, path=str(Path(path).parent))

    async def check_windows_sdk(self) -> WindowsSdkStatus:
        sdk_path = self._config.sdk_path()
        if not (sdk_path / "splat" / "crt").is_dir():
            return WindowsSdkStatus(installed=False)
        try:
            size = await asyncio.to_thread(directory_size, sdk_path)
        except OSError:
            return WindowsSdkStatus(installed=True, path=str(sdk_path))
        return WindowsSdkStatus(installed=True, path=str(sdk_path), size=format_size(size))

    def _resolve(
        self,
        name: str,
        override: str = "",
        fallbacks: Optional[list[Path]] = None,
    ) -> Optional[str]:
        """按 配置覆盖 → PATH → 已知安装目录 的顺序解析工具路径"""
        if override:
            candidate = Path(override).expanduser()
            if candidate.is_file():
                return str(candidate)
        found = shutil.which(name)
        if found:
            return found
        for fallback in fallbacks or []:
            if fallback.is_file():
                return str(fallback)
        return None

    async def _probe_version(self, path: str, args: list[str]) -> Optional[str]:
        """运行版本命令，返回首行；无法执行时返回 None"""
        try:
            process = await asyncio.create_subprocess_exec(
                path,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL,
            )
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=self._timeout)
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug("version probe failed for %s: %s", path, e)
            return None
        if process.returncode != 0:
            return None
        lines = stdout.decode("utf-8", errors="replace").strip().splitlines()
        return lines[0].strip() if lines else ""


def directory_size(root: Path) -> int:
    total = 0
    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in filenames:
            try:
                total += os.lstat(os.path.join(dirpath, filename)).st_size
            except OSError:
                continue
    return total


def format_size(num_bytes: int) -> str:
    """du -sh 风格的大小"""
    size = float(num_bytes)
    for unit in ("B", "K", "M", "G"):
        if size < 1024:
            return f"{size:.0f}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}T"


def required_tools(runtime: str) -> list[str]:
    """目标运行时所需的工具"""
    family = target_family(runtime)
    if family == "linux":
        return ["zig"]
    if family == "windows":
        return ["lld", "xwin", "windowsSdk"]
    return []


def missing_tools(runtime: str, status: ToolchainStatus) -> list[str]:
    """目标运行时缺失的工具（显示名）"""
    installed = {
        "zig": status.zig.installed,
        "lld": status.lld.installed,
        "xwin": status.xwin.installed,
        "windowsSdk": status.windows_sdk.installed,
    }
    names = {"windowsSdk": "Windows SDK"}
    return [names.get(tool, tool) for tool in required_tools(runtime) if not installed[tool]]


def summarize(status: ToolchainStatus) -> ToolchainSummary:
    """工具链状态摘要"""
    linux_missing: list[str] = []
    windows_missing: list[str] = []

    if not status.zig.installed:
        linux_missing.append("Zig")

    if not status.lld.installed:
        windows_missing.append("LLD")
    if not status.xwin.installed:
        windows_missing.append("xwin")
    if not status.windows_sdk.installed:
        windows_missing.append("Windows SDK")

    return ToolchainSummary(
        linux_ready=not linux_missing,
        windows_ready=not windows_missing,
        linux_missing=linux_missing,
        windows_missing=windows_missing,
    )
