"""工具链安装 - Homebrew / Cargo / xwin"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Optional

from dotdeploy.config.manager import CrossCompileConfig
from dotdeploy.runner import ProcessRunner
from dotdeploy.toolchain.detector import ToolchainDetector
from dotdeploy.toolchain.platforms import brew_prefix
from dotdeploy.types import OutputSink, ToolInstallResult, ToolName

logger = logging.getLogger(__name__)

# 工具 → (包管理器, 安装参数)
_PACKAGE_INSTALLS: dict[ToolName, tuple[str, list[str]]] = {
    "zig": ("brew", ["install", "zig"]),
    "lld": ("brew", ["install", "lld"]),
    "llvm": ("brew", ["install", "llvm"]),
    "xwin": ("cargo", ["install", "--locked", "xwin"]),
}

_MANAGER_HINTS: dict[str, str] = {
    "brew": "Homebrew is not installed. Please install Homebrew first: https://brew.sh",
    "cargo": "Rust/Cargo is not installed. Please install Rust first: https://rustup.rs",
}

INSTALLABLE_TOOLS: list[ToolName] = [*_PACKAGE_INSTALLS.keys(), "windowsSdk"]

WINDOWS_SDK_VERSION = "10.0.22621"


class ToolchainInstaller:
    """安装缺失的交叉编译工具"""

    def __init__(
        self,
        sink: OutputSink,
        config: Optional[CrossCompileConfig] = None,
        runner: Optional[ProcessRunner] = None,
        detector: Optional[ToolchainDetector] = None,
    ) -> None:
        self._sink = sink
        self._config = config or CrossCompileConfig()
        self._runner = runner or ProcessRunner()
        self._detector = detector or ToolchainDetector(self._config)

    async def install(self, tool: ToolName) -> ToolInstallResult:
        """安装指定工具

        Args:
            tool: zig / lld / xwin / llvm / windowsSdk
        """
        if tool == "windowsSdk":
            return await self.download_windows_sdk()
        if tool not in _PACKAGE_INSTALLS:
            return ToolInstallResult(success=False, tool=tool, error=f"Unknown tool: {tool}")

        manager, args = _PACKAGE_INSTALLS[tool]
        if shutil.which(manager) is None:
            return ToolInstallResult(success=False, tool=tool, error=_MANAGER_HINTS[manager])

        logger.info("installing %s via %s", tool, manager)
        self._sink.append_line(f"[CrossCompile] Installing {tool} via {manager}...")
        result = await self._runner.run(manager, args, sink=self._sink)
        if not result.success:
            error = result.error or result.stderr.strip() or f"{manager} exited with code {result.exit_code}"
            self._sink.append_line(f"[CrossCompile] ✗ Failed to install {tool}: {error}")
            return ToolInstallResult(success=False, tool=tool, error=error)

        self._sink.append_line(f"[CrossCompile] ✓ {tool} installed successfully")
        if tool == "lld":
            lld_bin = self._brew_bin("lld")
            self._sink.append_line(f'[CrossCompile] Add to PATH: export PATH="{lld_bin}:$PATH"')
        return ToolInstallResult(success=True, tool=tool)

    def _brew_bin(self, formula: str) -> Path:
        return brew_prefix() / "opt" / formula / "bin"

    async def download_windows_sdk(self) -> ToolInstallResult:
        """用 xwin 下载并展开 Windows SDK 到缓存目录"""
        sdk_path = self._config.sdk_path()
        if (sdk_path / "splat" / "crt").is_dir():
            self._sink.append_line("[CrossCompile] Windows SDK already exists")
            return ToolInstallResult(success=True, tool="windowsSdk", path=str(sdk_path))

        xwin = await self._detector.check_xwin()
        if not xwin.installed:
            return ToolInstallResult(
                success=False,
                tool="windowsSdk",
                error="xwin is not installed. Please install it first: cargo install --locked xwin",
            )

        sdk_path.mkdir(parents=True, exist_ok=True)
        args = [
            "--accept-license",
            "--cache-dir",
            str(sdk_path),
            "--arch",
            "x86_64,aarch64",
            "--sdk-version",
            WINDOWS_SDK_VERSION,
            "splat",
            "--preserve-ms-arch-notation",
            "--include-debug-symbols",
        ]
        xwin_path = xwin.path or "xwin"
        self._sink.append_line("[CrossCompile] Downloading Windows SDK (5-10 minutes)...")
        self._sink.append_line(f"[CrossCompile] Running: {xwin_path} {' '.join(args)}")

        result = await self._runner.run(xwin_path, args, cwd=str(sdk_path), sink=self._sink)
        if result.success:
            self._sink.append_line("[CrossCompile] ✓ Windows SDK downloaded successfully")
            return ToolInstallResult(success=True, tool="windowsSdk", path=str(sdk_path))

        error = result.error or result.stderr.strip() or f"xwin exited with code {result.exit_code}"
        self._sink.append_line(f"[CrossCompile] ✗ Failed to download Windows SDK: {error}")
        return ToolInstallResult(success=False, tool="windowsSdk", error=error)


def validate_windows_sdk(sdk_path: Path) -> list[str]:
    """检查 SDK 缓存完整性，返回问题列表（空表示完整）"""
    splat = sdk_path / "splat"
    issues: list[str] = []

    crt = splat / "crt"
    if not crt.is_dir():
        issues.append("CRT directory not found")
    elif not (crt / "lib").is_dir():
        issues.append("CRT lib directory not found")

    if not (splat / "sdk").is_dir():
        issues.append("SDK directory not found")
    else:
        for arch in ("x64", "arm64"):
            if not (splat / "sdk" / "lib" / "ucrt" / arch).is_dir():
                issues.append(f"SDK {arch} architecture not found")

    return issues


def clean_windows_sdk_cache(sdk_path: Path, sink: OutputSink) -> ToolInstallResult:
    """删除 SDK 缓存目录"""
    if not sdk_path.exists():
        sink.append_line("[CrossCompile] Windows SDK cache does not exist")
        return ToolInstallResult(success=True, tool="windowsSdk")
    try:
        sink.append_line(f"[CrossCompile] Removing Windows SDK cache: {sdk_path}")
        shutil.rmtree(sdk_path)
    except OSError as e:
        sink.append_line(f"[CrossCompile] ✗ Failed to remove cache: {e}")
        return ToolInstallResult(success=False, tool="windowsSdk", error=str(e))
    sink.append_line("[CrossCompile] ✓ Windows SDK cache removed")
    return ToolInstallResult(success=True, tool="windowsSdk")
