"""工具链检测测试"""

from __future__ import annotations

from pathlib import Path
from typing import Optional
from unittest.mock import AsyncMock, patch

import pytest

from dotdeploy.config.manager import CrossCompileConfig
from dotdeploy.toolchain.detector import (
    ToolchainDetector,
    format_size,
    missing_tools,
    required_tools,
    summarize,
)
from dotdeploy.types import ToolchainStatus, ToolStatus, WindowsSdkStatus


@pytest.fixture
def detector(tmp_path: Path) -> ToolchainDetector:
    return ToolchainDetector(CrossCompileConfig(xwin_sdk_path=str(tmp_path / "sdk")))


def _which(mapping: dict[str, str]):
    def which(name: str) -> Optional[str]:
        return mapping.get(name)

    return which


@pytest.mark.asyncio
async def test_detect_nothing_installed(detector: ToolchainDetector) -> None:
    with patch("dotdeploy.toolchain.detector.shutil.which", return_value=None), patch(
        "dotdeploy.toolchain.detector.brew_prefix", return_value=Path("/nonexistent-brew")
    ), patch("dotdeploy.toolchain.detector.Path.home", return_value=Path("/nonexistent-home")):
        status = await detector.detect()

    assert status.zig.installed is False
    assert status.lld.installed is False
    assert status.xwin.installed is False
    assert status.llvm.has_objcopy is False
    assert status.windows_sdk.installed is False


@pytest.mark.asyncio
async def test_detect_tools_on_path(detector: ToolchainDetector) -> None:
    which = _which(
        {
            "zig": "/usr/bin/zig",
            "lld-link": "/usr/bin/lld-link",
            "llvm-objcopy": "/usr/lib/llvm/bin/llvm-objcopy",
        }
    )
    with patch("dotdeploy.toolchain.detector.shutil.which", side_effect=which), patch(
        "dotdeploy.toolchain.detector.brew_prefix", return_value=Path("/nonexistent-brew")
    ), patch(
        "dotdeploy.toolchain.detector.Path.home", return_value=Path("/nonexistent-home")
    ), patch.object(
        ToolchainDetector, "_probe_version", new=AsyncMock(return_value="0.13.0")
    ):
        status = await detector.detect()

    assert status.zig.installed is True
    assert status.zig.version == "0.13.0"
    assert status.zig.path == "/usr/bin/zig"
    assert status.lld.installed is True
    assert status.xwin.installed is False
    assert status.llvm.has_objcopy is True
    assert status.llvm.path == "/usr/lib/llvm/bin"


@pytest.mark.asyncio
async def test_failed_version_probe_means_not_installed(detector: ToolchainDetector) -> None:
    with patch("dotdeploy.toolchain.detector.shutil.which", return_value="/usr/bin/zig"), patch.object(
        ToolchainDetector, "_probe_version", new=AsyncMock(return_value=None)
    ):
        status = await detector.check_zig()
    assert status.installed is False


@pytest.mark.asyncio
async def test_probe_exception_is_contained(detector: ToolchainDetector) -> None:
    """单个探测抛异常时按未安装处理，不影响其他结果"""
    with patch.object(
        ToolchainDetector, "check_zig", new=AsyncMock(side_effect=RuntimeError("boom"))
    ), patch.object(
        ToolchainDetector, "check_lld", new=AsyncMock(return_value=ToolStatus(installed=True))
    ), patch.object(
        ToolchainDetector, "check_xwin", new=AsyncMock(return_value=ToolStatus())
    ):
        status = await detector.detect()

    assert status.zig.installed is False
    assert status.lld.installed is True


@pytest.mark.asyncio
async def test_windows_sdk_detected(tmp_path: Path) -> None:
    sdk = tmp_path / "sdk"
    crt = sdk / "splat" / "crt"
    crt.mkdir(parents=True)
    (crt / "lib.a").write_bytes(b"x" * 2048)

    detector = ToolchainDetector(CrossCompileConfig(xwin_sdk_path=str(sdk)))
    status = await detector.check_windows_sdk()

    assert status.installed is True
    assert status.path == str(sdk)
    assert status.size == "2.0K"


def test_format_size() -> None:
    assert format_size(512) == "512B"
    assert format_size(1536) == "1.5K"
    assert format_size(3 * 1024 * 1024) == "3.0M"


def test_required_tools() -> None:
    assert required_tools("linux-arm64") == ["zig"]
    assert required_tools("win-x64") == ["lld", "xwin", "windowsSdk"]
    assert required_tools("osx-arm64") == []


def test_missing_tools_display_names() -> None:
    status = ToolchainStatus(lld=ToolStatus(installed=True))
    assert missing_tools("win-x64", status) == ["xwin", "Windows SDK"]
    assert missing_tools("linux-x64", status) == ["zig"]


def test_summarize() -> None:
    status = ToolchainStatus(
        zig=ToolStatus(installed=True),
        lld=ToolStatus(installed=True),
        windows_sdk=WindowsSdkStatus(installed=True),
    )
    summary = summarize(status)
    assert summary.linux_ready is True
    assert summary.linux_missing == []
    assert summary.windows_ready is False
    assert summary.windows_missing == ["xwin"]


def test_summarize_nothing_installed() -> None:
    summary = summarize(ToolchainStatus())
    assert summary.linux_missing == ["Zig"]
    assert summary.windows_missing == ["LLD", "xwin", "Windows SDK"]
