"""交叉编译参数构建测试"""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from dotdeploy.toolchain.cross_args import (
    WINDOWS_BASE_ARGS,
    build_cross_compile_args,
    ensure_zig_wrapper,
    join_library_paths,
    linux_cross_compile_args,
    windows_cross_compile_args,
    windows_library_paths,
)
from dotdeploy.types import LlvmStatus, ToolchainStatus, ToolStatus


@pytest.fixture
def full_status() -> ToolchainStatus:
    return ToolchainStatus(
        zig=ToolStatus(installed=True, version="0.13.0", path="/usr/bin/zig"),
        lld=ToolStatus(installed=True, version="LLD 18", path="/opt/lld/bin/lld-link"),
        llvm=LlvmStatus(installed=True, has_objcopy=True, path="/opt/llvm/bin"),
    )


# ------------------------------------------------------------------
# Linux
# ------------------------------------------------------------------


def test_linux_args_without_zig(tmp_path: Path) -> None:
    result = linux_cross_compile_args("linux-x64", False, ToolchainStatus(), tmp_path, "macos")
    assert result.success is False
    assert result.error == "zig not installed"


def test_linux_args_use_wrapper(full_status: ToolchainStatus, tmp_path: Path) -> None:
    result = linux_cross_compile_args("linux-arm64", False, full_status, tmp_path, "macos")
    assert result.success is True
    assert "-p:DisableUnsupportedError=true" in result.args
    assert f"-p:CppCompilerAndLinker={tmp_path / 'zig-cc-aarch64-linux-gnu'}" in result.args
    assert "-p:StripSymbols=false" in result.args
    assert result.env == {}


def test_linux_args_strip_uses_llvm_objcopy(full_status: ToolchainStatus, tmp_path: Path) -> None:
    result = linux_cross_compile_args("linux-x64", True, full_status, tmp_path, "macos")
    assert "-p:StripSymbols=true" in result.args
    assert f"-p:ObjCopyName={Path('/opt/llvm/bin') / 'llvm-objcopy'}" in result.args


def test_ensure_zig_wrapper_posix(tmp_path: Path) -> None:
    wrapper = ensure_zig_wrapper("x86_64-linux-musl", "/usr/bin/zig", tmp_path, "macos")
    content = wrapper.read_text(encoding="utf-8")
    assert wrapper.name == "zig-cc-x86_64-linux-musl"
    assert content.startswith("#!/bin/sh")
    assert 'cc -target x86_64-linux-musl "$@"' in content
    assert wrapper.stat().st_mode & stat.S_IXUSR


def test_ensure_zig_wrapper_windows_host(tmp_path: Path) -> None:
    wrapper = ensure_zig_wrapper("x86_64-linux-gnu", "C:/zig/zig.exe", tmp_path, "windows")
    assert wrapper.suffix == ".cmd"
    assert "cc -target x86_64-linux-gnu %*" in wrapper.read_text(encoding="utf-8")


# ------------------------------------------------------------------
# Windows
# ------------------------------------------------------------------


def test_windows_args_missing_sdk(full_status: ToolchainStatus, tmp_path: Path) -> None:
    result = windows_cross_compile_args("win-x64", full_status, tmp_path / "sdk")
    assert result.success is False
    assert "Windows SDK not found" in (result.error or "")


def test_windows_args_missing_linker(tmp_path: Path) -> None:
    result = windows_cross_compile_args(
        "win-x64", ToolchainStatus(), tmp_path, exists=lambda _p: True
    )
    assert result.success is False
    assert "lld-link linker not installed" in (result.error or "")


def test_windows_args_library_paths(full_status: ToolchainStatus) -> None:
    sdk = Path("/sdk")
    result = windows_cross_compile_args(
        "win-arm64", full_status, sdk, exists=lambda _p: True, host_path="/usr/bin"
    )
    expected = windows_library_paths(sdk, "arm64")

    assert result.success is True
    assert result.args[: len(WINDOWS_BASE_ARGS)] == WINDOWS_BASE_ARGS
    assert "-p:CppLinker=/opt/lld/bin/lld-link" in result.args
    assert result.linker_args == [f"/LIBPATH:{p}" for p in expected]
    assert result.env["LIB"] == ";".join(expected)
    assert result.env["PATH"] == os.pathsep.join([str(Path("/opt/lld/bin")), "/usr/bin"])
    link_arg = next(a for a in result.args if a.startswith("-p:IlcAdditionalLinkArgs="))
    assert link_arg.count("%3B") == 2


def test_windows_args_skip_missing_library_dirs(full_status: ToolchainStatus) -> None:
    sdk = Path("/sdk")
    crt_lib = str(sdk / "splat" / "crt" / "lib" / "x64")

    def exists(path: str) -> bool:
        return path in (str(sdk / "splat" / "crt"), crt_lib)

    result = windows_cross_compile_args("win-x64", full_status, sdk, exists=exists)
    assert result.env["LIB"] == crt_lib
    assert result.linker_args == [f"/LIBPATH:{crt_lib}"]


def test_windows_args_without_any_library_dir(full_status: ToolchainStatus) -> None:
    """只有 splat/crt 目录、没有任何 lib/<arch> 时直接失败"""
    sdk = Path("/sdk")

    result = windows_cross_compile_args(
        "win-x64", full_status, sdk, exists=lambda p: p == str(sdk / "splat" / "crt")
    )

    assert result.success is False
    assert "Windows SDK libraries not found for x64" in (result.error or "")
    assert result.args == []
    assert "LIB" not in result.env


def test_lib_separator_is_semicolon_regardless_of_host(monkeypatch: pytest.MonkeyPatch) -> None:
    """LIB 面向 Windows 链接器，即使主机分隔符是 ':' 也用 ';'"""
    monkeypatch.setattr(os, "pathsep", ":")
    assert join_library_paths(["/a", "/b"]) == "/a;/b"


def test_windows_library_paths_layout() -> None:
    paths = windows_library_paths(Path("/sdk"), "x64")
    assert paths == [
        str(Path("/sdk/splat/crt/lib/x64")),
        str(Path("/sdk/splat/sdk/lib/um/x64")),
        str(Path("/sdk/splat/sdk/lib/ucrt/x64")),
    ]


# ------------------------------------------------------------------
# 分派
# ------------------------------------------------------------------


def test_build_native_target_adds_nothing(full_status: ToolchainStatus, tmp_path: Path) -> None:
    result = build_cross_compile_args("linux-x64", False, full_status, tmp_path, tmp_path, "linux")
    assert result.success is True
    assert result.args == []
    assert result.env == {}


def test_build_dispatches_to_linux(full_status: ToolchainStatus, tmp_path: Path) -> None:
    result = build_cross_compile_args("linux-x64", False, full_status, tmp_path, tmp_path, "macos")
    assert any(a.startswith("-p:CppCompilerAndLinker=") for a in result.args)


def test_build_dispatches_to_windows(tmp_path: Path) -> None:
    result = build_cross_compile_args("win-x64", False, ToolchainStatus(), tmp_path, tmp_path, "linux")
    assert result.success is False
    assert "Windows SDK not found" in (result.error or "")
