"""交叉编译参数构建

根据目标运行时和已检测的工具链，生成 dotnet publish 需要追加的
MSBuild 参数与环境变量：
- Linux 目标：Zig 包装脚本作为 C 编译器/链接器
- Windows 目标：lld-link + xwin 下载的 Windows SDK
- 其他（本机目标）：不追加任何参数

构建函数只返回结果，不抛出异常；由调用方决定是警告还是中止。
"""

from __future__ import annotations

import os
import stat
from collections.abc import Callable
from pathlib import Path
from typing import Optional

from dotdeploy.toolchain.platforms import (
    host_family,
    is_cross_compile_needed,
    target_family,
    target_path_separator,
    windows_arch,
    zig_target,
)
from dotdeploy.types import CrossCompileArgs, ToolchainStatus

# Windows 交叉编译固定参数
WINDOWS_BASE_ARGS: list[str] = [
    "-p:DisableUnsupportedError=true",
    "-p:AcceptVSBuildToolsLicense=true",
    # 关闭 SourceLink，避免 lld-link 路径解析问题
    "-p:EnableSourceLink=false",
    "-p:EnableSourceControlManagerQueries=false",
]

# MSBuild 属性值中的转义分号，展开为多个链接参数
_MSBUILD_ESCAPED_SEMICOLON = "%3B"

PathExists = Callable[[str], bool]


def default_wrapper_dir() -> Path:
    return Path.home() / ".dotdeploy" / "zig"


def zig_wrapper_path(triple: str, wrapper_dir: Path, host: Optional[str] = None) -> Path:
    current = host if host is not None else host_family()
    suffix = ".cmd" if current == "windows" else ""
    return wrapper_dir / f"zig-cc-{triple}{suffix}"


def ensure_zig_wrapper(
    triple: str,
    zig_path: str,
    wrapper_dir: Optional[Path] = None,
    host: Optional[str] = None,
) -> Path:
    """写入（或刷新）调用 `zig cc -target <triple>` 的包装脚本"""
    wrapper_dir = wrapper_dir or default_wrapper_dir()
    current = host if host is not None else host_family()
    wrapper = zig_wrapper_path(triple, wrapper_dir, current)
    wrapper_dir.mkdir(parents=True, exist_ok=True)

    if current == "windows":
        content = f'@"{zig_path}" cc -target {triple} %*\r\n'
    else:
        content = f'#!/bin/sh\nexec "{zig_path}" cc -target {triple} "$@"\n'

    if not wrapper.exists() or wrapper.read_text(encoding="utf-8") != content:
        wrapper.write_text(content, encoding="utf-8")
    mode = wrapper.stat().st_mode
    wrapper.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return wrapper


def linux_cross_compile_args(
    runtime: str,
    strip_symbols: bool,
    status: ToolchainStatus,
    wrapper_dir: Optional[Path] = None,
    host: Optional[str] = None,
) -> CrossCompileArgs:
    """Linux 目标：Zig 作为 C 编译器和链接器"""
    if not status.zig.installed:
        return CrossCompileArgs(success=False, error="zig not installed")

    triple = zig_target(runtime)
    wrapper = zig_wrapper_path(triple, wrapper_dir or default_wrapper_dir(), host)
    args = [
        "-p:DisableUnsupportedError=true",
        f"-p:CppCompilerAndLinker={wrapper}",
    ]

    if strip_symbols:
        objcopy = "llvm-objcopy"
        if status.llvm.has_objcopy and status.llvm.path:
            objcopy = str(Path(status.llvm.path) / "llvm-objcopy")
        args.append("-p:StripSymbols=true")
        args.append(f"-p:ObjCopyName={objcopy}")
    else:
        args.append("-p:StripSymbols=false")

    return CrossCompileArgs(success=True, args=args)


def windows_library_paths(sdk_path: Path, arch: str) -> list[str]:
    """xwin splat 目录下的库搜索路径（未过滤）"""
    splat = sdk_path / "splat"
    return [
        str(splat / "crt" / "lib" / arch),
        str(splat / "sdk" / "lib" / "um" / arch),
        str(splat / "sdk" / "lib" / "ucrt" / arch),
    ]


def join_library_paths(paths: list[str], family: str = "windows") -> str:
    """按目标平台分隔符拼接 LIB（Windows 为分号，与主机无关）"""
    return target_path_separator(family).join(paths)


def windows_cross_compile_args(
    runtime: str,
    status: ToolchainStatus,
    sdk_path: Path,
    exists: PathExists = os.path.isdir,
    host_path: Optional[str] = None,
) -> CrossCompileArgs:
    """Windows 目标：lld-link 链接，LIB 指向 xwin SDK"""
    if not exists(str(sdk_path / "splat" / "crt")):
        return CrossCompileArgs(
            success=False,
            error=f"Windows SDK not found: {sdk_path}. Please download it first.",
        )

    if not status.lld.installed:
        return CrossCompileArgs(
            success=False,
            error="lld-link linker not installed. Please install LLD: brew install lld",
        )

    linker = status.lld.path or "lld-link"
    arch = windows_arch(runtime)
    lib_paths = [p for p in windows_library_paths(sdk_path, arch) if exists(p)]
    if not lib_paths:
        return CrossCompileArgs(
            success=False,
            error=f"Windows SDK libraries not found for {arch} under {sdk_path / 'splat'}",
        )
    linker_args = [f"/LIBPATH:{p}" for p in lib_paths]

    args = list(WINDOWS_BASE_ARGS)
    args.append(f"-p:CppLinker={linker}")
    args.append(f"-p:IlcAdditionalLinkArgs={_MSBUILD_ESCAPED_SEMICOLON.join(linker_args)}")

    env: dict[str, str] = {"LIB": join_library_paths(lib_paths, "windows")}
    current_path = os.environ.get("PATH", "") if host_path is None else host_path
    if status.lld.path:
        linker_dir = str(Path(status.lld.path).parent)
        env["PATH"] = os.pathsep.join(p for p in (linker_dir, current_path) if p)

    return CrossCompileArgs(success=True, args=args, env=env, linker_args=linker_args)


def build_cross_compile_args(
    runtime: str,
    strip_symbols: bool,
    status: ToolchainStatus,
    sdk_path: Path,
    wrapper_dir: Optional[Path] = None,
    host: Optional[str] = None,
) -> CrossCompileArgs:
    """根据目标系统族分派；本机目标不追加参数"""
    if not is_cross_compile_needed(runtime, host):
        return CrossCompileArgs(success=True)

    family = target_family(runtime)
    if family == "linux":
        return linux_cross_compile_args(runtime, strip_symbols, status, wrapper_dir, host)
    if family == "windows":
        return windows_cross_compile_args(runtime, status, sdk_path)
    return CrossCompileArgs(success=True)
