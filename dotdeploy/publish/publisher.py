"""dotnet publish 编排：交叉编译准备 → 编译 → [UPX 压缩] → [macOS 打包]"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotdeploy.config.manager import CrossCompileConfig, MacOSConfig
from dotdeploy.publish.compressor import UpxCompressor, find_executable
from dotdeploy.publish.macos import MacOSPackageOptions, MacOSPackager
from dotdeploy.runner import ProcessRunner
from dotdeploy.toolchain.cross_args import build_cross_compile_args, ensure_zig_wrapper
from dotdeploy.toolchain.detector import ToolchainDetector, missing_tools
from dotdeploy.toolchain.platforms import (
    host_family,
    is_cross_compile_needed,
    supports_upx,
    target_family,
    zig_target,
)
from dotdeploy.types import (
    OutputSink,
    PublishPhase,
    PublishResult,
    ToolchainStatus,
    join_warnings,
)

logger = logging.getLogger(__name__)

# 状态回调类型
StatusCallback = Optional[Callable[[PublishPhase, str], None]]


@dataclass
class PublishOptions:
    """一次发布的全部选项"""

    project_path: Path
    output_dir: Optional[Path] = None
    runtime: str = "linux-x64"
    self_contained: bool = True
    single_file: bool = False
    disable_symbols: bool = False
    publish_aot: bool = False
    strip_symbols: bool = False
    cross_strip_symbols: bool = False  # 仅交叉编译时生效
    invariant_globalization: bool = False
    upx_enabled: bool = False
    upx_level: str = "--best"
    cross_compile_enabled: bool = True
    macos_package: Optional[MacOSConfig] = None
    assembly_name: Optional[str] = None
    on_status: StatusCallback = None

    @property
    def project_name(self) -> str:
        return self.project_path.stem

    @property
    def publish_dir(self) -> Path:
        if self.output_dir is not None:
            return self.output_dir
        return self.project_path.parent / "bin" / "publish"


class Publisher:
    """发布编排器

    输出目录不会被自动清空，需要清空时由调用方在 publish 之前处理。
    """

    def __init__(
        self,
        sink: OutputSink,
        cross_config: Optional[CrossCompileConfig] = None,
        runner: Optional[ProcessRunner] = None,
        detector: Optional[ToolchainDetector] = None,
        compressor: Optional[UpxCompressor] = None,
        packager: Optional[MacOSPackager] = None,
        host: Optional[str] = None,
        wrapper_dir: Optional[Path] = None,
    ) -> None:
        self._sink = sink
        self._cross_config = cross_config or CrossCompileConfig()
        self._runner = runner or ProcessRunner()
        self._detector = detector or ToolchainDetector(self._cross_config)
        self._compressor = compressor or UpxCompressor(sink, self._runner)
        self._packager = packager or MacOSPackager(sink, self._runner)
        self._host = host if host is not None else host_family()
        self._wrapper_dir = wrapper_dir

    def _report(self, options: PublishOptions, phase: PublishPhase, message: str) -> None:
        if options.on_status:
            options.on_status(phase, message)

    async def publish(self, options: PublishOptions) -> PublishResult:
        """执行 dotnet publish 及后续可选步骤

        Returns:
            PublishResult；编译失败时不会执行压缩和打包
        """
        project_dir = options.project_path.parent
        assembly_name = options.assembly_name or options.project_name
        publish_dir = options.publish_dir

        args = [
            "publish",
            str(options.project_path),
            "-c",
            "Release",
            "-o",
            str(publish_dir),
            "-r",
            options.runtime,
        ]
        extra_env: dict[str, str] = {}
        warnings: list[Optional[str]] = []

        cross_active = (
            is_cross_compile_needed(options.runtime, self._host)
            and options.cross_compile_enabled
            and options.publish_aot
        )
        if cross_active:
            cross_args, cross_env, cross_warning = await self._prepare_cross_compile(options)
            args.extend(cross_args)
            extra_env.update(cross_env)
            warnings.append(cross_warning)

        args.extend(self._publish_flags(options, cross_active))

        self._sink.append_line(f"[Publisher] Running: dotnet {' '.join(args)}")
        self._sink.append_line()
        self._report(options, "compile", "正在编译...")

        result = await self._runner.run(
            "dotnet", args, cwd=str(project_dir), env=extra_env, sink=self._sink
        )
        if not result.success:
            self._sink.append_line()
            self._sink.append_line(f"[Publisher] ✗ Publish failed with code {result.exit_code}")
            return PublishResult(
                success=False,
                output_path=str(publish_dir),
                assembly_name=assembly_name,
                error=result.error or result.stderr or result.stdout,
                warning=join_warnings(*warnings),
            )

        self._sink.append_line()
        self._sink.append_line(f"[Publisher] ✓ Published successfully to {publish_dir}")

        if options.upx_enabled:
            warnings.append(await self._compress(options, publish_dir))

        output_path = str(publish_dir)
        if self._should_package(options):
            package_path, package_warning = await self._package(options, publish_dir)
            warnings.append(package_warning)
            if package_path:
                output_path = package_path

        return PublishResult(
            success=True,
            output_path=output_path,
            assembly_name=assembly_name,
            warning=join_warnings(*warnings),
        )

    def _publish_flags(self, options: PublishOptions, cross_active: bool) -> list[str]:
        flags: list[str] = []
        if options.self_contained:
            flags.append("--self-contained=true")
        if options.single_file:
            flags.append("-p:PublishSingleFile=true")
        if options.disable_symbols:
            flags.extend(["-p:DebugType=none", "-p:DebugSymbols=false"])
        if options.publish_aot:
            flags.append("-p:PublishAot=true")
            # 交叉编译时 StripSymbols 由交叉编译参数决定
            if not cross_active:
                flags.append("-p:StripSymbols=true")
            flags.append("-p:IlcOptimizationPreference=Size")
        elif options.strip_symbols:
            flags.append("-p:StripSymbols=true")
        if options.invariant_globalization:
            flags.append("-p:InvariantGlobalization=true")
        return flags

    async def _prepare_cross_compile(
        self, options: PublishOptions
    ) -> tuple[list[str], dict[str, str], Optional[str]]:
        """检测工具链并构建交叉编译参数；缺工具只产生警告，继续尝试编译"""
        self._sink.append_line(
            f"[Publisher] Cross-compilation detected: {self._host} → {options.runtime}"
        )
        status: ToolchainStatus = await self._detector.detect()
        warning: Optional[str] = None

        missing = missing_tools(options.runtime, status)
        if missing:
            warning = f"Missing tools for cross-compilation: {', '.join(missing)}"
            self._sink.append_line(f"[Publisher] ⚠️ {warning}")
            self._sink.append_line("[Publisher] Cross-compilation will be attempted but may fail.")

        if target_family(options.runtime) == "linux" and status.zig.installed and status.zig.path:
            try:
                ensure_zig_wrapper(
                    zig_target(options.runtime), status.zig.path, self._wrapper_dir, self._host
                )
            except OSError as e:
                logger.warning("failed to write zig wrapper: %s", e)
                return [], {}, join_warnings(warning, f"Zig wrapper setup failed: {e}")

        cross = build_cross_compile_args(
            options.runtime,
            options.strip_symbols or options.cross_strip_symbols,
            status,
            self._cross_config.sdk_path(),
            self._wrapper_dir,
            self._host,
        )
        if not cross.success:
            self._sink.append_line(f"[Publisher] ⚠️ Cross-compile setup failed: {cross.error}")
            return [], {}, join_warnings(warning, cross.error)

        if cross.args:
            self._sink.append_line(f"[Publisher] Cross-compile args: {' '.join(cross.args)}")
        if "LIB" in cross.env:
            self._sink.append_line(f"[Publisher] LIB env: {cross.env['LIB']}")
        return cross.args, cross.env, warning

    async def _compress(self, options: PublishOptions, publish_dir: Path) -> Optional[str]:
        if not supports_upx(options.runtime):
            self._sink.append_line(f"[UPX] ⚠️ UPX 不支持 {options.runtime} 目标，跳过压缩")
            return None

        self._report(options, "upx", "正在压缩...")
        compressed = await self._compressor.compress(
            publish_dir, options.assembly_name or options.project_name, options.upx_level
        )
        if compressed.success:
            return None
        return f"UPX compression failed: {compressed.error}"

    def _should_package(self, options: PublishOptions) -> bool:
        return (
            options.macos_package is not None
            and options.macos_package.enabled
            and self._host == "macos"
            and target_family(options.runtime) == "macos"
        )

    async def _package(
        self, options: PublishOptions, publish_dir: Path
    ) -> tuple[Optional[str], Optional[str]]:
        """macOS 打包，成功返回包路径；失败只返回警告"""
        config = options.macos_package
        if config is None:
            return None, None
        self._report(options, "package", "正在打包...")
        self._sink.append_line()
        self._sink.append_line("[Publisher] Starting macOS packaging...")

        name = options.assembly_name or options.project_name
        executable = find_executable(publish_dir, name)
        if executable is None:
            self._sink.append_line("[Publisher] ⚠️ Could not find executable for macOS packaging")
            return None, "macOS packaging skipped: executable not found"

        package_options = MacOSPackageOptions.from_config(
            config, executable, publish_dir, name
        )
        packaged = await self._packager.package(package_options)
        if packaged.success and packaged.output_path:
            self._sink.append_line(f"[Publisher] ✓ macOS package created: {packaged.output_path}")
            return packaged.output_path, None

        self._sink.append_line(f"[Publisher] ⚠️ macOS packaging failed: {packaged.error}")
        return None, f"macOS packaging failed: {packaged.error}"
