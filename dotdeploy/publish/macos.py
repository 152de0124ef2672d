"""macOS 打包：.app 包、DMG、PKG

只在 macOS 主机上可用；任何失败都只作为警告返回给发布流程。
"""

from __future__ import annotations

import plistlib
import shutil
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field

from dotdeploy.config.manager import MacOSConfig
from dotdeploy.runner import ProcessRunner
from dotdeploy.toolchain.platforms import host_family
from dotdeploy.types import OutputSink


class MacOSPackageOptions(BaseModel):
    """打包选项"""

    executable_path: Path
    output_dir: Path
    app_name: str
    bundle_id: str = "com.example.app"
    version: str = "1.0.0"
    build_number: str = "1"
    icon_path: Optional[Path] = None
    format: Literal["app", "dmg", "pkg"] = "app"
    minimum_os_version: str = "10.15"
    code_sign_identity: Optional[str] = None
    resources: list[Path] = Field(default_factory=list)

    @classmethod
    def from_config(
        cls,
        config: MacOSConfig,
        executable_path: Path,
        output_dir: Path,
        default_name: str,
    ) -> MacOSPackageOptions:
        return cls(
            executable_path=executable_path,
            output_dir=output_dir,
            app_name=config.app_name or default_name,
            bundle_id=config.bundle_id,
            version=config.version,
            build_number=config.build_number,
            icon_path=Path(config.icon_path).expanduser() if config.icon_path else None,
            format=config.format,
            minimum_os_version=config.minimum_os_version,
            code_sign_identity=config.code_sign_identity or None,
        )


class PackageResult(BaseModel):
    """打包结果"""

    success: bool
    output_path: Optional[str] = None
    error: Optional[str] = None


def build_info_plist(options: MacOSPackageOptions) -> dict[str, object]:
    plist: dict[str, object] = {
        "CFBundleDevelopmentRegion": "en",
        "CFBundleExecutable": options.app_name,
        "CFBundleIdentifier": options.bundle_id,
        "CFBundleInfoDictionaryVersion": "6.0",
        "CFBundleName": options.app_name,
        "CFBundleDisplayName": options.app_name,
        "CFBundlePackageType": "APPL",
        "CFBundleShortVersionString": options.version,
        "CFBundleVersion": options.build_number,
        "LSMinimumSystemVersion": options.minimum_os_version,
        "NSHighResolutionCapable": True,
    }
    if options.icon_path:
        plist["CFBundleIconFile"] = "AppIcon"
    return plist


class MacOSPackager:
    """macOS 打包器"""

    def __init__(self, sink: OutputSink, runner: Optional[ProcessRunner] = None) -> None:
        self._sink = sink
        self._runner = runner or ProcessRunner()

    async def package(self, options: MacOSPackageOptions) -> PackageResult:
        """创建 .app，并按 format 继续生成 DMG 或 PKG"""
        if host_family() != "macos":
            return PackageResult(success=False, error="macOS packaging is only available on macOS")

        app_result = await self.create_app_bundle(options)
        if not app_result.success or options.format == "app":
            return app_result

        app_path = Path(app_result.output_path or "")
        if options.format == "dmg":
            return await self._create_image(
                "hdiutil",
                [
                    "create",
                    "-volname",
                    options.app_name,
                    "-srcfolder",
                    str(app_path),
                    "-ov",
                    "-format",
                    "UDZO",
                ],
                options.output_dir / f"{options.app_name}.dmg",
            )
        return await self._create_image(
            "pkgbuild",
            [
                "--root",
                str(app_path),
                "--identifier",
                options.bundle_id,
                "--version",
                options.version,
                "--install-location",
                "/Applications",
            ],
            options.output_dir / f"{options.app_name}.pkg",
        )

    async def create_app_bundle(self, options: MacOSPackageOptions) -> PackageResult:
        app_path = options.output_dir / f"{options.app_name}.app"
        contents = app_path / "Contents"
        macos_dir = contents / "MacOS"
        resources_dir = contents / "Resources"

        self._sink.append_line(f"[macOS Packager] Creating .app bundle: {app_path}")
        try:
            macos_dir.mkdir(parents=True, exist_ok=True)
            resources_dir.mkdir(parents=True, exist_ok=True)

            with open(contents / "Info.plist", "wb") as f:
                plistlib.dump(build_info_plist(options), f)
            (contents / "PkgInfo").write_text("APPL????", encoding="utf-8")

            executable_dest = macos_dir / options.app_name
            shutil.copy2(options.executable_path, executable_dest)
            executable_dest.chmod(0o755)

            # 同目录下的依赖：文件放 MacOS，目录放 Resources
            source_dir = options.executable_path.parent
            for entry in sorted(source_dir.iterdir()):
                if entry == options.executable_path or entry == app_path:
                    continue
                if entry.suffix in (".app", ".dmg", ".pkg"):
                    continue
                if entry.is_file():
                    shutil.copy2(entry, macos_dir / entry.name)
                elif entry.is_dir():
                    shutil.copytree(entry, resources_dir / entry.name, dirs_exist_ok=True)

            for resource in options.resources:
                if resource.is_dir():
                    shutil.copytree(resource, resources_dir / resource.name, dirs_exist_ok=True)
                elif resource.is_file():
                    shutil.copy2(resource, resources_dir / resource.name)
        except OSError as e:
            self._sink.append_line(f"[macOS Packager] ✗ Failed to create .app bundle: {e}")
            return PackageResult(success=False, error=str(e))

        if options.icon_path and options.icon_path.is_file():
            await self._install_icon(options.icon_path, resources_dir / "AppIcon.icns")

        if options.code_sign_identity:
            self._sink.append_line(
                f"[macOS Packager] Signing app with identity: {options.code_sign_identity}"
            )
            signed = await self._runner.run(
                "codesign",
                ["--deep", "--force", "--sign", options.code_sign_identity, str(app_path)],
                sink=self._sink,
            )
            if not signed.success:
                # 签名失败不中断打包
                self._sink.append_line("[macOS Packager] ⚠️ Code signing failed")

        self._sink.append_line(f"[macOS Packager] ✓ Created .app bundle: {app_path}")
        return PackageResult(success=True, output_path=str(app_path))

    async def _install_icon(self, icon: Path, dest: Path) -> None:
        if icon.suffix.lower() == ".icns":
            shutil.copy2(icon, dest)
            return
        result = await self._runner.run(
            "sips", ["-s", "format", "icns", str(icon), "--out", str(dest)], sink=self._sink
        )
        if not result.success:
            self._sink.append_line(f"[macOS Packager] ⚠️ Icon conversion failed: {icon}")

    async def _create_image(self, program: str, args: list[str], output: Path) -> PackageResult:
        self._sink.append_line(f"[macOS Packager] Creating {output.name}")
        if output.exists():
            output.unlink()
        result = await self._runner.run(program, [*args, str(output)], sink=self._sink)
        if not result.success:
            error = result.error or result.stderr.strip() or f"{program} exited with code {result.exit_code}"
            self._sink.append_line(f"[macOS Packager] ✗ Failed to create {output.name}: {error}")
            return PackageResult(success=False, error=error)
        self._sink.append_line(f"[macOS Packager] ✓ Created {output.name}")
        return PackageResult(success=True, output_path=str(output))
