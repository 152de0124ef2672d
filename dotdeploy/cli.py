"""dotdeploy CLI 入口"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, cast

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from dotdeploy import __version__
from dotdeploy.config.manager import ConfigManager, DotDeployConfig
from dotdeploy.context.session import ConsoleSink, DeployContext
from dotdeploy.deploy.sequencer import DeployRequest, DeploySequencer
from dotdeploy.project import ProjectInfo, find_projects, parse_project
from dotdeploy.publish.publisher import PublishOptions
from dotdeploy.toolchain.detector import ToolchainDetector, summarize
from dotdeploy.toolchain.installer import (
    INSTALLABLE_TOOLS,
    ToolchainInstaller,
    clean_windows_sdk_cache,
    validate_windows_sdk,
)
from dotdeploy.toolchain.platforms import SUPPORTED_RUNTIMES
from dotdeploy.types import AuthType, DeployTarget, ToolName, ToolStatus

app = typer.Typer(
    name="dotdeploy",
    help="dotdeploy - .NET 发布与 SSH 部署工具",
    add_completion=False,
)
toolchain_app = typer.Typer(help="交叉编译工具链命令")
config_app = typer.Typer(help="配置管理命令")
app.add_typer(toolchain_app, name="toolchain")
app.add_typer(config_app, name="config")

console = Console()


def version_callback(value: bool) -> None:
    """版本回调"""
    if value:
        console.print(f"dotdeploy version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="显示版本号",
    ),
    verbose: bool = typer.Option(False, "--verbose", help="输出调试日志"),
) -> None:
    """dotdeploy - .NET 发布与 SSH 部署工具"""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, rich_tracebacks=True)],
        )


def _load_config(manager: Optional[ConfigManager] = None) -> tuple[ConfigManager, DotDeployConfig]:
    manager = manager or ConfigManager()
    try:
        return manager, manager.load()
    except (ValueError, OSError) as e:
        console.print(Panel(str(e), title="Config Error", border_style="red"))
        raise typer.Exit(1)


def _resolve_project(path: Path) -> ProjectInfo:
    """PATH 可以是 .csproj 文件或包含项目的目录（取第一个可执行项目）"""
    if path.is_file() and path.suffix.lower() == ".csproj":
        return parse_project(path)
    if path.is_dir():
        projects = find_projects(path)
        executables = [p for p in projects if p.is_executable]
        candidates = executables or projects
        if candidates:
            return candidates[0]
    console.print(
        Panel(f"未找到可执行的 .NET 项目 (.sln/.csproj): {path}", title="Error", border_style="red")
    )
    raise typer.Exit(1)


@app.command()
def deploy(
    project: Path = typer.Argument(Path("."), help=".csproj 文件或项目目录"),
    target: Optional[str] = typer.Option(None, "--target", "-t", help="部署目标：local/server"),
    runtime: Optional[str] = typer.Option(None, "--runtime", "-r", help="目标运行时"),
    aot: Optional[bool] = typer.Option(None, "--aot/--no-aot", help="Native AOT 发布"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="本地输出目录"),
    clean: Optional[bool] = typer.Option(None, "--clean/--no-clean", help="发布前清空本地输出目录"),
    host: Optional[str] = typer.Option(None, "--host", help="服务器地址"),
    port: Optional[int] = typer.Option(None, "--port", help="SSH 端口"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="SSH 用户名"),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="SSH 私钥路径"),
    password: Optional[str] = typer.Option(None, "--password", help="SSH 密码"),
    remote_path: Optional[str] = typer.Option(None, "--remote-path", help="远程部署根目录"),
    full_upload: bool = typer.Option(False, "--full-upload", help="关闭增量上传"),
) -> None:
    """发布 .NET 项目，可选上传到服务器并执行启动命令

    示例:
        dotdeploy deploy ./src/MyApp/MyApp.csproj
        dotdeploy deploy . --target server --host 10.0.0.5 --runtime linux-arm64
        dotdeploy deploy . --aot --runtime win-x64 --output ./dist --clean
    """
    _, config = _load_config()
    info = _resolve_project(project)

    target = target or config.deploy.target
    if target not in ("local", "server"):
        console.print(Panel(f"Invalid target: {target}", title="Error", border_style="red"))
        raise typer.Exit(1)
    deploy_target: DeployTarget = "server" if target == "server" else "local"
    runtime = runtime or config.publish.runtime
    if runtime not in SUPPORTED_RUNTIMES:
        console.print(Panel(f"Unsupported runtime: {runtime}", title="Error", border_style="red"))
        raise typer.Exit(1)

    server = config.server.model_copy()
    if host is not None:
        server.host = host
    if port is not None:
        server.port = port
    if user is not None:
        server.username = user
    if key is not None:
        server.private_key_path = key
        server.auth_type = "key"
    if password is not None:
        server.password = password
        server.auth_type = "password"

    publish = config.publish
    options = PublishOptions(
        project_path=info.path,
        runtime=runtime,
        self_contained=publish.self_contained,
        single_file=publish.single_file,
        disable_symbols=publish.disable_symbols,
        publish_aot=publish.aot if aot is None else aot,
        strip_symbols=publish.strip_symbols,
        cross_strip_symbols=config.cross_compile.strip_symbols,
        invariant_globalization=publish.invariant_globalization,
        upx_enabled=config.upx.enabled,
        upx_level=config.upx.level,
        cross_compile_enabled=config.cross_compile.enabled,
        macos_package=config.macos,
        assembly_name=info.assembly_name,
    )
    local_path = output or (Path(config.deploy.local_path).expanduser() if config.deploy.local_path else None)
    request = DeployRequest(
        publish=options,
        assembly_name=info.assembly_name,
        target=deploy_target,
        local_path=local_path,
        clean_destination=config.deploy.clean_destination if clean is None else clean,
        connection=server.to_profile() if deploy_target == "server" else None,
        remote_path=remote_path or config.deploy.remote_path,
        after_upload_command=config.deploy.after_upload_command,
        incremental=config.deploy.incremental_upload and not full_upload,
    )

    context = DeployContext(config, ConsoleSink(console))
    sequencer = DeploySequencer(context)

    def on_phase(phase: str, message: str) -> None:
        console.print(f"[bold cyan]▶ {message}[/bold cyan] [dim]({phase})[/dim]")

    try:
        result = asyncio.run(sequencer.deploy(request, on_phase))
    finally:
        context.close()

    if result.warning:
        console.print(Panel(result.warning, title="⚠️ Warning", border_style="yellow"))
    if result.success:
        summary = f"{info.name} → {result.output_path}"
        if deploy_target == "server":
            summary += f"\nUploaded {result.uploaded}, skipped {result.skipped}"
        console.print(Panel(summary, title="✅ 部署成功", border_style="green"))
    else:
        titles = {
            "config": "❌ 配置错误",
            "publish": "❌ 发布失败",
            "upload": "❌ 上传失败",
            "start": "❌ 启动失败",
        }
        title = titles.get(result.failed_stage or "", "❌ 部署失败")
        console.print(Panel(result.error or "unknown error", title=title, border_style="red"))
        raise typer.Exit(code=1)


@app.command()
def projects(
    path: Path = typer.Argument(Path("."), help="搜索目录"),
) -> None:
    """列出目录下的 .NET 项目（解析 .sln 和 .csproj）"""
    found = find_projects(path)
    if not found:
        console.print("[yellow]未找到 .NET 项目 (.sln/.csproj)[/yellow]")
        raise typer.Exit(1)

    table = Table(title="Projects")
    table.add_column("Name", style="cyan")
    table.add_column("Assembly", style="magenta")
    table.add_column("Output Type", style="green")
    table.add_column("Path", style="yellow")
    for info in found:
        table.add_row(info.name, info.assembly_name, info.output_type, str(info.path))
    console.print(table)


# ------------------------------------------------------------------
# toolchain
# ------------------------------------------------------------------


def _tool_cell(status: ToolStatus) -> str:
    if not status.installed:
        return "[red]✗ Not installed[/red]"
    return f"[green]✓ {status.version or ''}[/green]"


@toolchain_app.command("check")
def toolchain_check() -> None:
    """检测交叉编译工具链"""
    _, config = _load_config()
    context = DeployContext(config, ConsoleSink(console))
    detector = ToolchainDetector(config.cross_compile)
    with console.status("[bold green]Checking cross-compile toolchain..."):
        status = context.remember_toolchain(asyncio.run(detector.detect()))

    table = Table(title="Cross-compile Toolchain")
    table.add_column("Tool", style="cyan")
    table.add_column("Status")
    table.add_column("Path", style="yellow")
    table.add_row("Zig", _tool_cell(status.zig), status.zig.path or "")
    table.add_row("LLD", _tool_cell(status.lld), status.lld.path or "")
    table.add_row("xwin", _tool_cell(status.xwin), status.xwin.path or "")
    sdk = status.windows_sdk
    table.add_row(
        "Windows SDK",
        f"[green]✓ {sdk.size or ''}[/green]" if sdk.installed else "[red]✗ Not found[/red]",
        sdk.path or "",
    )
    llvm = status.llvm
    table.add_row(
        "llvm-objcopy",
        "[green]✓[/green]" if llvm.has_objcopy else "[red]✗ Not installed[/red]",
        llvm.path or "",
    )
    console.print(table)

    summary = summarize(status)
    lines = [
        "Linux: " + ("ready" if summary.linux_ready else f"missing {', '.join(summary.linux_missing)}"),
        "Windows: " + ("ready" if summary.windows_ready else f"missing {', '.join(summary.windows_missing)}"),
    ]
    ready = summary.linux_ready and summary.windows_ready
    console.print(Panel("\n".join(lines), title="Summary", border_style="green" if ready else "yellow"))
    context.close()


@toolchain_app.command("install")
def toolchain_install(
    tool: str = typer.Argument(..., help=f"工具名：{', '.join(INSTALLABLE_TOOLS)}"),
) -> None:
    """安装交叉编译工具

    示例:
        dotdeploy toolchain install zig
        dotdeploy toolchain install windowsSdk
    """
    if tool not in INSTALLABLE_TOOLS:
        console.print(Panel(f"Unknown tool: {tool}", title="Error", border_style="red"))
        raise typer.Exit(1)

    _, config = _load_config()
    installer = ToolchainInstaller(ConsoleSink(console), config.cross_compile)
    result = asyncio.run(installer.install(cast(ToolName, tool)))
    if result.success:
        console.print(Panel(f"{tool} installed", title="✅ Success", border_style="green"))
    else:
        console.print(Panel(result.error or "install failed", title="❌ Failed", border_style="red"))
        raise typer.Exit(1)


@toolchain_app.command("validate-sdk")
def toolchain_validate_sdk() -> None:
    """检查 Windows SDK 缓存完整性"""
    _, config = _load_config()
    sdk_path = config.cross_compile.sdk_path()
    issues = validate_windows_sdk(sdk_path)
    if not issues:
        console.print(Panel(f"Windows SDK is complete: {sdk_path}", border_style="green"))
        return
    console.print(Panel("\n".join(issues), title=f"Windows SDK issues: {sdk_path}", border_style="red"))
    raise typer.Exit(1)


@toolchain_app.command("clean-sdk")
def toolchain_clean_sdk(
    yes: bool = typer.Option(False, "--yes", "-y", help="跳过确认"),
) -> None:
    """删除 Windows SDK 缓存"""
    _, config = _load_config()
    sdk_path = config.cross_compile.sdk_path()
    if not yes and not typer.confirm(f"Remove {sdk_path}?"):
        raise typer.Exit()
    result = clean_windows_sdk_cache(sdk_path, ConsoleSink(console))
    if not result.success:
        raise typer.Exit(1)


# ------------------------------------------------------------------
# config
# ------------------------------------------------------------------


@config_app.command("show")
def config_show(
    section: Optional[str] = typer.Option(None, "--section", "-s", help="只显示某一节"),
) -> None:
    """显示当前配置"""
    _, config = _load_config()
    if section is None:
        body = config.model_dump_json(indent=2)
    elif section in DotDeployConfig.model_fields:
        body = getattr(config, section).model_dump_json(indent=2)
    else:
        console.print(Panel(f"Unknown section: {section}", title="Error", border_style="red"))
        raise typer.Exit(1)

    console.print(Panel(body, title="Current Configuration", border_style="blue"))


@config_app.command("set-server")
def config_set_server(
    host: Optional[str] = typer.Option(None, "--host", help="服务器地址"),
    port: Optional[int] = typer.Option(None, "--port", help="SSH 端口"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="SSH 用户名"),
    auth_type: Optional[str] = typer.Option(None, "--auth-type", help="认证方式：key/password"),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="SSH 私钥路径"),
    password: Optional[str] = typer.Option(None, "--password", help="SSH 密码"),
) -> None:
    """设置服务器连接

    示例:
        dotdeploy config set-server --host 10.0.0.5 --user deploy --key ~/.ssh/id_ed25519
    """
    manager, config = _load_config()
    if host is not None:
        config.server.host = host
    if port is not None:
        config.server.port = port
    if user is not None:
        config.server.username = user
    if auth_type is not None:
        if auth_type not in ("key", "password"):
            console.print(f"[red]✗[/red] Invalid auth type: {auth_type}")
            raise typer.Exit(1)
        auth: AuthType = "password" if auth_type == "password" else "key"
        config.server.auth_type = auth
    if key is not None:
        config.server.private_key_path = key
    if password is not None:
        config.server.password = password

    manager.save(config)
    console.print("[green]✓[/green] Server configuration saved")


@config_app.command("set-deploy")
def config_set_deploy(
    target: Optional[str] = typer.Option(None, "--target", "-t", help="部署目标：local/server"),
    local_path: Optional[str] = typer.Option(None, "--local-path", help="本地输出目录"),
    clean: Optional[bool] = typer.Option(None, "--clean/--no-clean", help="发布前清空本地输出目录"),
    remote_path: Optional[str] = typer.Option(None, "--remote-path", help="远程部署根目录"),
    command: Optional[str] = typer.Option(None, "--command", "-c", help="上传后执行的命令"),
    incremental: Optional[bool] = typer.Option(
        None, "--incremental/--no-incremental", help="增量上传"
    ),
    runtime: Optional[str] = typer.Option(None, "--runtime", "-r", help="目标运行时"),
    aot: Optional[bool] = typer.Option(None, "--aot/--no-aot", help="Native AOT 发布"),
    single_file: Optional[bool] = typer.Option(None, "--single-file/--no-single-file", help="单文件发布"),
) -> None:
    """设置部署与发布选项

    示例:
        dotdeploy config set-deploy --target server --remote-path /srv/apps
        dotdeploy config set-deploy --command "systemctl restart {app_name}"
    """
    manager, config = _load_config()
    if target is not None:
        if target not in ("local", "server"):
            console.print(f"[red]✗[/red] Invalid target: {target}")
            raise typer.Exit(1)
        deploy_target: DeployTarget = "server" if target == "server" else "local"
        config.deploy.target = deploy_target
    if local_path is not None:
        config.deploy.local_path = local_path
    if clean is not None:
        config.deploy.clean_destination = clean
    if remote_path is not None:
        config.deploy.remote_path = remote_path
    if command is not None:
        config.deploy.after_upload_command = command
    if incremental is not None:
        config.deploy.incremental_upload = incremental
    if runtime is not None:
        if runtime not in SUPPORTED_RUNTIMES:
            console.print(f"[red]✗[/red] Unsupported runtime: {runtime}")
            raise typer.Exit(1)
        config.publish.runtime = runtime
    if aot is not None:
        config.publish.aot = aot
    if single_file is not None:
        config.publish.single_file = single_file

    manager.save(config)
    console.print("[green]✓[/green] Deploy configuration saved")


@config_app.command("set-upx")
def config_set_upx(
    enabled: bool = typer.Option(..., "--enabled/--disabled", help="启用 UPX 压缩"),
    level: Optional[str] = typer.Option(None, "--level", "-l", help="压缩级别，如 --best、-9"),
) -> None:
    """设置 UPX 压缩"""
    manager, config = _load_config()
    config.upx.enabled = enabled
    if level is not None:
        config.upx.level = level
    manager.save(config)
    console.print("[green]✓[/green] UPX configuration saved")


@config_app.command("set-cross")
def config_set_cross(
    enabled: Optional[bool] = typer.Option(None, "--enabled/--disabled", help="启用交叉编译"),
    zig_path: Optional[str] = typer.Option(None, "--zig-path", help="Zig 路径"),
    lld_path: Optional[str] = typer.Option(None, "--lld-path", help="lld-link 路径"),
    sdk_path: Optional[str] = typer.Option(None, "--sdk-path", help="Windows SDK 缓存路径"),
    strip: Optional[bool] = typer.Option(None, "--strip/--no-strip", help="交叉编译时剥离符号"),
) -> None:
    """设置交叉编译工具链"""
    manager, config = _load_config()
    cross = config.cross_compile
    if enabled is not None:
        cross.enabled = enabled
    if zig_path is not None:
        cross.zig_path = zig_path
    if lld_path is not None:
        cross.lld_path = lld_path
    if sdk_path is not None:
        cross.xwin_sdk_path = sdk_path
    if strip is not None:
        cross.strip_symbols = strip
    manager.save(config)
    console.print("[green]✓[/green] Cross-compile configuration saved")


@config_app.command("set-telegram")
def config_set_telegram(
    enabled: Optional[bool] = typer.Option(None, "--enabled/--disabled", help="启用通知"),
    upload: Optional[bool] = typer.Option(None, "--upload/--no-upload", help="同时上传产物"),
    bot_token: Optional[str] = typer.Option(None, "--bot-token", help="Bot Token"),
    chat_id: Optional[str] = typer.Option(None, "--chat-id", help="Chat ID"),
) -> None:
    """设置 Telegram 通知"""
    manager, config = _load_config()
    telegram = config.telegram
    if enabled is not None:
        telegram.enabled = enabled
    if upload is not None:
        telegram.upload = upload
    if bot_token is not None:
        telegram.bot_token = bot_token
    if chat_id is not None:
        telegram.chat_id = chat_id
    manager.save(config)
    console.print("[green]✓[/green] Telegram configuration saved")


@config_app.command("set-macos")
def config_set_macos(
    enabled: Optional[bool] = typer.Option(None, "--enabled/--disabled", help="启用 macOS 打包"),
    app_name: Optional[str] = typer.Option(None, "--app-name", help="应用名称"),
    bundle_id: Optional[str] = typer.Option(None, "--bundle-id", help="Bundle Identifier"),
    version: Optional[str] = typer.Option(None, "--version", help="版本号"),
    build_number: Optional[str] = typer.Option(None, "--build-number", help="Build 号"),
    icon: Optional[str] = typer.Option(None, "--icon", help="图标路径"),
    package_format: Optional[str] = typer.Option(None, "--format", "-f", help="app/dmg/pkg"),
    sign: Optional[str] = typer.Option(None, "--sign", help="代码签名证书"),
) -> None:
    """设置 macOS 打包"""
    manager, config = _load_config()
    macos = config.macos
    if enabled is not None:
        macos.enabled = enabled
    if app_name is not None:
        macos.app_name = app_name
    if bundle_id is not None:
        macos.bundle_id = bundle_id
    if version is not None:
        macos.version = version
    if build_number is not None:
        macos.build_number = build_number
    if icon is not None:
        macos.icon_path = icon
    if package_format is not None:
        if package_format not in ("app", "dmg", "pkg"):
            console.print(f"[red]✗[/red] Invalid format: {package_format}")
            raise typer.Exit(1)
        macos.format = package_format  # type: ignore[assignment]
    if sign is not None:
        macos.code_sign_identity = sign
    manager.save(config)
    console.print("[green]✓[/green] macOS packaging configuration saved")


if __name__ == "__main__":
    app()
