"""会话上下文与输出通道测试"""

from io import StringIO

from rich.console import Console

from dotdeploy.config.manager import DotDeployConfig
from dotdeploy.context.session import BufferSink, ConsoleSink, DeployContext
from dotdeploy.types import OutputSink, ToolchainStatus, ToolStatus


def test_buffer_sink() -> None:
    sink = BufferSink()
    sink.append("a")
    sink.append_line("b")
    sink.append_line()
    assert sink.text == "ab\n\n"


def test_console_sink_keeps_brackets() -> None:
    """构建日志里的 [xxx] 不应被当作 rich markup"""
    buffer = StringIO()
    sink = ConsoleSink(Console(file=buffer, width=200, color_system=None))
    sink.append_line("[Publisher] ✓ done [bold]")
    assert "[Publisher] ✓ done [bold]" in buffer.getvalue()


def test_sinks_satisfy_protocol() -> None:
    assert isinstance(BufferSink(), OutputSink)
    assert isinstance(ConsoleSink(), OutputSink)


def test_context_caches_toolchain() -> None:
    context = DeployContext(DotDeployConfig(), BufferSink())
    assert context.toolchain_status is None

    status = ToolchainStatus(zig=ToolStatus(installed=True))
    assert context.remember_toolchain(status) is status
    assert context.toolchain_status is status

    context.close()
    assert context.toolchain_status is None
