"""会话上下文：输出通道 + 工具链状态缓存

每个 CLI 会话创建一个 DeployContext，显式传入各组件，
取代进程级的全局输出通道和工具链缓存。
"""

from __future__ import annotations

from typing import Optional

from rich.console import Console

from dotdeploy.config.manager import DotDeployConfig
from dotdeploy.types import OutputSink, ToolchainStatus


class ConsoleSink:
    """把输出原样写到终端（关闭 rich markup，避免构建日志中的 [] 被解析）"""

    def __init__(self, console: Optional[Console] = None) -> None:
        self._console = console or Console(highlight=False)

    def append(self, text: str) -> None:
        self._console.print(text, end="", markup=False, highlight=False, soft_wrap=True)

    def append_line(self, text: str = "") -> None:
        self._console.print(text, markup=False, highlight=False, soft_wrap=True)


class BufferSink:
    """内存输出通道"""

    def __init__(self) -> None:
        self._chunks: list[str] = []

    def append(self, text: str) -> None:
        self._chunks.append(text)

    def append_line(self, text: str = "") -> None:
        self._chunks.append(f"{text}\n")

    @property
    def text(self) -> str:
        return "".join(self._chunks)


class DeployContext:
    """一次会话内共享的上下文"""

    def __init__(
        self,
        config: DotDeployConfig,
        output: Optional[OutputSink] = None,
    ) -> None:
        self.config = config
        self.output: OutputSink = output or ConsoleSink()
        self.toolchain_status: Optional[ToolchainStatus] = None

    def remember_toolchain(self, status: ToolchainStatus) -> ToolchainStatus:
        self.toolchain_status = status
        return status

    def close(self) -> None:
        self.toolchain_status = None
