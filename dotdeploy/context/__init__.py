"""会话上下文模块"""

from dotdeploy.context.session import BufferSink, ConsoleSink, DeployContext

__all__ = ["BufferSink", "ConsoleSink", "DeployContext"]
