"""交叉编译工具链模块"""

from dotdeploy.toolchain.cross_args import build_cross_compile_args, ensure_zig_wrapper
from dotdeploy.toolchain.detector import (
    ToolchainDetector,
    missing_tools,
    required_tools,
    summarize,
)
from dotdeploy.toolchain.platforms import is_cross_compile_needed, target_family

__all__ = [
    "ToolchainDetector",
    "build_cross_compile_args",
    "ensure_zig_wrapper",
    "is_cross_compile_needed",
    "missing_tools",
    "required_tools",
    "summarize",
    "target_family",
]
