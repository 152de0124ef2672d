"""上传后命令模板展开"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

from dotdeploy.config.manager import DEFAULT_AFTER_UPLOAD_COMMAND
from dotdeploy.types import RemoteLayout

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class CommandVariables(BaseModel):
    """可用占位符：{app_name} {remote_path} {app_path}"""

    app_name: str = Field(..., description="程序集名称")
    remote_path: str = Field(..., description="远程应用目录（部署根目录/程序集名）")
    app_path: str = Field(..., description="远程可执行文件路径")

    @classmethod
    def from_layout(cls, layout: RemoteLayout) -> CommandVariables:
        return cls(
            app_name=layout.assembly_name,
            remote_path=layout.remote_root,
            app_path=layout.executable_path,
        )


def expand_command(template: str, variables: CommandVariables) -> str:
    """替换已知占位符，未知的 {xxx} 原样保留；空模板使用默认启动命令"""
    values = variables.model_dump()

    def replace(match: re.Match[str]) -> str:
        return values.get(match.group(1), match.group(0))

    return _PLACEHOLDER.sub(replace, template.strip() or DEFAULT_AFTER_UPLOAD_COMMAND)
