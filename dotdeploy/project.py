""".NET 项目发现：解析 .sln 与 .csproj"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_SLN_PROJECT = re.compile(
    r'Project\("[^"]+"\)\s*=\s*"[^"]+",\s*"([^"]+\.csproj)"', re.IGNORECASE
)
_ASSEMBLY_NAME = re.compile(r"<AssemblyName>([^<]+)</AssemblyName>", re.IGNORECASE)
_OUTPUT_TYPE = re.compile(r"<OutputType>([^<]+)</OutputType>", re.IGNORECASE)

# 递归查找时跳过的目录
_SKIP_DIRS = {"bin", "obj", "node_modules", ".git", ".vs"}


class ProjectInfo(BaseModel):
    """单个 .csproj 的信息"""

    name: str = Field(..., description="项目名（文件名去掉 .csproj）")
    path: Path = Field(..., description=".csproj 绝对路径")
    assembly_name: str = Field(..., description="AssemblyName，缺省为项目名")
    output_type: str = Field(default="Library", description="OutputType")

    @property
    def is_executable(self) -> bool:
        return self.output_type.lower() in ("exe", "winexe")


def parse_solution(sln_path: Path) -> list[Path]:
    """返回 .sln 中引用且实际存在的 .csproj 路径"""
    content = sln_path.read_text(encoding="utf-8-sig", errors="replace")
    projects: list[Path] = []
    for match in _SLN_PROJECT.finditer(content):
        relative = match.group(1).replace("\\", "/")
        project_path = (sln_path.parent / relative).resolve()
        if project_path.is_file():
            projects.append(project_path)
    return projects


def parse_project(csproj_path: Path) -> ProjectInfo:
    content = csproj_path.read_text(encoding="utf-8-sig", errors="replace")
    name = csproj_path.stem

    assembly = _ASSEMBLY_NAME.search(content)
    output_type = _OUTPUT_TYPE.search(content)
    return ProjectInfo(
        name=name,
        path=csproj_path.resolve(),
        assembly_name=assembly.group(1).strip() if assembly else name,
        output_type=output_type.group(1).strip() if output_type else "Library",
    )


def _walk(root: Path, suffix: str) -> list[Path]:
    found: list[Path] = []
    for entry in sorted(root.iterdir()):
        if entry.is_dir():
            if entry.name not in _SKIP_DIRS:
                found.extend(_walk(entry, suffix))
        elif entry.suffix.lower() == suffix:
            found.append(entry)
    return found


def find_projects(root: Path) -> list[ProjectInfo]:
    """先解析所有 .sln，再补充未被引用的 .csproj（按路径去重）

    单个文件解析失败只记录日志，不影响其他项目。
    """
    projects: list[ProjectInfo] = []
    seen: set[Path] = set()

    def add(path: Path) -> None:
        resolved = path.resolve()
        if resolved in seen:
            return
        try:
            projects.append(parse_project(resolved))
        except OSError as e:
            logger.warning("failed to parse project %s: %s", resolved, e)
            return
        seen.add(resolved)

    for sln in _walk(root, ".sln"):
        try:
            referenced = parse_solution(sln)
        except OSError as e:
            logger.warning("failed to parse solution %s: %s", sln, e)
            continue
        for project_path in referenced:
            add(project_path)

    for csproj in _walk(root, ".csproj"):
        add(csproj)

    return projects
