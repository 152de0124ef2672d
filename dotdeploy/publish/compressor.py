"""UPX 压缩"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from dotdeploy.runner import ProcessRunner
from dotdeploy.types import OutputSink


class CompressResult(BaseModel):
    """压缩结果，失败不影响发布"""

    success: bool
    path: Optional[str] = None
    error: Optional[str] = None


def find_executable(directory: Path, project_name: str) -> Optional[Path]:
    """按精确文件名查找发布产物（无扩展名或 .exe）"""
    for candidate in (project_name, f"{project_name}.exe"):
        path = directory / candidate
        if path.is_file():
            return path
    return None


class UpxCompressor:
    """调用 `upx <level> <executable>`"""

    def __init__(
        self,
        sink: OutputSink,
        runner: Optional[ProcessRunner] = None,
        program: str = "upx",
    ) -> None:
        self._sink = sink
        self._runner = runner or ProcessRunner()
        self._program = program

    async def compress(self, publish_dir: Path, project_name: str, level: str) -> CompressResult:
        executable = find_executable(publish_dir, project_name)
        if executable is None:
            self._sink.append_line(
                f"[UPX] ⚠️ Could not find executable for compression: {project_name}"
            )
            return CompressResult(success=False, error=f"executable not found: {project_name}")

        self._sink.append_line(f"[UPX] Compressing {executable.name} with level {level}...")
        result = await self._runner.run(
            self._program,
            [level, str(executable)],
            cwd=str(publish_dir),
            sink=self._sink,
        )
        if result.success:
            self._sink.append_line("[UPX] ✓ Compression successful")
            return CompressResult(success=True, path=str(executable))

        error = result.error or f"upx exited with code {result.exit_code}"
        self._sink.append_line(f"[UPX] ✗ Compression failed: {error}")
        return CompressResult(success=False, path=str(executable), error=error)
