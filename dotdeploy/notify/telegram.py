"""Telegram 部署通知"""

from __future__ import annotations

import html
import logging
from pathlib import Path
from typing import Optional

import httpx

from dotdeploy.config.manager import TelegramConfig

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"

# Bot API 上传文件大小上限
MAX_DOCUMENT_SIZE = 50 * 1024 * 1024


class TelegramNotifier:
    """通过 Bot API 发送消息和文件

    所有方法都不抛异常，失败时返回错误描述，由调用方作为警告处理。
    """

    def __init__(
        self,
        config: TelegramConfig,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30,
    ) -> None:
        self._config = config
        self._client = client
        self._timeout = timeout

    @property
    def enabled(self) -> bool:
        return self._config.ready

    def _url(self, method: str) -> str:
        return f"{TELEGRAM_API}/bot{self._config.bot_token}/{method}"

    async def _post(self, method: str, **kwargs: object) -> None:
        if self._client is not None:
            resp = await self._client.post(self._url(method), **kwargs)  # type: ignore[arg-type]
            resp.raise_for_status()
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(self._url(method), **kwargs)  # type: ignore[arg-type]
            resp.raise_for_status()

    async def send_message(self, text: str) -> Optional[str]:
        """发送文本消息，成功返回 None"""
        if not self.enabled:
            return None
        payload = {"chat_id": self._config.chat_id, "text": text, "parse_mode": "HTML"}
        try:
            await self._post("sendMessage", json=payload)
        except httpx.HTTPError as e:
            logger.warning("telegram sendMessage failed: %s", e)
            return f"Telegram notification failed: {e}"
        return None

    async def send_document(self, file_path: Path, caption: str = "") -> Optional[str]:
        """上传文件，超过 50MB 或文件不存在时只返回警告"""
        if not self.enabled:
            return None
        if not file_path.is_file():
            return f"Telegram upload skipped: file not found: {file_path}"

        size = file_path.stat().st_size
        if size > MAX_DOCUMENT_SIZE:
            size_mb = size / 1024 / 1024
            return f"Telegram upload skipped: {file_path.name} is {size_mb:.1f}MB (limit 50MB)"

        data = {"chat_id": self._config.chat_id}
        if caption:
            data["caption"] = caption
        try:
            with open(file_path, "rb") as f:
                await self._post(
                    "sendDocument", data=data, files={"document": (file_path.name, f)}
                )
        except (httpx.HTTPError, OSError) as e:
            logger.warning("telegram sendDocument failed: %s", e)
            return f"Telegram upload failed: {e}"
        return None

    async def notify_deploy(
        self,
        project_name: str,
        success: bool,
        detail: str = "",
        artifact: Optional[Path] = None,
    ) -> Optional[str]:
        """部署结果通知；可选附带产物"""
        if not self.enabled:
            return None
        status = "✅ 部署成功" if success else "❌ 部署失败"
        text = f"<b>{status}</b>\n项目: {html.escape(project_name)}"
        if detail:
            text += f"\n{html.escape(detail)}"

        warning = await self.send_message(text)
        if warning is None and success and artifact is not None and self._config.upload:
            warning = await self.send_document(artifact, caption=project_name)
        return warning
