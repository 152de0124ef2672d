"""Telegram 通知测试"""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from dotdeploy.config.manager import TelegramConfig
from dotdeploy.notify.telegram import MAX_DOCUMENT_SIZE, TelegramNotifier


@pytest.fixture
def config() -> TelegramConfig:
    return TelegramConfig(enabled=True, upload=True, bot_token="123:abc", chat_id="42")


def _client(requests: list[httpx.Request], status_code: int = 200) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json={"ok": status_code == 200})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_send_message(config: TelegramConfig) -> None:
    requests: list[httpx.Request] = []
    notifier = TelegramNotifier(config, client=_client(requests))

    warning = await notifier.send_message("hello")

    assert warning is None
    assert len(requests) == 1
    assert requests[0].url.path.endswith("/sendMessage")
    assert "123" in requests[0].url.path
    body = json.loads(requests[0].content)
    assert body["chat_id"] == "42"
    assert body["text"] == "hello"


@pytest.mark.asyncio
async def test_http_error_becomes_warning(config: TelegramConfig) -> None:
    requests: list[httpx.Request] = []
    notifier = TelegramNotifier(config, client=_client(requests, status_code=401))

    warning = await notifier.send_message("hello")

    assert warning is not None
    assert "Telegram notification failed" in warning


@pytest.mark.asyncio
async def test_disabled_sends_nothing() -> None:
    requests: list[httpx.Request] = []
    notifier = TelegramNotifier(TelegramConfig(enabled=False), client=_client(requests))

    assert await notifier.send_message("hello") is None
    assert await notifier.notify_deploy("MyApp", True) is None
    assert requests == []


@pytest.mark.asyncio
async def test_send_document(config: TelegramConfig, tmp_path: Path) -> None:
    artifact = tmp_path / "MyApp"
    artifact.write_bytes(b"binary")
    requests: list[httpx.Request] = []
    notifier = TelegramNotifier(config, client=_client(requests))

    warning = await notifier.send_document(artifact, caption="MyApp")

    assert warning is None
    assert requests[0].url.path.endswith("/sendDocument")
    assert b"binary" in requests[0].content


@pytest.mark.asyncio
async def test_document_over_limit_is_skipped(config: TelegramConfig, tmp_path: Path) -> None:
    artifact = tmp_path / "MyApp"
    with open(artifact, "wb") as f:
        f.truncate(MAX_DOCUMENT_SIZE + 1)
    requests: list[httpx.Request] = []
    notifier = TelegramNotifier(config, client=_client(requests))

    warning = await notifier.send_document(artifact)

    assert warning is not None
    assert "limit 50MB" in warning
    assert requests == []


@pytest.mark.asyncio
async def test_notify_deploy_uploads_artifact_on_success(config: TelegramConfig, tmp_path: Path) -> None:
    artifact = tmp_path / "MyApp"
    artifact.write_bytes(b"x")
    requests: list[httpx.Request] = []
    notifier = TelegramNotifier(config, client=_client(requests))

    warning = await notifier.notify_deploy("MyApp", True, "主机: example.com", artifact=artifact)

    assert warning is None
    assert [r.url.path.rsplit("/", 1)[-1] for r in requests] == ["sendMessage", "sendDocument"]


@pytest.mark.asyncio
async def test_notify_deploy_failure_sends_message_only(config: TelegramConfig, tmp_path: Path) -> None:
    artifact = tmp_path / "MyApp"
    artifact.write_bytes(b"x")
    requests: list[httpx.Request] = []
    notifier = TelegramNotifier(config, client=_client(requests))

    await notifier.notify_deploy("MyApp", False, "错误: boom", artifact=artifact)

    assert len(requests) == 1
    assert "部署失败" in json.loads(requests[0].content)["text"]
