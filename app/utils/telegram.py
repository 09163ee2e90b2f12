"""Thin async client for the Telegram Bot API.

Only the calls the backend needs: sendMessage, answerCallbackQuery, getFile
and the file download. Instances are created explicitly (see ``main.py``) and
passed to the ingress and scheduler, so tests can swap in a fake.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

_LOGGER = logging.getLogger(__name__)


class TelegramError(RuntimeError):
    """Raised when the Bot API call fails or answers ``ok: false``."""


class TelegramClient:
    def __init__(
        self,
        token: Optional[str],
        *,
        base_url: str = "https://api.telegram.org",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def configured(self) -> bool:
        return bool(self._token)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _call(self, method: str, payload: dict[str, Any]) -> Any:
        url = f"{self._base_url}/bot{self._token}/{method}"
        try:
            response = await self._http.post(url, json=payload)
        except httpx.HTTPError as exc:
            raise TelegramError(f"{method} transport error: {exc}") from exc
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code >= 400 or not body.get("ok"):
            description = body.get("description") or response.text[:500]
            raise TelegramError(f"{method} failed ({response.status_code}): {description}")
        return body.get("result")

    async def send_message(
        self,
        chat_id: str | int,
        text: str,
        reply_markup: Optional[dict] = None,
    ) -> Optional[int]:
        """Send ``text`` and return the Telegram message id."""
        if not self.configured:
            _LOGGER.info("DEV mode: would send to chat_id=%s: %s", chat_id, text)
            return None
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_markup:
            payload["reply_markup"] = reply_markup
        result = await self._call("sendMessage", payload)
        return (result or {}).get("message_id")

    async def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> None:
        if not self.configured:
            return
        payload: dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        await self._call("answerCallbackQuery", payload)

    async def get_file_path(self, file_id: str) -> str:
        result = await self._call("getFile", {"file_id": file_id})
        file_path = (result or {}).get("file_path")
        if not file_path:
            raise TelegramError("getFile returned no file_path")
        return file_path

    async def download_file(self, file_id: str) -> bytes:
        """Fetch a file (e.g. a voice note) by its Telegram ``file_id``."""
        if not self.configured:
            raise TelegramError("TELEGRAM_BOT_TOKEN is not configured")
        file_path = await self.get_file_path(file_id)
        url = f"{self._base_url}/file/bot{self._token}/{file_path}"
        try:
            response = await self._http.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TelegramError(f"file download failed: {exc}") from exc
        return response.content
