"""The subset of the Telegram Bot API ``Update`` object the webhook reads.

Unknown fields are ignored; only ``update_id`` is mandatory and it must be a
real integer (a string such as ``"42"`` is rejected).
"""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, StrictInt


class _TelegramModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Chat(_TelegramModel):
    id: Union[int, str]


class Voice(_TelegramModel):
    file_id: str
    duration: Optional[int] = None
    mime_type: Optional[str] = None
    # filled in by some proxies that transcribe before forwarding the update
    transcript: Optional[str] = None


class Message(_TelegramModel):
    message_id: Optional[int] = None
    chat: Optional[Chat] = None
    text: Optional[str] = None
    caption: Optional[str] = None
    voice: Optional[Voice] = None
    audio: Optional[Voice] = None


class CallbackQuery(_TelegramModel):
    id: str
    data: Optional[str] = None
    message: Optional[Message] = None


class TelegramUpdate(_TelegramModel):
    update_id: StrictInt
    message: Optional[Message] = None
    edited_message: Optional[Message] = None
    callback_query: Optional[CallbackQuery] = None

    @property
    def chat_id(self) -> Optional[str]:
        msg = self.message or self.edited_message
        if self.callback_query and self.callback_query.message:
            msg = self.callback_query.message
        if msg is None or msg.chat is None:
            return None
        return str(msg.chat.id)

    @property
    def effective_message(self) -> Optional[Message]:
        return self.message or self.edited_message
