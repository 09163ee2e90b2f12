import pytest
import pytest_asyncio

import db
from app.utils.telegram import TelegramError


class FakeTelegram:
    """Records outgoing calls instead of talking to the Bot API."""

    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []
        self.answered = []
        self.files = {}
        self._message_id = 1000

    async def send_message(self, chat_id, text, reply_markup=None):
        if self.fail:
            raise TelegramError("sendMessage failed (403): bot was blocked by the user")
        self._message_id += 1
        self.sent.append({"chat_id": str(chat_id), "text": text, "reply_markup": reply_markup})
        return self._message_id

    async def answer_callback_query(self, callback_query_id, text=None):
        self.answered.append((callback_query_id, text))

    async def download_file(self, file_id):
        if file_id not in self.files:
            raise TelegramError("getFile failed (400): file not found")
        return self.files[file_id]

    async def aclose(self):
        pass

    def texts(self, chat_id=None):
        return [m["text"] for m in self.sent if chat_id is None or m["chat_id"] == str(chat_id)]


class FakeTranscriber:
    def __init__(self, text="", available=True, error=None):
        self.text = text
        self.available = available
        self.error = error
        self.calls = 0

    async def transcribe(self, audio, filename="voice.ogg"):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.text


@pytest_asyncio.fixture
async def database(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await db.dispose_engine()
    await db.create_all()
    yield
    await db.dispose_engine()


@pytest.fixture
def telegram():
    return FakeTelegram()
