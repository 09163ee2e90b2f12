import os

try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass  # dotenv is optional for production, but useful locally


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except ValueError:
        return default


class Settings:
    # --- Database ---
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_PUBLIC_URL = os.environ.get("DATABASE_PUBLIC_URL")

    # --- Redis (celery beat trigger) ---
    REDIS_URL = os.environ.get("REDIS_URL")

    # --- Telegram ---
    TELEGRAM_BOT_TOKEN = (os.environ.get("TELEGRAM_BOT_TOKEN") or "").strip() or None
    TELEGRAM_API_BASE = os.environ.get("TELEGRAM_API_BASE", "https://api.telegram.org")
    TELEGRAM_TIMEOUT = float(os.environ.get("TELEGRAM_TIMEOUT", "15"))
    OWNER_CHAT_ID = (os.environ.get("OWNER_CHAT_ID") or "").strip() or None

    # --- Cron ---
    CRON_SECRET = (os.environ.get("CRON_SECRET") or "").strip() or None
    REMINDER_BATCH_SIZE = _int_env("REMINDER_BATCH_SIZE", 100)
    COMPLETED_RETENTION = _int_env("COMPLETED_RETENTION", 15)
    PROCESSED_UPDATE_TTL_DAYS = _int_env("PROCESSED_UPDATE_TTL_DAYS", 14)
    STALE_CLAIM_MINUTES = _int_env("STALE_CLAIM_MINUTES", 10)
    DAILY_DIGEST_HOUR_UTC = _int_env("DAILY_DIGEST_HOUR_UTC", 6)

    # --- OpenAI (voice transcription) ---
    OPENAI_API_KEY = (os.environ.get("OPENAI_API_KEY") or "").strip() or None
    OPENAI_TRANSCRIBE_MODEL = os.environ.get("OPENAI_TRANSCRIBE_MODEL", "whisper-1")
    TRANSCRIBE_TIMEOUT = float(os.environ.get("TRANSCRIBE_TIMEOUT", "60"))

    # --- Logging ---
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE = os.environ.get("LOG_FILE")

settings = Settings()
