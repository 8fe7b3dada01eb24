# marketbot/config.py
import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass
class Settings:
    # WhatsApp Cloud API
    whatsapp_token: str
    whatsapp_phone_number_id: str
    whatsapp_verify_token: str | None
    whatsapp_api_base: str
    whatsapp_api_version: str

    # AI (OpenAI or any OpenAI-compatible host, e.g. Groq)
    openai_api_key: str | None
    openai_model: str
    openai_base_url: str | None

    # Voice -> text
    transcribe_api_key: str | None
    transcribe_url: str
    transcribe_model: str

    # Postgres; empty -> in-memory store
    db_dsn: str | None

    # Server
    host: str
    port: int
    debug: bool

    listing_ttl_days: int
    unhandled_log_path: str

    @property
    def openai_enabled(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def transcription_enabled(self) -> bool:
        return bool(self.transcribe_api_key)


def load_settings() -> Settings:
    load_dotenv()

    whatsapp_token = os.getenv("WHATSAPP_TOKEN")
    if not whatsapp_token:
        raise RuntimeError("WHATSAPP_TOKEN is not set in .env")

    phone_number_id = os.getenv("WHATSAPP_PHONE_NUMBER_ID")
    if not phone_number_id:
        raise RuntimeError("WHATSAPP_PHONE_NUMBER_ID is not set in .env")

    def _to_int(value: str | None, default: int) -> int:
        if not value:
            return default
        try:
            return int(value)
        except ValueError:
            return default

    return Settings(
        whatsapp_token=whatsapp_token,
        whatsapp_phone_number_id=phone_number_id,
        whatsapp_verify_token=os.getenv("WHATSAPP_VERIFY_TOKEN"),
        whatsapp_api_base=os.getenv("WHATSAPP_API_BASE", "https://graph.facebook.com"),
        whatsapp_api_version=os.getenv("WHATSAPP_API_VERSION", "v19.0"),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4.1-mini"),
        openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
        transcribe_api_key=os.getenv("TRANSCRIBE_API_KEY"),
        transcribe_url=os.getenv(
            "TRANSCRIBE_URL", "https://api.groq.com/openai/v1/audio/transcriptions"
        ),
        transcribe_model=os.getenv("TRANSCRIBE_MODEL", "whisper-large-v3"),
        db_dsn=os.getenv("DB_DSN") or None,
        host=os.getenv("HOST", "0.0.0.0"),
        port=_to_int(os.getenv("PORT"), 8080),
        debug=os.getenv("DEBUG", "False").lower() == "true",
        listing_ttl_days=_to_int(os.getenv("LISTING_TTL_DAYS"), 30),
        unhandled_log_path=os.getenv("UNHANDLED_LOG_PATH", "data/unhandled_messages.jsonl"),
    )
