import pytest

from marketbot.config import Settings
from marketbot.db import InMemoryDocumentStore
from marketbot.services.posting import PostingService
from marketbot.storage import DraftStore, ListingStore, SessionStore


@pytest.fixture
def db():
    return InMemoryDocumentStore()


@pytest.fixture
def drafts(db):
    return DraftStore(db)


@pytest.fixture
def sessions(db):
    return SessionStore(db)


@pytest.fixture
def listings(db):
    return ListingStore(db, ttl_days=30)


@pytest.fixture
def posting(drafts, sessions, listings):
    return PostingService(drafts, sessions, listings)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        whatsapp_token="test-token",
        whatsapp_phone_number_id="123456",
        whatsapp_verify_token="verify-me",
        whatsapp_api_base="https://graph.example.test",
        whatsapp_api_version="v19.0",
        openai_api_key=None,
        openai_model="gpt-4.1-mini",
        openai_base_url=None,
        transcribe_api_key=None,
        transcribe_url="https://stt.example.test/v1/audio/transcriptions",
        transcribe_model="whisper-large-v3",
        db_dsn=None,
        host="127.0.0.1",
        port=8080,
        debug=False,
        listing_ttl_days=30,
        unhandled_log_path=str(tmp_path / "unhandled.jsonl"),
    )
