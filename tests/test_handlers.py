import json

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from marketbot.db import InMemoryDocumentStore
from marketbot.errors import StoreError
from marketbot.handlers import register_all_handlers
from marketbot.handlers import messages as messages_module
from marketbot.handlers.messages import HELP, VOICE_FAILED, WELCOME, MessageRouter
from marketbot.handlers.webhook import parse_webhook_payload
from marketbot.models import IncomingMessage
from marketbot.services.posting import RETRY_LATER, PostingService
from marketbot.storage import LISTINGS, DraftStore, ListingStore, SessionStore

SELLER = "919876543210"
BUYER = "919123456789"


class FakeWhatsApp:
    def __init__(self, audio=b"OggS-fake-audio"):
        self.audio = audio
        self.sent = []

    async def send_text(self, to, text):
        self.sent.append(("text", to, text))
        return True

    async def send_buttons(self, to, prompt, choices):
        self.sent.append(("buttons", to, prompt, [c["id"] for c in choices]))
        return True

    async def download_media(self, media_id):
        return self.audio


@pytest.fixture
def client():
    return FakeWhatsApp()


@pytest.fixture
def router(settings, posting, listings, client):
    return MessageRouter(settings, posting, listings, client=client)


def _text(user, text):
    return IncomingMessage(user_id=user, text=text)


def _unhandled_lines(settings):
    with open(settings.unhandled_log_path, encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


@pytest.mark.asyncio
async def test_greeting_gets_welcome(router):
    reply = await router.handle(_text(BUYER, "hello"))
    assert reply.type == "greeting"
    assert reply.text == WELCOME["en"]


@pytest.mark.asyncio
async def test_post_then_search(router, listings):
    reply = await router.handle(_text(SELLER, "I'm a plumber in Noida"))
    assert reply.text == "Please describe your service"
    reply = await router.handle(_text(SELLER, "Fixing leaks and pipes, 10 years experience"))
    assert reply.type == "confirmation"
    reply = await router.handle(_text(SELLER, "yes"))
    assert reply.type == "success"
    listing_id = reply.listing_id

    reply = await router.handle(_text(BUYER, "I need a plumber in Noida"))

    assert reply.type == "search"
    assert "*Plumber in Noida*" in reply.text
    assert "📞 +91 98765 43210" in reply.text
    metrics = listings.get(listing_id).metrics
    assert metrics["views"] == 1
    assert metrics["contacts"] == 1


@pytest.mark.asyncio
async def test_search_without_matches(router):
    reply = await router.handle(_text(BUYER, "I need a plumber in Noida"))
    assert reply.type == "search"
    assert reply.text.startswith("Sorry, I couldn't find")


@pytest.mark.asyncio
async def test_unclear_message_gets_help_and_is_logged(router, settings):
    reply = await router.handle(_text(BUYER, "xyzzy"))

    assert reply.type == "help"
    assert reply.text == HELP
    [entry] = _unhandled_lines(settings)
    assert entry["user_id"] == BUYER
    assert entry["text"] == "xyzzy"
    assert entry["reason"] == "low_confidence"
    assert entry["intent"] == "general_help"
    assert "timestamp" in entry


@pytest.mark.asyncio
async def test_voice_message_is_transcribed(router, monkeypatch):
    async def fake_transcribe(settings, audio, mime_type="audio/ogg"):
        assert audio == b"OggS-fake-audio"
        return "I'm a plumber in Noida"

    monkeypatch.setattr(messages_module, "transcribe", fake_transcribe)

    reply = await router.handle(IncomingMessage(user_id=SELLER, audio_id="media-1"))
    assert reply.text == "Please describe your service"


@pytest.mark.asyncio
async def test_failed_transcription_still_replies(router, settings):
    # no TRANSCRIBE_API_KEY in the test settings
    reply = await router.handle(IncomingMessage(user_id=SELLER, audio_id="media-1"))

    assert reply.text == VOICE_FAILED
    assert _unhandled_lines(settings)[0]["reason"] == "voice_not_transcribed"


@pytest.mark.asyncio
async def test_deliver_uses_buttons_for_choices(router, client):
    await router.handle(_text(SELLER, "I'm a plumber in Noida"))
    reply = await router.handle(_text(SELLER, "Fixing leaks and pipes, 10 years experience"))

    await router.deliver(SELLER, reply)

    kind, to, prompt, ids = client.sent[-1]
    assert kind == "buttons"
    assert to == SELLER
    assert ids == ["confirm_yes", "confirm_edit", "confirm_no"]


def _envelope(*messages, contacts=None):
    value = {"messaging_product": "whatsapp", "messages": list(messages)}
    if contacts is not None:
        value["contacts"] = contacts
    return {"object": "whatsapp_business_account", "entry": [{"changes": [{"field": "messages", "value": value}]}]}


def test_parse_text_and_profile_name():
    payload = _envelope(
        {"from": SELLER, "id": "wamid.1", "type": "text", "text": {"body": "hello"}},
        contacts=[{"wa_id": SELLER, "profile": {"name": "Ravi"}}],
    )
    [msg] = parse_webhook_payload(payload)
    assert msg.user_id == SELLER
    assert msg.text == "hello"
    assert msg.message_id == "wamid.1"
    assert msg.profile_name == "Ravi"


def test_parse_interactive_replies():
    payload = _envelope(
        {"from": SELLER, "id": "w2", "type": "interactive",
         "interactive": {"type": "button_reply", "button_reply": {"id": "confirm_yes", "title": "✅ Yes, post it"}}},
        {"from": SELLER, "id": "w3", "type": "interactive",
         "interactive": {"type": "list_reply", "list_reply": {"id": "category_job", "title": "💼 Job"}}},
    )
    first, second = parse_webhook_payload(payload)
    assert first.choice_id == "confirm_yes"
    assert second.choice_id == "category_job"
    assert second.text == "💼 Job"


def test_parse_audio_and_flag_unsupported():
    payload = _envelope(
        {"from": SELLER, "id": "w4", "type": "audio", "audio": {"id": "media-9", "mime_type": "audio/ogg"}},
        {"from": SELLER, "id": "w5", "type": "image", "image": {"id": "img-1"}},
    )
    audio, image = parse_webhook_payload(payload)
    assert audio.audio_id == "media-9"
    assert audio.text == ""
    assert audio.unsupported_type is None
    assert image.unsupported_type == "image"
    assert image.text == ""


def test_status_callbacks_have_no_messages():
    payload = {"entry": [{"changes": [{"value": {"statuses": [{"id": "w1", "status": "read"}]}}]}]}
    assert parse_webhook_payload(payload) == []
    assert parse_webhook_payload([]) == []


@pytest.fixture
def app(settings, router):
    app = web.Application()
    register_all_handlers(app, settings, router)
    return app


@pytest.mark.asyncio
async def test_webhook_verification(app):
    async with TestClient(TestServer(app)) as http:
        ok = await http.get(
            "/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "12345"},
        )
        assert ok.status == 200
        assert await ok.text() == "12345"

        bad = await http.get(
            "/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "wrong", "hub.challenge": "12345"},
        )
        assert bad.status == 403


@pytest.mark.asyncio
async def test_webhook_post_replies_through_client(app, client):
    payload = _envelope({"from": BUYER, "id": "w1", "type": "text", "text": {"body": "hello"}})

    async with TestClient(TestServer(app)) as http:
        resp = await http.post("/webhook", json=payload)
        assert resp.status == 200

        bad = await http.post("/webhook", data="not json", headers={"Content-Type": "application/json"})
        assert bad.status == 400

    assert client.sent == [("text", BUYER, WELCOME["en"])]


@pytest.mark.asyncio
async def test_webhook_failure_still_answers(app, router, client, monkeypatch):
    async def broken(message):
        raise StoreError("store down")

    monkeypatch.setattr(router, "handle", broken)
    payload = _envelope({"from": BUYER, "id": "w1", "type": "text", "text": {"body": "hello"}})

    async with TestClient(TestServer(app)) as http:
        resp = await http.post("/webhook", json=payload)
        assert resp.status == 200

    assert client.sent == [("text", BUYER, RETRY_LATER)]


class ListingWritesFail(InMemoryDocumentStore):
    def update(self, collection, doc_id, paths):
        if collection == LISTINGS:
            raise StoreError("store down")
        return super().update(collection, doc_id, paths)


@pytest.mark.asyncio
async def test_search_reply_survives_counter_failure(settings, client):
    db = ListingWritesFail()
    listings = ListingStore(db)
    posting = PostingService(DraftStore(db), SessionStore(db), listings)
    router = MessageRouter(settings, posting, listings, client=client)

    for text in ("I'm a plumber in Noida", "Fixing leaks and pipes, 10 years experience", "yes"):
        await router.handle(_text(SELLER, text))

    reply = await router.handle(_text(BUYER, "I need a plumber in Noida"))

    assert reply.type == "search"
    assert "*Plumber in Noida*" in reply.text


@pytest.mark.asyncio
async def test_unsupported_message_gets_help(router, settings):
    reply = await router.handle(IncomingMessage(user_id=BUYER, unsupported_type="sticker"))

    assert reply.text == HELP
    assert _unhandled_lines(settings)[0]["reason"] == "unsupported_sticker"


@pytest.mark.asyncio
async def test_my_listings_opens_the_manager(router, sessions):
    for text in ("I'm a plumber in Noida", "Fixing leaks and pipes, 10 years experience", "yes"):
        await router.handle(_text(SELLER, text))

    reply = await router.handle(_text(SELLER, "my listings"))
    assert "1. Plumber in Noida" in reply.text
    assert sessions.get_or_create(SELLER).is_managing

    # answers stay with the manager until it is closed
    reply = await router.handle(_text(SELLER, "1"))
    assert reply.text.startswith("📋 *Plumber in Noida*")

    reply = await router.handle(_text(SELLER, "cancel"))
    assert reply.type == "cancelled"
    reply = await router.handle(_text(SELLER, "hello"))
    assert reply.type == "greeting"
