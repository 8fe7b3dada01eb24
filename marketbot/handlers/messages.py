# marketbot/handlers/messages.py
import asyncio
import logging
from typing import Optional

from ..ai.assist import classify_with_assist
from ..ai.classifier import FAREWELL, GREETING, category_for_intent
from ..config import Settings
from ..dataset import append_unhandled_entry
from ..errors import StoreError
from ..models import ClassificationResult, IncomingMessage
from ..services.manage import ListingManager, wants_listings
from ..services.posting import RETRY_LATER, PostingReply, PostingService
from ..services.search import build_search_query, format_search_results, listing_search_view, search_listings
from ..services.transcription import transcribe
from ..services.whatsapp import WhatsAppClient
from ..storage import ListingStore

logger = logging.getLogger(__name__)

SEARCH_PAGE = 5

WELCOME = {
    "en": (
        "👋 Welcome! I can help you post or find listings for flats, services, "
        "vehicles, electronics, furniture, jobs and goods.\n\n"
        "Try: \"I'm a plumber in Noida\" or \"2bhk for rent in Sector 62\"."
    ),
    "hi": (
        "👋 Namaste! Main aapki listing post karne ya dhoondhne mein madad kar sakta hoon: "
        "flat, services, gaadi, electronics, furniture, naukri.\n\n"
        "Jaise: \"Main Noida mein plumber hoon\" ya \"Sector 62 mein 2bhk kiraye pe chahiye\"."
    ),
    "ta": (
        "👋 Vanakkam! Flat, services, vehicles, jobs ellam post panna or theda naan help pannuven.\n\n"
        "Example: \"Chennai la 2bhk rent ku venum\"."
    ),
}
GOODBYE = "Thank you! Message anytime you want to post or find something. 🙏"
HELP = (
    "I didn't quite get that. You can:\n"
    "• Post a listing: \"I'm an electrician in Sector 18\"\n"
    "• Find something: \"Need 1bhk in Noida under 15k\"\n"
    "• See your listings: \"my listings\"\n"
    "• Send a voice note"
)
VOICE_FAILED = "Sorry, I couldn't understand the voice message. Please type your message."


class MessageRouter:
    """
    One inbound message -> one reply. Voice is transcribed first, then the
    posting dialogue gets the message; anything it does not take is answered
    as greeting, search or help. "My listings" opens the listing manager.
    """

    def __init__(
            self,
            settings: Settings,
            posting: PostingService,
            listings: ListingStore,
            client: Optional[WhatsAppClient] = None,
            manager: Optional[ListingManager] = None,
    ) -> None:
        self.settings = settings
        self.posting = posting
        self.listings = listings
        self.client = client
        self.manager = manager or ListingManager(posting.sessions, listings)

    async def handle(self, message: IncomingMessage) -> Optional[PostingReply]:
        if message.unsupported_type:
            self._log_unhandled(message, reason=f"unsupported_{message.unsupported_type}")
            return PostingReply(type="help", text=HELP, handled=False)

        if message.audio_id and not message.text:
            text = await self._voice_to_text(message.audio_id)
            if not text:
                self._log_unhandled(message, reason="voice_not_transcribed")
                return PostingReply(type="error", text=VOICE_FAILED, handled=False)
            message.text = text

        if not (message.text or message.choice_id):
            return None

        classification = None
        session = self.posting.sessions.get_or_create(message.user_id)
        if session.is_managing:
            return self.manager.handle(message)

        idle = not session.is_posting and not session.expected_field
        if idle and wants_listings(message.text, message.choice_id):
            return self.manager.handle(message)
        if idle:
            classification = await asyncio.to_thread(classify_with_assist, self.settings, message.text)

        reply = self.posting.handle_message(message, classification)
        if reply.handled:
            return reply

        return self._reply_to_other(message, reply.classification)

    def _reply_to_other(self, message: IncomingMessage, result: Optional[ClassificationResult]) -> PostingReply:
        if result is None:
            self._log_unhandled(message, reason="no_classification")
            return PostingReply(type="help", text=HELP, handled=False)

        if result.intent == GREETING:
            return PostingReply(
                type="greeting", text=WELCOME.get(result.language, WELCOME["en"]), classification=result
            )
        if result.intent == FAREWELL:
            return PostingReply(type="farewell", text=GOODBYE, classification=result)

        category = category_for_intent(result.intent)
        if category is not None and result.is_confident:
            return self._search(message, result, category)

        self._log_unhandled(message, reason="low_confidence", classification=result)
        return PostingReply(type="help", text=HELP, handled=False, classification=result)

    def _search(self, message: IncomingMessage, result: ClassificationResult, category: str) -> PostingReply:
        query = build_search_query(result, message.text)
        hits = search_listings(self.listings.list_active(category), query)
        logger.info(
            "[SEARCH] user=%s category=%s query=%s hits=%s",
            message.user_id, category, query, len(hits),
        )

        for hit in hits[:SEARCH_PAGE]:
            self._bump(hit.item.id, "views")
            # the result card shows the owner's phone
            if listing_search_view(hit.item)["contact"]:
                self._bump(hit.item.id, "contacts")

        return PostingReply(
            type="search",
            text=format_search_results(hits, limit=SEARCH_PAGE),
            classification=result,
        )

    def _bump(self, listing_id: str, metric: str) -> None:
        try:
            self.listings.increment_metric(listing_id, metric)
        except StoreError:
            logger.exception("[SEARCH] %s counter not updated listing=%s", metric, listing_id)

    async def _voice_to_text(self, audio_id: str) -> Optional[str]:
        if self.client is None:
            return None
        audio = await self.client.download_media(audio_id)
        if not audio:
            return None
        return await transcribe(self.settings, audio)

    def _log_unhandled(
            self,
            message: IncomingMessage,
            reason: str,
            classification: Optional[ClassificationResult] = None,
    ) -> None:
        entry = {
            "user_id": message.user_id,
            "message_id": message.message_id,
            "text": message.text,
            "reason": reason,
        }
        if classification is not None:
            entry.update({
                "intent": classification.intent,
                "confidence": round(classification.confidence, 4),
                "context": classification.context,
                "language": classification.language,
                "alternatives": classification.alternatives,
            })
        append_unhandled_entry(self.settings.unhandled_log_path, entry)

    async def deliver(self, to: str, reply: PostingReply) -> bool:
        if self.client is None or not reply.text:
            return False
        if reply.choices:
            return await self.client.send_buttons(to, reply.text, reply.choices)
        return await self.client.send_text(to, reply.text)

    async def deliver_retry_later(self, to: str) -> bool:
        return await self.deliver(to, PostingReply(type="error", text=RETRY_LATER, handled=False))
