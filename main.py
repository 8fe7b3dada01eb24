# main.py
import asyncio
import contextlib
import logging

from aiohttp import web

from marketbot.config import Settings, load_settings
from marketbot.db import create_store
from marketbot.errors import StoreError
from marketbot.handlers import register_all_handlers
from marketbot.handlers.messages import MessageRouter
from marketbot.services.posting import PostingService
from marketbot.services.whatsapp import WhatsAppClient
from marketbot.storage import DraftStore, ListingStore, SessionStore, expire_listings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

EXPIRY_INTERVAL_SECONDS = 60 * 60


async def _expiry_loop(listings: ListingStore, interval: float = EXPIRY_INTERVAL_SECONDS):
    while True:
        try:
            count = await asyncio.to_thread(expire_listings, listings)
        except StoreError:
            logger.exception("Listing expiry failed, retrying in %ss", interval)
        else:
            if count:
                logger.info("Expired %s listing(s)", count)
        await asyncio.sleep(interval)


def build_app(settings: Settings) -> web.Application:
    db = create_store(settings)
    listings = ListingStore(db, ttl_days=settings.listing_ttl_days)
    posting = PostingService(DraftStore(db), SessionStore(db), listings)
    router = MessageRouter(settings, posting, listings, client=WhatsAppClient(settings))

    app = web.Application()
    register_all_handlers(app, settings, router)

    async def start_background(app: web.Application):
        app["expiry_task"] = asyncio.create_task(_expiry_loop(listings))

    async def stop_background(app: web.Application):
        app["expiry_task"].cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await app["expiry_task"]

    app.on_startup.append(start_background)
    app.on_cleanup.append(stop_background)
    return app


def main():
    settings = load_settings()
    if settings.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    web.run_app(build_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
