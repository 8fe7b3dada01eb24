# marketbot/handlers/__init__.py
from aiohttp import web

from .messages import MessageRouter
from .webhook import register_webhook_handlers
from ..config import Settings


def register_all_handlers(app: web.Application, settings: Settings, router: MessageRouter) -> None:
    register_webhook_handlers(app, settings, router)
