# marketbot/handlers/webhook.py
import logging
from typing import Any, Dict, List

from aiohttp import web

from ..config import Settings
from ..models import IncomingMessage
from .messages import MessageRouter

logger = logging.getLogger(__name__)


def parse_webhook_payload(payload: Dict[str, Any]) -> List[IncomingMessage]:
    """
    WhatsApp Cloud API envelope -> inbound messages.
    Status callbacks (sent/delivered/read) carry no messages and give [].
    """
    messages: List[IncomingMessage] = []
    if not isinstance(payload, dict):
        return messages

    for entry in payload.get("entry") or []:
        for change in entry.get("changes") or []:
            value = change.get("value") or {}
            names = {
                c.get("wa_id"): (c.get("profile") or {}).get("name")
                for c in value.get("contacts") or []
            }
            for raw in value.get("messages") or []:
                msg = _parse_message(raw, names)
                if msg is not None:
                    messages.append(msg)
    return messages


def _parse_message(raw: Dict[str, Any], names: Dict[str, Any]):
    user_id = raw.get("from")
    if not user_id:
        return None

    msg = IncomingMessage(
        user_id=user_id,
        message_id=raw.get("id"),
        profile_name=names.get(user_id),
    )
    kind = raw.get("type")

    if kind == "text":
        msg.text = (raw.get("text") or {}).get("body") or ""
    elif kind == "interactive":
        interactive = raw.get("interactive") or {}
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        msg.choice_id = reply.get("id")
        msg.text = reply.get("title") or ""
    elif kind == "button":
        button = raw.get("button") or {}
        msg.choice_id = button.get("payload")
        msg.text = button.get("text") or ""
    elif kind in ("audio", "voice"):
        msg.audio_id = (raw.get(kind) or {}).get("id")
    else:
        logger.info("[WEBHOOK] unsupported message type=%s from=%s", kind, user_id)
        msg.unsupported_type = kind or "unknown"
    return msg


def register_webhook_handlers(app: web.Application, settings: Settings, router: MessageRouter) -> None:
    async def verify(request: web.Request) -> web.Response:
        mode = request.query.get("hub.mode")
        token = request.query.get("hub.verify_token")
        challenge = request.query.get("hub.challenge", "")

        if mode == "subscribe" and settings.whatsapp_verify_token and token == settings.whatsapp_verify_token:
            logger.info("[WEBHOOK] subscription verified")
            return web.Response(text=challenge)
        logger.warning("[WEBHOOK] verification failed mode=%s", mode)
        return web.Response(status=403, text="Forbidden")

    async def receive(request: web.Request) -> web.Response:
        try:
            payload = await request.json()
        except ValueError:
            return web.Response(status=400, text="Bad Request")

        for message in parse_webhook_payload(payload):
            logger.info(
                "[WEBHOOK] from=%s text=%r choice=%s audio=%s",
                message.user_id, message.text, message.choice_id, message.audio_id,
            )
            try:
                reply = await router.handle(message)
                if reply is not None:
                    await router.deliver(message.user_id, reply)
            except Exception:
                # one bad message must not block the rest of the batch
                logger.exception("[WEBHOOK] failed to handle message id=%s", message.message_id)
                await router.deliver_retry_later(message.user_id)

        return web.Response(text="OK")

    async def health(request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    app.router.add_get("/webhook", verify)
    app.router.add_post("/webhook", receive)
    app.router.add_get("/health", health)
