# marketbot/services/whatsapp.py
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from ..config import Settings
from ..errors import WhatsAppAPIError

logger = logging.getLogger(__name__)

MAX_BUTTONS = 3
MAX_LIST_ROWS = 10
BUTTON_TITLE_LIMIT = 20
ROW_TITLE_LIMIT = 24
BODY_LIMIT = 4096


class WhatsAppClient:
    """Thin WhatsApp Cloud API client. Errors are logged, never retried."""

    def __init__(self, settings: Settings):
        base = settings.whatsapp_api_base.rstrip("/")
        self.base_url = f"{base}/{settings.whatsapp_api_version}"
        self.phone_number_id = settings.whatsapp_phone_number_id
        self.token = settings.whatsapp_token

    def _build_headers(self, json_body: bool = True) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self.token}"}
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def post_json(self, path: str, data: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        headers = self._build_headers()

        async with aiohttp.ClientSession() as session:
            async with session.post(url, json=data, headers=headers) as resp:
                text = await resp.text()
                if resp.status >= 400:
                    logger.error("POST %s failed (%s): %s", url, resp.status, text)
                    raise WhatsAppAPIError(resp.status, text)
                try:
                    return await resp.json()
                except (aiohttp.ContentTypeError, ValueError):
                    logger.warning("Non-JSON response from %s: %s", url, text)
                    return {}

    async def _send(self, to: str, payload: Dict[str, Any]) -> bool:
        body = {"messaging_product": "whatsapp", "recipient_type": "individual", "to": to}
        body.update(payload)
        try:
            await self.post_json(f"/{self.phone_number_id}/messages", body)
        except (WhatsAppAPIError, aiohttp.ClientError) as e:
            logger.error("[WA] send to=%s type=%s failed: %s", to, payload.get("type"), e)
            return False
        return True

    async def send_text(self, to: str, text: str) -> bool:
        return await self._send(to, {"type": "text", "text": {"preview_url": False, "body": text[:BODY_LIMIT]}})

    async def send_buttons(self, to: str, prompt: str, choices: List[Dict[str, str]]) -> bool:
        """Reply buttons for up to three choices, a list message otherwise."""
        if not choices:
            return await self.send_text(to, prompt)

        if len(choices) <= MAX_BUTTONS:
            interactive = {
                "type": "button",
                "body": {"text": prompt[:BODY_LIMIT]},
                "action": {
                    "buttons": [
                        {"type": "reply", "reply": {"id": c["id"], "title": c["title"][:BUTTON_TITLE_LIMIT]}}
                        for c in choices
                    ]
                },
            }
        else:
            interactive = {
                "type": "list",
                "body": {"text": prompt[:BODY_LIMIT]},
                "action": {
                    "button": "Choose",
                    "sections": [
                        {
                            "title": "Options",
                            "rows": [
                                {"id": c["id"], "title": c["title"][:ROW_TITLE_LIMIT]}
                                for c in choices[:MAX_LIST_ROWS]
                            ],
                        }
                    ],
                },
            }
        return await self._send(to, {"type": "interactive", "interactive": interactive})

    async def mark_read(self, message_id: str) -> bool:
        body = {"messaging_product": "whatsapp", "status": "read", "message_id": message_id}
        try:
            await self.post_json(f"/{self.phone_number_id}/messages", body)
        except (WhatsAppAPIError, aiohttp.ClientError) as e:
            logger.warning("[WA] mark_read %s failed: %s", message_id, e)
            return False
        return True

    async def download_media(self, media_id: str) -> Optional[bytes]:
        """Two steps: resolve the media URL, then fetch the bytes with the same token."""
        headers = self._build_headers(json_body=False)
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(f"{self.base_url}/{media_id}", headers=headers) as resp:
                    if resp.status >= 400:
                        logger.error("[WA] media lookup %s failed (%s): %s", media_id, resp.status, await resp.text())
                        return None
                    meta = await resp.json()

                url = meta.get("url")
                if not url:
                    logger.error("[WA] media %s has no url: %s", media_id, meta)
                    return None

                async with session.get(url, headers=headers) as resp:
                    if resp.status >= 400:
                        logger.error("[WA] media download %s failed (%s)", media_id, resp.status)
                        return None
                    return await resp.read()
        except (aiohttp.ClientError, ValueError) as e:
            logger.error("[WA] media %s download error: %s", media_id, e)
            return None
