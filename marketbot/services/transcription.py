# marketbot/services/transcription.py
import asyncio
import logging
from typing import Optional

import requests

from ..config import Settings
from ..errors import TranscriptionError

logger = logging.getLogger(__name__)

# en / hi / ta are all handled by whisper's own language detection
PROMPT_HINT = "Marketplace message about rent, flats, services, jobs, lakh, hazaar, Noida, sector."


def _transcribe_sync(
        file_bytes: bytes,
        api_key: str,
        url: str,
        model: str,
        mime_type: str = "audio/ogg",
) -> str:
    headers = {
        "Authorization": f"Bearer {api_key}",
    }

    files = {
        "file": ("voice.ogg", file_bytes, mime_type),
    }

    data = {
        "model": model,
        "prompt": PROMPT_HINT,
        "response_format": "json",
        "temperature": "0",
    }

    try:
        resp = requests.post(url, headers=headers, files=files, data=data, timeout=60)
        resp.raise_for_status()
        j = resp.json()
    except (requests.RequestException, ValueError) as e:
        raise TranscriptionError(f"transcription request failed: {e}") from e

    logger.debug("Transcription response: %s", j)

    text = None
    if isinstance(j, dict):
        if "text" in j:
            text = j["text"]
        elif isinstance(j.get("result"), dict):
            text = j["result"].get("text")

    if not text or not str(text).strip():
        raise TranscriptionError("empty transcript")
    return str(text).strip()


async def transcribe(
        settings: Settings,
        file_bytes: bytes,
        mime_type: str = "audio/ogg",
) -> Optional[str]:
    """
    Voice note -> text. Returns None when transcription is not configured
    or fails; callers treat that as an unrecognized message.
    """
    if not settings.transcription_enabled:
        logger.warning("[STT] TRANSCRIBE_API_KEY is not set, skipping voice message")
        return None
    if not file_bytes:
        return None

    try:
        text = await asyncio.to_thread(
            _transcribe_sync,
            file_bytes,
            settings.transcribe_api_key,
            settings.transcribe_url,
            settings.transcribe_model,
            mime_type,
        )
    except TranscriptionError as e:
        logger.warning("[STT] failed: %s", e)
        return None

    logger.info("[STT] transcript=%r", text)
    return text
