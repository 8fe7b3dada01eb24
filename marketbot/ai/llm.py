# marketbot/ai/llm.py
import json
import logging
from typing import Any, Dict

from openai import OpenAI

from ..config import Settings
from ..errors import LLMError

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are the assistant of a WhatsApp marketplace for Indian local classifieds "
    "(housing, services, vehicles, electronics, furniture, jobs, commodities). "
    "Answer briefly."
)


def _client(settings: Settings) -> OpenAI:
    if not settings.openai_enabled:
        raise LLMError("OPENAI_API_KEY is not set")
    return OpenAI(api_key=settings.openai_api_key, base_url=settings.openai_base_url)


def _extract_json_from_text(content: str) -> str:
    text = (content or "").strip()

    if text.startswith("```"):
        lines = text.splitlines()
        if lines and lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines).strip()

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and start < end:
        text = text[start: end + 1].strip()

    return text


def ask_ai(
        settings: Settings,
        prompt: str,
        *,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        temperature: float = 0,
) -> str:
    """Single chat completion; returns the raw reply text."""
    client = _client(settings)
    resp = client.chat.completions.create(
        model=settings.openai_model,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt},
        ],
        temperature=temperature,
    )
    return (resp.choices[0].message.content or "").strip()


def call_llm_as_json(
        settings: Settings,
        *,
        system_prompt: str,
        user_prompt: str,
) -> Dict[str, Any]:
    content = ask_ai(settings, user_prompt, system_prompt=system_prompt)
    cleaned = _extract_json_from_text(content)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        short = cleaned[:1000]
        raise LLMError(f"LLM did not return JSON: {e}. Content (truncated): {short!r}") from e

    if not isinstance(data, dict):
        raise LLMError(f"LLM returned {type(data).__name__}, expected an object")
    return data
