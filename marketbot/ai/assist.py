# marketbot/ai/assist.py
import logging
from typing import Optional

from openai import OpenAIError

from ..config import Settings
from ..errors import LLMError
from ..models import ClassificationResult
from .classifier import IntentClassifier, category_for_intent, get_classifier, remap_intent
from .entities import extract_entities
from .listing_structured import TYPE_ENTITY, extract_listing_structured, extraction_to_entities
from .llm import call_llm_as_json
from .training_data import INTENTS

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """
You classify WhatsApp messages sent to an Indian classifieds marketplace.
Messages can be English, Hindi or Tamil, often mixed, often in Latin script.

Allowed intents:
{intents}

"offer" means the sender has something to give (sells, rents out, provides a service, hires).
"find" means the sender is looking for something.

Reply only with JSON in this format:

{{
  "intent": "<one of the allowed intents>",
  "context": "offer" | "find" | null,
  "confidence": <number between 0 and 1>
}}
""".strip()


def _llm_classify(settings: Settings, text: str, base: ClassificationResult) -> Optional[ClassificationResult]:
    data = call_llm_as_json(
        settings,
        system_prompt=SYSTEM_PROMPT.format(intents="\n".join(f"- {i}" for i in INTENTS)),
        user_prompt=text,
    )

    intent = data.get("intent")
    if intent not in INTENTS:
        logger.warning("[ASSIST] LLM returned unknown intent=%r", intent)
        return None

    context = data.get("context")
    if context not in ("offer", "find"):
        context = base.context

    try:
        confidence = float(data.get("confidence", 0.5))
    except (TypeError, ValueError):
        confidence = 0.5
    confidence = min(max(confidence, 0.0), 1.0)

    intent = remap_intent(intent, context)
    return ClassificationResult(
        intent=intent,
        confidence=confidence,
        context=context,
        entities=extract_entities(text, category_for_intent(intent)),
        language=base.language,
        alternatives=base.alternatives,
        source="llm",
        threshold=base.threshold,
    )


def _fill_entity_gaps(settings: Settings, text: str, result: ClassificationResult) -> None:
    category = category_for_intent(result.intent)
    if category is None or result.entities.get(TYPE_ENTITY[category]):
        return

    extraction = extract_listing_structured(settings, text=text, category=category)
    if extraction is None:
        return

    added = {}
    for name, value in extraction_to_entities(extraction, category).items():
        if result.entities.get(name) in (None, "", []):
            result.entities[name] = value
            added[name] = value
    if added:
        logger.info("[ASSIST] structured extraction added %s", added)


def classify_with_assist(
        settings: Settings,
        text: str,
        classifier: Optional[IntentClassifier] = None,
) -> ClassificationResult:
    """
    Deterministic classification first. The LLM is asked only when that result
    is not confident, and only when a key is configured. Any LLM failure keeps
    the deterministic result.
    """
    result = (classifier or get_classifier()).classify(text)
    if not settings.openai_enabled or not (text or "").strip():
        return result

    if not result.is_confident:
        try:
            assisted = _llm_classify(settings, text, result)
        except (LLMError, OpenAIError) as e:
            logger.warning("[ASSIST] LLM classification failed, keeping rules result: %r", e)
            assisted = None
        if assisted is not None:
            logger.info(
                "[ASSIST] text=%r rules=%s(%.2f) -> llm=%s(%.2f)",
                text, result.intent, result.confidence, assisted.intent, assisted.confidence,
            )
            result = assisted

    _fill_entity_gaps(settings, text, result)
    return result
