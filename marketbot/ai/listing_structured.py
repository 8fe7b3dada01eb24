# marketbot/ai/listing_structured.py
import logging
import time
from typing import Any, Dict, Optional

from langchain_core.prompts import ChatPromptTemplate
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, Field

from ..config import Settings
from ..models import CATEGORIES

logger = logging.getLogger(__name__)

# =========================
# LLM circuit-breaker (module-level)
# =========================
_LLM_DISABLED_UNTIL_TS: float = 0.0


def _llm_disabled() -> bool:
    return time.time() < _LLM_DISABLED_UNTIL_TS


def _disable_llm_for(seconds: int, reason: str):
    global _LLM_DISABLED_UNTIL_TS
    _LLM_DISABLED_UNTIL_TS = time.time() + float(seconds)
    logger.warning("LLM disabled for %s seconds. reason=%s", seconds, reason)


class ListingExtraction(BaseModel):
    """Structured fields read from a marketplace message."""
    category: Optional[str] = Field(
        default=None,
        description="One of: " + ", ".join(CATEGORIES) + ". None when unclear.",
    )
    item_type: Optional[str] = Field(
        default=None,
        description=(
            "What is offered or wanted, in a few lowercase words: '2bhk', 'plumber', "
            "'car', 'fridge', 'sofa', 'delivery boy', 'rice'."
        ),
    )
    brand: Optional[str] = Field(default=None, description="Brand name if mentioned, lowercase.")
    price: Optional[int] = Field(
        default=None,
        description="Price, rent or salary in rupees. '15k' -> 15000, '2 lakh' -> 200000.",
    )
    area: Optional[str] = Field(default=None, description="Locality or sector, e.g. 'Sector 62'.")
    city: Optional[str] = Field(default=None, description="City, e.g. 'Noida'.")
    description: Optional[str] = Field(
        default=None,
        description="One short sentence describing the offer in the user's words.",
    )


# category -> entity name the item_type fills
TYPE_ENTITY = {
    "housing": "unitType",
    "urban_help": "serviceType",
    "vehicle": "vehicleType",
    "electronics": "itemType",
    "furniture": "itemType",
    "job": "jobPosition",
    "commodity": "item",
}


def _build_prompt() -> ChatPromptTemplate:
    system_msg = (
        "You read WhatsApp messages sent to an Indian classifieds marketplace. "
        "Messages may mix English, Hindi and Tamil in Latin script. "
        "Fill only the fields the message states; never guess values that are not there."
    )
    human_msg = (
        "Message: \"{text}\"\n"
        "Category detected by rules (may be empty): {category}\n\n"
        "Return the ListingExtraction structure."
    )
    return ChatPromptTemplate.from_messages(
        [
            ("system", system_msg),
            ("human", human_msg),
        ]
    )


def get_listing_extractor(settings: Settings) -> ChatOpenAI:
    # retries are handled by the circuit breaker, not the client
    return ChatOpenAI(
        model=settings.openai_model,
        temperature=0,
        openai_api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        max_retries=0,
        timeout=30,
    )


def extract_listing_structured(
        settings: Settings,
        *,
        text: str,
        category: Optional[str] = None,
) -> Optional[ListingExtraction]:
    """
    RETURNS:
      - ListingExtraction on success
      - None when the LLM is off, cooling down, rate limited or failed
    """
    if not settings.openai_enabled:
        return None
    if _llm_disabled():
        logger.warning("extract_listing_structured skipped: LLM cooldown active.")
        return None

    prompt = _build_prompt()
    llm = get_listing_extractor(settings)
    chain = prompt | llm.with_structured_output(ListingExtraction)

    try:
        return chain.invoke({"text": text, "category": category or ""})

    except Exception as e:
        # openai errors surface here wrapped by LangChain
        msg = str(e)

        if "insufficient_quota" in msg:
            _disable_llm_for(30 * 60, "insufficient_quota")
            logger.exception("LLM error: insufficient_quota")
            return None

        if "Error code: 429" in msg or "Too Many Requests" in msg:
            _disable_llm_for(60, "429_rate_limit")
            logger.exception("LLM error: 429 Too Many Requests")
            return None

        logger.exception("LLM structured extraction error: %s", e)
        return None


def extraction_to_entities(extraction: ListingExtraction, category: Optional[str]) -> Dict[str, Any]:
    """Maps the structured result onto entity names used by the dialogue."""
    category = category or extraction.category
    entities: Dict[str, Any] = {}

    if extraction.item_type and category in TYPE_ENTITY:
        entities[TYPE_ENTITY[category]] = extraction.item_type.strip().lower()
    if extraction.brand:
        entities["brand"] = extraction.brand.strip().lower()
    if extraction.price and extraction.price > 0:
        entities["price"] = int(extraction.price)
    if extraction.area:
        entities["location"] = extraction.area.strip()
    if extraction.city:
        entities["city"] = extraction.city.strip()
    return entities
