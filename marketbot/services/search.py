# marketbot/services/search.py
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from ..ai.classifier import tokenize
from ..ai.entities import first_value
from ..field_config import get_field_config, resolve_field
from ..models import ClassificationResult, Listing
from ..utils.amounts import format_amount, parse_price
from ..utils.phones import format_phone_display

logger = logging.getLogger(__name__)

CITY_EXACT_POINTS = 40
CITY_PARTIAL_POINTS = 15
LOCALITY_POINTS = 30
LOCALITY_IN_DESCRIPTION_POINTS = 10
TYPE_POINTS = 30
TYPE_IN_DESCRIPTION_POINTS = 8
BHK_POINTS = 20
KEYWORD_POINTS = 2
BUDGET_POINTS = 25
NEAR_BUDGET_POINTS = 5
CONTACT_POINTS = 5

NEAR_BUDGET_RATIO = 1.2
RESULT_CAP = 50
FILTER_KEYS = ("city", "locality", "type", "bhk", "budget")

# category -> fields that count as the listing's "type"
_TYPE_FIELDS = {
    "housing": ("unitType", "propertyType"),
    "urban_help": ("serviceType",),
    "vehicle": ("vehicleType", "brand"),
    "electronics": ("itemType", "brand"),
    "furniture": ("itemType", "material"),
    "job": ("jobPosition", "jobType"),
    "commodity": ("item",),
}
_PRICE_FIELDS = ("rent", "price", "salary")
_QUERY_STOPWORDS = frozenset({
    "need", "want", "looking", "find", "search", "searching", "buy", "rent", "hire", "chahiye",
    "koi", "hai", "please", "pls", "any", "some", "with", "near", "from", "under", "below",
    "budget", "upto", "within", "price", "required",
})

ListingLike = Union[Listing, Dict[str, Any]]


@dataclass
class SearchHit:
    item: ListingLike
    score: int


def _low(value: Any) -> str:
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip().lower()


def listing_search_view(listing: ListingLike) -> Dict[str, Any]:
    """
    Flat view used for scoring: city, locality, type, bhk, description,
    price, contact. Plain dicts are taken as already flat.
    """
    if not isinstance(listing, Listing):
        data = listing or {}
        return {
            "city": data.get("city") or data.get("location") or "",
            "locality": data.get("locality") or "",
            "type": data.get("type") or data.get("property_type") or data.get("category") or "",
            "bhk": data.get("bhk") or "",
            "description": data.get("description") or data.get("details") or "",
            "price": data.get("price"),
            "contact": data.get("contact") or "",
        }

    category = listing.category
    section = listing.data.get(category) or {}
    location = listing.data.get("location") or {}

    types = [listing.sub_category]
    for name in _TYPE_FIELDS.get(category, ()):
        value = section.get(name)
        if value and value not in types:
            types.append(value)
    types.append(category)

    price = None
    for name in _PRICE_FIELDS:
        if section.get(name) is not None:
            price = section.get(name)
            break

    config = get_field_config(category)
    description_parts = [listing.title]
    if config is not None:
        for path in config.summary:
            value = resolve_field(listing.data, category, path)
            if isinstance(value, str):
                description_parts.append(value)

    return {
        "city": location.get("city") or "",
        "locality": location.get("area") or "",
        "type": " ".join(str(t) for t in types if t),
        "bhk": section.get("bhk") or section.get("unitType") or "",
        "description": " ".join(p for p in description_parts if p),
        "price": price,
        "contact": (listing.owner or {}).get("phone") or "",
    }


def _price_value(raw: Any) -> int:
    if raw is None or isinstance(raw, bool):
        return 0
    if isinstance(raw, (int, float)):
        return int(raw)
    digits = re.sub(r"\D", "", str(raw))
    return int(digits) if digits else 0


def score_listing(listing: ListingLike, entities: Dict[str, Any]) -> int:
    """Additive relevance score; never negative."""
    view = listing_search_view(listing)
    entities = entities or {}

    q_city = _low(entities.get("city"))
    q_locality = _low(entities.get("locality"))
    q_type = _low(entities.get("type"))
    q_bhk = _low(entities.get("bhk"))
    q_keywords = _low(entities.get("keywords"))

    l_place = " ".join(p for p in (_low(view["locality"]), _low(view["city"])) if p)
    l_type = _low(view["type"])
    l_desc = _low(view["description"])
    l_price = _price_value(view["price"])

    score = 0
    if q_city and q_city in l_place:
        score += CITY_EXACT_POINTS
    elif q_city and any(tok in l_place for tok in q_city.split()):
        score += CITY_PARTIAL_POINTS

    if q_locality and q_locality in l_place:
        score += LOCALITY_POINTS
    elif q_locality and q_locality in l_desc:
        score += LOCALITY_IN_DESCRIPTION_POINTS

    if q_type and q_type in l_type:
        score += TYPE_POINTS
    elif q_type and q_type in l_desc:
        score += TYPE_IN_DESCRIPTION_POINTS

    if q_bhk and (q_bhk in l_desc or q_bhk in _low(view["bhk"])):
        score += BHK_POINTS

    for token in q_keywords.split():
        if token in l_desc or token in l_type:
            score += KEYWORD_POINTS

    budget = entities.get("budget")
    if isinstance(budget, (int, float)) and not isinstance(budget, bool) and budget > 0 and l_price:
        if l_price <= budget:
            score += BUDGET_POINTS
        elif l_price / budget <= NEAR_BUDGET_RATIO:
            score += NEAR_BUDGET_POINTS

    if _low(view["contact"]):
        score += CONTACT_POINTS
    return score


def search_listings(
        listings: Sequence[ListingLike],
        entities: Dict[str, Any],
        max_results: int = 10,
        score_threshold: Optional[int] = None,
) -> List[SearchHit]:
    """
    Scores every listing, keeps those at or above the threshold and sorts by
    score, highest first. Ties keep their input order. At most
    max(max_results, 50) hits are returned.
    """
    entities = entities or {}
    if score_threshold is None:
        has_filter = any(entities.get(key) for key in FILTER_KEYS)
        score_threshold = 1 if has_filter else 0

    hits = [SearchHit(item=item, score=score_listing(item, entities)) for item in listings]
    hits = [h for h in hits if h.score >= score_threshold]
    hits.sort(key=lambda h: h.score, reverse=True)
    return hits[:max(max_results, RESULT_CAP)]


def _keywords(text: str, used: Iterable[str]) -> str:
    skip = set()
    for value in used:
        skip.update(_low(value).split())
    words = []
    for token in tokenize(text):
        if token in _QUERY_STOPWORDS or token in skip or len(token) < 3:
            continue
        if any(ch.isdigit() for ch in token):
            continue
        if token not in words:
            words.append(token)
    return " ".join(words)


def build_search_query(classification: ClassificationResult, text: str) -> Dict[str, Any]:
    """Query entities (city, locality, type, bhk, budget, keywords) for a seeker's message."""
    entities = classification.entities or {}
    query: Dict[str, Any] = {}

    city = first_value(entities.get("city"))
    if city:
        query["city"] = city
    locality = first_value(entities.get("location"))
    if locality and _low(locality) != _low(city):
        query["locality"] = locality

    for name in ("unitType", "propertyType", "serviceType", "vehicleType", "itemType", "jobPosition", "item"):
        value = first_value(entities.get(name))
        if value:
            query["type"] = value
            break

    bhk = first_value(entities.get("bhk"))
    if bhk:
        query["bhk"] = str(bhk)

    budget = entities.get("budget")
    if budget is None:
        budget = first_value(entities.get("price"))
    budget = parse_price(budget) if budget is not None else None
    if budget:
        query["budget"] = budget

    keywords = _keywords(text, [str(v) for v in query.values()])
    if keywords:
        query["keywords"] = keywords
    return query


NO_RESULTS = "Sorry, I couldn't find matching listings right now. Try another area or budget."


def format_search_results(hits: Sequence[SearchHit], limit: int = 5) -> str:
    if not hits:
        return NO_RESULTS

    lines = [f"🔎 Found {len(hits)} listing(s):"]
    for n, hit in enumerate(hits[:limit], start=1):
        item = hit.item
        view = listing_search_view(item)
        title = item.title if isinstance(item, Listing) else (item.get("title") or view["type"] or "Listing")
        place = ", ".join(p for p in (view["locality"], view["city"]) if p)

        lines.append("")
        lines.append(f"{n}. *{title}*")
        if place:
            lines.append(f"📍 {place}")
        if view["price"] is not None:
            lines.append(f"💰 ₹{format_amount(view['price'])}")
        if view["contact"]:
            lines.append(f"📞 {format_phone_display(str(view['contact']))}")
    return "\n".join(lines)
