# marketbot/ai/entities.py
import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Pattern, Tuple

from ..utils.amounts import PRICE_WITH_SUFFIX_RE, parse_price, parse_spoken_amount
from ..utils.locations import extract_location
from ..utils.phones import extract_phones, strip_phones

logger = logging.getLogger(__name__)

_AMOUNT = r"(\d[\d,]*(?:\.\d+)?\s*(?:crores?|cr|lakhs?|lacs?|lac|k|thousands?|hazaa?r)?)"

PROFESSIONS = (
    "plumber", "electrician", "carpenter", "cleaner", "painter", "mechanic",
    "driver", "maid", "cook", "tutor", "teacher", "technician", "gardener",
    "welder", "beautician", "tailor", "barber", "babysitter", "security guard",
    "guard", "ac repair", "pest control", "laundry", "mason", "photographer",
)

# Common entities, attempted for every category
QUANTITY_RE = re.compile(
    r"\b(\d+(?:\.\d+)?)\s*(tons?|tonnes?|quintals?|kgs?|bags?|pieces?|pcs|units?|litres?|liters?|trucks?)\b",
    re.IGNORECASE,
)
CURRENCY_PRICE_RE = re.compile(r"(?:rs\.?|₹|inr|rupees?)\s*(\d[\d,]*(?:\.\d+)?)", re.IGNORECASE)
KEYWORD_PRICE_RE = re.compile(
    r"\b(?:rent|price|for|at|@|cost|only|salary|budget|under|below|upto|kiraya)\s*(?:is|of|:|-)?\s*"
    r"(\d{1,3}(?:,\d{2,3})+|\d{3,})(?!\s*(?:bhk|rk|km|kms|years?|yrs?|model|sq|ton|kg))\b",
    re.IGNORECASE,
)
BUDGET_RE = re.compile(
    r"\b(?:under|below|upto|up to|within|budget(?:\s+(?:of|is))?|max(?:imum)?|less than)\s*:?\s*"
    r"(?:rs\.?|₹|inr)?\s*" + _AMOUNT,
    re.IGNORECASE,
)

# Ordered (entity, pattern) lists per category; group 1 (or the whole match) is the value
CATEGORY_PATTERNS: Dict[str, List[Tuple[str, Pattern]]] = {
    "housing": [
        ("unitType", re.compile(r"\b(\d\s*(?:bhk|rk)|studio|pg|paying guest)\b", re.IGNORECASE)),
        ("bhk", re.compile(r"\b(\d)\s*(?:bhk|bedroom|bed room|rk)\b", re.IGNORECASE)),
        ("propertyType", re.compile(
            r"\b(independent floor|builder floor|flat|apartment|house|villa|room|plot|shop|office)\b",
            re.IGNORECASE,
        )),
        ("furnishing", re.compile(r"\b(fully furnished|semi[\s\-]?furnished|unfurnished|furnished)\b",
                                  re.IGNORECASE)),
        ("deposit", re.compile(r"\bdeposit\s*(?:of|is|:|-)?\s*(?:rs\.?|₹)?\s*" + _AMOUNT, re.IGNORECASE)),
    ],
    "urban_help": [
        ("serviceType", re.compile(r"\b(" + "|".join(PROFESSIONS) + r")s?\b", re.IGNORECASE)),
        ("experience", re.compile(r"\b(\d+)\s*\+?\s*(?:years?|yrs?|saal)\b", re.IGNORECASE)),
        ("urgency", re.compile(r"\b(urgent|urgently|immediate|immediately|asap|today|abhi)\b", re.IGNORECASE)),
    ],
    "vehicle": [
        ("vehicleType", re.compile(
            r"\b(car|bike|scooty|scooter|motorcycle|auto rickshaw|auto|truck|tempo|bicycle|cycle|suv)\b",
            re.IGNORECASE,
        )),
        ("brand", re.compile(
            r"\b(maruti|suzuki|tata|hyundai|honda|hero|bajaj|yamaha|mahindra|toyota|kia|tvs|"
            r"royal enfield|ford|renault|ola|ather)\b",
            re.IGNORECASE,
        )),
        ("year", re.compile(r"\b(19[89]\d|20[0-3]\d)\b")),
        ("kmDriven", re.compile(r"\b(\d[\d,]*)\s*(?:km|kms|kilometers?)\b", re.IGNORECASE)),
        ("condition", re.compile(r"\b(new|used|second[\s\-]?hand|old)\b", re.IGNORECASE)),
    ],
    "electronics": [
        ("itemType", re.compile(
            r"\b(washing machine|air conditioner|smartphone|mobile|phone|laptop|television|tv|"
            r"refrigerator|fridge|cooler|microwave|tablet|camera|speaker|printer|ac)\b",
            re.IGNORECASE,
        )),
        ("brand", re.compile(
            r"\b(samsung|apple|iphone|oneplus|xiaomi|redmi|vivo|oppo|realme|lg|sony|dell|hp|lenovo|"
            r"asus|acer|whirlpool|godrej|voltas|panasonic)\b",
            re.IGNORECASE,
        )),
        ("condition", re.compile(r"\b(new|used|second[\s\-]?hand|old|refurbished)\b", re.IGNORECASE)),
    ],
    "furniture": [
        ("itemType", re.compile(
            r"\b(sofa set|sofa|dining table|study table|dressing table|table|chair|almirah|wardrobe|"
            r"cupboard|double bed|single bed|bed|mattress|bookshelf|shelf|desk|cabinet)\b",
            re.IGNORECASE,
        )),
        ("material", re.compile(r"\b(wooden|wood|sheesham|teak|metal|steel|iron|plastic|glass|leather|fabric)\b",
                                re.IGNORECASE)),
        ("condition", re.compile(r"\b(new|used|second[\s\-]?hand|old)\b", re.IGNORECASE)),
    ],
    "job": [
        ("jobPosition", re.compile(
            r"\b(security guard|delivery boy|sales executive|data entry operator|data entry|driver|cook|maid|"
            r"guard|salesman|receptionist|accountant|teacher|tutor|helper|peon|electrician|plumber|"
            r"telecaller|developer|nurse|cashier|waiter)s?\b",
            re.IGNORECASE,
        )),
        ("jobType", re.compile(
            r"\b(full[\s\-]?time|part[\s\-]?time|contract|internship|freelance|temporary|permanent)\b",
            re.IGNORECASE,
        )),
        ("salary", re.compile(
            r"\b(?:salary|pay|stipend|vetan|tankhwah)\s*(?:of|is|:|-)?\s*(?:rs\.?|₹|inr)?\s*" + _AMOUNT,
            re.IGNORECASE,
        )),
        ("experience", re.compile(r"\b(\d+)\s*\+?\s*(?:years?|yrs?|saal)\b", re.IGNORECASE)),
    ],
    "commodity": [
        ("item", re.compile(
            r"\b(steel|sariya|rice|wheat|cement|sand|gravel|bricks?|iron|dal|pulses|sugar|atta|flour|"
            r"onions?|potato(?:es)?|tomato(?:es)?|coal|timber|oil)\b",
            re.IGNORECASE,
        )),
        ("quality", re.compile(r"\b(best|premium|standard|regular|a[\s\-]grade|export quality)\b",
                               re.IGNORECASE)),
    ],
}


def _squash(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip().lower()


def _unit_type(value: str) -> str:
    v = _squash(value)
    if v == "paying guest":
        return "pg"
    return v.replace(" ", "")


def _job_type(value: str) -> str:
    return re.sub(r"[\s\-]+", "-", _squash(value))


def _amount(value: str) -> Optional[Any]:
    return parse_price(value)


def _number(value: str) -> Optional[int]:
    digits = re.sub(r"[^\d]", "", value or "")
    return int(digits) if digits else None


def _singular(value: str) -> str:
    v = _squash(value)
    if v.endswith("oes"):
        return v[:-2]
    if v.endswith("s") and not v.endswith("ss") and v not in ("pulses",):
        return v[:-1]
    return v


_NORMALIZERS: Dict[str, Callable[[str], Any]] = {
    "unitType": _unit_type,
    "bhk": _number,
    "jobType": _job_type,
    "deposit": _amount,
    "salary": _amount,
    "year": _number,
    "kmDriven": _number,
    "experience": _number,
    "serviceType": _singular,
    "jobPosition": _singular,
    "item": _singular,
}


def _collapse(values: List[Any]) -> Any:
    """Exactly one match -> scalar, otherwise the list."""
    if len(values) == 1:
        return values[0]
    return values


def _unique(values: Iterable[Any]) -> List[Any]:
    out: List[Any] = []
    for v in values:
        if v is None or v == "":
            continue
        if v not in out:
            out.append(v)
    return out


def _run_pattern(name: str, pattern: Pattern, text: str) -> List[Any]:
    normalize = _NORMALIZERS.get(name, _squash)
    values = []
    for m in pattern.finditer(text):
        raw = m.group(1) if m.groups() else m.group(0)
        values.append(normalize(raw))
    return _unique(values)


def extract_prices(text: str) -> List[Any]:
    """
    All price-like amounts in order of appearance. Phone numbers are
    removed first so their digits are never read as prices.
    """
    text = strip_phones(text or "")
    taken: List[Tuple[int, int]] = []
    found: List[Tuple[int, Any]] = []

    def _overlaps(span: Tuple[int, int]) -> bool:
        return any(span[0] < end and start < span[1] for start, end in taken)

    for pattern in (PRICE_WITH_SUFFIX_RE, CURRENCY_PRICE_RE, KEYWORD_PRICE_RE):
        for m in pattern.finditer(text):
            span = m.span(1)
            if _overlaps(span):
                continue
            raw = m.group(0) if pattern is PRICE_WITH_SUFFIX_RE else m.group(1)
            value = parse_price(raw)
            if value:
                taken.append(span)
                found.append((span[0], value))

    found.sort(key=lambda item: item[0])
    values = _unique([v for _, v in found])

    if not values and not re.search(r"\d", text):
        spoken = parse_spoken_amount(text)
        if spoken:
            values = [spoken]
    return values


def _common_entities(text: str) -> Dict[str, Any]:
    entities: Dict[str, Any] = {}

    phones = extract_phones(text)
    if phones:
        entities["phone"] = _collapse(phones)

    loc = extract_location(text)
    if loc.get("area"):
        entities["location"] = loc["area"]
    if loc.get("city"):
        entities["city"] = loc["city"]

    quantities = _unique(
        f"{m.group(1)} {m.group(2).lower()}" for m in QUANTITY_RE.finditer(text)
    )
    if quantities:
        entities["quantity"] = _collapse(quantities)

    prices = extract_prices(text)
    if prices:
        entities["price"] = _collapse(prices)

    budget = BUDGET_RE.search(strip_phones(text))
    if budget:
        value = parse_price(budget.group(1))
        if value:
            entities["budget"] = value

    return entities


def extract_entities(text: Any, category: Optional[str] = None) -> Dict[str, Any]:
    """
    Deterministic entity extraction, no network.

    Common entities (phone, location, city, quantity, price, budget) are always
    attempted; category tables add the category-specific ones. Entities found
    once are scalars, several matches give a list. Non-string input is read as
    an empty string.
    """
    if not isinstance(text, str):
        text = ""
    text = text.replace("’", "'")

    entities = _common_entities(text)

    for name, pattern in CATEGORY_PATTERNS.get(category or "", []):
        values = _run_pattern(name, pattern, text)
        if values:
            entities[name] = _collapse(values)

    logger.debug("[ENTITIES] category=%s text=%r -> %s", category, text, entities)
    return entities


def first_value(value: Any) -> Any:
    """Entities may be lists; pre-fill uses the first match."""
    if isinstance(value, list):
        return value[0] if value else None
    return value
