# marketbot/utils/locations.py
import re
from typing import Dict, Optional

# Longest names first so "greater noida" wins over "noida"
KNOWN_CITIES = (
    "greater noida",
    "noida extension",
    "navi mumbai",
    "new delhi",
    "noida",
    "delhi",
    "gurgaon",
    "gurugram",
    "ghaziabad",
    "faridabad",
    "mumbai",
    "pune",
    "bangalore",
    "bengaluru",
    "hyderabad",
    "chennai",
    "kolkata",
    "jaipur",
    "lucknow",
    "ahmedabad",
    "chandigarh",
    "indore",
)

# Canonical city for localities that are really parts of a bigger city
CITY_ALIASES = {
    "gurugram": "Gurgaon",
    "bengaluru": "Bangalore",
    "new delhi": "Delhi",
    "noida extension": "Greater Noida",
}

CITY_REGEX = re.compile(
    r"\b(" + "|".join(re.escape(c) for c in KNOWN_CITIES) + r")\b",
    re.IGNORECASE,
)

SECTOR_REGEX = re.compile(r"\bsector[\s\-]*(\d{1,3}[a-z]?)\b", re.IGNORECASE)

# Words that end a prepositional location phrase
_STOP_WORDS = (
    "for", "with", "at", "and", "under", "below", "around", "rent", "sale",
    "per", "rs", "budget", "price", "call", "contact", "available", "urgent",
    "hai", "he", "hoon", "hun", "chahiye", "mein", "me", "main", "ke", "ki",
    "ka", "se", "to", "from", "near", "in", "within", "only", "please",
    "looking", "need", "needs", "want", "wants", "wanted", "searching", "seeking",
    "offering", "required", "require",
)

LOCATION_PHRASE_REGEX = re.compile(
    r"\b(?:in|at|near|around|from)\s+"
    r"((?:sector[\s\-]*\d{1,3}[a-z]?|[a-z][a-z\.]*)(?:\s+(?!(?:" + "|".join(_STOP_WORDS) + r")\b)"
    r"(?:\d{1,3}[a-z]?|[a-z][a-z\.]*)){0,2})",
    re.IGNORECASE,
)

# Hindi postpositions: "noida mein", "delhi me"
HINDI_LOCATION_REGEX = re.compile(
    r"\b([a-z]{3,})\s+(?:mein|me|main)\b",
    re.IGNORECASE,
)

_NOT_PLACES = {
    "a", "an", "the", "my", "your", "this", "that", "good", "best", "need",
    "search", "sale", "rent", "budget", "hand", "touch", "time", "future",
    "home", "house", "flat", "city", "area", "condition", "stock", "bulk",
}


def title_place(value: str) -> str:
    """'greater noida' -> 'Greater Noida', keeps digits and short tokens readable."""
    parts = []
    for token in re.split(r"\s+", (value or "").strip()):
        if not token:
            continue
        if token.isdigit():
            parts.append(token)
        else:
            parts.append(token[:1].upper() + token[1:].lower())
    return " ".join(parts)


def find_city(text: str) -> Optional[str]:
    m = CITY_REGEX.search(text or "")
    if not m:
        return None
    raw = m.group(1).lower()
    return CITY_ALIASES.get(raw, title_place(raw))


def _clean_phrase(phrase: str) -> Optional[str]:
    phrase = re.sub(r"[^\w\s\-\.]", " ", phrase or "")
    phrase = re.sub(r"\s+", " ", phrase).strip(" .-")
    if not phrase:
        return None
    if phrase.lower() in _NOT_PLACES:
        return None
    if phrase.split(" ")[0].lower() in _NOT_PLACES:
        return None
    return phrase


def extract_location(text: str) -> Dict[str, str]:
    """
    Best-effort location from free text.
    Returns {"area": ..., "city": ...} with whatever was found (maybe empty).

      "plumber in Noida"            -> {"area": "Noida", "city": "Noida"}
      "2bhk in sector 62 noida"     -> {"area": "Sector 62 Noida", "city": "Noida"}
      "flat chahiye delhi mein"     -> {"area": "Delhi", "city": "Delhi"}
    """
    text = text or ""
    result: Dict[str, str] = {}

    city = find_city(text)
    if city:
        result["city"] = city

    area: Optional[str] = None
    for m in LOCATION_PHRASE_REGEX.finditer(text):
        area = _clean_phrase(m.group(1))
        if area:
            break

    if not area:
        m = SECTOR_REGEX.search(text)
        if m:
            area = f"sector {m.group(1)}"

    if not area and city:
        area = city

    if not area:
        m = HINDI_LOCATION_REGEX.search(text)
        if m:
            area = _clean_phrase(m.group(1))

    if area:
        result["area"] = title_place(area)

    return result
