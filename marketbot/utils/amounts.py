# marketbot/utils/amounts.py
from __future__ import annotations

import re
from typing import List, Optional, Union

Number = Union[int, float]

# Fixed multipliers for Indian price suffixes
LAKH = 100_000
CRORE = 10_000_000
THOUSAND = 1_000

_SUFFIX_MULTIPLIERS = (
    (re.compile(r"^(?:crores?|cr)$"), CRORE),
    (re.compile(r"^(?:lakhs?|lacs?|lac|l)$"), LAKH),
    (re.compile(r"^(?:k|thousands?|hazaa?r|hajar)$"), THOUSAND),
)

PRICE_WITH_SUFFIX_RE = re.compile(
    r"(\d+(?:[.,]\d+)*)\s*(crores?|cr|lakhs?|lacs?|lac|k|thousands?|hazaa?r|hajar)\b",
    re.IGNORECASE,
)
NUMBER_RE = re.compile(r"\d+(?:[.,]\d+)*")

# Hindi (transliterated) number words, mostly what speech-to-text gives back
UNITS = {
    "ek": 1,
    "do": 2,
    "teen": 3,
    "tin": 3,
    "char": 4,
    "chaar": 4,
    "paanch": 5,
    "panch": 5,
    "chhe": 6,
    "chah": 6,
    "saat": 7,
    "aath": 8,
    "nau": 9,
    "das": 10,
    "dus": 10,
    "gyarah": 11,
    "barah": 12,
    "baarah": 12,
    "pandrah": 15,
    "bees": 20,
    "pachees": 25,
    "pachchees": 25,
    "tees": 30,
    "chalis": 40,
    "chaalis": 40,
    "pachas": 50,
    "pachaas": 50,
    "saath": 60,
    "sattar": 70,
    "assi": 80,
    "nabbe": 90,
}

FRACTIONS = {
    "dedh": 1.5,
    "dhai": 2.5,
    "dhaai": 2.5,
}

SCALES = {
    "sau": 100,
    "hazaar": THOUSAND,
    "hazar": THOUSAND,
    "hajar": THOUSAND,
    "thousand": THOUSAND,
    "lakh": LAKH,
    "lac": LAKH,
    "crore": CRORE,
}


def _to_number(raw: str) -> Optional[float]:
    """
    '1,50,000' -> 150000.0 ; '2.5' -> 2.5 ; '2,5' (comma decimal) -> 2.5
    """
    s = (raw or "").strip()
    if not s:
        return None
    if "," in s and "." not in s:
        head, _, tail = s.rpartition(",")
        # 1,50,000 / 15,000 -> digit grouping; 2,5 -> decimal
        if len(tail) == 3 or len(tail) == 2 and head.count(",") >= 1:
            s = s.replace(",", "")
        else:
            s = head.replace(",", "") + "." + tail
    else:
        s = s.replace(",", "")
    try:
        return float(s)
    except ValueError:
        return None


def _clean_number(value: float) -> Number:
    rounded = round(value)
    if abs(value - rounded) < 1e-9:
        return int(rounded)
    return value


def _multiplier_for(suffix: str) -> int:
    s = (suffix or "").lower()
    for pattern, mult in _SUFFIX_MULTIPLIERS:
        if pattern.match(s):
            return mult
    return 1


def parse_price(raw) -> Optional[Number]:
    """
    Normalizes a price to an absolute number:
      "15 lakh" -> 1500000
      "2.5 cr"  -> 25000000
      "50k"     -> 50000
      "15000"   -> 15000
      "₹1,50,000" -> 150000
    A bare number is returned unchanged. None when nothing is found.
    """
    if raw is None:
        return None
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return _clean_number(float(raw))

    text = str(raw).lower()
    if not text.strip():
        return None

    m = PRICE_WITH_SUFFIX_RE.search(text)
    if m:
        number = _to_number(m.group(1))
        if number is not None:
            return _clean_number(number * _multiplier_for(m.group(2)))

    m = NUMBER_RE.search(text)
    if m:
        number = _to_number(m.group(0))
        if number is not None:
            return _clean_number(number)

    return parse_spoken_amount(text)


def _tokens(text: str) -> List[str]:
    return re.findall(r"[a-z]+|\d+(?:\.\d+)?", (text or "").lower())


def parse_spoken_amount(text: str) -> Optional[int]:
    """
    Spoken amount inside a transcript:
      'pandrah hazaar' -> 15000
      'dedh lakh'      -> 150000
      'saadhe teen lakh' -> 350000
      'do crore'       -> 20000000
    Needs at least one scale word (sau, hazaar, lakh, crore), else None.
    """
    total = 0.0
    current = 0.0
    half = False
    seen = False
    scaled = False

    for w in _tokens(text):
        if w in ("saadhe", "sadhe", "sade"):
            half = True
            continue
        if w in FRACTIONS:
            current += FRACTIONS[w]
            seen = True
        elif w in UNITS:
            current += UNITS[w]
            seen = True
        elif re.fullmatch(r"\d+(?:\.\d+)?", w):
            current += float(w)
            seen = True
        elif w in SCALES:
            if not seen and current == 0:
                continue
            scale = SCALES[w]
            scaled = True
            if half:
                current += 0.5
                half = False
            if current == 0:
                current = 1
            if scale >= THOUSAND:
                total += current * scale
                current = 0
            else:
                current *= scale

    if not seen or not scaled:
        return None
    value = total + current
    if value <= 0:
        return None
    return int(round(value))


def format_amount(value) -> str:
    """
    Display form used in summaries:
      >= 1e7 -> "1.50 Cr"
      >= 1e5 -> "15.00 Lakh"
      >= 1e3 -> "15.00K"
      otherwise the grouped integer ("950")
    """
    number = parse_price(value)
    if number is None:
        return str(value) if value not in (None, "") else "—"

    if number >= CRORE:
        return f"{number / CRORE:.2f} Cr"
    if number >= LAKH:
        return f"{number / LAKH:.2f} Lakh"
    if number >= THOUSAND:
        return f"{number / THOUSAND:.2f}K"
    return f"{int(round(number)):,}"
