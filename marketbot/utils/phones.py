# marketbot/utils/phones.py
import logging
import re
from typing import List, Optional

logger = logging.getLogger(__name__)

# Indian mobile: optional +91 / 91 / 0 prefix, then 10 digits starting 6-9
PHONE_REGEX = re.compile(r"(?<!\d)(?:\+?91[ \-]?|0)?[6-9]\d{4}[ \-]?\d{5}(?!\d)")


def normalize_phone(raw: str) -> Optional[str]:
    """
    Normalizes an Indian mobile number to +91XXXXXXXXXX.
      - +91 98765 43210
      - 919876543210
      - 09876543210
      - 9876543210
    Returns None for anything that is not a 10-digit mobile.
    """
    if not raw:
        return None

    digits = re.sub(r"\D", "", str(raw))

    if len(digits) == 12 and digits.startswith("91"):
        digits = digits[2:]
    elif len(digits) == 11 and digits.startswith("0"):
        digits = digits[1:]

    if len(digits) != 10 or digits[0] not in "6789":
        return None

    return f"+91{digits}"


def extract_phones(text: str) -> List[str]:
    if not text:
        return []

    matches = PHONE_REGEX.findall(text)
    result: List[str] = []
    for m in matches:
        p = normalize_phone(m)
        if p and p not in result:
            result.append(p)

    logger.debug("[PHONES] text=%r -> matches=%s -> normalized=%s", text, matches, result)
    return result


def strip_phones(text: str) -> str:
    """Removes phone numbers so their digits are not read as prices."""
    return PHONE_REGEX.sub(" ", text or "")


def format_phone_display(phone: str) -> str:
    """+919876543210 -> '+91 98765 43210'"""
    normalized = normalize_phone(phone)
    if not normalized:
        return phone
    digits = normalized[3:]
    return f"+91 {digits[:5]} {digits[5:]}"
