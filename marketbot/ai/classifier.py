# marketbot/ai/classifier.py
import logging
import math
import re
from collections import Counter, defaultdict
from typing import Dict, List, Optional, Pattern, Tuple

from ..models import ClassificationResult
from .entities import extract_entities
from .training_data import TRAINING_CORPUS

logger = logging.getLogger(__name__)

GREETING = "greeting"
FAREWELL = "farewell"
GENERAL_HELP = "general_help"

CONFIDENCE_THRESHOLD = 0.3
QUICK_CONFIDENCE = 0.9
SOCIAL_CONFIDENCE = 0.95
FALLBACK_CONFIDENCE = 0.1
ALTERNATIVE_MARGIN = 0.1

INTENT_TO_CATEGORY: Dict[str, str] = {
    "property_sale": "housing",
    "property_rent": "housing",
    "property_search": "housing",
    "service_offer": "urban_help",
    "service_request": "urban_help",
    "commodity_sell": "commodity",
    "commodity_search": "commodity",
    "vehicle_sell": "vehicle",
    "vehicle_buy": "vehicle",
    "electronics_sell": "electronics",
    "electronics_buy": "electronics",
    "furniture_sell": "furniture",
    "furniture_buy": "furniture",
    "job_offer": "job",
    "job_search": "job",
}

# intent -> (intent when offering, intent when seeking)
CONTEXT_REMAP: Dict[str, Tuple[str, str]] = {
    "property_search": ("property_sale", "property_search"),
    "property_rent": ("property_rent", "property_search"),
    "property_sale": ("property_sale", "property_search"),
    "service_request": ("service_offer", "service_request"),
    "service_offer": ("service_offer", "service_request"),
    "commodity_search": ("commodity_sell", "commodity_search"),
    "commodity_sell": ("commodity_sell", "commodity_search"),
    "vehicle_buy": ("vehicle_sell", "vehicle_buy"),
    "vehicle_sell": ("vehicle_sell", "vehicle_buy"),
    "electronics_buy": ("electronics_sell", "electronics_buy"),
    "electronics_sell": ("electronics_sell", "electronics_buy"),
    "furniture_buy": ("furniture_sell", "furniture_buy"),
    "furniture_sell": ("furniture_sell", "furniture_buy"),
    "job_search": ("job_offer", "job_search"),
    "job_offer": ("job_offer", "job_search"),
}


def _rx(pattern: str) -> Pattern:
    return re.compile(pattern, re.IGNORECASE)


_SOCIAL_TAIL = r"(?:\s+\w+){0,2}\s*[!.,]*\s*$"

# Evaluated top to bottom, first match wins.
FAST_PATTERNS: List[Tuple[Pattern, str]] = [
    (_rx(r"^\s*(?:hi+|hello+|hey+|helo|namaste|namaskar|vanakkam|salaam|good\s+(?:morning|afternoon|evening))"
         + _SOCIAL_TAIL), GREETING),
    (_rx(r"^\s*(?:bye+|good\s*bye|see\s+you|tata|alvida|thanks?|thank\s+you|dhanyavaa?d|shukriya|nandri)"
         + _SOCIAL_TAIL), FAREWELL),

    # jobs
    (_rx(r"\b(?:naukri|vacanc(?:y|ies)|hiring|recruitment|job\s+opening)\b"), "job_search"),
    (_rx(r"\bjobs?\b"), "job_search"),

    # housing (Hindi / Tamil first)
    (_rx(r"\b(?:chaahiye|chahiye|chahie)\s+(?:property|flat|house|ghar|makaan|kamra|room)\b"), "property_search"),
    (_rx(r"\b(?:property|flat|house|ghar|makaan|kamra|room)\s+(?:chaahiye|chahiye|chahie)\b"), "property_search"),
    (_rx(r"\b(?:dhoondh|dhund|find)\s+(?:raha|rahi|rha|rhi)\b"), "property_search"),
    (_rx(r"\bveedu\s+(?:venum|vendum)\b"), "property_search"),
    (_rx(r"\b(?:kiraye|kiraya|vaadagai|vadagai)\b"), "property_rent"),
    (_rx(r"\bto[\s\-]let\b"), "property_rent"),
    (_rx(r"\b(?:pg|paying\s+guest)\b"), "property_rent"),
    (_rx(r"\b\d\s*(?:bhk|bedroom|rk)\b"), "property_search"),
    (_rx(r"\b(?:noida|delhi|gurgaon|greater\s+noida)\s+(?:mein|me|main)\b"), "property_search"),

    # urban help
    (_rx(r"\b(?:electrician|plumber|carpenter|painter|mechanic|cleaner|maid|cook|tutor)\s+"
         r"(?:chahiye|chaahiye|required|needed|venum|vendum)\b"), "service_request"),
    (_rx(r"\b(?:service|kaam|work)\s+(?:karwana|karana|karwane)\b"), "service_request"),
    (_rx(r"\b(?:aana|ana)\s+(?:hai|he)\s+(?:ghar|home)\b"), "service_request"),
    (_rx(r"\b(?:plumber|electrician|carpenter|painter|mechanic|cleaner|maid|cook|tutor|beautician|"
         r"technician|gardener|tailor|babysitter)s?\b"), "service_request"),

    # commodities
    (_rx(r"\b\d+(?:\.\d+)?\s*(?:tons?|tonnes?|quintals?|kg)\b"), "commodity_search"),
    (_rx(r"\b(?:material|samagri)\s+(?:chahiye|required)\b"), "commodity_search"),
    (_rx(r"\b(?:construction|building)\s+(?:material|samagri)\b"), "commodity_search"),
    (_rx(r"\b(?:cement|sariya|wheat|rice|bricks?|atta)\b"), "commodity_search"),

    # vehicles, electronics, furniture
    (_rx(r"\b(?:car|bike|scooty|scooter|motorcycle|activa|splendor|gaadi|gadi)\b"), "vehicle_buy"),
    (_rx(r"\b(?:mobile|smartphone|iphone|laptop|television|tv|fridge|refrigerator|washing\s+machine)\b"),
     "electronics_buy"),
    (_rx(r"\b(?:furniture|sofa|almirah|wardrobe|dining\s+table|mattress|cupboard)\b"), "furniture_buy"),
]

# Checked before FIND_PATTERNS.
OFFER_PATTERNS: List[Pattern] = [
    _rx(r"\bi(?:'?m|\s+am)\s+(?:a|an)\s+\w+"),
    _rx(r"\b(?:i|we)\s+(?:provide|offer)\b"),
    _rx(r"\bavailable\b"),
    _rx(r"\bfor\s+sale\b"),
    _rx(r"\b(?:want|wants|looking)\s+to\s+sell\b"),
    _rx(r"\bsell(?:ing)?\s+(?:my|our)\b"),
    _rx(r"\bselling\b"),
    _rx(r"\b(?:i|we)\s+have\s+(?:a|an|\d)"),
    _rx(r"\bto[\s\-]let\b"),
    _rx(r"\b(?:we\s+are\s+)?hiring\b"),
    _rx(r"\b(?:deta|deti|dete)\s+(?:hoon|hun|hai|hain)\b"),
    _rx(r"\bbech(?:na|ni|ne|unga|ungi)\b"),
    _rx(r"\bvikka\w*\b"),
]

FIND_PATTERNS: List[Pattern] = [
    _rx(r"\bi\s+need\b"),
    _rx(r"\bneed\s+(?:a|an)\b"),
    _rx(r"\blooking\s+for\b"),
    _rx(r"\bwant\s+to\s+(?:buy|rent|hire)\b"),
    _rx(r"\bsearch(?:ing)?\b"),
    _rx(r"\bfind\s+me\b"),
    _rx(r"\bshow\s+me\b"),
    _rx(r"\brequired?\b"),
    _rx(r"\bwanted\b"),
    _rx(r"\b(?:chaahiye|chahiye|chahie)\b"),
    _rx(r"\b(?:dhoondh|dhund)\w*\b"),
    _rx(r"\bkharid\w*\b"),
    _rx(r"\b(?:venum|vendum)\b"),
]

LANGUAGE_WORDS: Dict[str, frozenset] = {
    "hi": frozenset({
        "hai", "hain", "mein", "chahiye", "chaahiye", "ka", "ki", "ke", "ko", "hoon", "hun",
        "nahi", "kya", "aur", "mujhe", "mera", "meri", "bhi", "se", "wala", "wali", "karna",
        "kaise", "kahan",
    }),
    "ta": frozenset({
        "irukku", "illai", "venum", "vendum", "aana", "varum", "enakku", "naan", "romba",
        "vaanga", "enna", "oru", "inga", "ange",
    }),
}
_NATIVE_SCRIPT = {
    "hi": re.compile(r"[ऀ-ॿ]+"),
    "ta": re.compile(r"[஀-௿]+"),
}
MIN_LANGUAGE_HITS = 2

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)
_STOPWORDS = frozenset({"a", "an", "the", "to", "of", "is", "in", "at", "for", "and", "my", "me", "i"})


def tokenize(text: str) -> List[str]:
    return [t for t in _TOKEN_RE.findall((text or "").lower()) if t not in _STOPWORDS]


def detect_language(text: str) -> str:
    """
    Counts function-word hits per language (native-script words count too).
    A language needs at least MIN_LANGUAGE_HITS hits, otherwise 'en'.
    """
    lowered = (text or "").lower()
    words = re.findall(r"[a-z]+", lowered)

    best_lang = "en"
    best_hits = 0
    for lang, vocabulary in LANGUAGE_WORDS.items():
        hits = sum(1 for w in words if w in vocabulary)
        hits += len(_NATIVE_SCRIPT[lang].findall(lowered))
        if hits >= MIN_LANGUAGE_HITS and hits > best_hits:
            best_lang, best_hits = lang, hits
    return best_lang


def detect_context(text: str) -> Optional[str]:
    lowered = (text or "").lower().replace("’", "'")
    for pattern in OFFER_PATTERNS:
        if pattern.search(lowered):
            return "offer"
    for pattern in FIND_PATTERNS:
        if pattern.search(lowered):
            return "find"
    return None


def remap_intent(intent: str, context: Optional[str]) -> str:
    pair = CONTEXT_REMAP.get(intent)
    if not pair or context not in ("offer", "find"):
        return intent
    return pair[0] if context == "offer" else pair[1]


def category_for_intent(intent: Optional[str]) -> Optional[str]:
    return INTENT_TO_CATEGORY.get(intent or "")


class TfidfModel:
    """
    One document per training utterance, labelled by intent.
    idf(t) = 1 + ln(N / (1 + df(t))); tf = count / document length.
    """

    def __init__(self, corpus) -> None:
        self.documents: List[Tuple[str, Counter, int]] = []
        df: Counter = Counter()
        for intent, examples in corpus.items():
            for example in examples:
                tokens = tokenize(example)
                if not tokens:
                    continue
                counts = Counter(tokens)
                self.documents.append((intent, counts, len(tokens)))
                df.update(counts.keys())

        n = len(self.documents)
        self.idf: Dict[str, float] = {
            term: 1.0 + math.log(n / (1.0 + freq)) for term, freq in df.items()
        }
        self.intents = list(corpus.keys())

    def scores(self, text: str) -> Dict[str, float]:
        scores: Dict[str, float] = defaultdict(float)
        for token in tokenize(text):
            idf = self.idf.get(token)
            if idf is None or idf <= 0:
                continue
            for intent, counts, length in self.documents:
                if token in counts:
                    scores[intent] += (counts[token] / length) * idf
        return dict(scores)


class IntentClassifier:
    def __init__(self, corpus=TRAINING_CORPUS, threshold: float = CONFIDENCE_THRESHOLD) -> None:
        self.threshold = threshold
        self.model = TfidfModel(corpus)

    def quick_match(self, text: str) -> Optional[ClassificationResult]:
        for pattern, intent in FAST_PATTERNS:
            if pattern.search(text):
                confidence = SOCIAL_CONFIDENCE if intent in (GREETING, FAREWELL) else QUICK_CONFIDENCE
                return ClassificationResult(
                    intent=intent, confidence=confidence, source="quick", threshold=self.threshold
                )
        return None

    def tfidf_classify(self, text: str) -> ClassificationResult:
        scores = self.model.scores(text)
        total = sum(scores.values())
        if total <= 0:
            return ClassificationResult(
                intent=GENERAL_HELP, confidence=FALLBACK_CONFIDENCE, source="rules", threshold=self.threshold
            )

        # ties keep corpus order
        ranked = sorted(
            ((intent, scores.get(intent, 0.0) / total) for intent in self.model.intents),
            key=lambda item: item[1],
            reverse=True,
        )
        best_intent, best_score = ranked[0]
        alternatives = [
            (intent, round(score, 4))
            for intent, score in ranked[1:]
            if score > 0 and best_score - score <= ALTERNATIVE_MARGIN
        ]
        return ClassificationResult(
            intent=best_intent,
            confidence=min(max(best_score, 0.0), 1.0),
            alternatives=alternatives,
            source="tfidf",
            threshold=self.threshold,
        )

    def classify(self, text) -> ClassificationResult:
        if not isinstance(text, str):
            text = ""
        lowered = text.lower().replace("’", "'").strip()

        if not lowered:
            return ClassificationResult(
                intent=GENERAL_HELP, confidence=FALLBACK_CONFIDENCE, source="rules", threshold=self.threshold
            )

        result = self.quick_match(lowered) or self.tfidf_classify(lowered)

        result.context = detect_context(lowered)
        base_intent = result.intent
        result.intent = remap_intent(base_intent, result.context)
        result.entities = extract_entities(text, category_for_intent(result.intent))
        result.language = detect_language(text)

        logger.info(
            "[CLASSIFY] text=%r base=%s intent=%s conf=%.2f ctx=%s src=%s",
            text, base_intent, result.intent, result.confidence, result.context, result.source,
        )
        return result


_default_classifier: Optional[IntentClassifier] = None


def get_classifier() -> IntentClassifier:
    global _default_classifier
    if _default_classifier is None:
        _default_classifier = IntentClassifier()
    return _default_classifier


def classify(text) -> ClassificationResult:
    return get_classifier().classify(text)
