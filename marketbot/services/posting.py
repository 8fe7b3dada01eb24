# marketbot/services/posting.py
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Pattern, Tuple

from ..ai.classifier import (
    FAREWELL,
    GENERAL_HELP,
    GREETING,
    INTENT_TO_CATEGORY,
    QUICK_CONFIDENCE,
    IntentClassifier,
    detect_language,
    get_classifier,
)
from ..ai.entities import extract_entities, first_value
from ..errors import DraftNotFoundError, StoreError
from ..field_config import (
    FIELD_CONFIGS,
    get_field_config,
    get_next_required_field,
    is_blank,
    resolve_field,
)
from ..models import CATEGORIES, ClassificationResult, Draft, IncomingMessage, Session
from ..storage import DraftStore, ListingStore, SessionStore
from ..utils.locations import extract_location, find_city, title_place

logger = logging.getLogger(__name__)

# expected_field sentinels
CONFIRMATION = "confirmation"
CATEGORY = "category"
DRAFT_CONFLICT = "draft_conflict"

POSTING_INTENTS = frozenset({
    "property_sale", "property_rent", "service_offer", "commodity_sell",
    "vehicle_sell", "electronics_sell", "furniture_sell", "job_offer",
})
SOCIAL_INTENTS = frozenset({GREETING, FAREWELL, GENERAL_HELP})
POSTING_CONFIDENCE = 0.7

# Second-chance detector: category nouns and Hindi first-person markers
POSTING_KEYWORDS_RE = re.compile(
    r"\b(?:post|list my|add my|create|offer|available|available for|for hire|for rent|for sale|"
    r"rent out|sell|selling|provide|professional|experienced|"
    r"1bhk|2bhk|3bhk|flat|apartment|room|"
    r"plumber|electrician|cleaner|tutor|maid|cook|carpenter|painter|driver|technician|"
    r"i'm|i am|mai|main|hun|hoon|deta|deti|dete|deta hoon|deti hoon)\b",
    re.IGNORECASE,
)

# "I'm a plumber in Noida" / "I provide cleaning service in Noida"
IMMEDIATE_OFFER_PATTERNS: List[Pattern] = [
    re.compile(
        r"\bi(?:'?m|\s+am)\s+(?:a|an)\s+([a-z]+(?:\s+[a-z]+)?)\s+(?:in|at|near|from)\s+([a-z0-9][\w\s\-]*)",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(?:i|we)\s+(?:provide|offer)\s+([a-z][a-z\s]{2,40}?)(?:\s+services?)?"
        r"(?:\s+(?:in|at|near|from)\s+([a-z0-9][\w\s\-]*?))?\s*[.!]?\s*$",
        re.IGNORECASE,
    ),
]
GENERIC_IM_A_RE = re.compile(r"\bi(?:'?m|\s+am)\s+(?:a|an)\s+\w+", re.IGNORECASE)

# Checked in this order; the generic "I'm a ___" pattern wins before any list.
CATEGORY_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    ("urban_help", (
        "plumber", "electrician", "cleaner", "tutor", "maid", "cook", "carpenter", "painter",
        "driver", "technician", "service", "mechanic", "gardener", "welder", "repair",
        "beautician", "salon", "barber", "tailor", "laundry",
    )),
    ("housing", (
        "rent", "room", "flat", "apartment", "1bhk", "2bhk", "3bhk", "pg", "hostel", "house",
        "villa", "property", "accommodation", "shared", "single",
    )),
    ("vehicle", ("car", "bike", "scooter", "scooty", "motorcycle", "vehicle", "truck", "auto")),
    ("electronics", ("mobile", "phone", "laptop", "tv", "television", "fridge", "electronics", "ac")),
    ("furniture", ("sofa", "bed", "table", "chair", "almirah", "wardrobe", "furniture", "mattress")),
    ("job", ("job", "hiring", "vacancy", "salary", "naukri", "staff")),
    ("commodity", ("rice", "wheat", "cement", "steel", "sand", "bricks", "ton", "quintal", "wholesale")),
]
_CATEGORY_KEYWORD_RES: List[Tuple[str, Pattern]] = [
    (category, re.compile(r"\b(?:" + "|".join(re.escape(k) for k in words) + r")\b", re.IGNORECASE))
    for category, words in CATEGORY_KEYWORDS
]

# entity -> field path, per category; the first usable entity fills a path
ENTITY_FIELDS: Dict[str, List[Tuple[str, str]]] = {
    "housing": [("unitType", "unitType"), ("price", "rent"), ("deposit", "deposit"),
                ("furnishing", "furnishing")],
    "urban_help": [("serviceType", "serviceType"), ("experience", "experience")],
    "vehicle": [("vehicleType", "vehicleType"), ("brand", "brand"), ("year", "year"),
                ("kmDriven", "kmDriven"), ("condition", "condition"), ("price", "price")],
    "electronics": [("itemType", "itemType"), ("brand", "brand"), ("condition", "condition"),
                    ("price", "price")],
    "furniture": [("itemType", "itemType"), ("material", "material"), ("condition", "condition"),
                  ("price", "price")],
    "job": [("jobPosition", "jobPosition"), ("jobType", "jobType"), ("salary", "salary"),
            ("price", "salary"), ("experience", "experience")],
    "commodity": [("item", "item"), ("quantity", "quantity"), ("quality", "quality"), ("price", "price")],
}
LOCATION_ENTITY_FIELDS: List[Tuple[str, str]] = [("location", "location.area"), ("city", "location.city")]

YES_WORDS = frozenset({"yes", "y", "haan", "han", "ha", "sahi", "correct", "right", "confirm", "✅"})
NO_WORDS = frozenset({"no", "n", "nahi", "na", "galat", "wrong", "incorrect", "cancel", "❌"})
EDIT_WORDS = frozenset({"edit", "change", "modify", "badlo"})
KEEP_WORDS = frozenset({"skip", "keep", "same", "ok", "okay"})
CANCEL_WORDS = frozenset({"cancel", "/cancel", "stop"})

CONFIRM_CHOICES = [
    {"id": "confirm_yes", "title": "✅ Yes, post it"},
    {"id": "confirm_edit", "title": "✏️ Edit"},
    {"id": "confirm_no", "title": "❌ Cancel"},
]
CONFLICT_CHOICES = [
    {"id": "draft_continue", "title": "Continue draft"},
    {"id": "draft_new", "title": "Start new"},
    {"id": "draft_cancel", "title": "Cancel"},
]
CATEGORY_CHOICES = [
    {"id": f"category_{name}", "title": FIELD_CONFIGS[name].display_name}
    for name in CATEGORIES
]

SESSION_EXPIRED = "Session expired. Please start over."
RETRY_LATER = "Sorry, something went wrong on our side. Please try again in a few minutes."
PUBLISH_FAILED = "Failed to publish. Please try again."


@dataclass
class PostingReply:
    type: str
    text: str = ""
    choices: List[Dict[str, str]] = field(default_factory=list)
    handled: bool = True
    classification: Optional[ClassificationResult] = None
    listing_id: Optional[str] = None


def _normalize_answer(text: str) -> str:
    t = (text or "").strip().lower()
    if t in YES_WORDS or t in NO_WORDS:
        return t
    return re.sub(r"[^\w\s]", "", t).strip()


def match_immediate_offer(text: str) -> Optional[Dict[str, Any]]:
    """
    Tight "I'm a <profession> in <location>" / "I provide ..." check.
    Returns the entities it could read, or None.
    """
    normalized = (text or "").replace("’", "'").strip()
    for pattern in IMMEDIATE_OFFER_PATTERNS:
        m = pattern.search(normalized)
        if not m:
            continue
        profession = first_value(extract_entities(normalized, "urban_help").get("serviceType"))
        if not profession:
            profession = re.sub(r"\s+services?$", "", m.group(1).strip().lower())
        entities: Dict[str, Any] = {"serviceType": profession}

        loc = extract_location(normalized)
        if loc.get("area"):
            entities["location"] = loc["area"]
        elif m.group(2):
            entities["location"] = title_place(m.group(2))
        city = find_city(normalized)
        if city:
            entities["city"] = city
        return entities
    return None


def detect_category(text: str) -> Optional[str]:
    if GENERIC_IM_A_RE.search((text or "").replace("’", "'")):
        return "urban_help"
    for category, pattern in _CATEGORY_KEYWORD_RES:
        if pattern.search(text or ""):
            return category
    return None


def detect_category_from_intent(classification: ClassificationResult, text: str) -> Optional[str]:
    category = INTENT_TO_CATEGORY.get(classification.intent)
    if category:
        return category
    return detect_category(text)


def is_posting_intent(text: str, classification: ClassificationResult) -> bool:
    if classification.intent in POSTING_INTENTS:
        return True
    if classification.context == "offer":
        return True
    if classification.context == "find":
        return False
    if classification.intent in (GREETING, FAREWELL):
        return False
    if classification.intent not in SOCIAL_INTENTS and classification.confidence > POSTING_CONFIDENCE:
        return True
    return bool(POSTING_KEYWORDS_RE.search((text or "").replace("’", "'")))


class PostingService:
    """
    Slot-filling dialogue for creating a listing:
    detect -> category -> draft -> ask required fields -> confirm -> publish.
    Messages that are not postings come back with handled=False.
    """

    def __init__(
            self,
            drafts: DraftStore,
            sessions: SessionStore,
            listings: ListingStore,
            classifier: Optional[IntentClassifier] = None,
    ) -> None:
        self.drafts = drafts
        self.sessions = sessions
        self.listings = listings
        self.classifier = classifier or get_classifier()

    # ---------- entry ----------

    def handle_message(
            self,
            message: IncomingMessage,
            classification: Optional[ClassificationResult] = None,
    ) -> PostingReply:
        user_id = message.user_id
        text = (message.text or "").strip()
        try:
            session = self.sessions.get_or_create(user_id)

            if session.is_posting:
                return self._continue_posting(session, text, message.choice_id)
            if session.expected_field == CATEGORY:
                return self._handle_category_choice(session, text, message.choice_id)
            if session.expected_field == DRAFT_CONFLICT:
                return self._handle_conflict_choice(session, text, message.choice_id)

            return self._detect(session, text, classification)

        except StoreError:
            logger.exception("[POSTING] store error user=%s text=%r", user_id, text)
            return PostingReply(type="error", text=RETRY_LATER)

    # ---------- detecting ----------

    def analyse(
            self,
            text: str,
            classification: Optional[ClassificationResult] = None,
    ) -> Tuple[ClassificationResult, bool, Optional[str]]:
        """
        Returns (classification, is_posting, category).
        category is None when it could not be resolved.
        """
        immediate = match_immediate_offer(text)
        if immediate is not None:
            result = ClassificationResult(
                intent="service_offer",
                confidence=QUICK_CONFIDENCE,
                context="offer",
                entities=immediate,
                language=detect_language(text),
                source="quick",
            )
            logger.info("[POSTING] immediate offering text=%r entities=%s", text, immediate)
            return result, True, detect_category_from_intent(result, text)

        result = classification or self.classifier.classify(text)
        if not is_posting_intent(text, result):
            return result, False, None

        category = detect_category_from_intent(result, text)
        if category is None and result.context == "offer":
            category = "urban_help"
        return result, True, category

    def _detect(
            self,
            session: Session,
            text: str,
            classification: Optional[ClassificationResult],
    ) -> PostingReply:
        if not text:
            return PostingReply(type="not_posting", handled=False, classification=classification)

        result, is_posting, category = self.analyse(text, classification)
        if not is_posting:
            return PostingReply(type="not_posting", handled=False, classification=result)

        if category is None:
            self.sessions.update(
                session.user_id,
                mode="idle",
                category=None,
                draft_id=None,
                expected_field=CATEGORY,
                pending_text=text,
                language=result.language,
            )
            return PostingReply(
                type="choice",
                text="What type of listing would you like to post?",
                choices=list(CATEGORY_CHOICES),
                classification=result,
            )

        return self._start_posting(session.user_id, category, result, text)

    def _start_posting(
            self,
            user_id: str,
            category: str,
            classification: ClassificationResult,
            text: str,
    ) -> PostingReply:
        existing = self.drafts.get_user_active_draft(user_id)
        if existing is not None:
            if existing.category == category:
                logger.info("[POSTING] resuming same-category draft=%s user=%s", existing.id, user_id)
                self.sessions.update(
                    user_id,
                    mode="posting",
                    category=category,
                    draft_id=existing.id,
                    expected_field=None,
                    pending_text=None,
                    editing=False,
                )
                draft = self._prefill(existing, classification.entities)
                return self._ask_next(user_id, draft, prefix="Continuing your draft.\n\n")

            self.sessions.update(
                user_id,
                mode="idle",
                category=category,
                draft_id=existing.id,
                expected_field=DRAFT_CONFLICT,
                pending_text=text,
            )
            existing_name = FIELD_CONFIGS[existing.category].display_name
            return PostingReply(
                type="choice",
                text=(
                    f"You already have an unfinished {existing_name} listing.\n"
                    "Continue it, start a new one, or cancel?"
                ),
                choices=list(CONFLICT_CHOICES),
                classification=classification,
            )

        return self._create_draft(user_id, category, classification)

    def _create_draft(self, user_id: str, category: str, classification: ClassificationResult) -> PostingReply:
        draft = self.drafts.create_draft(user_id, category, intent="offer")
        self.sessions.update(
            user_id,
            mode="posting",
            category=category,
            draft_id=draft.id,
            expected_field=None,
            pending_text=None,
            editing=False,
            language=classification.language,
        )
        draft = self._prefill(draft, classification.entities)
        reply = self._ask_next(user_id, draft)
        reply.classification = classification
        return reply

    def _prefill(self, draft: Draft, entities: Dict[str, Any]) -> Draft:
        """
        Writes entities that pass the field validator into blank fields.
        Anything unusable is skipped.
        """
        config = get_field_config(draft.category)
        if config is None or not entities:
            return draft

        for entity, path in ENTITY_FIELDS.get(draft.category, []) + LOCATION_ENTITY_FIELDS:
            raw = first_value(entities.get(entity))
            if is_blank(raw):
                continue
            if not is_blank(resolve_field(draft.data, draft.category, path)):
                continue
            spec = config.fields.get(path)
            if spec is None:
                continue
            ok, value = spec.clean(raw)
            if not ok:
                logger.info("[POSTING] prefill skipped field=%s raw=%r", path, raw)
                continue
            draft = self.drafts.update_draft_field(draft.id, path, value)
        return draft

    # ---------- pending choices (idle) ----------

    def _handle_category_choice(self, session: Session, text: str, choice_id: Optional[str]) -> PostingReply:
        answer = _normalize_answer(text)
        if answer in CANCEL_WORDS:
            self.sessions.clear(session.user_id)
            return PostingReply(type="cancelled", text="Okay, cancelled. You can start a new listing anytime.")

        category = self._category_from_answer(answer, choice_id)
        if category is None:
            return PostingReply(
                type="choice",
                text="Please pick one of the listing types below.",
                choices=list(CATEGORY_CHOICES),
            )

        pending = session.pending_text or ""
        if pending:
            result, _, _ = self.analyse(pending)
        else:
            result = ClassificationResult(intent=GENERAL_HELP, confidence=0.0)
        logger.info("[POSTING] category chosen user=%s category=%s", session.user_id, category)
        return self._start_posting(session.user_id, category, result, pending)

    @staticmethod
    def _category_from_answer(answer: str, choice_id: Optional[str]) -> Optional[str]:
        if choice_id and choice_id.startswith("category_"):
            name = choice_id[len("category_"):]
            return name if name in CATEGORIES else None
        if answer.isdigit():
            index = int(answer) - 1
            return CATEGORIES[index] if 0 <= index < len(CATEGORIES) else None
        squashed = answer.replace(" ", "_")
        if squashed in CATEGORIES:
            return squashed
        for name, config in FIELD_CONFIGS.items():
            label = re.sub(r"[^\w\s]", "", config.display_name).strip().lower()
            if answer == label:
                return name
        return detect_category(answer)

    def _handle_conflict_choice(self, session: Session, text: str, choice_id: Optional[str]) -> PostingReply:
        answer = choice_id or _normalize_answer(text)
        user_id = session.user_id

        if answer in ("draft_continue", "continue", "1"):
            draft = self.drafts.get_draft(session.draft_id)
            if draft is None:
                self.sessions.clear(user_id)
                return PostingReply(type="error", text=SESSION_EXPIRED)
            self.sessions.update(
                user_id,
                mode="posting",
                category=draft.category,
                draft_id=draft.id,
                expected_field=None,
                pending_text=None,
                editing=False,
            )
            return self._ask_next(user_id, draft, prefix="Let's continue your draft.\n\n")

        if answer in ("draft_new", "new", "start new", "2"):
            self.drafts.delete_draft(session.draft_id)
            pending = session.pending_text or ""
            result, _, category = self.analyse(pending)
            category = session.category or category
            if category is None:
                self.sessions.clear(user_id)
                return PostingReply(type="error", text=SESSION_EXPIRED)
            return self._create_draft(user_id, category, result)

        if answer in ("draft_cancel", "cancel", "3"):
            # the existing draft stays; it can be resumed later
            self.sessions.clear(user_id)
            return PostingReply(
                type="cancelled",
                text="Okay. Your earlier draft is saved, send a new message anytime to continue.",
            )

        return PostingReply(
            type="choice",
            text="Please choose: Continue draft, Start new, or Cancel.",
            choices=list(CONFLICT_CHOICES),
        )

    # ---------- field collection ----------

    def _continue_posting(self, session: Session, text: str, choice_id: Optional[str]) -> PostingReply:
        user_id = session.user_id
        draft = self.drafts.get_draft(session.draft_id)
        if draft is None:
            logger.warning("[POSTING] draft missing user=%s draft=%s, resetting", user_id, session.draft_id)
            self.sessions.clear(user_id)
            return PostingReply(type="error", text=SESSION_EXPIRED)

        expected = session.expected_field
        if expected == CONFIRMATION:
            return self._handle_confirmation(session, draft, text, choice_id)

        if _normalize_answer(text) in CANCEL_WORDS:
            self.drafts.delete_draft(draft.id)
            self.sessions.clear(user_id)
            return PostingReply(type="cancelled", text="Listing cancelled. You can start a new one anytime.")

        if not expected:
            return self._ask_next(user_id, draft)

        if session.editing:
            return self._handle_edit_answer(session, draft, expected, text)

        return self._handle_field_answer(session, draft, expected, text)

    def _handle_field_answer(self, session: Session, draft: Draft, path: str, text: str) -> PostingReply:
        config = get_field_config(draft.category)
        spec = config.fields.get(path) if config else None

        if spec is not None:
            ok, value = spec.clean(text)
        else:
            ok, value = (not is_blank(text)), text.strip()

        if not ok:
            logger.info("[POSTING] invalid answer user=%s field=%s text=%r", session.user_id, path, text)
            return PostingReply(type="question", text=self._invalid_prompt(config, path))

        try:
            draft = self.drafts.update_draft_field(draft.id, path, value)
        except DraftNotFoundError:
            self.sessions.clear(session.user_id)
            return PostingReply(type="error", text=SESSION_EXPIRED)

        return self._ask_next(session.user_id, draft)

    def _handle_edit_answer(self, session: Session, draft: Draft, path: str, text: str) -> PostingReply:
        config = get_field_config(draft.category)
        current = resolve_field(draft.data, draft.category, path)

        if not (_normalize_answer(text) in KEEP_WORDS and not is_blank(current)):
            spec = config.fields.get(path)
            ok, value = spec.clean(text) if spec else ((not is_blank(text)), text.strip())
            if not ok:
                return PostingReply(type="question", text=self._invalid_prompt(config, path, current))
            try:
                draft = self.drafts.update_draft_field(draft.id, path, value)
            except DraftNotFoundError:
                self.sessions.clear(session.user_id)
                return PostingReply(type="error", text=SESSION_EXPIRED)

        required = config.required
        index = required.index(path) if path in required else len(required) - 1
        if index + 1 < len(required):
            next_path = required[index + 1]
            self.sessions.update(session.user_id, expected_field=next_path, editing=True)
            return PostingReply(type="question", text=self._edit_prompt(config, draft, next_path))

        return self._confirm(session.user_id, draft)

    def _ask_next(self, user_id: str, draft: Draft, prefix: str = "") -> PostingReply:
        next_field = get_next_required_field(draft)
        if next_field is None:
            return self._confirm(user_id, draft, prefix)

        self.sessions.update(user_id, expected_field=next_field, editing=False)
        config = get_field_config(draft.category)
        logger.info("[POSTING] ask user=%s draft=%s field=%s", user_id, draft.id, next_field)
        return PostingReply(type="question", text=prefix + config.question_for(next_field))

    @staticmethod
    def _invalid_prompt(config, path: str, current: Any = None) -> str:
        spec = config.fields.get(path) if config else None
        hint = (spec.hint if spec and spec.hint else "That doesn't look right, please try again.")
        question = config.question_for(path) if config else f"Please provide {path}:"
        if not is_blank(current):
            question += f"\n(Current: {spec.render(current) if spec else current}, reply 'skip' to keep it)"
        return f"{hint}\n\n{question}"

    @staticmethod
    def _edit_prompt(config, draft: Draft, path: str) -> str:
        question = config.question_for(path)
        current = resolve_field(draft.data, draft.category, path)
        if is_blank(current):
            return question
        spec = config.fields.get(path)
        shown = spec.render(current) if spec else current
        return f"{question}\nCurrent: {shown}\nSend a new value, or 'skip' to keep it."

    # ---------- confirmation ----------

    def build_summary(self, draft: Draft) -> str:
        config = get_field_config(draft.category)
        lines = ["📋 *Listing Summary*", f"Type: {config.display_name}"]
        for path in config.summary:
            value = resolve_field(draft.data, draft.category, path)
            if is_blank(value):
                continue
            spec = config.fields[path]
            shown = spec.render(value)
            if len(shown) > 80:
                shown = shown[:77] + "..."
            lines.append(f"{spec.label}: {shown}")
        return "\n".join(lines)

    def _confirm(self, user_id: str, draft: Draft, prefix: str = "") -> PostingReply:
        self.sessions.update(user_id, expected_field=CONFIRMATION, editing=False)
        summary = self.build_summary(draft)
        return PostingReply(
            type="confirmation",
            text=f"{prefix}{summary}\n\n✅ Is this correct?\nReply \"YES\" to post or \"NO\" to cancel.",
            choices=list(CONFIRM_CHOICES),
        )

    def _handle_confirmation(
            self,
            session: Session,
            draft: Draft,
            text: str,
            choice_id: Optional[str],
    ) -> PostingReply:
        answer = _normalize_answer(text)
        user_id = session.user_id

        if choice_id == "confirm_yes" or (not choice_id and answer in YES_WORDS):
            return self._publish(user_id, draft)

        if choice_id == "confirm_no" or (not choice_id and answer in NO_WORDS):
            self.drafts.delete_draft(draft.id)
            self.sessions.clear(user_id)
            logger.info("[POSTING] cancelled user=%s draft=%s", user_id, draft.id)
            return PostingReply(type="cancelled", text="Listing cancelled. You can start a new one anytime.")

        if choice_id == "confirm_edit" or (not choice_id and answer in EDIT_WORDS):
            config = get_field_config(draft.category)
            first = config.required[0]
            self.sessions.update(user_id, expected_field=first, editing=True)
            return PostingReply(type="question", text=self._edit_prompt(config, draft, first))

        return PostingReply(
            type="confirmation",
            text='Please reply "YES" to post or "NO" to cancel.',
            choices=list(CONFIRM_CHOICES),
        )

    def _publish(self, user_id: str, draft: Draft) -> PostingReply:
        try:
            listing = self.listings.publish_from_draft(draft, owner_phone=user_id)
        except StoreError:
            logger.exception("[POSTING] publish failed user=%s draft=%s", user_id, draft.id)
            return PostingReply(type="error", text=PUBLISH_FAILED, choices=list(CONFIRM_CHOICES))

        # listing is written; a failed delete leaves a duplicate draft, never a lost listing
        self.drafts.delete_draft(draft.id)
        self.sessions.clear(user_id)
        return PostingReply(
            type="success",
            text=f"🎉 Your listing has been published successfully!\n\n*{listing.title}*",
            listing_id=listing.id,
        )
