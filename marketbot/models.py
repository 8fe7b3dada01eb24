# marketbot/models.py
import copy
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List, Tuple

CATEGORIES = (
    "housing",
    "urban_help",
    "vehicle",
    "electronics",
    "furniture",
    "job",
    "commodity",
)

DRAFT_STATUSES = ("draft", "published", "cancelled")
LISTING_STATUSES = ("active", "expired")
SESSION_MODES = ("idle", "posting", "managing")

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"
_clock_lock = threading.Lock()
_last_ts: Optional[datetime] = None


def utcnow() -> datetime:
    """
    Monotonic UTC clock: two calls in the same process never return
    equal or decreasing values.
    """
    global _last_ts
    with _clock_lock:
        now = datetime.now(timezone.utc)
        if _last_ts is not None and now <= _last_ts:
            now = _last_ts + timedelta(microseconds=1)
        _last_ts = now
        return now


def ts_to_str(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT)


def ts_from_str(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def empty_draft_data(category: str) -> Dict[str, Any]:
    return {category: {}, "location": {}}


@dataclass
class Draft:
    id: str
    owner_id: str
    category: str
    intent: str = "offer"
    status: str = "draft"
    data: Dict[str, Any] = field(default_factory=dict)
    filled_fields: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def category_data(self) -> Dict[str, Any]:
        return self.data.get(self.category) or {}

    @property
    def location(self) -> Dict[str, Any]:
        return self.data.get("location") or {}

    def to_doc(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "status": self.status,
            "category": self.category,
            "intent": self.intent,
            "data": copy.deepcopy(self.data),
            "filledFields": list(self.filled_fields),
            "createdAt": ts_to_str(self.created_at),
            "updatedAt": ts_to_str(self.updated_at),
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Draft":
        category = doc.get("category") or ""
        data = copy.deepcopy(doc.get("data") or empty_draft_data(category))
        return cls(
            id=doc["id"],
            owner_id=doc.get("ownerId") or "",
            category=category,
            intent=doc.get("intent") or "offer",
            status=doc.get("status") or "draft",
            data=data,
            filled_fields=list(doc.get("filledFields") or []),
            created_at=ts_from_str(doc.get("createdAt")) or utcnow(),
            updated_at=ts_from_str(doc.get("updatedAt")) or utcnow(),
        )


@dataclass
class Session:
    user_id: str
    mode: str = "idle"
    category: Optional[str] = None
    draft_id: Optional[str] = None
    listing_id: Optional[str] = None
    expected_field: Optional[str] = None
    pending_text: Optional[str] = None
    editing: bool = False
    language: str = "en"
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_posting(self) -> bool:
        return self.mode == "posting"

    @property
    def is_managing(self) -> bool:
        return self.mode == "managing"

    def to_doc(self) -> Dict[str, Any]:
        return {
            "id": self.user_id,
            "mode": self.mode,
            "category": self.category,
            "draftId": self.draft_id,
            "listingId": self.listing_id,
            "expectedField": self.expected_field,
            "pendingText": self.pending_text,
            "editing": self.editing,
            "language": self.language,
            "createdAt": ts_to_str(self.created_at),
            "updatedAt": ts_to_str(self.updated_at),
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Session":
        return cls(
            user_id=doc["id"],
            mode=doc.get("mode") or "idle",
            category=doc.get("category"),
            draft_id=doc.get("draftId"),
            listing_id=doc.get("listingId"),
            expected_field=doc.get("expectedField"),
            pending_text=doc.get("pendingText"),
            editing=bool(doc.get("editing", False)),
            language=doc.get("language") or "en",
            created_at=ts_from_str(doc.get("createdAt")) or utcnow(),
            updated_at=ts_from_str(doc.get("updatedAt")) or utcnow(),
        )


@dataclass
class Listing:
    id: str
    category: str
    sub_category: str
    title: str
    data: Dict[str, Any]
    owner: Dict[str, Any]
    status: str = "active"
    created_at: datetime = field(default_factory=utcnow)
    expires_at: Optional[datetime] = None
    metrics: Dict[str, int] = field(default_factory=lambda: {"views": 0, "contacts": 0})

    def to_doc(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "category": self.category,
            "subCategory": self.sub_category,
            "title": self.title,
            "data": copy.deepcopy(self.data),
            "owner": dict(self.owner),
            "createdAt": ts_to_str(self.created_at),
            "expiresAt": ts_to_str(self.expires_at),
            "metrics": dict(self.metrics),
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Listing":
        return cls(
            id=doc["id"],
            status=doc.get("status") or "active",
            category=doc.get("category") or "",
            sub_category=doc.get("subCategory") or "",
            title=doc.get("title") or "",
            data=copy.deepcopy(doc.get("data") or {}),
            owner=dict(doc.get("owner") or {}),
            created_at=ts_from_str(doc.get("createdAt")) or utcnow(),
            expires_at=ts_from_str(doc.get("expiresAt")),
            metrics=dict(doc.get("metrics") or {"views": 0, "contacts": 0}),
        )


@dataclass
class ClassificationResult:
    intent: str
    confidence: float
    context: Optional[str] = None
    entities: Dict[str, Any] = field(default_factory=dict)
    language: str = "en"
    alternatives: List[Tuple[str, float]] = field(default_factory=list)
    source: str = "rules"

    # below this, callers must ask for clarification
    threshold: float = 0.3

    @property
    def is_confident(self) -> bool:
        return self.confidence > self.threshold


@dataclass
class IncomingMessage:
    user_id: str
    text: str = ""
    choice_id: Optional[str] = None
    audio_id: Optional[str] = None
    message_id: Optional[str] = None
    profile_name: Optional[str] = None
    # WhatsApp message type the bot cannot read (image, location, sticker, ...)
    unsupported_type: Optional[str] = None
