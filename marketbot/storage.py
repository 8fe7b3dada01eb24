# marketbot/storage.py
import copy
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from .errors import DraftNotFoundError, ListingNotFoundError, StoreError
from .field_config import build_title, data_key_for, get_field_config, resolve_field
from .models import (
    CATEGORIES,
    Draft,
    Listing,
    Session,
    empty_draft_data,
    ts_to_str,
    utcnow,
)
from .utils.phones import normalize_phone

logger = logging.getLogger(__name__)

DRAFTS = "drafts"
SESSIONS = "sessions"
LISTINGS = "listings"

METRICS = ("views", "contacts")
DEFAULT_LISTING_TTL_DAYS = 30


class DraftStore:
    def __init__(self, db) -> None:
        self.db = db

    def create_draft(self, owner_id: str, category: str, intent: str = "offer") -> Draft:
        """
        New draft with an empty data skeleton. Does not look for an existing
        active draft; callers check get_user_active_draft first.
        """
        if category not in CATEGORIES:
            raise ValueError(f"Unknown category: {category}")

        now = utcnow()
        draft = Draft(
            id=f"draft_{uuid.uuid4().hex}",
            owner_id=owner_id,
            category=category,
            intent=intent,
            data=empty_draft_data(category),
            created_at=now,
            updated_at=now,
        )
        self.db.set(DRAFTS, draft.id, draft.to_doc())
        logger.info("[DRAFT] created id=%s owner=%s category=%s", draft.id, owner_id, category)
        return draft

    def get_draft(self, draft_id: Optional[str]) -> Optional[Draft]:
        if not draft_id:
            return None
        doc = self.db.get(DRAFTS, draft_id)
        if doc is None:
            return None
        return Draft.from_doc(doc)

    def update_draft_field(self, draft_id: str, field_path: str, value: Any) -> Draft:
        """
        Writes one value at a field path ("location.area" or a category field)
        and refreshes updatedAt. Other fields are not touched.
        """
        draft = self.get_draft(draft_id)
        if draft is None:
            raise DraftNotFoundError(draft_id)

        keys = data_key_for(draft.category, field_path)
        filled = list(draft.filled_fields)
        if field_path not in filled:
            filled.append(field_path)
        now = utcnow()

        ok = self.db.update(
            DRAFTS,
            draft_id,
            {
                "data." + ".".join(keys): value,
                "filledFields": filled,
                "updatedAt": ts_to_str(now),
            },
        )
        if not ok:
            raise DraftNotFoundError(draft_id)

        section = draft.data.setdefault(keys[0], {})
        section[keys[1]] = copy.deepcopy(value)
        draft.filled_fields = filled
        draft.updated_at = now
        logger.info("[DRAFT] update id=%s field=%s value=%r", draft_id, field_path, value)
        return draft

    def delete_draft(self, draft_id: Optional[str]) -> bool:
        if not draft_id:
            return False
        try:
            self.db.delete(DRAFTS, draft_id)
        except StoreError:
            logger.exception("[DRAFT] delete failed id=%s", draft_id)
            return False
        logger.info("[DRAFT] deleted id=%s", draft_id)
        return True

    def get_user_active_draft(self, owner_id: str) -> Optional[Draft]:
        try:
            docs = self.db.query(
                DRAFTS,
                [("ownerId", "==", owner_id), ("status", "==", "draft")],
                order_by="updatedAt",
                descending=True,
                limit=1,
            )
        except StoreError:
            logger.exception("[DRAFT] active draft lookup failed owner=%s", owner_id)
            return None
        if not docs:
            return None
        return Draft.from_doc(docs[0])


_SESSION_FIELDS = {
    "mode": "mode",
    "category": "category",
    "draft_id": "draftId",
    "listing_id": "listingId",
    "expected_field": "expectedField",
    "pending_text": "pendingText",
    "editing": "editing",
    "language": "language",
}


class SessionStore:
    def __init__(self, db) -> None:
        self.db = db

    def get_or_create(self, user_id: str) -> Session:
        try:
            doc = self.db.get(SESSIONS, user_id)
        except StoreError:
            logger.exception("[SESSION] read failed user=%s, using a fresh idle session", user_id)
            return Session(user_id=user_id)

        if doc is not None:
            return Session.from_doc(doc)

        session = Session(user_id=user_id)
        self.db.set(SESSIONS, user_id, session.to_doc())
        return session

    def update(self, user_id: str, **changes: Any) -> Session:
        unknown = set(changes) - set(_SESSION_FIELDS)
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")

        patch: Dict[str, Any] = {_SESSION_FIELDS[k]: v for k, v in changes.items()}
        patch["id"] = user_id
        patch["updatedAt"] = ts_to_str(utcnow())
        self.db.set(SESSIONS, user_id, patch, merge=True)

        doc = self.db.get(SESSIONS, user_id) or patch
        return Session.from_doc(doc)

    def clear(self, user_id: str) -> Session:
        """Back to idle; every posting reference is dropped."""
        previous = self.db.get(SESSIONS, user_id)
        session = Session(user_id=user_id)
        if previous:
            old = Session.from_doc(previous)
            session.created_at = old.created_at
            session.language = old.language
        self.db.set(SESSIONS, user_id, session.to_doc())
        logger.info("[SESSION] cleared user=%s", user_id)
        return session


class ListingStore:
    def __init__(self, db, ttl_days: int = DEFAULT_LISTING_TTL_DAYS) -> None:
        self.db = db
        self.ttl_days = ttl_days

    def publish_from_draft(
            self,
            draft: Draft,
            owner_phone: Optional[str] = None,
            title: Optional[str] = None,
    ) -> Listing:
        """
        Copies the draft data into a new active listing. Only writes the
        listing; deleting the draft is the caller's next step.
        """
        config = get_field_config(draft.category)
        sub_category = draft.category
        if config is not None:
            sub_category = resolve_field(draft.data, draft.category, config.type_field) or draft.category

        created = utcnow()
        listing = Listing(
            id=f"listing_{uuid.uuid4().hex}",
            category=draft.category,
            sub_category=str(sub_category),
            title=title or build_title(draft.category, draft.data),
            data=copy.deepcopy(draft.data),
            owner={
                "userId": draft.owner_id,
                "phone": normalize_phone(owner_phone or draft.owner_id) or (owner_phone or draft.owner_id),
            },
            created_at=created,
            expires_at=created + timedelta(days=self.ttl_days),
        )
        self.db.set(LISTINGS, listing.id, listing.to_doc())
        logger.info("[LISTING] published id=%s from draft=%s", listing.id, draft.id)
        return listing

    def get(self, listing_id: str) -> Optional[Listing]:
        doc = self.db.get(LISTINGS, listing_id)
        return Listing.from_doc(doc) if doc else None

    def list_active(self, category: Optional[str] = None, limit: int = 200) -> List[Listing]:
        filters = [("status", "==", "active")]
        if category:
            filters.append(("category", "==", category))
        try:
            docs = self.db.query(LISTINGS, filters, order_by="createdAt", descending=True, limit=limit)
        except StoreError:
            logger.exception("[LISTING] list_active failed category=%s", category)
            return []
        return [Listing.from_doc(d) for d in docs]

    def list_by_owner(self, owner_id: str, limit: int = 20) -> List[Listing]:
        """Active listings of one user, newest first."""
        try:
            docs = self.db.query(
                LISTINGS,
                [("owner.userId", "==", owner_id), ("status", "==", "active")],
                order_by="createdAt",
                descending=True,
                limit=limit,
            )
        except StoreError:
            logger.exception("[LISTING] list_by_owner failed owner=%s", owner_id)
            return []
        return [Listing.from_doc(d) for d in docs]

    def update_listing_field(self, listing_id: str, field_path: str, value: Any) -> Listing:
        """
        Writes one field of a published listing. Title and subCategory are
        rebuilt from the new data so search sees the change.
        """
        listing = self.get(listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)

        keys = data_key_for(listing.category, field_path)
        listing.data.setdefault(keys[0], {})[keys[1]] = copy.deepcopy(value)
        listing.title = build_title(listing.category, listing.data)
        config = get_field_config(listing.category)
        if config is not None:
            listing.sub_category = str(
                resolve_field(listing.data, listing.category, config.type_field) or listing.category
            )

        ok = self.db.update(
            LISTINGS,
            listing_id,
            {
                "data." + ".".join(keys): value,
                "title": listing.title,
                "subCategory": listing.sub_category,
                "updatedAt": ts_to_str(utcnow()),
            },
        )
        if not ok:
            raise ListingNotFoundError(listing_id)
        logger.info("[LISTING] update id=%s field=%s value=%r", listing_id, field_path, value)
        return listing

    def delete_listing(self, listing_id: str, owner_id: str) -> bool:
        """Removes a listing; only its owner may do so."""
        doc = self.db.get(LISTINGS, listing_id)
        if doc is None or (doc.get("owner") or {}).get("userId") != owner_id:
            return False
        self.db.delete(LISTINGS, listing_id)
        logger.info("[LISTING] deleted id=%s owner=%s", listing_id, owner_id)
        return True

    def increment_metric(self, listing_id: str, name: str) -> Optional[int]:
        if name not in METRICS:
            raise ValueError(f"Unknown metric: {name}")
        doc = self.db.get(LISTINGS, listing_id)
        if doc is None:
            return None
        value = int((doc.get("metrics") or {}).get(name) or 0) + 1
        self.db.update(LISTINGS, listing_id, {f"metrics.{name}": value})
        return value


def expire_listings(listings: ListingStore, now: Optional[datetime] = None) -> int:
    """
    Marks active listings whose expiresAt has passed as expired.
    Scheduling is up to the caller.
    """
    now = now or utcnow()
    docs = listings.db.query(
        LISTINGS,
        [("status", "==", "active"), ("expiresAt", "<=", ts_to_str(now))],
    )
    for doc in docs:
        listings.db.update(LISTINGS, doc["id"], {"status": "expired"})
    if docs:
        logger.info("[LISTING] expired %s listing(s)", len(docs))
    return len(docs)
