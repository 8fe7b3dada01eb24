# marketbot/services/manage.py
import logging
import re
from typing import Dict, List, Optional

from ..errors import ListingNotFoundError, StoreError
from ..field_config import get_field_config, is_blank, resolve_field
from ..models import IncomingMessage, Listing, Session
from ..storage import ListingStore, SessionStore
from .posting import CANCEL_WORDS, RETRY_LATER, PostingReply

logger = logging.getLogger(__name__)

MANAGING = "managing"

# expected_field values while managing
PICK_LISTING = "manage_select"
PICK_ACTION = "manage_action"
PICK_FIELD = "manage_field"
NEW_VALUE = "manage_value"

# one row is kept for "Close"
MAX_LISTED = 9

MANAGE_RE = re.compile(
    r"\b(?:my\s+(?:listings?|ads?|posts?)|manage\s+(?:my\s+)?(?:listings?|ads?)|"
    r"meri\s+listings?|mere\s+ads?)\b",
    re.IGNORECASE,
)

CLOSE_CHOICE = {"id": "manage_close", "title": "❌ Close"}
DONE_CHOICE = {"id": "manage_done", "title": "✅ Done"}
ACTION_CHOICES = [
    {"id": "manage_edit", "title": "✏️ Edit"},
    {"id": "manage_delete", "title": "🗑️ Delete"},
    {"id": "manage_back", "title": "⬅️ Back to list"},
]
_ACTION_WORDS = {
    "1": "manage_edit", "edit": "manage_edit", "change": "manage_edit",
    "2": "manage_delete", "delete": "manage_delete", "remove": "manage_delete", "hatao": "manage_delete",
    "3": "manage_back", "back": "manage_back",
}

NO_LISTINGS = (
    "You haven't posted any listings yet. "
    "Send something like \"I'm a plumber in Noida\" to post one."
)
GONE = "That listing is no longer available.\n\n"


def wants_listings(text: Optional[str], choice_id: Optional[str] = None) -> bool:
    return choice_id == "manage_listings" or bool(MANAGE_RE.search(text or ""))


class ListingManager:
    """
    "My listings": pick one of your active listings, then edit its fields
    one at a time or delete it. Each edit is saved as soon as it is valid.
    """

    def __init__(self, sessions: SessionStore, listings: ListingStore) -> None:
        self.sessions = sessions
        self.listings = listings

    def handle(self, message: IncomingMessage) -> PostingReply:
        user_id = message.user_id
        text = (message.text or "").strip()
        choice_id = message.choice_id
        try:
            session = self.sessions.get_or_create(user_id)
            if not session.is_managing:
                return self._show_list(user_id)

            if text.lower() in CANCEL_WORDS or choice_id == CLOSE_CHOICE["id"]:
                self.sessions.clear(user_id)
                return PostingReply(type="cancelled", text="Okay, closed your listings.")

            stage = session.expected_field
            if stage == PICK_ACTION:
                return self._handle_action(session, text.lower(), choice_id)
            if stage == PICK_FIELD:
                return self._handle_field(session, text.lower(), choice_id)
            if stage == NEW_VALUE:
                return self._handle_value(session, text)
            return self._handle_selection(session, text.lower(), choice_id)

        except StoreError:
            logger.exception("[MANAGE] store error user=%s text=%r", user_id, text)
            return PostingReply(type="error", text=RETRY_LATER)

    # ---------- list / select ----------

    def _show_list(self, user_id: str, prefix: str = "") -> PostingReply:
        owned = self.listings.list_by_owner(user_id, limit=MAX_LISTED)
        if not owned:
            self.sessions.clear(user_id)
            return PostingReply(type="manage", text=prefix + NO_LISTINGS)

        self.sessions.update(
            user_id, mode=MANAGING, expected_field=PICK_LISTING, listing_id=None, pending_text=None
        )
        lines = [f"{prefix}📂 *Your listings* ({len(owned)})"]
        for n, listing in enumerate(owned, start=1):
            lines.append(f"{n}. {listing.title} | {_metrics_line(listing)}")
        lines.append("")
        lines.append("Pick a listing to edit or delete.")

        choices = [{"id": listing.id, "title": listing.title} for listing in owned]
        choices.append(dict(CLOSE_CHOICE))
        return PostingReply(type="choice", text="\n".join(lines), choices=choices)

    def _handle_selection(self, session: Session, answer: str, choice_id: Optional[str]) -> PostingReply:
        user_id = session.user_id
        owned = self.listings.list_by_owner(user_id, limit=MAX_LISTED)

        listing = None
        if choice_id:
            listing = next((item for item in owned if item.id == choice_id), None)
        elif answer.isdigit() and 0 < int(answer) <= len(owned):
            listing = owned[int(answer) - 1]

        if listing is None:
            return self._show_list(user_id, prefix="Please pick one of your listings.\n\n")

        self.sessions.update(user_id, expected_field=PICK_ACTION, listing_id=listing.id)
        return PostingReply(
            type="choice",
            text=f"{_details(listing)}\n\nWhat would you like to do with this listing?",
            choices=list(ACTION_CHOICES),
        )

    def _owned_listing(self, session: Session) -> Optional[Listing]:
        listing = self.listings.get(session.listing_id) if session.listing_id else None
        if listing is None or listing.owner.get("userId") != session.user_id:
            return None
        return listing

    # ---------- actions ----------

    def _handle_action(self, session: Session, answer: str, choice_id: Optional[str]) -> PostingReply:
        user_id = session.user_id
        listing = self._owned_listing(session)
        if listing is None:
            return self._show_list(user_id, prefix=GONE)

        action = choice_id or _ACTION_WORDS.get(answer)
        if action == "manage_delete":
            self.listings.delete_listing(listing.id, user_id)
            self.sessions.clear(user_id)
            return PostingReply(type="deleted", text=f"✅ Listing \"{listing.title}\" has been deleted.")
        if action == "manage_edit":
            return self._ask_field(user_id, listing)
        if action == "manage_back":
            return self._show_list(user_id)

        return PostingReply(
            type="choice",
            text="Please choose: Edit, Delete, or Back to list.",
            choices=list(ACTION_CHOICES),
        )

    def _ask_field(self, user_id: str, listing: Listing, prefix: str = "") -> PostingReply:
        self.sessions.update(user_id, expected_field=PICK_FIELD, pending_text=None)
        return PostingReply(
            type="choice",
            text=f"{prefix}✏️ Which field of *{listing.title}* do you want to change?",
            choices=_field_choices(listing),
        )

    def _handle_field(self, session: Session, answer: str, choice_id: Optional[str]) -> PostingReply:
        user_id = session.user_id
        listing = self._owned_listing(session)
        if listing is None:
            return self._show_list(user_id, prefix=GONE)

        if choice_id == DONE_CHOICE["id"] or (not choice_id and answer in ("done", "save", "finish")):
            self.sessions.clear(user_id)
            return PostingReply(type="manage", text=f"👍 *{listing.title}* is up to date.")

        config = get_field_config(listing.category)
        paths = config.required + config.optional
        path = None
        if choice_id and choice_id.startswith("edit_"):
            path = choice_id[len("edit_"):]
        elif answer.isdigit() and 0 < int(answer) <= len(paths):
            path = paths[int(answer) - 1]
        else:
            path = next((p for p in paths if config.fields[p].label.lower() == answer), None)

        if path not in config.fields:
            return self._ask_field(user_id, listing, prefix="Please pick a field from the list.\n\n")

        self.sessions.update(user_id, expected_field=NEW_VALUE, pending_text=path)
        spec = config.fields[path]
        current = resolve_field(listing.data, listing.category, path)
        question = spec.question
        if not is_blank(current):
            question += f"\nCurrent: {spec.render(current)}"
        return PostingReply(type="question", text=question)

    def _handle_value(self, session: Session, text: str) -> PostingReply:
        user_id = session.user_id
        listing = self._owned_listing(session)
        if listing is None:
            return self._show_list(user_id, prefix=GONE)

        config = get_field_config(listing.category)
        path = session.pending_text
        spec = config.fields.get(path or "")
        if spec is None:
            return self._ask_field(user_id, listing)

        ok, value = spec.clean(text)
        if not ok:
            hint = spec.hint or "That doesn't look right, please try again."
            return PostingReply(type="question", text=f"{hint}\n\n{spec.question}")

        try:
            listing = self.listings.update_listing_field(listing.id, path, value)
        except ListingNotFoundError:
            return self._show_list(user_id, prefix=GONE)
        return self._ask_field(
            user_id, listing, prefix=f"✅ {spec.label} updated to {spec.render(value)}.\n\n"
        )


def _metrics_line(listing: Listing) -> str:
    metrics = listing.metrics or {}
    return f"👁 {metrics.get('views', 0)} · 📞 {metrics.get('contacts', 0)}"


def _details(listing: Listing) -> str:
    lines = [f"📋 *{listing.title}*"]
    config = get_field_config(listing.category)
    if config is not None:
        for path in config.summary:
            value = resolve_field(listing.data, listing.category, path)
            if is_blank(value):
                continue
            spec = config.fields[path]
            lines.append(f"{spec.label}: {spec.render(value)}")
    lines.append(_metrics_line(listing))
    if listing.expires_at is not None:
        lines.append(f"Expires: {listing.expires_at:%d %b %Y}")
    return "\n".join(lines)


def _field_choices(listing: Listing) -> List[Dict[str, str]]:
    config = get_field_config(listing.category)
    choices = [
        {"id": f"edit_{path}", "title": config.fields[path].label}
        for path in config.required + config.optional
    ]
    choices.append(dict(DONE_CHOICE))
    return choices
