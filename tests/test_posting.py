from marketbot.db import InMemoryDocumentStore
from marketbot.errors import StoreError
from marketbot.models import ClassificationResult, IncomingMessage
from marketbot.services.posting import (
    CATEGORY_CHOICES,
    CONFLICT_CHOICES,
    PUBLISH_FAILED,
    RETRY_LATER,
    SESSION_EXPIRED,
    PostingService,
    detect_category,
    is_posting_intent,
    match_immediate_offer,
)
from marketbot.storage import DRAFTS, DraftStore, ListingStore, SessionStore

USER = "919876543210"


def say(posting, text, user=USER, **kwargs):
    return posting.handle_message(IncomingMessage(user_id=user, text=text), **kwargs)


def choose(posting, choice_id, title="", user=USER):
    return posting.handle_message(IncomingMessage(user_id=user, text=title, choice_id=choice_id))


def test_match_immediate_offer():
    assert match_immediate_offer("I'm a plumber in Noida") == {
        "serviceType": "plumber",
        "location": "Noida",
        "city": "Noida",
    }
    assert match_immediate_offer("I provide cleaning services")["serviceType"] == "cleaning"
    assert match_immediate_offer("I need a plumber in Noida") is None


def test_detect_category():
    assert detect_category("I am a driver") == "urban_help"
    assert detect_category("room available") == "housing"
    assert detect_category("old sofa") == "furniture"
    assert detect_category("hello") is None


def test_is_posting_intent():
    offer = ClassificationResult(intent="service_request", confidence=0.9, context="offer")
    find = ClassificationResult(intent="service_request", confidence=0.9, context="find")
    hello = ClassificationResult(intent="greeting", confidence=0.95)
    vague = ClassificationResult(intent="general_help", confidence=0.1)

    assert is_posting_intent("I am a plumber", offer)
    assert not is_posting_intent("I need a plumber", find)
    assert not is_posting_intent("hello", hello)
    assert is_posting_intent("I want to post an ad", vague)
    assert not is_posting_intent("what is this", vague)


def test_scenario_a_prefills_and_asks_only_for_description(posting, drafts, sessions):
    reply = say(posting, "I'm a plumber in Noida")

    assert reply.handled
    assert reply.type == "question"
    assert reply.text == "Please describe your service"

    draft = drafts.get_user_active_draft(USER)
    assert draft.category == "urban_help"
    assert draft.data["urban_help"]["serviceType"] == "plumber"
    assert draft.data["location"]["area"] == "Noida"

    session = sessions.get_or_create(USER)
    assert session.is_posting
    assert session.draft_id == draft.id
    assert session.expected_field == "description"


def test_scenario_b_summary_and_publish(posting, drafts, sessions, listings):
    say(posting, "I'm a plumber in Noida")
    draft_id = drafts.get_user_active_draft(USER).id

    reply = say(posting, "Fixing leaks and pipes, 10 years experience")
    assert reply.type == "confirmation"
    assert "Service: Plumber" in reply.text
    assert "Description: Fixing leaks and pipes, 10 years experience" in reply.text
    assert [c["id"] for c in reply.choices] == ["confirm_yes", "confirm_edit", "confirm_no"]

    reply = say(posting, "yes")
    assert reply.type == "success"
    assert "Plumber in Noida" in reply.text

    listing = listings.get(reply.listing_id)
    assert listing.category == "urban_help"
    assert drafts.get_draft(draft_id) is None
    assert drafts.get_user_active_draft(USER) is None
    assert sessions.get_or_create(USER).mode == "idle"


def test_publish_round_trip_copies_data(posting, drafts, listings):
    say(posting, "I'm a plumber in Noida")
    say(posting, "Fixing leaks and pipes, 10 years experience")
    draft = drafts.get_user_active_draft(USER)

    reply = choose(posting, "confirm_yes", "✅ Yes, post it")

    listing = listings.get(reply.listing_id)
    for section, values in draft.data.items():
        for key, value in values.items():
            assert listing.data[section][key] == value
    assert drafts.get_draft(draft.id) is None


def test_scenario_d_different_category_offers_a_choice(posting, drafts, sessions):
    say(posting, "I'm a plumber in Noida")
    first = drafts.get_user_active_draft(USER)
    # user comes back later with the draft still open
    sessions.clear(USER)

    reply = say(posting, "selling my sofa")

    assert reply.type == "choice"
    assert reply.choices == CONFLICT_CHOICES
    assert drafts.get_draft(first.id) is not None
    assert sessions.get_or_create(USER).expected_field == "draft_conflict"


def test_conflict_start_new(posting, drafts, sessions):
    say(posting, "I'm a plumber in Noida")
    first = drafts.get_user_active_draft(USER)
    sessions.clear(USER)
    say(posting, "selling my sofa")

    reply = choose(posting, "draft_new", "Start new")

    assert reply.text == "What is your asking price?"
    assert drafts.get_draft(first.id) is None
    second = drafts.get_user_active_draft(USER)
    assert second.category == "furniture"
    assert second.data["furniture"]["itemType"] == "sofa"


def test_conflict_continue_and_cancel(posting, drafts, sessions):
    say(posting, "I'm a plumber in Noida")
    first = drafts.get_user_active_draft(USER)
    sessions.clear(USER)

    say(posting, "selling my sofa")
    reply = choose(posting, "draft_continue", "Continue draft")
    assert reply.text == "Let's continue your draft.\n\nPlease describe your service"
    assert sessions.get_or_create(USER).draft_id == first.id
    assert sessions.get_or_create(USER).is_posting

    sessions.clear(USER)
    say(posting, "selling my sofa")
    reply = choose(posting, "draft_cancel", "Cancel")
    assert reply.type == "cancelled"
    assert sessions.get_or_create(USER).mode == "idle"
    assert drafts.get_user_active_draft(USER).id == first.id


def test_same_category_resumes_existing_draft(posting, drafts, sessions):
    say(posting, "I'm a plumber in Noida")
    first = drafts.get_user_active_draft(USER)
    sessions.clear(USER)

    reply = say(posting, "I'm an electrician in Delhi")

    assert reply.text == "Continuing your draft.\n\nPlease describe your service"
    resumed = drafts.get_user_active_draft(USER)
    assert resumed.id == first.id
    assert resumed.data["urban_help"]["serviceType"] == "plumber"


def test_invalid_answer_is_rejected_and_asked_again(posting, drafts, sessions):
    reply = say(posting, "I have a 2bhk for rent in Sector 62")
    assert reply.text == "What is the monthly rent? (e.g., 15000)"

    reply = say(posting, "cheap")
    assert reply.type == "question"
    assert reply.text.startswith("Please send the rent as a number")
    assert reply.text.endswith("What is the monthly rent? (e.g., 15000)")
    assert sessions.get_or_create(USER).expected_field == "rent"
    assert "rent" not in drafts.get_user_active_draft(USER).data["housing"]

    reply = say(posting, "15k")
    assert reply.type == "confirmation"
    assert "Property: 2BHK" in reply.text
    assert "Rent: ₹15.00K" in reply.text
    assert "Area: Sector 62" in reply.text


def test_edit_walks_required_fields(posting, drafts):
    say(posting, "I have a 2bhk for rent in Sector 62")
    say(posting, "15000")

    reply = choose(posting, "confirm_edit", "✏️ Edit")
    assert reply.text.startswith("What type of property?")
    assert "Current: 2BHK" in reply.text

    reply = say(posting, "skip")
    assert reply.text.startswith("What is the monthly rent?")

    say(posting, "18000")
    reply = say(posting, "skip")

    assert reply.type == "confirmation"
    assert "Rent: ₹18.00K" in reply.text
    assert drafts.get_user_active_draft(USER).data["housing"]["rent"] == 18000


def test_unclear_category_is_asked(posting):
    vague = ClassificationResult(intent="general_help", confidence=0.1)
    reply = say(posting, "post", classification=vague)

    assert reply.type == "choice"
    assert reply.choices == CATEGORY_CHOICES

    reply = say(posting, "tell me more")
    assert reply.type == "choice"

    reply = say(posting, "2")
    assert reply.text.startswith("What service do you offer?")


def test_category_choice_by_button(posting, drafts):
    vague = ClassificationResult(intent="general_help", confidence=0.1)
    say(posting, "post", classification=vague)

    reply = choose(posting, "category_vehicle", "🚗 Vehicle")

    assert reply.text.startswith("What type of vehicle?")
    assert drafts.get_user_active_draft(USER).category == "vehicle"


def test_no_at_confirmation_discards_draft(posting, drafts, sessions):
    say(posting, "I'm a plumber in Noida")
    say(posting, "Fixing leaks and pipes, 10 years experience")

    reply = say(posting, "no")

    assert reply.type == "cancelled"
    assert drafts.get_user_active_draft(USER) is None
    assert sessions.get_or_create(USER).mode == "idle"


def test_unclear_confirmation_asks_again(posting):
    say(posting, "I'm a plumber in Noida")
    say(posting, "Fixing leaks and pipes, 10 years experience")

    reply = say(posting, "maybe later")
    assert reply.type == "confirmation"
    assert reply.text == 'Please reply "YES" to post or "NO" to cancel.'


def test_cancel_mid_flow(posting, drafts, sessions):
    say(posting, "I'm a plumber in Noida")
    reply = say(posting, "cancel")

    assert reply.type == "cancelled"
    assert drafts.get_user_active_draft(USER) is None
    assert not sessions.get_or_create(USER).is_posting


def test_missing_draft_expires_session(posting, db, sessions):
    say(posting, "I'm a plumber in Noida")
    db.delete(DRAFTS, sessions.get_or_create(USER).draft_id)

    reply = say(posting, "Fixing leaks and pipes")

    assert reply.type == "error"
    assert reply.text == SESSION_EXPIRED
    session = sessions.get_or_create(USER)
    assert session.mode == "idle"
    assert session.draft_id is None


def test_non_posting_messages_are_not_handled(posting, sessions):
    reply = say(posting, "hello")
    assert not reply.handled
    assert reply.classification.intent == "greeting"

    reply = say(posting, "I need a plumber in Noida")
    assert not reply.handled
    assert reply.classification.context == "find"
    assert sessions.get_or_create(USER).mode == "idle"


def test_empty_message_is_not_handled(posting):
    assert not say(posting, "   ").handled


class WriteFailStore(InMemoryDocumentStore):
    def set(self, collection, doc_id, data, merge=False):
        raise StoreError("disk full")


def test_store_write_failure_gives_retry_message():
    db = WriteFailStore()
    posting = PostingService(DraftStore(db), SessionStore(db), ListingStore(db))

    reply = say(posting, "I'm a plumber in Noida")

    assert reply.type == "error"
    assert reply.text == RETRY_LATER


def test_publish_failure_keeps_draft(posting, drafts, listings, sessions, monkeypatch):
    say(posting, "I'm a plumber in Noida")
    say(posting, "Fixing leaks and pipes, 10 years experience")

    def fail(*args, **kwargs):
        raise StoreError("listings unavailable")

    monkeypatch.setattr(listings, "publish_from_draft", fail)
    reply = say(posting, "yes")

    assert reply.text == PUBLISH_FAILED
    assert drafts.get_user_active_draft(USER) is not None
    assert sessions.get_or_create(USER).expected_field == "confirmation"


def test_immediate_offer_prefers_known_profession(posting, drafts):
    assert match_immediate_offer("I'm a good plumber in Noida")["serviceType"] == "plumber"

    say(posting, "I'm a good plumber in Noida")

    assert drafts.get_user_active_draft(USER).data["urban_help"]["serviceType"] == "plumber"
