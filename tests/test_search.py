import pytest

from marketbot.models import ClassificationResult
from marketbot.services.search import (
    NO_RESULTS,
    build_search_query,
    format_search_results,
    score_listing,
    search_listings,
)


def _flat(**overrides):
    listing = {"city": "Noida", "type": "2bhk", "description": "2bhk near metro", "price": 14000,
               "contact": "9876543210"}
    listing.update(overrides)
    return listing


def test_scenario_c_cheaper_listing_scores_higher():
    query = {"city": "Noida", "budget": 15000}
    within = score_listing(_flat(price=14000), query)
    over = score_listing(_flat(price=20000), query)

    assert within == 40 + 25 + 5
    assert over == 40 + 5
    assert within > over


def test_budget_near_miss_gets_partial_points():
    query = {"budget": 15000}
    assert score_listing(_flat(price=17000, contact=""), query) == 5
    assert score_listing(_flat(price=19000, contact=""), query) == 0


def test_partial_city_and_description_matches():
    listing = _flat(city="Greater Noida", contact="")
    assert score_listing(listing, {"city": "noida"}) == 40
    assert score_listing(_flat(city="Noida", contact=""), {"city": "greater noida"}) == 15
    assert score_listing(_flat(contact=""), {"locality": "metro"}) == 10
    assert score_listing(_flat(contact="", type="flat"), {"type": "2bhk"}) == 8


def test_keywords_score_per_token():
    assert score_listing(_flat(contact=""), {"keywords": "metro near parking"}) == 4


def test_score_is_never_negative_for_empty_inputs():
    assert score_listing({}, {}) == 0


def test_search_filters_sorts_and_keeps_tie_order():
    a = _flat(description="first", price=20000)
    b = _flat(description="second", price=14000)
    c = _flat(description="third", price=20000)
    elsewhere = _flat(city="Delhi", price=90000, contact="")

    hits = search_listings([a, b, c, elsewhere], {"city": "Noida", "budget": 15000})

    assert [h.item["description"] for h in hits] == ["second", "first", "third"]
    assert [h.score for h in hits] == [70, 45, 45]


def test_no_query_keeps_everything():
    listings = [_flat(contact=""), _flat(city="Delhi", contact="")]
    assert len(search_listings(listings, {})) == 2


def test_explicit_threshold():
    hits = search_listings([_flat(price=20000)], {"city": "Noida"}, score_threshold=100)
    assert hits == []


@pytest.mark.parametrize("max_results, expected", [(10, 50), (60, 60)])
def test_result_cap(max_results, expected):
    listings = [_flat() for _ in range(80)]
    assert len(search_listings(listings, {"city": "Noida"}, max_results=max_results)) == expected


def test_listing_objects_are_scored(drafts, listings):
    draft = drafts.create_draft("919876543210", "housing")
    drafts.update_draft_field(draft.id, "unitType", "2bhk")
    drafts.update_draft_field(draft.id, "rent", 14000)
    drafts.update_draft_field(draft.id, "location.area", "Sector 62")
    drafts.update_draft_field(draft.id, "location.city", "Noida")
    listing = listings.publish_from_draft(drafts.get_draft(draft.id))

    query = {"city": "Noida", "locality": "Sector 62", "type": "2bhk", "bhk": "2", "budget": 15000}
    assert score_listing(listing, query) == 40 + 30 + 30 + 20 + 25 + 5


def test_build_search_query():
    result = ClassificationResult(
        intent="property_search",
        confidence=0.9,
        context="find",
        entities={"city": "Noida", "location": "Sector 62", "unitType": "2bhk", "bhk": 2, "price": 15000},
    )
    query = build_search_query(result, "need 2bhk in sector 62 noida furnished")

    assert query == {
        "city": "Noida",
        "locality": "Sector 62",
        "type": "2bhk",
        "bhk": "2",
        "budget": 15000,
        "keywords": "furnished",
    }


def test_build_search_query_prefers_budget_and_skips_same_locality():
    result = ClassificationResult(
        intent="property_search",
        confidence=0.9,
        entities={"city": "Noida", "location": "Noida", "budget": 12000, "price": [12000, 3000]},
    )
    query = build_search_query(result, "room in noida under 12k")
    assert query == {"city": "Noida", "budget": 12000, "keywords": "room"}


def test_format_search_results():
    text = format_search_results([], limit=5)
    assert text == NO_RESULTS

    hits = search_listings([_flat(title="2BHK near metro", locality="Sector 18")], {"city": "Noida"})
    text = format_search_results(hits)
    assert "1. *2BHK near metro*" in text
    assert "📍 Sector 18, Noida" in text
    assert "💰 ₹14.00K" in text
    assert "📞 +91 98765 43210" in text
