import pytest

from marketbot.utils.locations import extract_location, find_city, title_place


def test_prepositional_phrase_gives_area_and_city():
    assert extract_location("plumber in Noida") == {"area": "Noida", "city": "Noida"}


def test_sector_with_city():
    assert extract_location("2bhk in sector 62 noida") == {"area": "Sector 62 Noida", "city": "Noida"}


def test_sector_without_preposition():
    assert extract_location("2bhk sector 18 rent 15000") == {"area": "Sector 18"}


def test_hindi_postposition():
    assert extract_location("flat chahiye delhi mein") == {"area": "Delhi", "city": "Delhi"}
    assert extract_location("kamra chahiye lajpat mein") == {"area": "Lajpat"}


def test_city_aliases():
    assert find_city("flat in gurugram") == "Gurgaon"
    assert find_city("greater noida flat") == "Greater Noida"


def test_nothing_found():
    assert extract_location("hello there") == {}
    assert extract_location("") == {}


def test_title_place():
    assert title_place("greater  noida") == "Greater Noida"
    assert title_place("sector 62") == "Sector 62"


@pytest.mark.parametrize("text", [
    "I'm a student in Delhi looking for a PG",
    "in Delhi need a room",
    "plumber in Delhi want work",
    "tutor in Delhi searching students",
    "in Delhi offering tuition",
])
def test_seeker_verbs_end_the_area(text):
    assert extract_location(text)["area"] == "Delhi"
