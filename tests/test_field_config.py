import pytest

from marketbot.field_config import (
    FIELD_CONFIGS,
    build_title,
    data_key_for,
    get_field_config,
    get_next_required_field,
    resolve_field,
)
from marketbot.models import CATEGORIES, Draft, empty_draft_data

SAMPLE_VALUES = {
    "unitType": "2bhk",
    "rent": 15000,
    "serviceType": "plumber",
    "description": "Fixing leaks and pipes, 10 years",
    "vehicleType": "car",
    "brand": "honda",
    "price": 250000,
    "itemType": "sofa",
    "jobPosition": "driver",
    "jobType": "full-time",
    "salary": 18000,
    "item": "rice",
    "quantity": "10 tons",
    "location.area": "Sector 62",
}


def _draft(category, values):
    draft = Draft(id="d1", owner_id="u1", category=category, data=empty_draft_data(category))
    for path, value in values.items():
        section, key = data_key_for(category, path)
        draft.data.setdefault(section, {})[key] = value
    return draft


def test_every_category_has_a_config():
    assert set(FIELD_CONFIGS) == set(CATEGORIES)
    for name, config in FIELD_CONFIGS.items():
        assert "location.area" in config.required
        for path in config.required:
            assert path in config.fields, (name, path)


@pytest.mark.parametrize("category", CATEGORIES)
def test_next_required_field_walks_declared_order(category):
    config = get_field_config(category)
    filled = {}
    for path in config.required:
        assert get_next_required_field(_draft(category, filled)) == path
        filled[path] = SAMPLE_VALUES[path]
    assert get_next_required_field(_draft(category, filled)) is None


def test_blank_strings_count_as_missing():
    draft = _draft("housing", {"unitType": "  ", "rent": 15000})
    assert get_next_required_field(draft) == "unitType"


def test_data_key_for_and_resolve_field():
    assert data_key_for("housing", "location.area") == ["location", "area"]
    assert data_key_for("housing", "rent") == ["housing", "rent"]
    data = {"housing": {"rent": 15000}, "location": {"area": "Sector 62"}}
    assert resolve_field(data, "housing", "rent") == 15000
    assert resolve_field(data, "housing", "location.area") == "Sector 62"
    assert resolve_field({}, "housing", "rent") is None


def test_field_clean_normalizes_and_validates():
    housing = FIELD_CONFIGS["housing"].fields
    assert housing["unitType"].clean("2 BHK") == (True, "2bhk")
    assert housing["unitType"].clean("castle") == (False, None)
    assert housing["rent"].clean("15k") == (True, 15000)
    assert housing["rent"].clean("free") == (False, None)

    description = FIELD_CONFIGS["urban_help"].fields["description"]
    assert description.clean("short") == (False, None)
    assert description.clean("Fixing leaks and pipes")[0] is True

    assert FIELD_CONFIGS["job"].fields["jobType"].clean("Full time") == (True, "full-time")
    assert FIELD_CONFIGS["commodity"].fields["quantity"].clean("lots") == (False, None)


def test_render_money_and_upper():
    housing = FIELD_CONFIGS["housing"].fields
    assert housing["rent"].render(15000) == "₹15.00K"
    assert housing["unitType"].render("2bhk") == "2BHK"


def test_build_title():
    data = {"urban_help": {"serviceType": "plumber"}, "location": {"area": "Noida"}}
    assert build_title("urban_help", data) == "Plumber in Noida"

    data = {"housing": {"unitType": "2bhk"}, "location": {"area": "sector 62"}}
    assert build_title("housing", data) == "2BHK in Sector 62 for Rent"

    data = {"urban_help": {"serviceType": "plumber"}, "location": {}}
    assert build_title("urban_help", data) == "Plumber"
