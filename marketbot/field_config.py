# marketbot/field_config.py
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .utils.amounts import format_amount, parse_price

LOCATION_PREFIX = "location."


def data_key_for(category: str, path: str) -> List[str]:
    """
    Field path -> key path inside Draft.data.
      "location.area" -> ["location", "area"]
      "serviceType"   -> [category, "serviceType"]
    """
    if path.startswith(LOCATION_PREFIX):
        return ["location", path[len(LOCATION_PREFIX):]]
    return [category, path]


def resolve_field(data: Dict[str, Any], category: str, path: str) -> Any:
    cur: Any = data or {}
    for key in data_key_for(category, path):
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


# ---- validators / normalizers ----

def _non_empty(value: Any) -> bool:
    return not is_blank(value)


def _longer_than(n: int) -> Callable[[Any], bool]:
    def check(value: Any) -> bool:
        return isinstance(value, str) and len(value.strip()) > n
    return check


def _positive_amount(value: Any) -> bool:
    return isinstance(value, (int, float)) and value > 0


def _non_negative_amount(value: Any) -> bool:
    return isinstance(value, (int, float)) and value >= 0


_UNIT_TYPE_RE = re.compile(r"^(?:[1-9]\s*(?:bhk|rk)|studio|pg)$")
_JOB_TYPES = ("full-time", "part-time", "contract", "internship", "freelance", "temporary", "permanent")


def _unit_type_ok(value: Any) -> bool:
    return isinstance(value, str) and bool(_UNIT_TYPE_RE.match(value))


def _job_type_ok(value: Any) -> bool:
    return value in _JOB_TYPES


def _quantity_ok(value: Any) -> bool:
    return isinstance(value, str) and bool(re.search(r"\d", value))


def _year_ok(value: Any) -> bool:
    return isinstance(value, int) and 1980 <= value <= 2100


def _text(value: Any) -> str:
    return re.sub(r"\s+", " ", str(value)).strip()


def _lower_text(value: Any) -> str:
    return _text(value).lower()


def _unit_type(value: Any) -> str:
    v = _lower_text(value)
    if v in ("paying guest", "p.g."):
        return "pg"
    m = re.match(r"^(\d)\s*(bhk|rk|bedroom)s?$", v)
    if m:
        return f"{m.group(1)}{'rk' if m.group(2) == 'rk' else 'bhk'}"
    return v


def _job_type(value: Any) -> str:
    return re.sub(r"[\s\-]+", "-", _lower_text(value))


def _year(value: Any) -> Optional[int]:
    m = re.search(r"\b(\d{4})\b", str(value))
    return int(m.group(1)) if m else None


def _amount(value: Any) -> Any:
    return parse_price(value)


def _capitalized(value: Any) -> str:
    s = _text(value)
    return s[:1].upper() + s[1:]


def _upper(value: Any) -> str:
    return _text(value).upper()


def _money(value: Any) -> str:
    return f"₹{format_amount(value)}"


@dataclass(frozen=True)
class FieldSpec:
    question: str
    label: str
    validation: Optional[Callable[[Any], bool]] = None
    normalize: Optional[Callable[[Any], Any]] = None
    display: Optional[Callable[[Any], str]] = None
    hint: Optional[str] = None

    def clean(self, raw: Any) -> Tuple[bool, Any]:
        """
        Normalizes a raw answer and runs the validator.
        Returns (ok, value); value is the normalized form when ok.
        """
        if is_blank(raw):
            return False, None
        value = raw
        if self.normalize is not None:
            try:
                value = self.normalize(raw)
            except (TypeError, ValueError):
                return False, None
        if is_blank(value):
            return False, None
        if self.validation is not None and not self.validation(value):
            return False, None
        return True, value

    def render(self, value: Any) -> str:
        if self.display is not None:
            return self.display(value)
        return _text(value)


@dataclass(frozen=True)
class FieldConfig:
    category: str
    display_name: str
    required: List[str]
    optional: List[str]
    fields: Dict[str, FieldSpec]
    type_field: str
    title_template: str
    # field paths shown in the confirmation summary, in order
    summary: List[str] = field(default_factory=list)

    def question_for(self, path: str) -> str:
        spec = self.fields.get(path)
        if spec is None:
            return f"Please provide {path}:"
        return spec.question


_AREA = FieldSpec(
    question="Which area or sector?",
    label="Area",
    normalize=_text,
    validation=_non_empty,
    display=_capitalized,
)
_CITY = FieldSpec(
    question="Which city? (Optional)",
    label="City",
    normalize=_text,
    display=_capitalized,
)
_CONDITION = FieldSpec(
    question="Condition? (New / Used)",
    label="Condition",
    normalize=_lower_text,
    display=_capitalized,
)


FIELD_CONFIGS: Dict[str, FieldConfig] = {
    "housing": FieldConfig(
        category="housing",
        display_name="🏠 Housing",
        required=["unitType", "rent", "location.area"],
        optional=["deposit", "furnishing", "description", "location.city"],
        type_field="unitType",
        title_template="{unitType} in {area} for Rent",
        summary=["unitType", "rent", "deposit", "furnishing", "location.area", "location.city"],
        fields={
            "unitType": FieldSpec(
                question="What type of property? (1BHK, 2BHK, 3BHK, Studio, PG)",
                label="Property",
                normalize=_unit_type,
                validation=_unit_type_ok,
                display=_upper,
                hint="Please reply with one of: 1BHK, 2BHK, 3BHK, Studio, PG.",
            ),
            "rent": FieldSpec(
                question="What is the monthly rent? (e.g., 15000)",
                label="Rent",
                normalize=_amount,
                validation=_positive_amount,
                display=_money,
                hint="Please send the rent as a number, e.g. 15000 or 15k.",
            ),
            "deposit": FieldSpec(
                question="Security deposit amount? (Optional)",
                label="Deposit",
                normalize=_amount,
                validation=_non_negative_amount,
                display=_money,
            ),
            "furnishing": FieldSpec(
                question="Furnishing? (Furnished / Semi-furnished / Unfurnished)",
                label="Furnishing",
                normalize=_lower_text,
                display=_capitalized,
            ),
            "description": FieldSpec(
                question="Anything else tenants should know?",
                label="Details",
                normalize=_text,
            ),
            "location.area": _AREA,
            "location.city": _CITY,
        },
    ),
    "urban_help": FieldConfig(
        category="urban_help",
        display_name="🔧 Urban Help",
        required=["serviceType", "description", "location.area"],
        optional=["price", "experience", "location.city"],
        type_field="serviceType",
        title_template="{serviceType} in {area}",
        summary=["serviceType", "description", "experience", "price", "location.area", "location.city"],
        fields={
            "serviceType": FieldSpec(
                question="What service do you offer? (Plumber, Electrician, Cleaner, Tutor, etc.)",
                label="Service",
                normalize=_lower_text,
                validation=_non_empty,
                display=_capitalized,
            ),
            "description": FieldSpec(
                question="Please describe your service",
                label="Description",
                normalize=_text,
                validation=_longer_than(10),
                hint="A few words more please, at least 11 characters.",
            ),
            "price": FieldSpec(
                question="What do you charge? (Optional)",
                label="Rate",
                normalize=_amount,
                validation=_positive_amount,
                display=_money,
            ),
            "experience": FieldSpec(
                question="How many years of experience? (Optional)",
                label="Experience",
                normalize=_text,
            ),
            "location.area": FieldSpec(
                question="Which area do you serve?",
                label="Area",
                normalize=_text,
                validation=_non_empty,
                display=_capitalized,
            ),
            "location.city": _CITY,
        },
    ),
    "vehicle": FieldConfig(
        category="vehicle",
        display_name="🚗 Vehicle",
        required=["vehicleType", "brand", "price", "location.area"],
        optional=["model", "year", "kmDriven", "condition", "location.city"],
        type_field="vehicleType",
        title_template="{brand} {vehicleType} in {area}",
        summary=["vehicleType", "brand", "model", "year", "kmDriven", "condition", "price",
                 "location.area", "location.city"],
        fields={
            "vehicleType": FieldSpec(
                question="What type of vehicle? (Car, Bike, Scooter, etc.)",
                label="Vehicle",
                normalize=_lower_text,
                validation=_non_empty,
                display=_capitalized,
            ),
            "brand": FieldSpec(
                question="Which brand? (Maruti, Honda, Hero, etc.)",
                label="Brand",
                normalize=_lower_text,
                validation=_non_empty,
                display=_capitalized,
            ),
            "model": FieldSpec(question="Which model? (Optional)", label="Model", normalize=_text),
            "year": FieldSpec(
                question="Year of purchase? (Optional)",
                label="Year",
                normalize=_year,
                validation=_year_ok,
                hint="Please send a 4-digit year, e.g. 2019.",
            ),
            "kmDriven": FieldSpec(
                question="Kilometres driven? (Optional)",
                label="Km driven",
                normalize=_amount,
                validation=_non_negative_amount,
                display=lambda v: f"{format_amount(v)} km",
            ),
            "condition": _CONDITION,
            "price": FieldSpec(
                question="What is your asking price? (e.g., 2.5 lakh)",
                label="Price",
                normalize=_amount,
                validation=_positive_amount,
                display=_money,
                hint="Please send the price as a number, e.g. 250000 or 2.5 lakh.",
            ),
            "location.area": _AREA,
            "location.city": _CITY,
        },
    ),
    "electronics": FieldConfig(
        category="electronics",
        display_name="📱 Electronics",
        required=["itemType", "brand", "price", "location.area"],
        optional=["model", "condition", "location.city"],
        type_field="itemType",
        title_template="{brand} {itemType} in {area}",
        summary=["itemType", "brand", "model", "condition", "price", "location.area", "location.city"],
        fields={
            "itemType": FieldSpec(
                question="What item are you selling? (Mobile, Laptop, TV, Fridge, etc.)",
                label="Item",
                normalize=_lower_text,
                validation=_non_empty,
                display=_capitalized,
            ),
            "brand": FieldSpec(
                question="Which brand?",
                label="Brand",
                normalize=_lower_text,
                validation=_non_empty,
                display=_capitalized,
            ),
            "model": FieldSpec(question="Which model? (Optional)", label="Model", normalize=_text),
            "condition": _CONDITION,
            "price": FieldSpec(
                question="What is your asking price?",
                label="Price",
                normalize=_amount,
                validation=_positive_amount,
                display=_money,
                hint="Please send the price as a number, e.g. 12000 or 12k.",
            ),
            "location.area": _AREA,
            "location.city": _CITY,
        },
    ),
    "furniture": FieldConfig(
        category="furniture",
        display_name="🛋️ Furniture",
        required=["itemType", "price", "location.area"],
        optional=["material", "condition", "location.city"],
        type_field="itemType",
        title_template="{itemType} in {area}",
        summary=["itemType", "material", "condition", "price", "location.area", "location.city"],
        fields={
            "itemType": FieldSpec(
                question="What furniture item? (Sofa, Bed, Table, Almirah, etc.)",
                label="Item",
                normalize=_lower_text,
                validation=_non_empty,
                display=_capitalized,
            ),
            "material": FieldSpec(
                question="Material? (Optional)",
                label="Material",
                normalize=_lower_text,
                display=_capitalized,
            ),
            "condition": _CONDITION,
            "price": FieldSpec(
                question="What is your asking price?",
                label="Price",
                normalize=_amount,
                validation=_positive_amount,
                display=_money,
                hint="Please send the price as a number, e.g. 8000 or 8k.",
            ),
            "location.area": _AREA,
            "location.city": _CITY,
        },
    ),
    "job": FieldConfig(
        category="job",
        display_name="💼 Job",
        required=["jobPosition", "jobType", "salary", "location.area"],
        optional=["experience", "description", "location.city"],
        type_field="jobPosition",
        title_template="{jobPosition} ({jobType}) in {area}",
        summary=["jobPosition", "jobType", "salary", "experience", "description", "location.area", "location.city"],
        fields={
            "jobPosition": FieldSpec(
                question="Which position are you hiring for? (Driver, Cook, Sales, etc.)",
                label="Position",
                normalize=_lower_text,
                validation=_non_empty,
                display=_capitalized,
            ),
            "jobType": FieldSpec(
                question="Job type? (Full-time, Part-time, Contract, Internship)",
                label="Type",
                normalize=_job_type,
                validation=_job_type_ok,
                display=_capitalized,
                hint="Please reply with Full-time, Part-time, Contract or Internship.",
            ),
            "salary": FieldSpec(
                question="Monthly salary offered? (e.g., 18000)",
                label="Salary",
                normalize=_amount,
                validation=_positive_amount,
                display=_money,
                hint="Please send the salary as a number, e.g. 18000 or 18k.",
            ),
            "experience": FieldSpec(
                question="Experience required? (Optional)",
                label="Experience",
                normalize=_text,
            ),
            "description": FieldSpec(
                question="Any other details? (Optional)",
                label="Details",
                normalize=_text,
            ),
            "location.area": FieldSpec(
                question="Where is the job located?",
                label="Area",
                normalize=_text,
                validation=_non_empty,
                display=_capitalized,
            ),
            "location.city": _CITY,
        },
    ),
    "commodity": FieldConfig(
        category="commodity",
        display_name="📦 Commodity",
        required=["item", "quantity", "price", "location.area"],
        optional=["quality", "location.city"],
        type_field="item",
        title_template="{quantity} {item} in {area}",
        summary=["item", "quantity", "quality", "price", "location.area", "location.city"],
        fields={
            "item": FieldSpec(
                question="What are you selling? (Rice, Wheat, Cement, Steel, etc.)",
                label="Item",
                normalize=_lower_text,
                validation=_non_empty,
                display=_capitalized,
            ),
            "quantity": FieldSpec(
                question="How much quantity? (e.g., 5 ton, 100 bags)",
                label="Quantity",
                normalize=_lower_text,
                validation=_quantity_ok,
                hint="Please include a number, e.g. 5 ton or 100 bags.",
            ),
            "quality": FieldSpec(
                question="Quality / grade? (Optional)",
                label="Quality",
                normalize=_lower_text,
                display=_capitalized,
            ),
            "price": FieldSpec(
                question="What is the price? (total or per unit)",
                label="Price",
                normalize=_amount,
                validation=_positive_amount,
                display=_money,
                hint="Please send the price as a number, e.g. 45000 or 45k.",
            ),
            "location.area": _AREA,
            "location.city": _CITY,
        },
    ),
}


def get_field_config(category: Optional[str]) -> Optional[FieldConfig]:
    return FIELD_CONFIGS.get(category or "")


def get_next_required_field(draft) -> Optional[str]:
    """
    First required path (declared order) whose value is missing or blank.
    None means the draft is complete.
    """
    config = get_field_config(draft.category)
    if config is None:
        return None
    for path in config.required:
        if is_blank(resolve_field(draft.data, draft.category, path)):
            return path
    return None


def build_title(category: str, data: Dict[str, Any]) -> str:
    """
    Listing title from the category template, e.g. "Plumber in Noida",
    "2BHK in Noida for Rent". The " in {area}" part is dropped without an area.
    """
    config = get_field_config(category)
    if config is None:
        return category

    area = resolve_field(data, category, "location.area")
    template = config.title_template
    if is_blank(area):
        template = template.replace(" in {area}", "")

    values: Dict[str, str] = {"area": "" if is_blank(area) else _capitalized(area)}
    for path, spec in config.fields.items():
        if path.startswith(LOCATION_PREFIX):
            continue
        value = resolve_field(data, category, path)
        if is_blank(value):
            values[path] = ""
        elif spec.display is _upper:
            values[path] = _upper(value)
        else:
            values[path] = _capitalized(value)

    title = re.sub(r"\s+", " ", template.format(**values)).strip()
    return title or config.display_name
