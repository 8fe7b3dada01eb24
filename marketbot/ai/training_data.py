# marketbot/ai/training_data.py
"""
Static example utterances per intent, used by the TF-IDF fallback.
Loaded once at import time and never mutated.
"""
from types import MappingProxyType
from typing import Mapping, Tuple

_CORPUS = {
    "greeting": (
        "hi",
        "hello",
        "hey there",
        "good morning",
        "namaste",
        "vanakkam",
    ),
    "farewell": (
        "bye",
        "goodbye",
        "thanks bye",
        "see you later",
        "thank you so much",
    ),
    "general_help": (
        "i need help",
        "can you assist me",
        "what can you do",
        "show me options",
        "help needed",
        "guide me",
        "what services",
        "how to use",
        "need assistance",
        "menu",
    ),
    "property_search": (
        "looking for 2bhk in noida",
        "need 3 bhk flat",
        "want to buy apartment in gurgaon",
        "searching for house in delhi",
        "i need property",
        "show me flats for sale",
        "find me a house",
        "2 bhk in greater noida",
        "3 bedroom flat in noida extension",
        "looking for pg in delhi",
    ),
    "property_rent": (
        "want to rent a house",
        "looking for rental apartment",
        "need pg accommodation",
        "room for rent",
        "flat on rent",
        "house for rent",
        "rental property needed",
        "paying guest accommodation",
        "flatmate wanted",
        "shared room required",
    ),
    "property_sale": (
        "i have a flat for rent",
        "my 2bhk is available for rent",
        "selling my apartment",
        "house for sale by owner",
        "want to sell my plot",
        "room available for bachelors",
        "to let 1bhk independent floor",
        "pg available for girls",
    ),
    "service_request": (
        "need electrician in greater noida",
        "looking for plumber",
        "want carpenter service",
        "need home cleaning service",
        "require ac repair",
        "electrician needed",
        "plumber required",
        "carpenter for furniture",
        "cleaning service at home",
        "technician for repair",
    ),
    "service_offer": (
        "i am a plumber",
        "i am an electrician with 5 years experience",
        "i provide home cleaning service",
        "i offer tuition classes",
        "available for carpentry work",
        "experienced painter available",
        "i do ac repair",
        "maid available for cooking and cleaning",
    ),
    "commodity_search": (
        "looking for 2 ton steel",
        "need 5 ton rice",
        "want to buy cement",
        "searching for wheat",
        "need construction materials",
        "steel required",
        "rice needed",
        "cement for construction",
        "wheat purchase",
        "building materials",
    ),
    "commodity_sell": (
        "selling 10 ton rice",
        "cement bags available",
        "wholesale wheat for sale",
        "i have 5 ton steel to sell",
        "bricks available in bulk",
        "supplier of sand and gravel",
    ),
    "vehicle_buy": (
        "want to buy a car",
        "looking for second hand bike",
        "need used scooter",
        "searching for maruti swift",
        "buy honda activa",
    ),
    "vehicle_sell": (
        "want to sell my car",
        "selling my bike",
        "used car for sale",
        "sell bike",
        "hyundai i20 for sale",
        "my scooty is available",
    ),
    "electronics_buy": (
        "need to purchase electronics",
        "buy mobile phone",
        "purchase television",
        "looking for second hand laptop",
        "want a used fridge",
    ),
    "electronics_sell": (
        "selling old laptop",
        "iphone for sale",
        "want to sell my tv",
        "samsung phone available",
        "selling washing machine",
    ),
    "furniture_buy": (
        "looking to buy furniture",
        "new furniture buy",
        "need a sofa set",
        "want second hand bed",
        "looking for study table",
    ),
    "furniture_sell": (
        "selling my sofa",
        "dining table for sale",
        "wooden almirah available",
        "want to sell furniture",
        "second hand items",
    ),
    "job_search": (
        "i need a job",
        "looking for driver job",
        "any vacancy for delivery boy",
        "searching for part time work",
        "naukri chahiye",
    ),
    "job_offer": (
        "we are hiring drivers",
        "vacancy for receptionist",
        "need staff for my shop",
        "hiring delivery boys in noida",
        "job opening for accountant",
    ),
}

TRAINING_CORPUS: Mapping[str, Tuple[str, ...]] = MappingProxyType(_CORPUS)

INTENTS: Tuple[str, ...] = tuple(_CORPUS)
