import pytest

from marketbot.ai.classifier import (
    IntentClassifier,
    category_for_intent,
    detect_context,
    detect_language,
    remap_intent,
)


@pytest.fixture(scope="module")
def classifier():
    return IntentClassifier()


def test_greeting_fast_path(classifier):
    result = classifier.classify("Hello!")
    assert result.intent == "greeting"
    assert result.confidence == 0.95
    assert result.source == "quick"
    assert result.is_confident


def test_greeting_allows_two_extra_words(classifier):
    assert classifier.classify("hi there friend").intent == "greeting"
    assert classifier.classify("thank you so much").intent == "farewell"


def test_offering_a_service(classifier):
    result = classifier.classify("I am a plumber in Noida")
    assert result.context == "offer"
    assert result.intent == "service_offer"
    assert category_for_intent(result.intent) == "urban_help"
    assert result.entities["serviceType"] == "plumber"


def test_seeking_a_service(classifier):
    result = classifier.classify("I need a plumber in Noida")
    assert result.context == "find"
    assert result.intent == "service_request"
    assert result.entities["location"] == "Noida"


def test_context_remaps_housing(classifier):
    assert classifier.classify("2bhk available for rent in Noida").intent == "property_sale"
    assert classifier.classify("Looking for a 2bhk in Noida").intent == "property_search"


def test_context_remaps_goods(classifier):
    assert classifier.classify("selling my sofa").intent == "furniture_sell"
    assert classifier.classify("want to buy a car").intent == "vehicle_buy"


def test_hindi_message(classifier):
    result = classifier.classify("2bhk chahiye noida mein")
    assert result.intent == "property_search"
    assert result.context == "find"
    assert result.language == "hi"


def test_tfidf_single_intent_token(classifier):
    result = classifier.classify("flatmate")
    assert result.source == "tfidf"
    assert result.intent == "property_rent"
    assert result.confidence == pytest.approx(1.0)


def test_tfidf_close_second_is_an_alternative(classifier):
    result = classifier.classify("delivery")
    assert result.intent == "job_search"
    assert result.confidence == pytest.approx(0.5)
    assert result.alternatives == [("job_offer", 0.5)]


@pytest.mark.parametrize("text", ["", None, "xyzzy qwerty"])
def test_unknown_input_falls_back_to_general_help(classifier, text):
    result = classifier.classify(text)
    assert result.intent == "general_help"
    assert result.confidence == pytest.approx(0.1)
    assert not result.is_confident


@pytest.mark.parametrize(
    "text",
    ["hello", "menu", "ac repair", "need 5 ton rice", "random words here", "2bhk in sector 62"],
)
def test_confidence_is_bounded(classifier, text):
    result = classifier.classify(text)
    assert 0.0 <= result.confidence <= 1.0
    if result.confidence <= 0.3:
        assert not result.is_confident


def test_detect_context_offer_wins():
    assert detect_context("I am a cook, looking for work") == "offer"
    assert detect_context("I need a cook") == "find"
    assert detect_context("cook") is None


def test_remap_intent():
    assert remap_intent("property_search", "offer") == "property_sale"
    assert remap_intent("vehicle_sell", "find") == "vehicle_buy"
    assert remap_intent("greeting", "offer") == "greeting"
    assert remap_intent("job_search", None) == "job_search"


def test_detect_language():
    assert detect_language("mujhe flat chahiye") == "hi"
    assert detect_language("enakku veedu venum") == "ta"
    assert detect_language("मुझे फ्लैट चाहिए") == "hi"
    assert detect_language("I want a flat") == "en"
