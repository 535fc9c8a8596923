"""
Unit tests for the rule-based advisory fallback
"""
import pytest

from services.fallback_responses import (
    classify,
    fallback_response,
    detect_query_type,
    TOPIC_PRIORITY,
    DISEASE_RESPONSE,
    DISEASE_RESPONSE_BRIEF,
    UPSELL_NOTICE,
    IMAGE_TIP,
    FERTILIZER_RESPONSE,
    PEST_RESPONSE,
    GENERAL_RESPONSE,
)

TOMATO_QUESTION = "My tomato leaves have brown spots"


def test_tomato_brown_spots_free_user():
    text = fallback_response(TOMATO_QUESTION, is_paid_user=False)

    assert text == DISEASE_RESPONSE_BRIEF + UPSELL_NOTICE
    assert "Upgrade to Premium" in text
    assert "Powdery Mildew" not in text


def test_tomato_brown_spots_paid_user():
    text = fallback_response(TOMATO_QUESTION, is_paid_user=True)

    assert text == DISEASE_RESPONSE
    assert "1. **Leaf Spot Disease**" in text
    assert "2. **Root Rot**" in text
    assert "3. **Powdery Mildew**" in text
    assert "Upgrade to Premium" not in text


def test_unrelated_text_gets_capabilities_message():
    assert fallback_response("Hello, who are you?") == GENERAL_RESPONSE
    assert fallback_response("Hello, who are you?", is_paid_user=True) == GENERAL_RESPONSE


def test_topic_priority_order():
    assert TOPIC_PRIORITY == ["disease", "pest", "fertilizer", "weather", "market", "water", "soil"]


@pytest.mark.parametrize("message,expected", [
    ("pest on the leaf", "disease"),
    ("insect and fertilizer", "pest"),
    ("fertilizer before rain", "fertilizer"),
    ("rain and price", "weather"),
    ("market water", "market"),
    ("water my soil", "water"),
    ("soil", "soil"),
])
def test_first_matching_topic_wins(message, expected):
    assert classify(message) == expected


def test_matching_is_case_insensitive():
    assert classify("CATERPILLAR damage") == "pest"
    assert classify("NPK ratio?") == "fertilizer"


def test_image_without_keyword_is_disease():
    assert classify("what is this?", has_image=True) == "disease"
    assert classify("what is this?") is None


def test_image_does_not_override_keyword_topic():
    assert classify("any bug here?", has_image=True) == "pest"
    assert fallback_response("any bug here?", has_image=True) == PEST_RESPONSE


def test_image_tip_appended_for_disease():
    free_text = fallback_response("check this", is_paid_user=False, has_image=True)
    paid_text = fallback_response("check this", is_paid_user=True, has_image=True)

    assert free_text == DISEASE_RESPONSE_BRIEF + IMAGE_TIP + UPSELL_NOTICE
    assert paid_text == DISEASE_RESPONSE + IMAGE_TIP


def test_non_disease_topics_same_for_both_tiers():
    question = "What fertilizer for rice?"
    assert fallback_response(question, is_paid_user=False) == FERTILIZER_RESPONSE
    assert fallback_response(question, is_paid_user=True) == FERTILIZER_RESPONSE


def test_detect_query_type_labels_unmatched_as_general():
    assert detect_query_type("Hello there") == "general"
    assert detect_query_type("irrigation schedule") == "water"
    assert detect_query_type("", has_image=True) == "disease"


def test_empty_message_is_general():
    assert classify("") is None
    assert classify(None) is None
    assert fallback_response("") == GENERAL_RESPONSE
