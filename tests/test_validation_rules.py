"""Tests for apiframework.validation.validation_errors."""

from apiframework.validation import DEFAULT_RULES, validation_errors

RULESET = {
    "name": ["required", "alphanumeric"],
    "email": ["email"],
    "age": ["numeric"],
}


def test_valid_attributes():
    attributes = {"name": "alice", "email": "alice@example.com", "age": "31"}
    assert validation_errors(attributes, RULESET) == {}


def test_required_missing_and_blank():
    assert validation_errors({}, RULESET) == {"name": "required"}
    assert validation_errors({"name": "   "}, RULESET) == {"name": "required"}
    assert validation_errors({"name": None}, RULESET) == {"name": "required"}


def test_required_stops_further_rules():
    assert validation_errors({"name": ""}, {"name": ["required", "email"]}) == {"name": "required"}


def test_rule_failures():
    errors = validation_errors({"name": "al", "email": "not an email", "age": "old"}, RULESET)
    assert errors == {"email": "email", "age": "numeric"}


def test_patterns_match_anywhere():
    # rule patterns are searched, not anchored
    assert validation_errors({"age": "31 years"}, RULESET) == {}


def test_unknown_rule_fails():
    assert validation_errors({"name": "x"}, {"name": ["uuid"]}) == {"name": "uuid"}


def test_custom_patterns():
    patterns = {**DEFAULT_RULES, "slug": r"^[a-z-]+$"}
    assert validation_errors({"s": "a-b"}, {"s": ["slug"]}, patterns) == {}
    assert validation_errors({"s": "A B"}, {"s": ["slug"]}, patterns) == {"s": "slug"}


def test_fields_without_rules_are_ignored():
    assert validation_errors({"other": ""}, RULESET) == {"name": "required"}
