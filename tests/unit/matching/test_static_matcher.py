"""Tests for the tiered StaticMatcher."""

from __future__ import annotations

import pytest

from fieldwise.matching.classifier import classify_field
from fieldwise.matching.static_matcher import StaticMatcher, fill_summary, filter_high_confidence
from fieldwise.models.form import InputType, Provenance, SemanticClass
from tests.fakes.builders import make_field, make_mapping, make_profile


@pytest.fixture
def matcher():
    return StaticMatcher()


class TestTiers:
    def test_semantic_class_hit(self, matcher):
        field = classify_field({"dom_path": "#e", "input_type": "email", "label_text": "Your Email"})
        [mapping] = matcher.match([field], make_profile(email="j@x.com"))
        assert mapping.value == "j@x.com"
        assert mapping.confidence == 1.0
        assert mapping.provenance == Provenance.STATIC

    def test_exact_key_hit(self, matcher):
        [mapping] = matcher.match([make_field("nickname")], make_profile(nickname="JJ"))
        assert mapping.value == "JJ"
        assert mapping.confidence == 0.95

    def test_exact_key_ignores_case_spacing_and_punctuation(self, matcher):
        profile = make_profile(**{"Company  Name:": "Acme", "E.Mail": "j@x.com"})
        mappings = matcher.match([make_field("company name"), make_field("email")], profile)
        assert [(m.value, m.confidence) for m in mappings] == [("Acme", 0.95), ("j@x.com", 0.95)]

    def test_pattern_hit(self, matcher):
        [mapping] = matcher.match([make_field("given names")], make_profile(firstName="Jordan"))
        assert mapping.value == "Jordan"
        assert mapping.confidence == 0.8

    def test_partial_hit(self, matcher):
        field = classify_field({"dom_path": "#l", "label_text": "LinkedIn"})
        [mapping] = matcher.match([field], make_profile(linkedin_url="https://linkedin.com/in/j"))
        assert mapping.value == "https://linkedin.com/in/j"
        assert mapping.confidence == 0.7

    def test_empty_profile_values_are_ignored(self, matcher):
        assert matcher.match([make_field("email", SemanticClass.EMAIL)], make_profile(email="")) == []

    def test_no_match(self, matcher):
        assert matcher.match([make_field("favorite color")], make_profile(email="j@x.com")) == []


class TestCredentials:
    def test_password_never_matched(self, matcher):
        field = make_field("password", SemanticClass.PASSWORD, InputType.PASSWORD)
        assert matcher.match([field], make_profile(password="hunter2")) == []

    def test_denylisted_label_never_matched(self, matcher):
        assert matcher.match([make_field("ssn")], make_profile(ssn="123-45-6789")) == []


class TestNameReconciliation:
    def test_joins_first_and_last(self, matcher):
        field = make_field("full name", SemanticClass.FULL_NAME)
        [mapping] = matcher.match([field], make_profile(firstName="Jordan", lastName="Rivera"))
        assert mapping.value == "Jordan Rivera"
        assert mapping.confidence == 0.9

    def test_splits_full_name_on_first_whitespace(self, matcher):
        first = make_field("first name", SemanticClass.FIRST_NAME)
        last = make_field("last name", SemanticClass.LAST_NAME)
        mappings = matcher.match([first, last], make_profile(fullName="Jordan  Lee Rivera"))
        values = {m.field_id: (m.value, m.confidence) for m in mappings}
        assert values == {"first-name": ("Jordan", 0.9), "last-name": ("Lee Rivera", 0.9)}

    def test_direct_name_keys_win(self, matcher):
        first = make_field("first name", SemanticClass.FIRST_NAME)
        [mapping] = matcher.match([first], make_profile(firstName="Jo", fullName="Jordan Rivera"))
        assert mapping.value == "Jo"
        assert mapping.confidence == 1.0


class TestHelpers:
    def test_filter_high_confidence(self):
        field = make_field("a")
        mappings = [make_mapping(field, "x", 0.69), make_mapping(field, "y", 0.7)]
        assert [m.value for m in filter_high_confidence(mappings)] == ["y"]

    def test_fill_summary(self):
        mappings = [make_mapping(make_field(f"field {i}"), "v") for i in range(7)]
        assert fill_summary(mappings) == "field 0, field 1, field 2, field 3, field 4 and 2 more"
        assert fill_summary([]) == "No fields to fill"
