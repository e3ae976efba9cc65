"""Tests for field classification and form structure hashing."""

from __future__ import annotations

import pytest

from fieldwise.core.exceptions import InvalidFieldDescriptorError
from fieldwise.matching.classifier import (
    UNKNOWN_LABEL,
    build_normalized_label,
    classify_field,
    classify_form,
    extract_domain,
    form_structure_hash,
    infer_semantic_class,
    normalize_text,
    parse_input_type,
)
from fieldwise.models.form import InputType, RawFieldDescriptor, SemanticClass


class TestNormalizeText:
    def test_lowercases_and_strips_punctuation(self):
        assert normalize_text("  Your E-mail: ") == "your e-mail"

    def test_collapses_whitespace(self):
        assert normalize_text("First \n\t Name*") == "first name"


class TestParseInputType:
    def test_known_kind(self):
        assert parse_input_type("EMAIL") == InputType.EMAIL

    def test_unknown_kind(self):
        assert parse_input_type("color") == InputType.UNKNOWN
        assert parse_input_type(None) == InputType.UNKNOWN


class TestNormalizedLabel:
    def test_label_text_wins_over_placeholder(self):
        raw = RawFieldDescriptor(dom_path="#a", label_text="Email Address", placeholder="you@example.com")
        assert build_normalized_label(raw) == "email address"

    def test_falls_back_through_sources(self):
        raw = RawFieldDescriptor(dom_path="#a", label_text="  ", name="phone_number")
        assert build_normalized_label(raw) == "phone_number"

    def test_parent_text_is_truncated(self):
        raw = RawFieldDescriptor(dom_path="#a", parent_text="x" * 80)
        assert build_normalized_label(raw) == "x" * 50

    def test_no_sources_gives_unknown_label(self):
        assert build_normalized_label(RawFieldDescriptor(dom_path="#a")) == UNKNOWN_LABEL


class TestInferSemanticClass:
    def test_autocomplete_takes_precedence(self):
        assert infer_semantic_class("email", "given-name", InputType.TEXT) == SemanticClass.FIRST_NAME

    def test_input_type_beats_label(self):
        assert infer_semantic_class("contact", None, InputType.EMAIL) == SemanticClass.EMAIL
        assert infer_semantic_class("secret", None, InputType.PASSWORD) == SemanticClass.PASSWORD

    @pytest.mark.parametrize(
        "label, expected",
        [
            ("first name", SemanticClass.FIRST_NAME),
            ("surname", SemanticClass.LAST_NAME),
            ("user name", SemanticClass.USERNAME),
            ("company name", SemanticClass.COMPANY),
            ("your name", SemanticClass.FULL_NAME),
            ("address line 2", SemanticClass.ADDRESS_LINE2),
            ("apartment", SemanticClass.ADDRESS_LINE2),
            ("street address", SemanticClass.ADDRESS_LINE1),
            ("zip code", SemanticClass.ZIP),
            ("date of birth", SemanticClass.DATE_OF_BIRTH),
            ("linkedin", SemanticClass.UNKNOWN),
        ],
    )
    def test_label_patterns(self, label, expected):
        assert infer_semantic_class(label, None, InputType.TEXT) == expected


class TestClassifyField:
    def test_builds_signature_from_mapping(self):
        field = classify_field(
            {"dom_path": "#email", "input_type": "email", "label_text": "Your Email", "name": "email"},
            field_id="f1",
        )
        assert field.id == "f1"
        assert field.normalized_label == "your email"
        assert field.semantic_class == SemanticClass.EMAIL
        assert field.input_type == InputType.EMAIL
        assert field.attributes.name == "email"

    def test_assigns_unique_ids(self):
        a = classify_field({"dom_path": "#a"})
        b = classify_field({"dom_path": "#a"})
        assert a.id != b.id

    def test_rejects_non_mapping(self):
        with pytest.raises(InvalidFieldDescriptorError):
            classify_field("not a descriptor")

    def test_rejects_missing_dom_path(self):
        with pytest.raises(InvalidFieldDescriptorError):
            classify_field({"label_text": "Email"})


class TestClassifyForm:
    def test_extracts_domain(self):
        form = classify_form("https://jobs.example.com/apply?x=1", [{"dom_path": "#a", "label_text": "City"}])
        assert form.domain == "jobs.example.com"
        assert form.fields[0].semantic_class == SemanticClass.CITY

    def test_extract_domain_of_garbage(self):
        assert extract_domain("not a url") == ""


class TestFormStructureHash:
    def test_independent_of_order_and_dom_paths(self):
        first = classify_form("https://a.com", [
            {"dom_path": "#1", "input_type": "email", "label_text": "Email"},
            {"dom_path": "#2", "label_text": "City"},
        ])
        second = classify_form("https://a.com", [
            {"dom_path": "div > #city", "label_text": "Town"},
            {"dom_path": "div > #mail", "input_type": "email", "label_text": "E-mail"},
        ])
        assert form_structure_hash(first.fields) == form_structure_hash(second.fields)

    def test_differs_by_structure(self):
        a = classify_form("https://a.com", [{"dom_path": "#1", "label_text": "City"}])
        b = classify_form("https://a.com", [{"dom_path": "#1", "label_text": "Country"}])
        assert form_structure_hash(a.fields) != form_structure_hash(b.fields)
