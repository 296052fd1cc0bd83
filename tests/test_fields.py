from __future__ import annotations

import pytest

from rallypoint.fields import (
    MultiSelectSpec,
    SelectSpec,
    TextSpec,
    build_spec,
    join_multiselect,
    parse_options,
    split_multiselect,
    validate_field_value,
)
from rallypoint.models import SectionProfileField


def _field(field_type="text", **overrides) -> SectionProfileField:
    values = {
        "field_name": "answer",
        "field_label": "Answer",
        "field_type": field_type,
        "field_options": [],
        "is_required": False,
        "min_length": None,
        "max_length": None,
        "validation_pattern": None,
    }
    values.update(overrides)
    return SectionProfileField(**values)


def _kind(value, profile_field):
    return validate_field_value(value, profile_field).error


def test_blank_optional_value_is_valid_for_every_type():
    for field_type in ("text", "number", "url", "email", "date", "phone"):
        assert validate_field_value("", _field(field_type)).is_valid
        assert validate_field_value("   ", _field(field_type)).is_valid
        assert validate_field_value(None, _field(field_type)).is_valid


def test_required_blank_value_is_missing():
    result = validate_field_value("  ", _field(is_required=True))
    assert result.is_valid is False
    assert result.error == "RequiredFieldMissing"
    assert "Answer" in result.message


def test_number_values():
    number = _field("number")
    assert validate_field_value("42", number).is_valid
    assert validate_field_value("-3.5", number).is_valid
    assert _kind("abc", number) == "InvalidNumber"
    assert _kind("nan", number) == "InvalidNumber"
    assert _kind("inf", number) == "InvalidNumber"


def test_url_values():
    url = _field("url")
    assert validate_field_value("https://example.com/club", url).is_valid
    assert _kind("example.com", url) == "InvalidUrl"
    assert _kind("https://exa mple.com", url) == "InvalidUrl"
    assert _kind("not a url", url) == "InvalidUrl"


def test_email_values():
    email = _field("email")
    assert validate_field_value("bob@example.com", email).is_valid
    assert _kind("bob@example", email) == "InvalidEmail"
    assert _kind("bob example.com", email) == "InvalidEmail"


def test_select_values():
    select = _field(
        "select",
        field_options=[
            {"value": "beginner", "label": "Beginner"},
            {"value": "advanced", "label": "Advanced"},
        ],
    )
    assert validate_field_value("beginner", select).is_valid
    assert _kind("expert", select) == "InvalidOption"


def test_multiselect_values():
    multi = _field(
        "multiselect",
        field_options=[{"value": "mon", "label": "Mon"}, {"value": "wed", "label": "Wed"}],
    )
    assert validate_field_value("mon,wed", multi).is_valid
    assert validate_field_value("wed", multi).is_valid
    assert _kind("mon,fri", multi) == "InvalidOption"


def test_phone_date_and_checkbox_have_no_extra_rule():
    assert validate_field_value("call me maybe", _field("phone")).is_valid
    assert validate_field_value("someday", _field("date")).is_valid
    assert validate_field_value("true", _field("checkbox")).is_valid


def test_length_bounds():
    bounded = _field(min_length=3, max_length=5)
    assert validate_field_value("abcd", bounded).is_valid
    assert _kind("ab", bounded) == "TooShort"
    assert _kind("abcdef", bounded) == "TooLong"


def test_min_length_is_checked_before_max_length():
    # Stored rows can predate the min <= max check on definitions.
    inverted = _field(min_length=6, max_length=2)
    assert _kind("abcd", inverted) == "TooShort"


def test_pattern_is_checked_before_type_rule():
    profile_field = _field("number", validation_pattern=r"^\d{3}$")
    assert validate_field_value("123", profile_field).is_valid
    assert _kind("12", profile_field) == "InvalidFormat"


def test_length_is_checked_before_type_rule():
    profile_field = _field("email", max_length=5)
    assert _kind("not-an-email-at-all", profile_field) == "TooLong"


def test_build_spec_variants():
    assert isinstance(build_spec("text"), TextSpec)
    select = build_spec("select", ["a", "b"])
    assert isinstance(select, SelectSpec)
    assert select.values == {"a", "b"}
    assert isinstance(build_spec("multiselect", [{"value": "x"}]), MultiSelectSpec)


def test_build_spec_rejects_bad_definitions():
    with pytest.raises(ValueError):
        build_spec("select", [])
    with pytest.raises(ValueError):
        build_spec("multiselect", None)
    with pytest.raises(ValueError):
        build_spec("color")


def test_parse_options_rejects_duplicates_and_blanks():
    options = parse_options([{"value": "a", "label": "Alpha"}, "b"])
    assert [o.as_dict() for o in options] == [
        {"value": "a", "label": "Alpha"},
        {"value": "b", "label": "b"},
    ]
    with pytest.raises(ValueError):
        parse_options(["a", "a"])
    with pytest.raises(ValueError):
        parse_options([{"label": "No value"}])


def test_multiselect_join_and_split():
    assert join_multiselect(["mon", " wed ", ""]) == "mon,wed"
    assert split_multiselect("mon, wed,,") == ["mon", "wed"]
