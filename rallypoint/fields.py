"""Typed section profile field specs and value validation.

Each stored ``SectionProfileField`` maps onto exactly one spec class below. A
spec knows the type-specific rule for its values; the shared rules (required,
length bounds, custom pattern) live in :func:`validate_field_value`.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Iterable, Union
from urllib.parse import urlsplit

from .errors import FIELD_ERRORS

FIELD_TYPES = (
    "text",
    "textarea",
    "select",
    "multiselect",
    "checkbox",
    "number",
    "date",
    "url",
    "email",
    "phone",
)

_email_pattern = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True)
class FieldOption:
    value: str
    label: str

    def as_dict(self) -> dict[str, str]:
        return {"value": self.value, "label": self.label}


@dataclass(frozen=True)
class FieldValidation:
    is_valid: bool
    error: str | None = None
    message: str | None = None


VALID = FieldValidation(True)


def _invalid(kind: str, message: str | None = None) -> FieldValidation:
    return FieldValidation(
        False, kind, message or FIELD_ERRORS[kind].default_message
    )


@dataclass(frozen=True)
class _PlainSpec:
    """Types without a value rule beyond the shared checks."""

    def check(self, value: str) -> FieldValidation:
        return VALID


@dataclass(frozen=True)
class TextSpec(_PlainSpec):
    field_type = "text"


@dataclass(frozen=True)
class TextareaSpec(_PlainSpec):
    field_type = "textarea"


@dataclass(frozen=True)
class CheckboxSpec(_PlainSpec):
    field_type = "checkbox"


@dataclass(frozen=True)
class DateSpec(_PlainSpec):
    field_type = "date"


@dataclass(frozen=True)
class PhoneSpec(_PlainSpec):
    field_type = "phone"


@dataclass(frozen=True)
class NumberSpec:
    field_type = "number"

    def check(self, value: str) -> FieldValidation:
        try:
            parsed = float(value.strip())
        except ValueError:
            return _invalid("InvalidNumber")
        if not math.isfinite(parsed):
            return _invalid("InvalidNumber")
        return VALID


@dataclass(frozen=True)
class UrlSpec:
    field_type = "url"

    def check(self, value: str) -> FieldValidation:
        candidate = value.strip()
        if any(ch.isspace() for ch in candidate):
            return _invalid("InvalidUrl")
        try:
            parts = urlsplit(candidate)
        except ValueError:
            return _invalid("InvalidUrl")
        if not parts.scheme or not parts.netloc:
            return _invalid("InvalidUrl")
        return VALID


@dataclass(frozen=True)
class EmailSpec:
    field_type = "email"

    def check(self, value: str) -> FieldValidation:
        if not _email_pattern.match(value.strip()):
            return _invalid("InvalidEmail")
        return VALID


@dataclass(frozen=True)
class SelectSpec:
    options: tuple[FieldOption, ...] = field(default_factory=tuple)
    field_type = "select"

    @property
    def values(self) -> set[str]:
        return {option.value for option in self.options}

    def check(self, value: str) -> FieldValidation:
        if value.strip() not in self.values:
            return _invalid("InvalidOption")
        return VALID


@dataclass(frozen=True)
class MultiSelectSpec:
    options: tuple[FieldOption, ...] = field(default_factory=tuple)
    field_type = "multiselect"

    @property
    def values(self) -> set[str]:
        return {option.value for option in self.options}

    def check(self, value: str) -> FieldValidation:
        allowed = self.values
        for part in split_multiselect(value):
            if part not in allowed:
                return _invalid("InvalidOption", "Please select valid options.")
        return VALID


FieldSpec = Union[
    TextSpec,
    TextareaSpec,
    SelectSpec,
    MultiSelectSpec,
    CheckboxSpec,
    NumberSpec,
    DateSpec,
    UrlSpec,
    EmailSpec,
    PhoneSpec,
]

_SIMPLE_SPECS: dict[str, FieldSpec] = {
    "text": TextSpec(),
    "textarea": TextareaSpec(),
    "checkbox": CheckboxSpec(),
    "number": NumberSpec(),
    "date": DateSpec(),
    "url": UrlSpec(),
    "email": EmailSpec(),
    "phone": PhoneSpec(),
}


def split_multiselect(value: str) -> list[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def join_multiselect(values: Iterable[str]) -> str:
    return ",".join(str(v).strip() for v in values if str(v).strip())


def parse_options(raw: Iterable[object] | None) -> tuple[FieldOption, ...]:
    """Normalize ``[{value, label}]`` dicts (or bare strings) into options."""
    options: list[FieldOption] = []
    seen: set[str] = set()
    for item in raw or ():
        if isinstance(item, FieldOption):
            option = item
        elif isinstance(item, dict):
            value = str(item.get("value") or "").strip()
            label = str(item.get("label") or value).strip()
            option = FieldOption(value=value, label=label)
        else:
            value = str(item).strip()
            option = FieldOption(value=value, label=value)
        if not option.value:
            raise ValueError("Field options need a non-empty value")
        if option.value in seen:
            raise ValueError(f"Duplicate field option {option.value!r}")
        seen.add(option.value)
        options.append(option)
    return tuple(options)


def build_spec(field_type: str, options: Iterable[object] | None = None) -> FieldSpec:
    """Return the spec variant for ``field_type``, validating its options."""
    normalized = (field_type or "").strip().lower()
    if normalized in _SIMPLE_SPECS:
        return _SIMPLE_SPECS[normalized]
    if normalized in {"select", "multiselect"}:
        parsed = parse_options(options)
        if not parsed:
            raise ValueError(f"A {normalized} field needs at least one option")
        if normalized == "select":
            return SelectSpec(parsed)
        return MultiSelectSpec(parsed)
    raise ValueError(
        f"Unknown field type {field_type!r}; expected one of {', '.join(FIELD_TYPES)}"
    )


def spec_for_field(profile_field) -> FieldSpec:
    return build_spec(profile_field.field_type, profile_field.field_options)


def validate_field_value(value: str | None, profile_field) -> FieldValidation:
    """Check one answer against a field definition. Never raises."""
    label = profile_field.field_label or profile_field.field_name
    text = value if value is not None else ""

    if not text.strip():
        if profile_field.is_required:
            return _invalid("RequiredFieldMissing", f"{label} is required.")
        return VALID

    min_length = profile_field.min_length
    if min_length and len(text) < min_length:
        return _invalid(
            "TooShort", f"{label} must be at least {min_length} characters."
        )
    max_length = profile_field.max_length
    if max_length and len(text) > max_length:
        return _invalid(
            "TooLong", f"{label} must be no more than {max_length} characters."
        )
    if profile_field.validation_pattern:
        if not re.search(profile_field.validation_pattern, text):
            return _invalid("InvalidFormat", f"{label} format is invalid.")

    try:
        spec = spec_for_field(profile_field)
    except ValueError:
        # Definitions are validated by define_field/update_field.
        return VALID
    return spec.check(text)
