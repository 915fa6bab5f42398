"""
Editable visitor fields and the diff recorded in edit history.

Values move through the workflow in their stored form: plain strings, with
dropdown choices in their encoded "Other: <text>" representation. That is the
form persisted in edit requests and history entries.
"""
from typing import Any, Dict, Mapping, Tuple

from pydantic import ValidationError as PydanticValidationError

from frontdesk.models.choices import Choice
from frontdesk.services.errors import ValidationError

EDITABLE_FIELDS = (
    "full_name",
    "phone_number",
    "email",
    "institution",
    "address",
    "id_type",
    "id_number",
    "purpose",
    "person_to_meet",
    "unit",
    "notes",
    "document_type",
    "document_name",
    "document_number",
    "document_details",
    "document_status",
)

CHOICE_FIELDS = frozenset({"purpose", "person_to_meet", "unit"})

# Fields that may be changed but never cleared
REQUIRED_FIELDS = frozenset({"full_name"})

DOCUMENT_FIELDS = (
    "document_type",
    "document_name",
    "document_number",
    "document_details",
    "document_status",
)


def _to_stored(field: str, value: Any):
    if value is None:
        if field in REQUIRED_FIELDS:
            raise ValidationError(f"Field '{field}' cannot be empty")
        return None

    if field in CHOICE_FIELDS:
        try:
            choice = Choice.coerce(value)
        except (TypeError, PydanticValidationError):
            raise ValidationError(
                f"Field '{field}' must be a string or an object with 'kind' and 'value'"
            )
        return choice.encode()

    if not isinstance(value, str):
        raise ValidationError(f"Field '{field}' must be a string")
    if field in REQUIRED_FIELDS and not value.strip():
        raise ValidationError(f"Field '{field}' cannot be empty")
    return value


def normalize_fields(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Validate a proposed change set and convert it to stored form.

    Raises ValidationError for unknown fields, bad value types, or an empty
    change set.
    """
    if not raw:
        raise ValidationError("No valid fields to edit")

    unknown = sorted(set(raw) - set(EDITABLE_FIELDS))
    if unknown:
        raise ValidationError(f"Fields cannot be edited: {', '.join(unknown)}")

    return {field: _to_stored(field, value) for field, value in raw.items()}


def stored_value(visitor, field: str):
    """Current value of a visitor field in stored form."""
    value = getattr(visitor, field)
    if isinstance(value, Choice):
        return value.encode()
    return value


def snapshot(visitor, fields) -> Dict[str, Any]:
    return {field: stored_value(visitor, field) for field in fields}


def diff_fields(visitor, proposed: Mapping[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Compare proposed stored values against the record.

    Returns (changes, original) restricted to the fields whose value actually
    differs; both maps always share the same keys.
    """
    changes = {}
    original = {}
    for field, new_value in proposed.items():
        old_value = stored_value(visitor, field)
        if old_value != new_value:
            changes[field] = new_value
            original[field] = old_value
    return changes, original


def apply_fields(visitor, changes: Mapping[str, Any]) -> None:
    """Write stored-form values onto the visitor."""
    for field, value in changes.items():
        if field in CHOICE_FIELDS and value is not None:
            value = Choice.decode(value)
        setattr(visitor, field, value)
