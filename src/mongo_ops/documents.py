"""
Document boundary helpers.

Callers may pass documents as mappings or as records (dataclass instances or
plain objects carrying attributes). These helpers resolve the representation
once so the rest of the package only deals with plain dicts.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Mapping

from .types import InvalidArgumentError

__all__ = [
    "ID_FIELD",
    "to_mapping",
    "get_id",
    "first_key",
    "is_operator_document",
    "check_update_document",
]


ID_FIELD = "_id"


def to_mapping(document: Any, argument: str = "document", context: str = "") -> dict[str, Any]:
    """
    Convert a caller-supplied document into a new dict.

    Args:
        document: A mapping, a dataclass instance or an object with attributes.
        argument: Argument name used in the error message.
        context: Suffix appended to the error message, e.g. " (operation#2)".

    Returns:
        A shallow copy of the document's fields, in declaration order.

    Raises:
        InvalidArgumentError: If the value cannot be read as a document.
    """
    if isinstance(document, Mapping):
        return dict(document)
    if dataclasses.is_dataclass(document) and not isinstance(document, type):
        return {f.name: getattr(document, f.name) for f in dataclasses.fields(document)}
    if hasattr(document, "__dict__") and not isinstance(document, type):
        return dict(vars(document))
    raise InvalidArgumentError(
        f"Expected {argument} to be a mapping or an object, got {type(document).__name__}{context}"
    )


def get_id(document: Any) -> Any:
    """Read the identity field from a mapping or a record, or None."""
    if isinstance(document, Mapping):
        return document.get(ID_FIELD)
    return getattr(document, ID_FIELD, None)


def first_key(document: Mapping[str, Any]) -> str | None:
    for key in document:
        return str(key)
    return None


def is_operator_document(document: Mapping[str, Any]) -> bool:
    """Whether the document's first key is an update operator such as $set."""
    key = first_key(document)
    return key is not None and key.startswith("$")


def check_update_document(update: Any, operator: bool, context: str = "") -> dict[str, Any]:
    """
    Check the polarity of an update or replacement document's first key.

    Args:
        update: The update (operator=True) or replacement (operator=False).
        operator: Whether the first key must be a $operator.
        context: Suffix appended to the error message, e.g. " (operation#2)".

    Returns:
        The document as a dict.

    Raises:
        InvalidArgumentError: If the first key has the wrong polarity.
    """
    document = to_mapping(update, "$update", context)
    if operator and not is_operator_document(document):
        raise InvalidArgumentError(f"First key in $update must be a $operator{context}")
    if not operator and is_operator_document(document):
        raise InvalidArgumentError(f"First key in $update must NOT be a $operator{context}")
    return document
