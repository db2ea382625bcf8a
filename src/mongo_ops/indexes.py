"""
Index specifications and index information returned by listIndexes.
"""

from __future__ import annotations

from typing import Any, Iterator, Mapping

from .types import InvalidArgumentError, UnexpectedTypeError

__all__ = ["IndexSpec", "IndexInfo", "generate_index_name"]


def _format_order(order: Any) -> str:
    if isinstance(order, float) and order.is_integer():
        return str(int(order))
    return str(order)


def generate_index_name(key: Mapping[str, Any]) -> str:
    """
    Derive an index name from its key document.

    Example:
        >>> generate_index_name({"x": 1, "loc": "2dsphere"})
        'x_1_loc_2dsphere'
    """
    return "_".join(f"{field}_{_format_order(order)}" for field, order in key.items())


class IndexSpec:
    """
    A validated index specification for the createIndexes command.

    Args:
        index: Mapping with a required "key" document; every other entry is
            an index option ("name", "unique", "sparse", ...).

    Raises:
        InvalidArgumentError: If the key is missing or malformed, or the name
            is not a string.
    """

    __slots__ = ("_document",)

    def __init__(self, index: Mapping[str, Any]) -> None:
        if not isinstance(index, Mapping):
            raise InvalidArgumentError(
                f"Expected index specification to be a mapping, got {type(index).__name__}"
            )
        if "key" not in index:
            raise InvalidArgumentError('Required "key" document is missing from index specification')

        key = index["key"]
        if not isinstance(key, Mapping) or not key:
            raise InvalidArgumentError('Expected "key" option to be a non-empty mapping')
        for field_name, order in key.items():
            if isinstance(order, bool) or not isinstance(order, (int, float, str)):
                raise InvalidArgumentError(
                    f'Expected order value for "{field_name}" field within "key" option '
                    f"to be numeric or string, got {type(order).__name__}"
                )

        document = dict(index)
        document["key"] = dict(key)
        if document.get("name") is None:
            document["name"] = generate_index_name(key)
        if not isinstance(document["name"], str):
            raise InvalidArgumentError(
                f'Expected "name" option to be a string, got {type(document["name"]).__name__}'
            )
        self._document = document

    @property
    def name(self) -> str:
        return self._document["name"]

    @property
    def key(self) -> dict[str, Any]:
        return dict(self._document["key"])

    def to_document(self) -> dict[str, Any]:
        """Return the document sent in the createIndexes "indexes" array."""
        return dict(self._document)

    def __repr__(self) -> str:
        return f"IndexSpec({self._document!r})"


class IndexInfo(Mapping[str, Any]):
    """
    Read-only view of a single index as reported by listIndexes.

    Supports mapping access to the raw index document in addition to the
    typed accessors.

    Example:
        for index in collection.list_indexes():
            print(index.name, index.key, index.is_unique())
    """

    __slots__ = ("_info",)

    def __init__(self, info: Mapping[str, Any]) -> None:
        if not isinstance(info, Mapping) or "name" not in info or "key" not in info:
            raise UnexpectedTypeError(info, "index document with 'name' and 'key'")
        self._info = dict(info)

    @property
    def name(self) -> str:
        return self._info["name"]

    @property
    def key(self) -> dict[str, Any]:
        return dict(self._info["key"])

    @property
    def namespace(self) -> str | None:
        return self._info.get("ns")

    @property
    def version(self) -> int | None:
        return self._info.get("v")

    def is_sparse(self) -> bool:
        return bool(self._info.get("sparse", False))

    def is_ttl(self) -> bool:
        return "expireAfterSeconds" in self._info

    def is_unique(self) -> bool:
        return bool(self._info.get("unique", False))

    def __getitem__(self, key: str) -> Any:
        return self._info[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._info)

    def __len__(self) -> int:
        return len(self._info)

    def __repr__(self) -> str:
        return f"IndexInfo({self._info!r})"
