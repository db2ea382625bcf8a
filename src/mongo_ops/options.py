"""
Default write options and the merge rule applied at every write call site.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Mapping

__all__ = ["WriteOptions", "BulkOptions", "merge_options"]


@dataclass(frozen=True)
class WriteOptions:
    """
    Defaults for single write operations.

    Attributes:
        ordered: Stop at the first failed operation.
        upsert: Insert a document when no document matches.
        limit: Maximum number of documents to delete (0 means no limit).
    """

    ordered: bool = False
    upsert: bool = False
    limit: int = 1

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class BulkOptions:
    """
    Defaults for bulk_write.

    Attributes:
        ordered: Stop at the first failed operation.
    """

    ordered: bool = False

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def merge_options(
    defaults: Mapping[str, Any],
    options: Mapping[str, Any] | None = None,
    forced: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Layer option mappings: defaults, then caller options, then forced values.

    Args:
        defaults: Values used for keys the caller did not supply.
        options: Caller-supplied values.
        forced: Values the operation itself requires (e.g. multi, limit).

    Returns:
        A new dict with the merged options.

    Example:
        >>> merge_options({"upsert": False, "limit": 1}, {"upsert": True}, {"multi": True})
        {'upsert': True, 'limit': 1, 'multi': True}
    """
    merged = dict(defaults)
    merged.update(options or {})
    merged.update(forced or {})
    return merged
