"""
Bulk - write batches and the requests accepted by Collection.bulk_write().

A BulkWrite is the ordered list of primitive insert/update/delete operations
handed to the driver in a single round trip. The request classes
(InsertOne, UpdateOne, ...) describe what a caller wants; they are validated
up front and then translated into the batch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterator, Mapping, Sequence

from bson import ObjectId

from .documents import ID_FIELD, check_update_document, get_id, to_mapping
from .options import merge_options
from .types import InvalidArgumentError

__all__ = [
    "BulkWrite",
    "InsertOperation",
    "UpdateOperation",
    "DeleteOperation",
    "WriteRequest",
    "InsertOne",
    "UpdateOne",
    "UpdateMany",
    "ReplaceOne",
    "DeleteOne",
    "DeleteMany",
    "parse_requests",
    "build_batch",
]


@dataclass(frozen=True)
class InsertOperation:
    index: int
    document: dict[str, Any]


@dataclass(frozen=True)
class UpdateOperation:
    index: int
    filter: dict[str, Any]
    update: dict[str, Any]
    multi: bool = False
    upsert: bool = False


@dataclass(frozen=True)
class DeleteOperation:
    index: int
    filter: dict[str, Any]
    limit: int = 0


PrimitiveOperation = InsertOperation | UpdateOperation | DeleteOperation


class BulkWrite:
    """
    An ordered batch of primitive write operations.

    Each operation is tagged with its position in the batch so results and
    errors reported by the driver can be correlated back to the caller's
    request.

    Example:
        bulk = BulkWrite(ordered=True)
        generated_id = bulk.insert({"name": "Alice"})
        bulk.update({"name": "Bob"}, {"$set": {"vip": True}}, {"upsert": True})
        bulk.delete({"status": "stale"}, {"limit": 0})
    """

    __slots__ = ("_ordered", "_operations")

    def __init__(self, ordered: bool = True) -> None:
        self._ordered = bool(ordered)
        self._operations: list[PrimitiveOperation] = []

    @property
    def ordered(self) -> bool:
        """Whether execution stops at the first failed operation."""
        return self._ordered

    @property
    def operations(self) -> tuple[PrimitiveOperation, ...]:
        return tuple(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    def __iter__(self) -> Iterator[PrimitiveOperation]:
        return iter(self._operations)

    def insert(self, document: Any) -> Any:
        """
        Add an insert.

        Args:
            document: A mapping or record to insert.

        Returns:
            The generated _id if the document had none, otherwise None.
        """
        doc = to_mapping(document)
        generated_id = None
        if ID_FIELD in doc:
            doc = {ID_FIELD: doc.pop(ID_FIELD), **doc}
        else:
            generated_id = ObjectId()
            doc = {ID_FIELD: generated_id, **doc}
        self._operations.append(InsertOperation(len(self._operations), doc))
        return generated_id

    def update(
        self,
        filter: Any,
        update: Any,
        options: Mapping[str, Any] | None = None,
    ) -> None:
        """
        Add an update or replacement.

        Args:
            filter: Query filter.
            update: Update operators or a replacement document.
            options: "multi" and "upsert" flags; other keys are ignored.
        """
        options = options or {}
        self._operations.append(
            UpdateOperation(
                len(self._operations),
                to_mapping(filter, "$filter"),
                to_mapping(update, "$update"),
                multi=bool(options.get("multi", False)),
                upsert=bool(options.get("upsert", False)),
            )
        )

    def delete(self, filter: Any, options: Mapping[str, Any] | None = None) -> None:
        """
        Add a delete.

        Args:
            filter: Query filter.
            options: "limit" of 1 deletes one document, 0 deletes all matches.
        """
        options = options or {}
        limit = 1 if options.get("limit", 0) else 0
        self._operations.append(
            DeleteOperation(len(self._operations), to_mapping(filter, "$filter"), limit)
        )

    def __repr__(self) -> str:
        return f"BulkWrite(ordered={self._ordered!r}, operations={len(self._operations)})"


def _missing(position: int, name: str, index: int) -> InvalidArgumentError:
    return InvalidArgumentError(f"Missing argument#{position} for '{name}' (operation#{index})")


def _check_options(options: Any, name: str, index: int) -> None:
    if options is not None and not isinstance(options, Mapping):
        raise InvalidArgumentError(
            f"Expected options for '{name}' to be a mapping, got {type(options).__name__} "
            f"(operation#{index})"
        )


class WriteRequest:
    """Base class for the requests accepted by bulk_write()."""

    name: ClassVar[str] = ""

    @classmethod
    def from_args(cls, args: Sequence[Any]) -> WriteRequest:
        raise NotImplementedError

    def validate(self, index: int) -> None:
        raise NotImplementedError

    def add_to(self, bulk: BulkWrite, defaults: Mapping[str, Any]) -> Any:
        raise NotImplementedError


def _arg(args: Sequence[Any], position: int) -> Any:
    return args[position] if len(args) > position else None


@dataclass(frozen=True)
class InsertOne(WriteRequest):
    document: Any

    name: ClassVar[str] = "insertOne"

    @classmethod
    def from_args(cls, args: Sequence[Any]) -> InsertOne:
        return cls(_arg(args, 0))

    def validate(self, index: int) -> None:
        if self.document is None:
            raise _missing(1, self.name, index)
        to_mapping(self.document, "$document", f" (operation#{index})")

    def add_to(self, bulk: BulkWrite, defaults: Mapping[str, Any]) -> Any:
        generated_id = bulk.insert(self.document)
        return generated_id if generated_id is not None else get_id(self.document)


@dataclass(frozen=True)
class UpdateOne(WriteRequest):
    filter: Any
    update: Any
    options: Mapping[str, Any] | None = field(default=None)

    name: ClassVar[str] = "updateOne"
    multi: ClassVar[bool] = False
    operator: ClassVar[bool] = True

    @classmethod
    def from_args(cls, args: Sequence[Any]) -> WriteRequest:
        return cls(_arg(args, 0), _arg(args, 1), _arg(args, 2))

    def validate(self, index: int) -> None:
        if self.filter is None:
            raise _missing(1, self.name, index)
        if self.update is None:
            raise _missing(2, self.name, index)
        context = f" (operation#{index})"
        to_mapping(self.filter, "$filter", context)
        check_update_document(self.update, self.operator, context)
        _check_options(self.options, self.name, index)

    def add_to(self, bulk: BulkWrite, defaults: Mapping[str, Any]) -> Any:
        options = merge_options(defaults, self.options, {"multi": self.multi})
        bulk.update(self.filter, self.update, options)
        return None


@dataclass(frozen=True)
class UpdateMany(UpdateOne):
    name: ClassVar[str] = "updateMany"
    multi: ClassVar[bool] = True


@dataclass(frozen=True)
class ReplaceOne(UpdateOne):
    """Replace a whole document; the update field holds the replacement."""

    name: ClassVar[str] = "replaceOne"
    operator: ClassVar[bool] = False

    @property
    def replacement(self) -> Any:
        return self.update


@dataclass(frozen=True)
class DeleteOne(WriteRequest):
    filter: Any
    options: Mapping[str, Any] | None = field(default=None)

    name: ClassVar[str] = "deleteOne"
    limit: ClassVar[int] = 1

    @classmethod
    def from_args(cls, args: Sequence[Any]) -> WriteRequest:
        return cls(_arg(args, 0), _arg(args, 1))

    def validate(self, index: int) -> None:
        if self.filter is None:
            raise _missing(1, self.name, index)
        to_mapping(self.filter, "$filter", f" (operation#{index})")
        _check_options(self.options, self.name, index)

    def add_to(self, bulk: BulkWrite, defaults: Mapping[str, Any]) -> Any:
        bulk.delete(self.filter, merge_options(defaults, self.options, {"limit": self.limit}))
        return None


@dataclass(frozen=True)
class DeleteMany(DeleteOne):
    name: ClassVar[str] = "deleteMany"
    limit: ClassVar[int] = 0


_REQUESTS: dict[str, type[WriteRequest]] = {
    request.name: request
    for request in (InsertOne, UpdateOne, UpdateMany, ReplaceOne, DeleteOne, DeleteMany)
}


def _parse_request(index: int, operation: Any) -> WriteRequest:
    if isinstance(operation, WriteRequest):
        operation.validate(index)
        return operation

    if not isinstance(operation, Mapping):
        raise InvalidArgumentError(
            f"Expected a write request or a mapping (operation#{index}), "
            f"got {type(operation).__name__}"
        )
    if len(operation) != 1:
        raise InvalidArgumentError(
            f"Expected exactly one operation type (operation#{index}), got {len(operation)}"
        )

    ((name, args),) = operation.items()
    request_class = _REQUESTS.get(name)
    if request_class is None:
        raise InvalidArgumentError(f"Unknown operation type called '{name}' (operation#{index})")
    if not isinstance(args, (list, tuple)):
        raise InvalidArgumentError(
            f"Expected a list of arguments for '{name}' (operation#{index}), "
            f"got {type(args).__name__}"
        )
    if _arg(args, 0) is None:
        raise _missing(1, name, index)

    request = request_class.from_args(args)
    request.validate(index)
    return request


def parse_requests(operations: Sequence[Any]) -> list[WriteRequest]:
    """
    Validate every bulk_write operation and convert mappings into requests.

    Args:
        operations: Requests, or single-key mappings such as
            {"updateOne": [filter, update, options]}.

    Returns:
        One request per operation, in order.

    Raises:
        InvalidArgumentError: On the first invalid operation, naming its index.
    """
    if isinstance(operations, (str, bytes, Mapping)):
        raise InvalidArgumentError("Expected a sequence of write operations")
    return [_parse_request(index, operation) for index, operation in enumerate(operations)]


def build_batch(
    requests: Sequence[WriteRequest],
    ordered: bool,
    defaults: Mapping[str, Any],
) -> tuple[BulkWrite, dict[int, Any]]:
    """
    Translate validated requests into a BulkWrite.

    Returns:
        The batch and a mapping of operation index to inserted _id.
    """
    bulk = BulkWrite(ordered)
    inserted_ids: dict[int, Any] = {}
    for index, request in enumerate(requests):
        inserted_id = request.add_to(bulk, defaults)
        if isinstance(request, InsertOne):
            inserted_ids[index] = inserted_id
    return bulk, inserted_ids
