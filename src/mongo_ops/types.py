"""
Type definitions for mongo-ops.

Provides the raw write outcome reported by the driver, the typed result
objects returned by Collection write methods, and the exception hierarchy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

__all__ = [
    "split_namespace",
    "WriteErrorDetail",
    "WriteResult",
    "InsertOneResult",
    "InsertManyResult",
    "UpdateResult",
    "DeleteResult",
    "BulkWriteResult",
    "MongoError",
    "InvalidArgumentError",
    "UnexpectedTypeError",
    "ConnectionError",
    "ServerSelectionError",
    "WriteError",
    "DuplicateKeyError",
    "BulkWriteError",
    "OperationFailure",
]


# Type aliases used in signatures
Filter = Mapping[str, Any]
Pipeline = Sequence[Mapping[str, Any]]


def split_namespace(namespace: str) -> tuple[str, str]:
    """
    Split "database.collection" on the first dot.

    Raises:
        InvalidArgumentError: If either part is empty.
    """
    database, _, collection = str(namespace).partition(".")
    if not database or not collection:
        raise InvalidArgumentError(f"Invalid namespace {namespace!r}, expected 'database.collection'")
    return database, collection


class MongoError(Exception):
    """Base exception for MongoDB operations."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class InvalidArgumentError(MongoError):
    """Error raised when a caller-supplied argument violates a precondition."""

    pass


class UnexpectedTypeError(MongoError):
    """Error raised when a driver reply lacks an expected field or shape."""

    def __init__(self, value: Any, expected: str) -> None:
        super().__init__(f"Expected {expected}, got {type(value).__name__}: {value!r}")
        self.value = value
        self.expected = expected


class ConnectionError(MongoError):
    """Error raised when connection to MongoDB fails."""

    pass


class ServerSelectionError(ConnectionError):
    """Error raised when no server matches the requested read preference."""

    pass


class WriteError(MongoError):
    """Error raised when a write operation fails."""

    pass


class DuplicateKeyError(WriteError):
    """Error raised when inserting a document with a duplicate key."""

    pass


class BulkWriteError(WriteError):
    """
    Error raised when one or more operations of a write batch fail.

    Attributes:
        result: The partial outcome of the batch.
        write_errors: Per-operation failures, keyed by batch index.
    """

    def __init__(self, message: str, result: WriteResult) -> None:
        code = result.write_errors[0].code if result.write_errors else None
        super().__init__(message, code)
        self.result = result

    @property
    def write_errors(self) -> list[WriteErrorDetail]:
        return self.result.write_errors


class OperationFailure(MongoError):
    """Error raised when an operation fails on the server."""

    def __init__(
        self,
        message: str,
        code: int | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code)
        self.details = dict(details or {})


@dataclass(frozen=True)
class WriteErrorDetail:
    """
    A single failed operation inside a write batch.

    Attributes:
        index: Position of the operation in the submitted batch.
        code: Server error code.
        message: Server error message.
    """

    index: int
    code: int | None
    message: str

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> WriteErrorDetail:
        if not isinstance(document, Mapping) or "index" not in document:
            raise UnexpectedTypeError(document, "write error document with an 'index'")
        return cls(
            index=int(document["index"]),
            code=document.get("code"),
            message=str(document.get("errmsg", "")),
        )


_REQUIRED_COUNTERS = ("nInserted", "nMatched", "nRemoved", "nUpserted")


@dataclass(frozen=True)
class WriteResult:
    """
    Raw outcome of a write batch as reported by the driver.

    Counts are None when the write was not acknowledged. modified_count is
    also None when the server did not report it.

    Attributes:
        inserted_count: Number of documents inserted.
        matched_count: Number of documents matched for update.
        modified_count: Number of documents modified.
        deleted_count: Number of documents deleted.
        upserted_count: Number of documents upserted.
        upserted_ids: Mapping of batch index to upserted _id.
        write_errors: Per-operation failures.
        write_concern_error: Write concern failure document, if any.
        acknowledged: Whether the write was acknowledged.
    """

    inserted_count: int | None = 0
    matched_count: int | None = 0
    modified_count: int | None = 0
    deleted_count: int | None = 0
    upserted_count: int | None = 0
    upserted_ids: dict[int, Any] = field(default_factory=dict)
    write_errors: list[WriteErrorDetail] = field(default_factory=list)
    write_concern_error: dict[str, Any] | None = None
    acknowledged: bool = True

    @classmethod
    def unacknowledged(cls) -> WriteResult:
        """Return the outcome of a fire-and-forget write."""
        return cls(
            inserted_count=None,
            matched_count=None,
            modified_count=None,
            deleted_count=None,
            upserted_count=None,
            acknowledged=False,
        )

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> WriteResult:
        """
        Build a WriteResult from a bulk API reply document.

        Args:
            document: Reply with nInserted, nMatched, nModified, nRemoved,
                nUpserted, upserted, writeErrors and writeConcernErrors.

        Raises:
            UnexpectedTypeError: If the reply is not a mapping or lacks a
                required counter.
        """
        if not isinstance(document, Mapping):
            raise UnexpectedTypeError(document, "bulk write reply document")
        missing = [name for name in _REQUIRED_COUNTERS if name not in document]
        if missing:
            raise UnexpectedTypeError(document, f"bulk write reply with {', '.join(missing)}")

        upserted_ids: dict[int, Any] = {}
        for upsert in document.get("upserted") or []:
            if not isinstance(upsert, Mapping) or "index" not in upsert:
                raise UnexpectedTypeError(upsert, "upserted entry with an 'index'")
            upserted_ids[int(upsert["index"])] = upsert.get("_id")

        concern_errors = document.get("writeConcernErrors") or []

        return cls(
            inserted_count=int(document["nInserted"]),
            matched_count=int(document["nMatched"]),
            modified_count=(
                int(document["nModified"]) if document.get("nModified") is not None else None
            ),
            deleted_count=int(document["nRemoved"]),
            upserted_count=int(document["nUpserted"]),
            upserted_ids=upserted_ids,
            write_errors=[
                WriteErrorDetail.from_document(error) for error in document.get("writeErrors") or []
            ],
            write_concern_error=dict(concern_errors[0]) if concern_errors else None,
        )


def _check_raw_result(raw_result: Any) -> None:
    if not isinstance(raw_result, WriteResult):
        raise UnexpectedTypeError(raw_result, "WriteResult")


@dataclass(frozen=True)
class InsertOneResult:
    """
    Result of an insert_one operation.

    Attributes:
        raw_result: Raw outcome of the write batch.
        inserted_id: The _id of the inserted document.
    """

    raw_result: WriteResult
    inserted_id: Any

    def __post_init__(self) -> None:
        _check_raw_result(self.raw_result)

    @property
    def inserted_count(self) -> int | None:
        return self.raw_result.inserted_count

    @property
    def acknowledged(self) -> bool:
        return self.raw_result.acknowledged


@dataclass(frozen=True)
class InsertManyResult:
    """
    Result of an insert_many operation.

    Attributes:
        raw_result: Raw outcome of the write batch.
        inserted_ids: Mapping of batch index to the _id of the inserted document.
    """

    raw_result: WriteResult
    inserted_ids: dict[int, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _check_raw_result(self.raw_result)

    @property
    def inserted_count(self) -> int | None:
        return self.raw_result.inserted_count

    @property
    def acknowledged(self) -> bool:
        return self.raw_result.acknowledged


@dataclass(frozen=True)
class UpdateResult:
    """
    Result of an update_one, update_many or replace_one operation.

    Attributes:
        raw_result: Raw outcome of the write batch.
    """

    raw_result: WriteResult

    def __post_init__(self) -> None:
        _check_raw_result(self.raw_result)

    @property
    def matched_count(self) -> int | None:
        return self.raw_result.matched_count

    @property
    def modified_count(self) -> int | None:
        """Number of documents modified, or None if the server did not report it."""
        return self.raw_result.modified_count

    @property
    def upserted_count(self) -> int | None:
        return self.raw_result.upserted_count

    @property
    def upserted_id(self) -> Any:
        """The _id of the upserted document, or None if no upsert took place."""
        for upserted_id in self.raw_result.upserted_ids.values():
            return upserted_id
        return None

    @property
    def acknowledged(self) -> bool:
        return self.raw_result.acknowledged


@dataclass(frozen=True)
class DeleteResult:
    """
    Result of a delete_one or delete_many operation.

    Attributes:
        raw_result: Raw outcome of the write batch.
    """

    raw_result: WriteResult

    def __post_init__(self) -> None:
        _check_raw_result(self.raw_result)

    @property
    def deleted_count(self) -> int | None:
        return self.raw_result.deleted_count

    @property
    def acknowledged(self) -> bool:
        return self.raw_result.acknowledged


@dataclass(frozen=True)
class BulkWriteResult:
    """
    Result of a bulk_write operation.

    Attributes:
        raw_result: Raw outcome of the write batch.
        inserted_ids: Mapping of operation index to inserted _id.
    """

    raw_result: WriteResult
    inserted_ids: dict[int, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _check_raw_result(self.raw_result)

    @property
    def inserted_count(self) -> int | None:
        return self.raw_result.inserted_count

    @property
    def matched_count(self) -> int | None:
        return self.raw_result.matched_count

    @property
    def modified_count(self) -> int | None:
        return self.raw_result.modified_count

    @property
    def deleted_count(self) -> int | None:
        return self.raw_result.deleted_count

    @property
    def upserted_count(self) -> int | None:
        return self.raw_result.upserted_count

    @property
    def upserted_ids(self) -> dict[int, Any]:
        """Mapping of operation index to upserted _id."""
        return dict(self.raw_result.upserted_ids)

    @property
    def acknowledged(self) -> bool:
        return self.raw_result.acknowledged
