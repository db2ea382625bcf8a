"""
Operations - command request objects executed against a selected server.

Each class validates its arguments on construction, builds one command
document, and turns the server's reply into the value returned by the
matching Collection method.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterator, Mapping, Sequence

from .documents import check_update_document, to_mapping
from .indexes import IndexInfo, IndexSpec
from .types import InvalidArgumentError, OperationFailure, UnexpectedTypeError

if TYPE_CHECKING:
    from .manager import Server

__all__ = [
    "Operation",
    "Find",
    "FindOne",
    "Count",
    "Distinct",
    "Aggregate",
    "FindOneAndDelete",
    "FindOneAndReplace",
    "FindOneAndUpdate",
    "CreateIndexes",
    "DropCollection",
    "DropIndexes",
    "ListIndexes",
]

# Server error code for a missing collection.
NAMESPACE_NOT_FOUND = 26


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.upper() if part == "ms" else part.capitalize() for part in rest)


def command_options(options: Mapping[str, Any]) -> dict[str, Any]:
    """
    Convert keyword options to command fields, skipping None values.

    Example:
        >>> command_options({"max_time_ms": 100, "batchSize": 10, "hint": None})
        {'maxTimeMS': 100, 'batchSize': 10}
    """
    return {_camel(key): value for key, value in options.items() if value is not None}


def _projection(projection: Any) -> dict[str, Any]:
    if isinstance(projection, Mapping):
        return dict(projection)
    if isinstance(projection, (list, tuple)):
        return {field: 1 for field in projection}
    raise InvalidArgumentError(
        f"Expected projection to be a mapping or a list of fields, got {type(projection).__name__}"
    )


def _sort(sort: Any) -> dict[str, Any]:
    if isinstance(sort, Mapping):
        return dict(sort)
    if isinstance(sort, (list, tuple)):
        return {field: direction for field, direction in sort}
    raise InvalidArgumentError(
        f"Expected sort to be a mapping or a list of (field, direction), got {type(sort).__name__}"
    )


def _check_int(options: Mapping[str, Any], *names: str) -> None:
    for name in names:
        value = options.get(name)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise InvalidArgumentError(
                f'Expected "{name}" option to be an integer, got {type(value).__name__}'
            )


def _filter(filter: Any) -> dict[str, Any]:
    return {} if filter is None else to_mapping(filter, "$filter")


def _single_reply(cursor: Iterator[Any], field: str) -> Mapping[str, Any]:
    reply = next(iter(cursor), None)
    if not isinstance(reply, Mapping) or field not in reply:
        raise UnexpectedTypeError(reply, f"command reply with a '{field}' field")
    return reply


class Operation:
    """Base class for operations bound to one collection."""

    command_name = ""

    def __init__(self, database_name: str, collection_name: str) -> None:
        self.database_name = database_name
        self.collection_name = collection_name

    def command(self) -> dict[str, Any]:
        raise NotImplementedError

    def execute(self, server: Server) -> Any:
        raise NotImplementedError

    def _run(self, server: Server) -> Iterator[Any]:
        return server.execute_command(self.database_name, self.command())

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.database_name}.{self.collection_name})"


class Find(Operation):
    """
    Query documents.

    Supported options: projection (mapping or list of fields), sort (mapping
    or list of (field, direction)), skip, limit, batch_size, max_time_ms,
    hint, comment, and any other find command field.

    A negative limit returns at most abs(limit) documents in a single batch.
    """

    command_name = "find"

    def __init__(
        self,
        database_name: str,
        collection_name: str,
        filter: Any = None,
        **options: Any,
    ) -> None:
        super().__init__(database_name, collection_name)
        self.filter = _filter(filter)
        fields = command_options(options)
        _check_int(fields, "skip", "limit", "batchSize", "maxTimeMS")

        if "projection" in fields:
            fields["projection"] = _projection(fields["projection"])
        if "sort" in fields:
            fields["sort"] = _sort(fields["sort"])
        if fields.get("limit", 0) < 0:
            fields["limit"] = -fields["limit"]
            fields["singleBatch"] = True
        self.options = fields

    def command(self) -> dict[str, Any]:
        return {"find": self.collection_name, "filter": self.filter, **self.options}

    def execute(self, server: Server) -> Iterator[Any]:
        """Return the driver's cursor over matching documents."""
        return self._run(server)


class FindOne(Find):
    """Query a single document."""

    def __init__(
        self,
        database_name: str,
        collection_name: str,
        filter: Any = None,
        **options: Any,
    ) -> None:
        options["limit"] = -1
        super().__init__(database_name, collection_name, filter, **options)

    def execute(self, server: Server) -> dict[str, Any] | None:
        return next(iter(self._run(server)), None)


class Count(Operation):
    """Count matching documents. Options: limit, skip, hint, max_time_ms."""

    command_name = "count"

    def __init__(
        self,
        database_name: str,
        collection_name: str,
        filter: Any = None,
        **options: Any,
    ) -> None:
        super().__init__(database_name, collection_name)
        self.filter = _filter(filter)
        self.options = command_options(options)
        _check_int(self.options, "skip", "limit", "maxTimeMS")

    def command(self) -> dict[str, Any]:
        return {"count": self.collection_name, "query": self.filter, **self.options}

    def execute(self, server: Server) -> int:
        reply = _single_reply(self._run(server), "n")
        return int(reply["n"])


class Distinct(Operation):
    """Distinct values of one field. Options: max_time_ms, collation."""

    command_name = "distinct"

    def __init__(
        self,
        database_name: str,
        collection_name: str,
        field_name: str,
        filter: Any = None,
        **options: Any,
    ) -> None:
        super().__init__(database_name, collection_name)
        if not isinstance(field_name, str) or not field_name:
            raise InvalidArgumentError("$fieldName must be a non-empty string")
        self.field_name = field_name
        self.filter = _filter(filter)
        self.options = command_options(options)
        _check_int(self.options, "maxTimeMS")

    def command(self) -> dict[str, Any]:
        return {
            "distinct": self.collection_name,
            "key": self.field_name,
            "query": self.filter,
            **self.options,
        }

    def execute(self, server: Server) -> list[Any]:
        reply = _single_reply(self._run(server), "values")
        values = reply["values"]
        if not isinstance(values, list):
            raise UnexpectedTypeError(values, "list of distinct values")
        return values


class Aggregate(Operation):
    """
    Run an aggregation pipeline.

    Options:
        allow_disk_use: Let stages write temporary files.
        batch_size: Documents per cursor batch.
        max_time_ms: Server-side time limit.
        use_cursor: Request a cursor reply (default True). When False the
            legacy inline "result" array is returned as an iterator.
    """

    command_name = "aggregate"

    def __init__(
        self,
        database_name: str,
        collection_name: str,
        pipeline: Sequence[Mapping[str, Any]],
        **options: Any,
    ) -> None:
        super().__init__(database_name, collection_name)
        if not isinstance(pipeline, (list, tuple)):
            raise InvalidArgumentError(
                f"Expected $pipeline to be a list, got {type(pipeline).__name__}"
            )
        for position, stage in enumerate(pipeline):
            if not isinstance(stage, Mapping):
                raise InvalidArgumentError(f"Expected $pipeline[{position}] to be a mapping")

        fields = command_options(options)
        self.use_cursor = bool(fields.pop("useCursor", True))
        batch_size = fields.pop("batchSize", None)
        _check_int({"batchSize": batch_size, **fields}, "batchSize", "maxTimeMS")
        if batch_size is not None and not self.use_cursor:
            raise InvalidArgumentError('"batchSize" option should not be used if "useCursor" is false')

        self.pipeline = [dict(stage) for stage in pipeline]
        self.batch_size = batch_size
        self.options = fields

    def command(self) -> dict[str, Any]:
        command: dict[str, Any] = {
            "aggregate": self.collection_name,
            "pipeline": self.pipeline,
            **self.options,
        }
        if self.use_cursor:
            command["cursor"] = {} if self.batch_size is None else {"batchSize": self.batch_size}
        return command

    def execute(self, server: Server) -> Iterator[Any]:
        cursor = self._run(server)
        if self.use_cursor:
            return cursor
        result = _single_reply(cursor, "result")["result"]
        if not isinstance(result, list):
            raise UnexpectedTypeError(result, "list of aggregation results")
        return iter(result)


class _FindAndModify(Operation):
    """
    Shared findAndModify command.

    Options: projection, sort, max_time_ms, and for replace/update also
    upsert and return_document (ReturnDocument.BEFORE or ReturnDocument.AFTER).
    """

    command_name = "findAndModify"

    def __init__(
        self,
        database_name: str,
        collection_name: str,
        filter: Any,
        **options: Any,
    ) -> None:
        super().__init__(database_name, collection_name)
        if filter is None:
            raise InvalidArgumentError("$filter is required")
        self.filter = to_mapping(filter, "$filter")

        return_document = options.pop("return_document", options.pop("returnDocument", False))
        if not isinstance(return_document, bool):
            raise InvalidArgumentError(
                '"return_document" option must be ReturnDocument.BEFORE or ReturnDocument.AFTER'
            )
        self.return_document = return_document

        fields = command_options(options)
        _check_int(fields, "maxTimeMS")
        if "projection" in fields:
            fields["fields"] = _projection(fields.pop("projection"))
        if "sort" in fields:
            fields["sort"] = _sort(fields["sort"])
        self.options = fields

    def _modification(self) -> dict[str, Any]:
        raise NotImplementedError

    def command(self) -> dict[str, Any]:
        return {
            "findAndModify": self.collection_name,
            "query": self.filter,
            **self._modification(),
            **self.options,
        }

    def execute(self, server: Server) -> dict[str, Any] | None:
        reply = _single_reply(self._run(server), "value")
        value = reply["value"]
        if value is not None and not isinstance(value, Mapping):
            raise UnexpectedTypeError(value, "document or None")
        return value


class FindOneAndDelete(_FindAndModify):
    """Delete one document and return it."""

    def _modification(self) -> dict[str, Any]:
        return {"remove": True}


class FindOneAndReplace(_FindAndModify):
    """Replace one document and return the original or the replacement."""

    def __init__(
        self,
        database_name: str,
        collection_name: str,
        filter: Any,
        replacement: Any,
        **options: Any,
    ) -> None:
        if replacement is None:
            raise InvalidArgumentError("$replacement is required")
        self.replacement = check_update_document(replacement, operator=False)
        super().__init__(database_name, collection_name, filter, **options)

    def _modification(self) -> dict[str, Any]:
        return {"update": self.replacement, "new": self.return_document}


class FindOneAndUpdate(_FindAndModify):
    """Apply update operators to one document and return it."""

    def __init__(
        self,
        database_name: str,
        collection_name: str,
        filter: Any,
        update: Any,
        **options: Any,
    ) -> None:
        if update is None:
            raise InvalidArgumentError("$update is required")
        self.update = check_update_document(update, operator=True)
        super().__init__(database_name, collection_name, filter, **options)

    def _modification(self) -> dict[str, Any]:
        return {"update": self.update, "new": self.return_document}


class CreateIndexes(Operation):
    """Create one or more indexes and return their names."""

    command_name = "createIndexes"

    def __init__(
        self,
        database_name: str,
        collection_name: str,
        indexes: Sequence[Mapping[str, Any]],
    ) -> None:
        super().__init__(database_name, collection_name)
        if isinstance(indexes, Mapping) or not isinstance(indexes, (list, tuple)):
            raise InvalidArgumentError(
                f"Expected $indexes to be a list, got {type(indexes).__name__}"
            )
        if not indexes:
            raise InvalidArgumentError("$indexes is empty")
        self.indexes = [IndexSpec(index) for index in indexes]

    def command(self) -> dict[str, Any]:
        return {
            "createIndexes": self.collection_name,
            "indexes": [index.to_document() for index in self.indexes],
        }

    def execute(self, server: Server) -> list[str]:
        _single_reply(self._run(server), "ok")
        return [index.name for index in self.indexes]


class DropCollection(Operation):
    """Drop the collection. A missing collection is not an error."""

    command_name = "drop"

    def command(self) -> dict[str, Any]:
        return {"drop": self.collection_name}

    def execute(self, server: Server) -> dict[str, Any]:
        try:
            reply = next(iter(self._run(server)), None)
        except OperationFailure as exc:
            if exc.code == NAMESPACE_NOT_FOUND or "ns not found" in exc.message:
                return exc.details or {"ok": 0.0, "errmsg": exc.message}
            raise
        if not isinstance(reply, Mapping):
            raise UnexpectedTypeError(reply, "command reply document")
        return dict(reply)


class DropIndexes(Operation):
    """Drop one index by name, or every index with "*"."""

    command_name = "dropIndexes"

    def __init__(self, database_name: str, collection_name: str, index_name: str) -> None:
        super().__init__(database_name, collection_name)
        index_name = str(index_name)
        if not index_name:
            raise InvalidArgumentError("$indexName cannot be empty")
        self.index_name = index_name

    def command(self) -> dict[str, Any]:
        return {"dropIndexes": self.collection_name, "index": self.index_name}

    def execute(self, server: Server) -> dict[str, Any]:
        reply = next(iter(self._run(server)), None)
        if not isinstance(reply, Mapping):
            raise UnexpectedTypeError(reply, "command reply document")
        return dict(reply)


class ListIndexes(Operation):
    """List index information. Options: max_time_ms."""

    command_name = "listIndexes"

    def __init__(self, database_name: str, collection_name: str, **options: Any) -> None:
        super().__init__(database_name, collection_name)
        self.options = command_options(options)
        _check_int(self.options, "maxTimeMS")

    def command(self) -> dict[str, Any]:
        return {"listIndexes": self.collection_name, **self.options}

    def execute(self, server: Server) -> Iterator[IndexInfo]:
        try:
            cursor = self._run(server)
        except OperationFailure as exc:
            if exc.code == NAMESPACE_NOT_FOUND:
                return iter(())
            raise
        return (IndexInfo(info) for info in cursor)
