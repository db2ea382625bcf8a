"""
Manager - the driver contract consumed by Collection.

A Manager selects servers and executes write batches; a Server executes
commands. PyMongoManager implements both on top of pymongo.MongoClient,
which owns connection pooling, topology monitoring and wire encoding.
"""

from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from types import TracebackType
from typing import TYPE_CHECKING, Any, Iterable, Iterator, Mapping, Protocol

import pymongo
from pymongo import errors as pymongo_errors

from .bulk import BulkWrite, DeleteOperation, InsertOperation, PrimitiveOperation, UpdateOperation
from .documents import is_operator_document
from .types import (
    BulkWriteError,
    ConnectionError,
    DuplicateKeyError,
    MongoError,
    OperationFailure,
    ServerSelectionError,
    WriteResult,
    split_namespace,
)

if TYPE_CHECKING:
    from pymongo.read_preferences import _ServerMode
    from pymongo.write_concern import WriteConcern

__all__ = ["Server", "Manager", "PyMongoManager", "DEFAULT_URI"]

logger = logging.getLogger(__name__)

DEFAULT_URI = "mongodb://localhost:27017"

# Commands whose reply carries a cursor rather than a single document.
_CURSOR_COMMANDS = frozenset({"find", "aggregate", "listIndexes"})


class Server(Protocol):
    """A server handle able to run commands."""

    def execute_command(
        self,
        database: str,
        command: Mapping[str, Any],
    ) -> Iterator[dict[str, Any]]:
        """
        Run a command.

        Returns:
            For cursor-returning commands, a forward-only iterator over the
            result set. Otherwise an iterator yielding the reply document.
        """
        ...


class Manager(Protocol):
    """Server selection and write-batch execution."""

    def select_server(self, read_preference: _ServerMode) -> Server:
        ...

    def execute_bulk_write(
        self,
        namespace: str,
        bulk: BulkWrite,
        write_concern: WriteConcern | None = None,
    ) -> WriteResult:
        ...


@contextmanager
def _translate_errors() -> Iterator[None]:
    """Re-raise pymongo errors as mongo_ops errors."""
    try:
        yield
    except pymongo_errors.BulkWriteError as exc:
        raise BulkWriteError(str(exc), WriteResult.from_document(exc.details)) from exc
    except pymongo_errors.DuplicateKeyError as exc:
        raise DuplicateKeyError(str(exc), exc.code) from exc
    except pymongo_errors.ServerSelectionTimeoutError as exc:
        raise ServerSelectionError(str(exc)) from exc
    except pymongo_errors.ConnectionFailure as exc:
        raise ConnectionError(str(exc)) from exc
    except pymongo_errors.OperationFailure as exc:
        raise OperationFailure(str(exc), exc.code, exc.details) from exc
    except pymongo_errors.ConfigurationError as exc:
        raise ConnectionError(str(exc)) from exc


def _iterate(cursor: Iterable[dict[str, Any]]) -> Iterator[dict[str, Any]]:
    with _translate_errors():
        yield from cursor


def _to_request(operation: PrimitiveOperation) -> Any:
    """Map a primitive batch operation onto a pymongo write request."""
    if isinstance(operation, InsertOperation):
        return pymongo.InsertOne(operation.document)
    if isinstance(operation, UpdateOperation):
        if operation.multi:
            return pymongo.UpdateMany(operation.filter, operation.update, upsert=operation.upsert)
        if is_operator_document(operation.update):
            return pymongo.UpdateOne(operation.filter, operation.update, upsert=operation.upsert)
        return pymongo.ReplaceOne(operation.filter, operation.update, upsert=operation.upsert)
    if isinstance(operation, DeleteOperation):
        if operation.limit == 1:
            return pymongo.DeleteOne(operation.filter)
        return pymongo.DeleteMany(operation.filter)
    raise TypeError(f"Unsupported batch operation: {operation!r}")


class _PyMongoServer:
    """Server handle bound to a read preference."""

    __slots__ = ("_client", "_read_preference")

    def __init__(self, client: pymongo.MongoClient, read_preference: _ServerMode) -> None:
        self._client = client
        self._read_preference = read_preference

    @property
    def read_preference(self) -> _ServerMode:
        return self._read_preference

    def execute_command(
        self,
        database: str,
        command: Mapping[str, Any],
    ) -> Iterator[dict[str, Any]]:
        name = next(iter(command))
        db = self._client[database]
        logger.debug("Running %s on %s", name, database)

        with _translate_errors():
            if name in _CURSOR_COMMANDS and (name != "aggregate" or "cursor" in command):
                cursor = db.cursor_command(dict(command), read_preference=self._read_preference)
                return _iterate(cursor)
            reply = db.command(dict(command), read_preference=self._read_preference)
        return iter([reply])


class PyMongoManager:
    """
    Manager backed by a pymongo.MongoClient.

    Example:
        with PyMongoManager("mongodb://localhost:27017") as manager:
            users = Collection(manager, "myapp.users")
            users.insert_one({"name": "Alice"})

        # Or configure through the environment
        # MONGO_URL=mongodb://db.internal:27017
        manager = PyMongoManager(timeout=5.0)
    """

    __slots__ = ("_uri", "_client", "_options", "_lock")

    def __init__(
        self,
        uri: str | None = None,
        client: pymongo.MongoClient | None = None,
        **options: Any,
    ) -> None:
        """
        Initialize the manager.

        Args:
            uri: Connection URI. If not provided, uses the MONGO_URL
                 environment variable, then mongodb://localhost:27017.
            client: An existing MongoClient to use instead of creating one.
            **options: Additional connection options.
                - timeout: Server selection timeout in seconds (default: 30.0).
                - anything else is passed to pymongo.MongoClient.
        """
        self._uri = uri or os.environ.get("MONGO_URL", DEFAULT_URI)
        self._client = client
        self._options = options
        self._lock = threading.Lock()

    @property
    def uri(self) -> str:
        """Get the connection URI."""
        return self._uri

    @property
    def is_connected(self) -> bool:
        """Check if a client has been created and not closed."""
        return self._client is not None

    @property
    def client(self) -> pymongo.MongoClient:
        """Get the underlying MongoClient, creating it on first use."""
        return self.connect()._client  # type: ignore[return-value]

    def connect(self) -> PyMongoManager:
        """
        Create the underlying MongoClient.

        Returns:
            Self for chaining.

        Raises:
            ConnectionError: If the URI or options are invalid.
        """
        if self._client is not None:
            return self

        with self._lock:
            if self._client is not None:
                return self

            options = dict(self._options)
            timeout = float(options.pop("timeout", 30.0))
            try:
                self._client = pymongo.MongoClient(
                    self._uri,
                    serverSelectionTimeoutMS=int(timeout * 1000),
                    **options,
                )
            except pymongo_errors.ConfigurationError as exc:
                raise ConnectionError(f"Failed to configure client: {exc}") from exc

        logger.info("MongoDB client created (server selection timeout %.1fs)", timeout)
        return self

    def close(self) -> None:
        """Close the underlying client."""
        with self._lock:
            client, self._client = self._client, None
        if client is not None:
            client.close()
            logger.info("MongoDB client closed")

    def select_server(self, read_preference: _ServerMode) -> Server:
        """
        Return a server handle for the read preference.

        Selection itself happens when a command runs; a timeout surfaces as
        ServerSelectionError from execute_command().
        """
        return _PyMongoServer(self.client, read_preference)

    def execute_bulk_write(
        self,
        namespace: str,
        bulk: BulkWrite,
        write_concern: WriteConcern | None = None,
    ) -> WriteResult:
        """
        Execute a write batch in one bulk_write call.

        Raises:
            BulkWriteError: If any operation failed.
            ServerSelectionError: If no writable server is available.
        """
        if not len(bulk):
            raise MongoError("Cannot execute an empty write batch")

        database, collection = split_namespace(namespace)
        coll = self.client[database].get_collection(collection, write_concern=write_concern)
        requests = [_to_request(operation) for operation in bulk]
        logger.debug(
            "Executing %d write operation(s) on %s (ordered=%s)",
            len(requests),
            namespace,
            bulk.ordered,
        )

        with _translate_errors():
            result = coll.bulk_write(requests, ordered=bulk.ordered)

        if not result.acknowledged:
            return WriteResult.unacknowledged()
        return WriteResult.from_document(result.bulk_api_result)

    def __enter__(self) -> PyMongoManager:
        """Context manager entry."""
        return self.connect()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Context manager exit."""
        self.close()

    def __repr__(self) -> str:
        status = "connected" if self.is_connected else "disconnected"
        return f"PyMongoManager({self._uri!r}, {status})"
