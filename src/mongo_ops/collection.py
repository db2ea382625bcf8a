"""
Collection - MongoDB collection operations.

Provides a Collection facade composing CRUD, bulk-write, index-management and
aggregation operations on top of a driver Manager.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterator, Mapping, Sequence

from pymongo.read_preferences import ReadPreference

from .bulk import BulkWrite, build_batch, parse_requests
from .documents import check_update_document, get_id
from .operations import (
    Aggregate,
    Count,
    CreateIndexes,
    Distinct,
    DropCollection,
    DropIndexes,
    Find,
    FindOne,
    FindOneAndDelete,
    FindOneAndReplace,
    FindOneAndUpdate,
    ListIndexes,
    Operation,
)
from .options import BulkOptions, WriteOptions, merge_options
from .types import (
    BulkWriteResult,
    DeleteResult,
    InsertManyResult,
    InsertOneResult,
    InvalidArgumentError,
    UpdateResult,
    WriteResult,
    split_namespace,
)

if TYPE_CHECKING:
    from pymongo.read_preferences import _ServerMode
    from pymongo.write_concern import WriteConcern

    from .indexes import IndexInfo
    from .manager import Manager
    from .types import Filter, Pipeline

__all__ = ["Collection"]

logger = logging.getLogger(__name__)


class Collection:
    """
    MongoDB collection with CRUD, bulk write, index and aggregation helpers.

    Writes are translated into a single BulkWrite executed by the manager.
    Reads and commands always run on a server selected with the primary read
    preference.

    Example:
        users = Collection(manager, "myapp.users")

        # Insert
        result = users.insert_one({"name": "Alice"})
        print(result.inserted_id)

        # Find
        user = users.find_one({"name": "Alice"})
        for user in users.find({"status": "active"}):
            print(user)

        # Update
        users.update_one({"name": "Alice"}, {"$set": {"status": "vip"}})

        # Mixed batch
        users.bulk_write([
            {"insertOne": [{"name": "Bob"}]},
            {"deleteMany": [{"status": "inactive"}]},
        ])
    """

    __slots__ = (
        "_manager",
        "_namespace",
        "_database_name",
        "_name",
        "_write_concern",
        "_read_preference",
        "_write_options",
        "_bulk_options",
    )

    def __init__(
        self,
        manager: Manager,
        namespace: str,
        write_concern: WriteConcern | None = None,
        read_preference: _ServerMode | None = None,
    ) -> None:
        """
        Initialize a collection.

        Args:
            manager: Driver manager shared by every collection.
            namespace: Collection namespace, e.g. "db.collection".
            write_concern: Default write concern for writes.
            read_preference: Default read preference. Stored but not used
                for reads, which always target the primary.

        Raises:
            InvalidArgumentError: If the namespace is not "database.collection".
        """
        self._manager = manager
        self._namespace = str(namespace)
        self._database_name, self._name = split_namespace(self._namespace)
        self._write_concern = write_concern
        self._read_preference = read_preference
        self._write_options = WriteOptions()
        self._bulk_options = BulkOptions()

    @property
    def name(self) -> str:
        """Get the collection name."""
        return self._name

    @property
    def database_name(self) -> str:
        """Get the database name."""
        return self._database_name

    @property
    def full_name(self) -> str:
        """Get the full collection name (database.collection)."""
        return self._namespace

    @property
    def write_concern(self) -> WriteConcern | None:
        return self._write_concern

    @property
    def read_preference(self) -> _ServerMode | None:
        return self._read_preference

    def get_collection_name(self) -> str:
        return self._name

    def get_database_name(self) -> str:
        return self._database_name

    def get_namespace(self) -> str:
        return self._namespace

    def get_write_options(self) -> dict[str, Any]:
        """Return the write option defaults: ordered, upsert and limit."""
        return self._write_options.as_dict()

    def get_bulk_options(self) -> dict[str, Any]:
        """Return the bulk_write option defaults: ordered."""
        return self._bulk_options.as_dict()

    def _execute(self, operation: Operation) -> Any:
        server = self._manager.select_server(ReadPreference.PRIMARY)
        logger.debug("Running %s on %s", operation.command_name, self._namespace)
        return operation.execute(server)

    def _execute_bulk(self, bulk: BulkWrite) -> WriteResult:
        logger.debug(
            "Executing batch of %d operation(s) on %s (ordered=%s)",
            len(bulk),
            self._namespace,
            bulk.ordered,
        )
        return self._manager.execute_bulk_write(self._namespace, bulk, self._write_concern)

    def bulk_write(self, operations: Sequence[Any], **options: Any) -> BulkWriteResult:
        """
        Execute a mixed batch of writes in one round trip.

        Each operation is a request object (InsertOne, UpdateOne, UpdateMany,
        ReplaceOne, DeleteOne, DeleteMany) or a single-key mapping:

            {"insertOne": [document]}
            {"updateOne": [filter, update, options]}
            {"updateMany": [filter, update, options]}
            {"replaceOne": [filter, replacement, options]}
            {"deleteOne": [filter, options]}
            {"deleteMany": [filter, options]}

        Args:
            operations: Operations to execute, in order.
            **options: Batch options (see get_bulk_options()), e.g. ordered=True.

        Returns:
            BulkWriteResult with the counts and the inserted _ids by index.

        Raises:
            InvalidArgumentError: If any operation is invalid. Nothing is
                executed in that case.
            BulkWriteError: If the server rejected one or more operations.
        """
        requests = parse_requests(operations)
        if not requests:
            raise InvalidArgumentError("$operations is empty")

        options = merge_options(self.get_bulk_options(), options)
        bulk, inserted_ids = build_batch(requests, options["ordered"], self.get_write_options())
        return BulkWriteResult(self._execute_bulk(bulk), inserted_ids)

    def insert_one(self, document: Any) -> InsertOneResult:
        """
        Insert a single document.

        Args:
            document: A mapping or record. An _id is generated if missing.

        Returns:
            InsertOneResult with the inserted ID.

        Raises:
            BulkWriteError: If a document with the same _id exists.
        """
        bulk = BulkWrite(self.get_write_options()["ordered"])
        inserted_id = bulk.insert(document)
        result = self._execute_bulk(bulk)
        if inserted_id is None:
            inserted_id = get_id(document)
        return InsertOneResult(result, inserted_id)

    def insert_many(self, documents: Sequence[Any]) -> InsertManyResult:
        """
        Insert multiple documents in one batch.

        Args:
            documents: Mappings or records.

        Returns:
            InsertManyResult with the inserted IDs keyed by position.
        """
        if isinstance(documents, (str, bytes, Mapping)):
            raise InvalidArgumentError("Expected $documents to be a sequence of documents")
        documents = list(documents)
        if not documents:
            raise InvalidArgumentError("$documents is empty")

        bulk = BulkWrite(self.get_write_options()["ordered"])
        inserted_ids: dict[int, Any] = {}
        for index, document in enumerate(documents):
            inserted_id = bulk.insert(document)
            inserted_ids[index] = inserted_id if inserted_id is not None else get_id(document)

        return InsertManyResult(self._execute_bulk(bulk), inserted_ids)

    def _update(
        self,
        filter: Filter,
        update: Any,
        options: Mapping[str, Any],
        multi: bool,
    ) -> WriteResult:
        options = merge_options(self.get_write_options(), options, {"multi": multi})
        bulk = BulkWrite(options["ordered"])
        bulk.update(filter, update, options)
        return self._execute_bulk(bulk)

    def _delete(self, filter: Filter, limit: int = 1) -> WriteResult:
        options = merge_options(self.get_write_options(), forced={"limit": limit})
        bulk = BulkWrite(options["ordered"])
        bulk.delete(filter, options)
        return self._execute_bulk(bulk)

    def update_one(self, filter: Filter, update: Any, **options: Any) -> UpdateResult:
        """
        Update at most one document.

        Args:
            filter: Query filter to match the document.
            update: Update operators ($set, $unset, $inc, etc.).
            **options: Write options, e.g. upsert=True.

        Raises:
            InvalidArgumentError: If the update's first key is not a $operator.
        """
        check_update_document(update, operator=True)
        return UpdateResult(self._update(filter, update, options, multi=False))

    def update_many(self, filter: Filter, update: Any, **options: Any) -> UpdateResult:
        """
        Update every matching document.

        Args:
            filter: Query filter to match documents.
            update: Update operators ($set, $unset, $inc, etc.).
            **options: Write options, e.g. upsert=True.

        Raises:
            InvalidArgumentError: If the update's first key is not a $operator.
        """
        check_update_document(update, operator=True)
        return UpdateResult(self._update(filter, update, options, multi=True))

    def replace_one(self, filter: Filter, replacement: Any, **options: Any) -> UpdateResult:
        """
        Replace at most one document.

        Raises:
            InvalidArgumentError: If the replacement's first key is a $operator.
        """
        check_update_document(replacement, operator=False)
        return UpdateResult(self._update(filter, replacement, options, multi=False))

    def delete_one(self, filter: Filter) -> DeleteResult:
        """Delete at most one document matching the filter."""
        return DeleteResult(self._delete(filter, 1))

    def delete_many(self, filter: Filter) -> DeleteResult:
        """Delete every document matching the filter."""
        return DeleteResult(self._delete(filter, 0))

    def find(self, filter: Filter | None = None, **options: Any) -> Iterator[Any]:
        """
        Find documents matching the filter.

        Args:
            filter: Query filter.
            **options: projection, sort, skip, limit, batch_size, max_time_ms...

        Returns:
            The driver's cursor.

        Example:
            for doc in collection.find({"status": "active"}, sort=[("name", 1)], limit=10):
                print(doc)
        """
        return self._execute(Find(self._database_name, self._name, filter, **options))

    def find_one(self, filter: Filter | None = None, **options: Any) -> dict[str, Any] | None:
        """
        Find a single document.

        Returns:
            The matching document, or None if not found.
        """
        return self._execute(FindOne(self._database_name, self._name, filter, **options))

    def count(self, filter: Filter | None = None, **options: Any) -> int:
        """Count documents matching the filter."""
        return self._execute(Count(self._database_name, self._name, filter, **options))

    def distinct(self, field_name: str, filter: Filter | None = None, **options: Any) -> list[Any]:
        """Get distinct values for a field across matching documents."""
        return self._execute(
            Distinct(self._database_name, self._name, field_name, filter, **options)
        )

    def aggregate(self, pipeline: Pipeline, **options: Any) -> Iterator[Any]:
        """
        Run an aggregation pipeline.

        Args:
            pipeline: List of aggregation stages.
            **options: allow_disk_use, batch_size, max_time_ms, use_cursor.

        Returns:
            The driver's cursor, or an iterator over the inline result when
            use_cursor=False.
        """
        return self._execute(Aggregate(self._database_name, self._name, pipeline, **options))

    def find_one_and_delete(self, filter: Filter, **options: Any) -> dict[str, Any] | None:
        """Delete a single document and return it, or None if nothing matched."""
        return self._execute(FindOneAndDelete(self._database_name, self._name, filter, **options))

    def find_one_and_replace(
        self,
        filter: Filter,
        replacement: Any,
        **options: Any,
    ) -> dict[str, Any] | None:
        """
        Replace a single document.

        By default the original document is returned; pass
        return_document=ReturnDocument.AFTER for the replacement.
        """
        return self._execute(
            FindOneAndReplace(self._database_name, self._name, filter, replacement, **options)
        )

    def find_one_and_update(
        self,
        filter: Filter,
        update: Any,
        **options: Any,
    ) -> dict[str, Any] | None:
        """
        Update a single document.

        By default the original document is returned; pass
        return_document=ReturnDocument.AFTER for the updated one.
        """
        return self._execute(
            FindOneAndUpdate(self._database_name, self._name, filter, update, **options)
        )

    def create_index(self, key: Mapping[str, Any], **options: Any) -> str:
        """
        Create a single index.

        Args:
            key: Fields mapped to an order or index type, e.g. {"x": 1}.
            **options: Index options (name, unique, sparse, ...).

        Returns:
            Name of the created index.
        """
        return self.create_indexes([{**options, "key": key}])[0]

    def create_indexes(self, indexes: Sequence[Mapping[str, Any]]) -> list[str]:
        """
        Create one or more indexes.

        Each specification needs a "key" document; a name is generated from
        it when "name" is absent.

        Example:
            collection.create_indexes([
                {"key": {"username": 1}, "unique": True},
                {"key": {"loc": "2dsphere"}, "name": "geo"},
            ])

        Returns:
            Names of the created indexes, in order.
        """
        return self._execute(CreateIndexes(self._database_name, self._name, indexes))

    def drop(self) -> dict[str, Any]:
        """Drop the collection and return the command reply."""
        return self._execute(DropCollection(self._database_name, self._name))

    def drop_index(self, index_name: str) -> dict[str, Any]:
        """
        Drop a single index.

        Raises:
            InvalidArgumentError: If index_name is empty or "*".
        """
        if str(index_name) == "*":
            raise InvalidArgumentError("drop_indexes() must be used to drop multiple indexes")
        return self._execute(DropIndexes(self._database_name, self._name, index_name))

    def drop_indexes(self) -> dict[str, Any]:
        """Drop every index except the one on _id."""
        return self._execute(DropIndexes(self._database_name, self._name, "*"))

    def list_indexes(self, **options: Any) -> Iterator[IndexInfo]:
        """Return information about every index on the collection."""
        return self._execute(ListIndexes(self._database_name, self._name, **options))

    def __str__(self) -> str:
        return self._namespace

    def __repr__(self) -> str:
        return f"Collection({self._namespace!r})"
