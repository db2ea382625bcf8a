"""
Pytest fixtures for mongo-ops tests.

Provides an in-memory fake manager standing in for the driver, so the
Collection facade can be tested without a running server. The fake records
every batch, command and server selection it receives.
"""

from __future__ import annotations

from typing import Any, Iterator, Mapping

import pytest
from bson import ObjectId

from mongo_ops.bulk import BulkWrite, DeleteOperation, InsertOperation, UpdateOperation
from mongo_ops.documents import is_operator_document
from mongo_ops.types import (
    BulkWriteError,
    OperationFailure,
    WriteErrorDetail,
    WriteResult,
)

DUPLICATE_KEY = 11000
NAMESPACE_NOT_FOUND = 26
INDEX_NOT_FOUND = 27

ID_INDEX = {"v": 2, "key": {"_id": 1}, "name": "_id_"}


class FakeServer:
    """Runs commands against the fake manager's in-memory data."""

    def __init__(self, manager: FakeManager, read_preference: Any) -> None:
        self.manager = manager
        self.read_preference = read_preference

    def execute_command(
        self,
        database: str,
        command: Mapping[str, Any],
    ) -> Iterator[dict[str, Any]]:
        self.manager.commands.append((database, dict(command)))
        name = next(iter(command))
        handler = getattr(self.manager, f"_cmd_{name}", None)
        if handler is None:
            raise OperationFailure(f"no such command: '{name}'", 59)
        return handler(database, command)


class FakeManager:
    """In-memory Manager implementation."""

    def __init__(self, report_modified: bool = True) -> None:
        self._data: dict[str, dict[str, list[dict[str, Any]]]] = {}
        self._indexes: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self.report_modified = report_modified
        self.batches: list[tuple[str, BulkWrite, Any]] = []
        self.commands: list[tuple[str, dict[str, Any]]] = []
        self.selected: list[Any] = []

    # -- helpers -----------------------------------------------------------

    @property
    def calls(self) -> int:
        """Number of requests that reached the fake driver."""
        return len(self.batches) + len(self.commands) + len(self.selected)

    def _exists(self, database: str, collection: str) -> bool:
        return collection in self._data.get(database, {})

    def _get_collection_data(self, database: str, collection: str) -> list[dict[str, Any]]:
        """Get or create collection data."""
        if database not in self._data:
            self._data[database] = {}
        if collection not in self._data[database]:
            self._data[database][collection] = []
        return self._data[database][collection]

    def documents(self, namespace: str) -> list[dict[str, Any]]:
        database, collection = namespace.split(".", 1)
        return self._data.get(database, {}).get(collection, [])

    # -- Manager contract --------------------------------------------------

    def select_server(self, read_preference: Any) -> FakeServer:
        self.selected.append(read_preference)
        return FakeServer(self, read_preference)

    def execute_bulk_write(
        self,
        namespace: str,
        bulk: BulkWrite,
        write_concern: Any = None,
    ) -> WriteResult:
        self.batches.append((namespace, bulk, write_concern))
        database, collection = namespace.split(".", 1)
        data = self._get_collection_data(database, collection)

        counts = {"inserted": 0, "matched": 0, "modified": 0, "deleted": 0}
        upserted: dict[int, Any] = {}
        errors: list[WriteErrorDetail] = []

        for operation in bulk:
            if isinstance(operation, InsertOperation):
                doc_id = operation.document["_id"]
                if any(doc.get("_id") == doc_id for doc in data):
                    errors.append(
                        WriteErrorDetail(
                            operation.index,
                            DUPLICATE_KEY,
                            f"E11000 duplicate key error dup key: {{ _id: {doc_id!r} }}",
                        )
                    )
                    if bulk.ordered:
                        break
                    continue
                data.append(dict(operation.document))
                counts["inserted"] += 1
            elif isinstance(operation, UpdateOperation):
                self._update(data, operation, counts, upserted)
            elif isinstance(operation, DeleteOperation):
                matches = [doc for doc in data if self._matches(doc, operation.filter)]
                if operation.limit == 1:
                    matches = matches[:1]
                for doc in matches:
                    data.remove(doc)
                counts["deleted"] += len(matches)

        result = WriteResult(
            inserted_count=counts["inserted"],
            matched_count=counts["matched"],
            modified_count=counts["modified"] if self.report_modified else None,
            deleted_count=counts["deleted"],
            upserted_count=len(upserted),
            upserted_ids=upserted,
            write_errors=errors,
        )
        if errors:
            raise BulkWriteError("batch op errors occurred", result)
        return result

    def _update(
        self,
        data: list[dict[str, Any]],
        operation: UpdateOperation,
        counts: dict[str, int],
        upserted: dict[int, Any],
    ) -> None:
        matches = [doc for doc in data if self._matches(doc, operation.filter)]
        if not operation.multi:
            matches = matches[:1]

        for doc in matches:
            counts["matched"] += 1
            if self._modify(doc, operation.update):
                counts["modified"] += 1

        if not matches and operation.upsert:
            new_doc = {
                key: value
                for key, value in operation.filter.items()
                if not key.startswith("$") and not isinstance(value, dict)
            }
            self._modify(new_doc, operation.update)
            new_doc.setdefault("_id", ObjectId())
            data.append(new_doc)
            upserted[operation.index] = new_doc["_id"]

    def _modify(self, doc: dict[str, Any], update: dict[str, Any]) -> bool:
        if is_operator_document(update):
            return self._apply_update(doc, update)
        doc_id = doc.get("_id")
        changed = {k: v for k, v in doc.items() if k != "_id"} != update
        doc.clear()
        if doc_id is not None:
            doc["_id"] = doc_id
        doc.update({k: v for k, v in update.items() if k != "_id"})
        return changed

    # -- commands ----------------------------------------------------------

    def _find_documents(self, database: str, command: Mapping[str, Any], key: str):
        data = self._data.get(database, {}).get(command[key], [])
        filter = command.get("filter", command.get("query", {}))
        results = [doc for doc in data if self._matches(doc, filter)]

        sort = command.get("sort")
        if sort:
            for field, direction in reversed(list(sort.items())):
                results.sort(key=lambda x: x.get(field, ""), reverse=(direction == -1))
        return results

    def _cmd_find(self, database: str, command: Mapping[str, Any]):
        results = self._find_documents(database, command, "find")
        skip = command.get("skip", 0)
        if skip:
            results = results[skip:]
        limit = command.get("limit", 0)
        if limit:
            results = results[:limit]
        projection = command.get("projection")
        return iter([self._project(dict(doc), projection) for doc in results])

    def _cmd_count(self, database: str, command: Mapping[str, Any]):
        results = self._find_documents(database, command, "count")
        results = results[command.get("skip", 0):]
        if command.get("limit"):
            results = results[: command["limit"]]
        return iter([{"n": len(results), "ok": 1.0}])

    def _cmd_distinct(self, database: str, command: Mapping[str, Any]):
        values: list[Any] = []
        for doc in self._find_documents(database, command, "distinct"):
            value = doc.get(command["key"])
            if command["key"] in doc and value not in values:
                values.append(value)
        return iter([{"values": values, "ok": 1.0}])

    def _cmd_aggregate(self, database: str, command: Mapping[str, Any]):
        """Aggregate (simplified: $match and $limit only)."""
        results = [dict(doc) for doc in self._data.get(database, {}).get(command["aggregate"], [])]
        for stage in command["pipeline"]:
            if "$match" in stage:
                results = [doc for doc in results if self._matches(doc, stage["$match"])]
            elif "$limit" in stage:
                results = results[: stage["$limit"]]
        if "cursor" in command:
            return iter(results)
        return iter([{"result": results, "ok": 1.0}])

    def _cmd_findAndModify(self, database: str, command: Mapping[str, Any]):
        data = self._get_collection_data(database, command["findAndModify"])
        matches = self._find_documents(database, command, "findAndModify")
        doc = matches[0] if matches else None
        value = None

        if command.get("remove"):
            if doc is not None:
                data.remove(doc)
                value = dict(doc)
        elif doc is not None:
            before = dict(doc)
            self._modify(doc, command["update"])
            value = dict(doc) if command.get("new") else before
        elif command.get("upsert"):
            new_doc = {k: v for k, v in command["query"].items() if not k.startswith("$")}
            self._modify(new_doc, command["update"])
            new_doc.setdefault("_id", ObjectId())
            data.append(new_doc)
            value = dict(new_doc) if command.get("new") else None

        if value is not None:
            value = self._project(value, command.get("fields"))
        return iter([{"value": value, "ok": 1.0}])

    def _cmd_createIndexes(self, database: str, command: Mapping[str, Any]):
        collection = command["createIndexes"]
        self._get_collection_data(database, collection)
        indexes = self._indexes.setdefault((database, collection), [dict(ID_INDEX)])
        before = len(indexes)
        for index in command["indexes"]:
            if all(existing["name"] != index["name"] for existing in indexes):
                indexes.append({"v": 2, **index})
        return iter([{"numIndexesBefore": before, "numIndexesAfter": len(indexes), "ok": 1.0}])

    def _cmd_listIndexes(self, database: str, command: Mapping[str, Any]):
        collection = command["listIndexes"]
        if not self._exists(database, collection):
            raise OperationFailure(
                f"ns does not exist: {database}.{collection}", NAMESPACE_NOT_FOUND
            )
        indexes = self._indexes.get((database, collection), [dict(ID_INDEX)])
        return iter([dict(index) for index in indexes])

    def _cmd_dropIndexes(self, database: str, command: Mapping[str, Any]):
        key = (database, command["dropIndexes"])
        indexes = self._indexes.setdefault(key, [dict(ID_INDEX)])
        was = len(indexes)
        if command["index"] == "*":
            self._indexes[key] = [dict(ID_INDEX)]
        else:
            remaining = [index for index in indexes if index["name"] != command["index"]]
            if len(remaining) == was:
                raise OperationFailure(
                    f"index not found with name [{command['index']}]", INDEX_NOT_FOUND
                )
            self._indexes[key] = remaining
        return iter([{"nIndexesWas": was, "ok": 1.0}])

    def _cmd_drop(self, database: str, command: Mapping[str, Any]):
        collection = command["drop"]
        if not self._exists(database, collection):
            raise OperationFailure(
                "ns not found",
                NAMESPACE_NOT_FOUND,
                {"ok": 0.0, "errmsg": "ns not found", "code": NAMESPACE_NOT_FOUND},
            )
        del self._data[database][collection]
        indexes = self._indexes.pop((database, collection), [ID_INDEX])
        return iter([{"ns": f"{database}.{collection}", "nIndexesWas": len(indexes), "ok": 1.0}])

    # -- query helpers -----------------------------------------------------

    def _matches(self, doc: dict[str, Any], filter: Mapping[str, Any]) -> bool:
        """Check if document matches filter."""
        if not filter:
            return True

        for key, value in filter.items():
            if key.startswith("$"):
                if key == "$and":
                    if not all(self._matches(doc, f) for f in value):
                        return False
                elif key == "$or":
                    if not any(self._matches(doc, f) for f in value):
                        return False
                continue

            doc_value = doc.get(key)

            if isinstance(value, dict):
                for op, op_value in value.items():
                    if op == "$eq":
                        if doc_value != op_value:
                            return False
                    elif op == "$ne":
                        if doc_value == op_value:
                            return False
                    elif op == "$gt":
                        if doc_value is None or doc_value <= op_value:
                            return False
                    elif op == "$gte":
                        if doc_value is None or doc_value < op_value:
                            return False
                    elif op == "$lt":
                        if doc_value is None or doc_value >= op_value:
                            return False
                    elif op == "$lte":
                        if doc_value is None or doc_value > op_value:
                            return False
                    elif op == "$in":
                        if doc_value not in op_value:
                            return False
                    elif op == "$exists":
                        if bool(op_value) != (key in doc):
                            return False
            elif doc_value != value:
                return False

        return True

    def _apply_update(self, doc: dict[str, Any], update: Mapping[str, Any]) -> bool:
        """Apply update operators to document."""
        modified = False

        for op, fields in update.items():
            if op == "$set":
                for key, value in fields.items():
                    if doc.get(key) != value:
                        doc[key] = value
                        modified = True
            elif op == "$unset":
                for key in fields:
                    if key in doc:
                        del doc[key]
                        modified = True
            elif op == "$inc":
                for key, value in fields.items():
                    doc[key] = doc.get(key, 0) + value
                    modified = True
            elif op == "$push":
                for key, value in fields.items():
                    doc.setdefault(key, []).append(value)
                    modified = True

        return modified

    def _project(
        self,
        doc: dict[str, Any],
        projection: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        """Apply projection to document."""
        if not projection:
            return doc

        include_mode = any(v == 1 for k, v in projection.items() if k != "_id")
        if include_mode:
            result = {key: doc[key] for key, include in projection.items() if include and key in doc}
            if "_id" in doc and projection.get("_id", 1) != 0:
                result["_id"] = doc["_id"]
            return result
        return {k: v for k, v in doc.items() if projection.get(k, 1) != 0}


@pytest.fixture
def manager() -> FakeManager:
    """Create an in-memory manager."""
    return FakeManager()


@pytest.fixture
def collection(manager: FakeManager):
    """Create a collection bound to the fake manager."""
    from mongo_ops import Collection

    return Collection(manager, "testdb.testcollection")
