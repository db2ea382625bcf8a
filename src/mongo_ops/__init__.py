"""
mongo-ops - high-level MongoDB collection operations.

This package provides a Collection facade over a MongoDB driver with
support for:
- CRUD operations (insert, find, update, replace, delete)
- Mixed bulk writes with per-operation result correlation
- Index management
- Aggregation pipelines and findAndModify helpers

Example usage:
    from mongo_ops import Collection, PyMongoManager

    with PyMongoManager("mongodb://localhost:27017") as manager:
        users = Collection(manager, "myapp.users")

        # Insert documents
        result = users.insert_one({"name": "Alice", "email": "alice@example.com"})
        print(result.inserted_id)

        # Find documents
        user = users.find_one({"email": "alice@example.com"})
        for user in users.find({"status": "active"}):
            print(user["name"])

        # Update documents
        users.update_one(
            {"email": "alice@example.com"},
            {"$set": {"status": "vip"}}
        )

        # Several writes in one round trip
        result = users.bulk_write([
            {"insertOne": [{"name": "Bob"}]},
            {"updateMany": [{"status": "trial"}, {"$set": {"status": "active"}}]},
            {"deleteOne": [{"email": "alice@example.com"}]},
        ])
        print(result.inserted_ids, result.modified_count)
"""

from __future__ import annotations

__version__ = "0.1.0"

from pymongo import ReturnDocument

from .bulk import (
    BulkWrite,
    DeleteMany,
    DeleteOne,
    InsertOne,
    ReplaceOne,
    UpdateMany,
    UpdateOne,
)
from .collection import Collection
from .indexes import IndexInfo
from .manager import Manager, PyMongoManager, Server
from .options import BulkOptions, WriteOptions, merge_options
from .types import (
    BulkWriteError,
    BulkWriteResult,
    ConnectionError,
    DeleteResult,
    DuplicateKeyError,
    InsertManyResult,
    InsertOneResult,
    InvalidArgumentError,
    MongoError,
    OperationFailure,
    ServerSelectionError,
    UnexpectedTypeError,
    UpdateResult,
    WriteError,
    WriteErrorDetail,
    WriteResult,
)

__all__ = [
    # Main classes
    "Collection",
    "PyMongoManager",
    "Manager",
    "Server",
    "BulkWrite",
    "IndexInfo",
    "ReturnDocument",
    # Bulk write requests
    "InsertOne",
    "UpdateOne",
    "UpdateMany",
    "ReplaceOne",
    "DeleteOne",
    "DeleteMany",
    # Options
    "WriteOptions",
    "BulkOptions",
    "merge_options",
    # Result types
    "WriteResult",
    "WriteErrorDetail",
    "InsertOneResult",
    "InsertManyResult",
    "UpdateResult",
    "DeleteResult",
    "BulkWriteResult",
    # Exceptions
    "MongoError",
    "InvalidArgumentError",
    "UnexpectedTypeError",
    "ConnectionError",
    "ServerSelectionError",
    "WriteError",
    "DuplicateKeyError",
    "BulkWriteError",
    "OperationFailure",
    # Version
    "__version__",
]
