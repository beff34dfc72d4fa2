"""Persistence package.

Exports the storage adapter implementations and the table builder used by
the relational ones.
"""

from crudforge.infrastructure.persistence.adapters import (
    MongoDocumentAdapter,
    SqlIdentityAdapter,
    SqlSequenceAdapter,
    SqlStorageAdapter,
)
from crudforge.infrastructure.persistence.tables import build_table, column_type

__all__ = [
    "MongoDocumentAdapter",
    "SqlIdentityAdapter",
    "SqlSequenceAdapter",
    "SqlStorageAdapter",
    "build_table",
    "column_type",
]
