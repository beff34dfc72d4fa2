"""Concrete storage adapters, one per identifier strategy.

    STRING_GENERATED → MongoDocumentAdapter  (document store)
    LONG_SEQUENCE    → SqlSequenceAdapter    (relational, sequence ids)
    LONG_IDENTITY    → SqlIdentityAdapter    (relational, identity ids)
"""

from .document import MongoDocumentAdapter
from .identity import SqlIdentityAdapter
from .sequence import SqlSequenceAdapter
from .sql import SqlStorageAdapter

__all__ = [
    "MongoDocumentAdapter",
    "SqlIdentityAdapter",
    "SqlSequenceAdapter",
    "SqlStorageAdapter",
]
