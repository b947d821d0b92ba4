"""Document store adapters."""

from .base import (
    BatchTooLargeError,
    Document,
    DocumentNotFoundError,
    DocumentStore,
    OpKind,
    PreconditionFailedError,
    StoreError,
    WriteOp,
    pack_groups,
)
from .memory import MemoryDocumentStore
from .sql import SqlDocumentStore

__all__ = [
    "BatchTooLargeError",
    "Document",
    "DocumentNotFoundError",
    "DocumentStore",
    "OpKind",
    "PreconditionFailedError",
    "StoreError",
    "WriteOp",
    "pack_groups",
    "MemoryDocumentStore",
    "SqlDocumentStore",
]
