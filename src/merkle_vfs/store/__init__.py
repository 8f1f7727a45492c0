"""
Content-addressed object store.
This module provides the immutable object model and its on-disk persistence.
"""

from .objects import (
    BytesObject,
    ObjectType,
    OpenResult,
    ReadResult,
    StoredObject,
    SymlinkObject,
    TextObject,
    TreeEntry,
    TreeObject,
)
from .object_store import ObjectStore, compute_hash, is_hash

__all__ = [
    'BytesObject',
    'ObjectStore',
    'ObjectType',
    'OpenResult',
    'ReadResult',
    'StoredObject',
    'SymlinkObject',
    'TextObject',
    'TreeEntry',
    'TreeObject',
    'compute_hash',
    'is_hash',
]
