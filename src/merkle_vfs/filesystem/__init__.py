"""
Path-level filesystem over the object store.
This module provides the tree rewrite engine, glob/grep search and the operations facade.
"""

from .fs_tree import FSTree, HASH_REF_PREFIX
from .fs_operations import FSOperations, StoreStats
from .search import GrepMatch, SearchEngine, compile_glob, translate_glob

__all__ = [
    'FSOperations',
    'FSTree',
    'GrepMatch',
    'HASH_REF_PREFIX',
    'SearchEngine',
    'StoreStats',
    'compile_glob',
    'translate_glob',
]
