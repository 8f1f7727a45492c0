"""
Content-addressed virtual filesystem.

Immutable trees, text, bytes and symlinks keyed by their sha256, mutable refs pointing
at root trees, path-based writes that share every untouched subtree, and glob/grep over
any snapshot.
"""

from .config import Config, load_config
from .errors import ConfigError, InvalidOperation, InvalidReference, MerkleVFSError, RefConflict
from .filesystem import FSOperations, GrepMatch
from .refs import RefInfo
from .store import OpenResult, ReadResult, TreeEntry

__all__ = [
    'Config',
    'ConfigError',
    'FSOperations',
    'GrepMatch',
    'InvalidOperation',
    'InvalidReference',
    'MerkleVFSError',
    'OpenResult',
    'ReadResult',
    'RefConflict',
    'RefInfo',
    'TreeEntry',
    'load_config',
]

__version__ = "0.1.0"
