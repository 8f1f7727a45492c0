"""
Implementation of high-level filesystem operations.
This module ties together the object store, the ref table, the tree engine and search,
and is the only surface the surrounding service layer talks to.
"""
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Union
import base64
import binascii
import logging
import os

from serde import SerdeError, from_dict, serde

from ..config import Config
from ..errors import InvalidOperation
from ..refs import RefInfo, RefListener, RefTable
from ..store import ObjectStore, OpenResult, ReadResult, TreeEntry
from .fs_tree import FSTree
from .search import DEFAULT_MAX_RESULTS, GrepMatch, SearchEngine

logger = logging.getLogger(__name__)

DEFAULT_REF = "refs/work/HEAD"


@serde
@dataclass
class StoreStats:
    objects: int # objects seen by this process (the cache size)
    refs: int


class FSOperations:
    """
    A content-addressed filesystem rooted at a database directory.

    Opening a database makes sure the empty tree exists and that the default
    working ref points somewhere (the empty tree on first use).

    Example::

        fs = FSOperations("./gitfs-db")
        root = fs.write_at_path("refs/work/HEAD", "src/index.ts", "export {}")
        fs.read_at_path(root, "src/index.ts").content  # ['export {}']
    """
    store: ObjectStore
    refs: RefTable
    tree: FSTree
    search: SearchEngine
    empty_tree: str
    grep_max_results: int

    def __init__(
        self,
        db_path: Union[str, os.PathLike],
        work_prefix: str = "refs/work/",
        default_ref: str = DEFAULT_REF,
        grep_max_results: int = DEFAULT_MAX_RESULTS,
    ):
        self.store = ObjectStore(db_path)
        self.refs = RefTable(db_path, self.store, work_prefix)
        self.tree = FSTree(self.store, self.refs)
        self.search = SearchEngine(self.store, self.tree)
        self.grep_max_results = grep_max_results
        self.empty_tree = self.store.put_tree([])
        if self.refs.get_ref(default_ref) is None:
            self.refs.set_ref(default_ref, self.empty_tree)
        logger.debug(f"Opened store at {db_path} with {len(self.refs)} refs")

    @classmethod
    def from_config(cls, config: Config) -> "FSOperations":
        return cls(
            config.db_path,
            work_prefix=config.work_prefix,
            default_ref=config.default_ref,
            grep_max_results=config.grep_max_results,
        )

    # Refs

    def get_ref(self, name: str) -> Optional[str]:
        return self.refs.get_ref(name)

    def set_ref(self, name: str, hash_value: str, expected: Optional[str] = None) -> None:
        self.refs.set_ref(name, hash_value, expected=expected)

    def delete_ref(self, name: str) -> bool:
        return self.refs.delete_ref(name)

    def list_refs(self, prefix: Optional[str] = None) -> List[RefInfo]:
        return self.refs.list_refs(prefix)

    def subscribe(self, callback: RefListener, ref: Optional[str] = None) -> RefListener:
        return self.refs.subscribe(callback, ref)

    def unsubscribe(self, callback: RefListener, ref: Optional[str] = None) -> bool:
        return self.refs.unsubscribe(callback, ref)

    # Reading

    def open_at_path(self, root: str, path: str) -> Optional[OpenResult]:
        return self.tree.open_at_path(root, path)

    def read_range(self, hash_value: str, start: Optional[int] = None, end: Optional[int] = None) -> Any:
        return self.tree.read_range(hash_value, start, end)

    def read_at_path(
        self, root: str, path: str, start: Optional[int] = None, end: Optional[int] = None
    ) -> Optional[ReadResult]:
        return self.tree.read_at_path(root, path, start, end)

    def glob(self, root: str, pattern: str) -> List[str]:
        return self.search.glob(root, pattern)

    def grep(
        self,
        root: str,
        pattern: str,
        glob_filter: Optional[str] = None,
        max_results: Optional[int] = None,
        context_lines: int = 0,
    ) -> List[GrepMatch]:
        if max_results is None:
            max_results = self.grep_max_results
        return self.search.grep(root, pattern, glob_filter, max_results, context_lines)

    # Writing objects

    def put_text(self, content: str) -> str:
        return self.store.put_text(content)

    def put_bytes(self, payload: bytes) -> str:
        return self.store.put_bytes(payload)

    def put_bytes_base64(self, encoded: str) -> str:
        try:
            payload = base64.b64decode(encoded, validate=True)
        except binascii.Error as e:
            raise InvalidOperation(f"Invalid base64 payload: {e}") from e
        return self.store.put_bytes(payload)

    def put_symlink(self, target: str) -> str:
        return self.store.put_symlink(target)

    def put_tree(self, entries: Iterable[Union[TreeEntry, dict]]) -> str:
        """
        Write a tree from entries given as TreeEntry or {"name", "type", "hash"} dicts.
        """
        try:
            parsed = [e if isinstance(e, TreeEntry) else from_dict(TreeEntry, e) for e in entries]
        except SerdeError as e:
            raise InvalidOperation(f"Invalid tree entry: {e}") from e
        return self.store.put_tree(parsed)

    # Writing to paths

    def write_at_path(self, root: str, path: str, content: str, expected: Optional[str] = None) -> str:
        return self.tree.write_at_path(root, path, content, expected=expected)

    def delete_at_path(self, root: str, path: str, expected: Optional[str] = None) -> Optional[str]:
        return self.tree.delete_at_path(root, path, expected=expected)

    def edit_range(
        self,
        root: str,
        path: str,
        start: int,
        end: int,
        replacement: str,
        expected: Optional[str] = None,
    ) -> Optional[str]:
        return self.tree.edit_range(root, path, start, end, replacement, expected=expected)

    def stats(self) -> StoreStats:
        return StoreStats(objects=len(self.store.cache), refs=len(self.refs))
