"""
Implementation of the tree rewrite engine.
Paths are resolved one tree level at a time. Writes and deletes rebuild only the trees
along the mutated path; every sibling keeps its original hash, so old roots stay valid
and share all unaffected subtrees with the new one.
"""
from typing import Any, Iterator, Optional
import base64
import logging

from serde import to_dict

from ..errors import InvalidOperation, InvalidReference
from ..refs import RefTable
from ..store import (
    BytesObject,
    ObjectStore,
    ObjectType,
    OpenResult,
    ReadResult,
    SymlinkObject,
    TextObject,
    TreeEntry,
    TreeObject,
)
from ..store.objects import describe, extent
from .paths import join_path, mutation_segments, split_path

logger = logging.getLogger(__name__)

# Content of this form points at an existing object instead of being stored as text
HASH_REF_PREFIX = "sha256:"


class FSTree:
    """
    Path-level view over the object store.
    Roots are hashes or ref names; mutations against working refs advance the ref.
    """
    store: ObjectStore
    refs: RefTable

    def __init__(self, store: ObjectStore, refs: RefTable):
        self.store = store
        self.refs = refs

    def open_at_path(self, root: str, path: str) -> Optional[OpenResult]:
        """
        Open a path below a root.

        Args:
            root: Root hash or ref name
            path: Path to open; "", "/" and "." open the root itself

        Returns:
            Type, hash and meta of the object, or None if the root or any segment is missing
        """
        root_hash = self.refs.resolve_root(root)
        if root_hash is None:
            return None
        current = root_hash
        for segment in split_path(path):
            tree = self._tree(current)
            if tree is None:
                return None
            entry = tree.find(segment)
            if entry is None:
                return None
            current = entry.hash
        obj = self.store.get(current)
        if obj is None:
            return None
        return describe(current, obj)

    def read_range(self, hash_value: str, start: Optional[int] = None, end: Optional[int] = None) -> Any:
        """
        Read a slice of an object.

        Trees give their entries as dicts, text gives lines, bytes give the base64 of the
        byte slice. Symlinks ignore the range and give their target.
        """
        obj = self.store.get(hash_value)
        match obj:
            case None:
                return None
            case TreeObject(entries=entries):
                return [to_dict(e) for e in entries[start:end]]
            case TextObject(lines=lines):
                return lines[start:end]
            case BytesObject(data=data):
                return base64.b64encode(bytes(data[start:end])).decode("ascii")
            case SymlinkObject(target=target):
                return target
        raise TypeError(f"Unknown object {obj!r}")

    def read_at_path(
        self,
        root: str,
        path: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> Optional[ReadResult]:
        opened = self.open_at_path(root, path)
        if opened is None:
            return None
        obj = self.store.get(opened.hash)
        if obj is None:
            return None
        return ReadResult(opened.type, opened.hash, self.read_range(opened.hash, start, end), extent(obj))

    def write_at_path(self, root: str, path: str, content: str, expected: Optional[str] = None) -> str:
        """
        Write content at a path and rebuild the trees above it.

        Args:
            root: Root hash or ref name. An unknown root starts from an empty tree.
            path: Path of the leaf to write
            content: Text to store, or "sha256:<hash>" to place an existing object
            expected: For working refs, the hash the ref must still have when it is advanced

        Returns:
            The hash of the new root tree

        Raises:
            InvalidOperation: The path is empty
            InvalidReference: content names a hash that is not in the store
            RefConflict: The working ref moved away from expected
        """
        segments = mutation_segments(path)
        leaf_hash, leaf_type = self._leaf_for(content)
        root_hash = self.refs.resolve_root(root)
        trees = self._path_trees(root_hash, segments)
        new_root = self._rebuild(trees, segments, TreeEntry(segments[-1], leaf_type, leaf_hash))
        self._advance(root, new_root, expected)
        return new_root

    def delete_at_path(self, root: str, path: str, expected: Optional[str] = None) -> Optional[str]:
        """
        Remove the entry at a path and rebuild the trees above it.

        Returns:
            The hash of the new root tree, or None (and no ref change) if the root
            or any segment along the path is missing

        Raises:
            InvalidOperation: The path is empty, i.e. names the root itself
        """
        segments = mutation_segments(path)
        root_hash = self.refs.resolve_root(root)
        if root_hash is None:
            return None
        trees = self._path_trees(root_hash, segments)
        for tree, name in zip(trees, segments):
            if tree is None or tree.find(name) is None:
                return None
        new_root = self._rebuild(trees, segments, None)
        self._advance(root, new_root, expected)
        return new_root

    def edit_range(
        self,
        root: str,
        path: str,
        start: int,
        end: int,
        replacement: str,
        expected: Optional[str] = None,
    ) -> Optional[str]:
        """
        Replace lines [start, end) of a text object with the lines of replacement.
        An empty replacement deletes the range; start == end inserts before start.

        Returns:
            The new root hash, or None if the path does not exist

        Raises:
            InvalidOperation: The target is not text or the range is invalid
        """
        if start < 0 or end < start:
            raise InvalidOperation(f"Invalid line range [{start}, {end})")
        opened = self.open_at_path(root, path)
        if opened is None:
            return None
        obj = self.store.get(opened.hash)
        if not isinstance(obj, TextObject):
            raise InvalidOperation(f"Cannot edit {opened.type} object at {path}")
        inserted = replacement.split("\n") if replacement else []
        lines = obj.lines[:start] + inserted + obj.lines[end:]
        text_hash = self.store.put_text_lines(lines)
        return self.write_at_path(root, path, HASH_REF_PREFIX + text_hash, expected=expected)

    def walk(self, root: str) -> Iterator[tuple[str, TreeEntry]]:
        """
        Yield (path, entry) for every non-tree entry below root, depth first in tree order.
        """
        root_hash = self.refs.resolve_root(root)
        if root_hash is None:
            return
        yield from self._walk(root_hash, "")

    def _walk(self, tree_hash: str, prefix: str) -> Iterator[tuple[str, TreeEntry]]:
        tree = self._tree(tree_hash)
        if tree is None:
            return
        for entry in tree.entries:
            path = join_path(prefix, entry.name)
            if entry.type == "tree":
                yield from self._walk(entry.hash, path)
            else:
                yield path, entry

    def _tree(self, hash_value: Optional[str]) -> Optional[TreeObject]:
        obj = self.store.get(hash_value) if hash_value else None
        return obj if isinstance(obj, TreeObject) else None

    def _leaf_for(self, content: str) -> tuple[str, ObjectType]:
        if content.startswith(HASH_REF_PREFIX):
            hash_value = content[len(HASH_REF_PREFIX):]
            obj = self.store.get(hash_value)
            if obj is None:
                raise InvalidReference(hash_value, "Referenced hash not found")
            return hash_value, obj.type
        return self.store.put_text(content), "text"

    def _path_trees(self, root_hash: Optional[str], segments: list[str]) -> list[Optional[TreeObject]]:
        """
        trees[i] is the existing tree that holds segments[i], or None where the path
        leaves the stored structure (missing entry or a non-tree in the way).
        """
        trees: list[Optional[TreeObject]] = []
        current = self._tree(root_hash)
        for depth, name in enumerate(segments):
            trees.append(current)
            if depth == len(segments) - 1:
                break
            entry = current.find(name) if current is not None else None
            current = self._tree(entry.hash) if entry is not None and entry.type == "tree" else None
        return trees

    def _rebuild(self, trees: list[Optional[TreeObject]], segments: list[str], leaf: Optional[TreeEntry]) -> str:
        # Bottom-up: the leaf level replaces (or drops, when leaf is None) its entry,
        # every level above swaps in the hash of the tree rebuilt below it
        tree_hash = ""
        for depth in reversed(range(len(segments))):
            tree, name = trees[depth], segments[depth]
            entries = tree.without(name) if tree is not None else []
            if depth == len(segments) - 1:
                if leaf is not None:
                    entries.append(leaf)
            else:
                entries.append(TreeEntry(name, "tree", tree_hash))
            tree_hash = self.store.put_tree(entries, check=False)
        return tree_hash

    def _advance(self, root: str, new_root: str, expected: Optional[str]) -> None:
        if self.refs.is_working(root):
            logger.debug(f"Advancing working ref {root} to {new_root}")
            self.refs.set_ref(root, new_root, expected=expected)
