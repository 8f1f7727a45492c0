"""
Implementation of the object store.
Objects are content-addressed: each record is named by the sha256 of its type tag and
canonical content, so identical content is only ever stored once.
"""
from pathlib import Path
from typing import Any, Dict, Iterable, Optional
import hashlib
import json
import logging
import os
import re
import tempfile
import threading

from serde import SerdeError, from_dict, to_dict

from ..errors import InvalidOperation, InvalidReference
from .objects import (
    BytesObject,
    RECORD_CLASSES,
    StoredObject,
    SymlinkObject,
    TextObject,
    TreeEntry,
    TreeObject,
)

logger = logging.getLogger(__name__)

HASH_PATTERN = re.compile(r"^[a-f0-9]{64}$")


def is_hash(value: str) -> bool:
    return bool(HASH_PATTERN.match(value))


def compute_hash(type_tag: str, content: bytes) -> str:
    hasher = hashlib.sha256()
    hasher.update(f"{type_tag}:".encode("utf-8"))
    hasher.update(content)
    return hasher.hexdigest()


def canonical_json(value: Any) -> str:
    # Compact, key order as given, non-ASCII left alone
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def encode_utf8(text: str) -> bytes:
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise InvalidOperation(f"Text is not valid UTF-8: {e}") from e


def canonical_tree(entries: Iterable[TreeEntry]) -> tuple[list[TreeEntry], str]:
    """
    Sort entries by name and return them with their canonical serialization.

    Names are ordered by code point, so "README.md" sorts before "index.html".
    Stores written with locale-aware ordering hash mixed-case trees differently,
    and rewriting such a tree here gives it a new hash.
    """
    ordered = sorted(entries, key=lambda e: e.name)
    return ordered, canonical_json([to_dict(e) for e in ordered])


class ObjectStore:
    """
    Store for immutable objects using content-addressed storage.
    Records live at <db>/obj/<first two hex chars>/<remaining hex chars>.

    Loaded objects are kept in a read-through cache that is never evicted;
    objects are immutable, so cached entries can never go stale.
    """
    objects_dir: Path
    cache: Dict[str, StoredObject]
    lock: threading.Lock

    def __init__(self, db_path: str | os.PathLike):
        self.objects_dir = Path(db_path) / "obj"
        self.objects_dir.mkdir(parents=True, exist_ok=True)
        self.cache = {}
        self.lock = threading.Lock()

    def object_path(self, hash_value: str) -> Path:
        return self.objects_dir / hash_value[:2] / hash_value[2:]

    def has(self, hash_value: str) -> bool:
        """Check whether an object with this hash exists."""
        if not is_hash(hash_value):
            return False
        if hash_value in self.cache:
            return True
        return self.object_path(hash_value).is_file()

    def get(self, hash_value: str) -> Optional[StoredObject]:
        """
        Get an object by its hash.

        Args:
            hash_value: The hash of the object

        Returns:
            The object if found and readable, None otherwise
        """
        cached = self.cache.get(hash_value)
        if cached is not None:
            return cached
        if not is_hash(hash_value):
            return None
        obj = self._load(hash_value)
        if obj is not None:
            with self.lock:
                self.cache[hash_value] = obj
        return obj

    def put_text(self, content: str) -> str:
        """
        Write text to the store. The content is kept as its lines.

        Args:
            content: Text to write

        Returns:
            The hash of the text object

        Raises:
            InvalidOperation: The text is not valid UTF-8
        """
        hash_value = compute_hash("text", encode_utf8(content))
        return self._put(hash_value, lambda: TextObject(content.split("\n")))

    def put_text_lines(self, lines: list[str]) -> str:
        return self.put_text("\n".join(lines))

    def put_bytes(self, payload: bytes) -> str:
        hash_value = compute_hash("bytes", payload)
        return self._put(hash_value, lambda: BytesObject(list(payload)))

    def put_symlink(self, target: str) -> str:
        hash_value = compute_hash("symlink", encode_utf8(target))
        return self._put(hash_value, lambda: SymlinkObject(target))

    def put_tree(self, entries: Iterable[TreeEntry], check: bool = True) -> str:
        """
        Write a tree to the store.

        Args:
            entries: Child entries, in any order
            check: Validate names and children. Internal rewrites pass False since
                they only ever reuse entries of trees already in the store.

        Returns:
            The hash of the tree object

        Raises:
            InvalidReference: A child hash is not in the store
            InvalidOperation: A name is empty, contains "/", repeats, is not valid
                UTF-8, or a child's declared type does not match the stored object
        """
        ordered, canonical = canonical_tree(entries)
        if check:
            self._check_entries(ordered)
        hash_value = compute_hash("tree", encode_utf8(canonical))
        return self._put(hash_value, lambda: TreeObject(ordered))

    def _check_entries(self, entries: list[TreeEntry]) -> None:
        seen = set()
        for entry in entries:
            if not entry.name or "/" in entry.name or entry.name in (".", ".."):
                raise InvalidOperation(f"Invalid tree entry name: {entry.name!r}")
            if entry.name in seen:
                raise InvalidOperation(f"Duplicate tree entry name: {entry.name!r}")
            seen.add(entry.name)
            child = self.get(entry.hash)
            if child is None:
                raise InvalidReference(entry.hash, "Tree child not found")
            if child.type != entry.type:
                raise InvalidOperation(
                    f"Tree entry {entry.name!r} declared as {entry.type} but is {child.type}"
                )

    def _put(self, hash_value: str, build) -> str:
        if self.has(hash_value):
            return hash_value
        obj = build()
        self._write_record(self.object_path(hash_value), obj)
        with self.lock:
            self.cache[hash_value] = obj
        logger.debug(f"Stored {obj.type} object {hash_value}")
        return hash_value

    def _write_record(self, path: Path, obj: StoredObject) -> None:
        # type first, like the records written by existing stores
        record: Dict[str, Any] = {"type": obj.type}
        record.update(to_dict(obj))
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(canonical_json(record))
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def _load(self, hash_value: str) -> Optional[StoredObject]:
        path = self.object_path(hash_value)
        try:
            with open(path, "r", encoding="utf-8") as f:
                record = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable object {hash_value}: {e}")
            return None
        try:
            return parse_record(record)
        except (SerdeError, KeyError, ValueError, TypeError) as e:
            logger.warning(f"Malformed object {hash_value}: {e}")
            return None


def parse_record(record: Any) -> StoredObject:
    """
    Turn a decoded JSON record back into an object.

    Byte payloads are normally a list of ints; older writers stored them as an
    index-keyed mapping ({"0": 104, "1": 105}), which is accepted too.
    """
    if not isinstance(record, dict):
        raise ValueError("record is not an object")
    cls = RECORD_CLASSES.get(record.get("type"))
    if cls is None:
        raise ValueError(f"unknown object type {record.get('type')!r}")
    if cls is BytesObject and isinstance(record.get("data"), dict):
        data = record["data"]
        record = {**record, "data": [data[k] for k in sorted(data, key=int)]}
    obj = from_dict(cls, record)
    if isinstance(obj, BytesObject) and any(not 0 <= b <= 255 for b in obj.data):
        raise ValueError("byte value out of range")
    return obj
