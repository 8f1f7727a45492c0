"""
Implementation of the ref table: named, mutable pointers to root hashes.

Refs are plain files under <db>/refs holding a hash; the ref "refs/work/HEAD" lives at
<db>/refs/work/HEAD. Refs under the working prefix are advanced automatically by path
mutations, every other ref only moves through set_ref.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional
import datetime
import logging
import os
import tempfile
import threading
import time

from serde import serde
from sortedcontainers import SortedSet

from ..errors import InvalidOperation, InvalidReference, RefConflict
from ..store import ObjectStore, is_hash

logger = logging.getLogger(__name__)

NAMESPACES = ("work", "heads", "tags")

# Called with (ref name, new hash); the hash is "" when the ref was deleted
RefListener = Callable[[str, str], None]


@serde
@dataclass(frozen=True)
class RefInfo:
    name: str
    hash: str
    updated_at: datetime.datetime


def check_ref_name(name: str) -> None:
    segments = name.split("/")
    if len(segments) < 2 or segments[0] != "refs":
        raise InvalidOperation(f"Ref names must start with 'refs/': {name!r}")
    for segment in segments:
        if not segment or segment.startswith("."):
            raise InvalidOperation(f"Invalid ref name: {name!r}")


class RefTable:
    refs: Dict[str, str]
    times: Dict[str, float]
    timed_refs: SortedSet # (updated_at, name)
    listeners: Dict[Optional[str], List[RefListener]]
    lock: threading.RLock
    store: ObjectStore
    db_path: Path
    work_prefix: str

    def __init__(self, db_path: str | os.PathLike, store: ObjectStore, work_prefix: str = "refs/work/"):
        self.db_path = Path(db_path)
        self.store = store
        self.work_prefix = work_prefix
        self.refs = {}
        self.times = {}
        self.timed_refs = SortedSet()
        self.listeners = {}
        self.lock = threading.RLock()
        self._clock = 0.0
        for namespace in NAMESPACES:
            (self.db_path / "refs" / namespace).mkdir(parents=True, exist_ok=True)
        self._load_refs(self.db_path / "refs", "refs")

    def __len__(self) -> int:
        return len(self.refs)

    def ref_path(self, name: str) -> Path:
        return self.db_path.joinpath(*name.split("/"))

    def is_working(self, name: str) -> bool:
        return name.startswith(self.work_prefix)

    def get_ref(self, name: str) -> Optional[str]:
        return self.refs.get(name)

    def resolve_root(self, root: str) -> Optional[str]:
        """
        Resolve a root argument to a hash.

        Args:
            root: Either a literal hash or a ref name

        Returns:
            The hash if it exists in the store or the ref is known, None otherwise
        """
        if is_hash(root):
            return root if self.store.has(root) else None
        return self.refs.get(root)

    def set_ref(self, name: str, hash_value: str, expected: Optional[str] = None) -> None:
        """
        Point a ref at a hash.

        Args:
            name: Ref name, e.g. "refs/heads/main"
            hash_value: Hash to point to; must exist in the object store
            expected: If given, the hash the ref must currently have ("" for a ref
                that must not exist yet). Without it the last writer wins.

        Raises:
            InvalidReference: The hash is not in the object store
            InvalidOperation: The ref name is malformed
            RefConflict: The ref does not have the expected hash
        """
        check_ref_name(name)
        if not self.store.has(hash_value):
            raise InvalidReference(hash_value)
        with self.lock:
            old = self.refs.get(name)
            if expected is not None and (old or "") != expected:
                raise RefConflict(name, expected, old or "")
            self._save(name, hash_value)
        if old != hash_value:
            logger.info(f"Ref {name} moved {old or '<new>'} -> {hash_value}")
            self._notify(name, hash_value)

    def delete_ref(self, name: str) -> bool:
        """
        Delete a ref.

        Returns:
            True if the ref existed and was removed, False otherwise
        """
        try:
            check_ref_name(name)
        except InvalidOperation:
            return False
        path = self.ref_path(name)
        with self.lock:
            if not path.is_file():
                return False
            path.unlink()
            old = self.refs.pop(name, None)
            updated = self.times.pop(name, None)
            if updated is not None:
                self.timed_refs.discard((updated, name))
        if old:
            logger.info(f"Ref {name} deleted (was {old})")
            self._notify(name, "")
        return True

    def list_refs(self, prefix: Optional[str] = None) -> list[RefInfo]:
        """List refs, optionally filtered by prefix, most recently updated first."""
        with self.lock:
            return [
                self._info(updated, name)
                for updated, name in reversed(self.timed_refs)
                if prefix is None or name.startswith(prefix)
            ]

    def changes_since(self, since: float) -> list[RefInfo]:
        """Refs updated at or after a unix timestamp, oldest first."""
        with self.lock:
            return [self._info(updated, name) for updated, name in self.timed_refs.irange((since, ""))]

    def subscribe(self, callback: RefListener, ref: Optional[str] = None) -> RefListener:
        """
        Register a change listener for one ref, or for every ref when ref is None.
        A listener that raises is dropped.
        """
        with self.lock:
            self.listeners.setdefault(ref, []).append(callback)
        return callback

    def unsubscribe(self, callback: RefListener, ref: Optional[str] = None) -> bool:
        with self.lock:
            callbacks = self.listeners.get(ref, [])
            if callback not in callbacks:
                return False
            callbacks.remove(callback)
            return True

    def _notify(self, name: str, new_hash: str) -> None:
        with self.lock:
            targets = [(key, cb) for key in (name, None) for cb in self.listeners.get(key, [])]
        dead = []
        for key, callback in targets:
            try:
                callback(name, new_hash)
            except Exception as e:
                logger.warning(f"Dropping listener {callback!r} for {key or '*'}: {e}")
                dead.append((key, callback))
        for key, callback in dead:
            self.unsubscribe(callback, key)

    def _info(self, updated: float, name: str) -> RefInfo:
        stamp = datetime.datetime.fromtimestamp(updated, tz=datetime.timezone.utc)
        return RefInfo(name, self.refs[name], stamp)

    def _save(self, name: str, hash_value: str) -> None:
        path = self.ref_path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(hash_value)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        # strictly increasing, so list order is stable even within one clock tick
        now = max(time.time(), self._clock + 1e-6)
        self._clock = now
        os.utime(path, (now, now))
        self._track(name, hash_value, now)

    def _track(self, name: str, hash_value: str, updated: float) -> None:
        previous = self.times.get(name)
        if previous is not None:
            self.timed_refs.discard((previous, name))
        self.refs[name] = hash_value
        self.times[name] = updated
        self.timed_refs.add((updated, name))

    def _load_refs(self, directory: Path, prefix: str) -> None:
        for entry in sorted(directory.iterdir()):
            if entry.name.startswith("."):
                continue
            name = f"{prefix}/{entry.name}"
            if entry.is_dir():
                self._load_refs(entry, name)
                continue
            try:
                hash_value = entry.read_text(encoding="utf-8").strip()
                updated = entry.stat().st_mtime
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping unreadable ref {name}: {e}")
                continue
            if not is_hash(hash_value):
                logger.warning(f"Skipping ref {name}: not a hash")
                continue
            self._clock = max(self._clock, updated)
            self._track(name, hash_value, updated)
