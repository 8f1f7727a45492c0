"""
Immutable object records kept in the store.
Each variant carries a literal type tag, matching the "type" key of the on-disk record.
"""
from dataclasses import dataclass
from typing import Any, Literal

from serde import serde

ObjectType = Literal["tree", "text", "bytes", "symlink"]
OBJECT_TYPES: tuple[str, ...] = ("tree", "text", "bytes", "symlink")


@serde
@dataclass(frozen=True)
class TreeEntry:
    name: str
    type: ObjectType
    hash: str


@serde
@dataclass(frozen=True)
class TreeObject:
    """
    A directory-like node. Entries are kept sorted by name; the store sorts them
    before hashing so insertion order never changes the hash.
    """
    entries: list[TreeEntry]
    type: Literal["tree"] = "tree"

    def find(self, name: str) -> TreeEntry | None:
        for entry in self.entries:
            if entry.name == name:
                return entry
        return None

    def without(self, name: str) -> list[TreeEntry]:
        return [e for e in self.entries if e.name != name]


@serde
@dataclass(frozen=True)
class TextObject:
    lines: list[str]
    type: Literal["text"] = "text"

    @property
    def content(self) -> str:
        return "\n".join(self.lines)


@serde
@dataclass(frozen=True)
class BytesObject:
    data: list[int] # byte values, the persisted form
    type: Literal["bytes"] = "bytes"

    @property
    def payload(self) -> bytes:
        return bytes(self.data)


@serde
@dataclass(frozen=True)
class SymlinkObject:
    target: str
    type: Literal["symlink"] = "symlink"


StoredObject = TreeObject | TextObject | BytesObject | SymlinkObject

RECORD_CLASSES: dict[str, type] = {
    "tree": TreeObject,
    "text": TextObject,
    "bytes": BytesObject,
    "symlink": SymlinkObject,
}


@serde
@dataclass(frozen=True)
class OpenResult:
    """
    Result of opening a path. meta is the entry count for trees, the line count
    for text, the byte length for bytes and the target for symlinks.
    """
    type: ObjectType
    hash: str
    meta: int | str


@serde
@dataclass(frozen=True)
class ReadResult:
    type: ObjectType
    hash: str
    content: Any # entry dicts, lines, base64 text or a symlink target
    total: int # full extent, so partial reads can tell what is left


def describe(hash_value: str, obj: StoredObject) -> OpenResult:
    match obj:
        case TreeObject(entries=entries):
            return OpenResult("tree", hash_value, len(entries))
        case TextObject(lines=lines):
            return OpenResult("text", hash_value, len(lines))
        case BytesObject(data=data):
            return OpenResult("bytes", hash_value, len(data))
        case SymlinkObject(target=target):
            return OpenResult("symlink", hash_value, target)
    raise TypeError(f"Unknown object {obj!r}")


def extent(obj: StoredObject) -> int:
    match obj:
        case TreeObject(entries=entries):
            return len(entries)
        case TextObject(lines=lines):
            return len(lines)
        case BytesObject(data=data):
            return len(data)
        case SymlinkObject():
            return 1
    raise TypeError(f"Unknown object {obj!r}")
