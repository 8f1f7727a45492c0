"""
Glob and grep over the virtual tree.
Both are read-only walks built on the tree engine and the object store.
"""
from dataclasses import dataclass
from typing import List, Optional
import logging
import re

from serde import serde

from ..errors import InvalidOperation
from ..store import ObjectStore, TextObject
from .fs_tree import FSTree

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 100


@serde
@dataclass(frozen=True)
class GrepMatch:
    """
    A line matching a grep pattern.

    Attributes:
        path: Path of the text object relative to the root
        line_index: 0-indexed line number
        content: The matching line
        context: Surrounding lines (match included) when context was requested
    """
    path: str
    line_index: int
    content: str
    context: Optional[List[str]] = None


def translate_glob(pattern: str) -> str:
    """
    Convert a glob pattern to a regex pattern.

    Supports:
    - * : anything except /
    - ** : anything including /; "**/" may also match no directory at all
    - ? : a single character except /
    - [seq] / [!seq] : character classes
    - {a,b} : alternation, may nest
    """
    i = 0
    n = len(pattern)
    depth = 0
    parts = []

    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                i += 2
                if i < n and pattern[i] == "/":
                    parts.append("(?:.*/)?")
                    i += 1
                else:
                    parts.append(".*")
                continue
            parts.append("[^/]*")
        elif c == "?":
            parts.append("[^/]")
        elif c == "[":
            j = i + 1
            if j < n and pattern[j] == "!":
                j += 1
            if j < n and pattern[j] == "]":
                j += 1
            while j < n and pattern[j] != "]":
                j += 1
            if j >= n:
                parts.append("\\[")
            else:
                stuff = pattern[i + 1 : j].replace("\\", "\\\\")
                if stuff[0:1] == "!":
                    stuff = "^" + stuff[1:]
                elif stuff[0:1] == "^":
                    stuff = "\\" + stuff
                parts.append(f"[{stuff}]")
                i = j + 1
                continue
        elif c == "{":
            depth += 1
            parts.append("(?:")
        elif c == "}" and depth:
            depth -= 1
            parts.append(")")
        elif c == "," and depth:
            parts.append("|")
        else:
            parts.append(re.escape(c))
        i += 1

    if depth:
        raise InvalidOperation(f"Unbalanced braces in glob pattern: {pattern}")
    return "".join(parts)


def compile_glob(pattern: str) -> re.Pattern:
    try:
        return re.compile(translate_glob(pattern), re.DOTALL)
    except re.error as e:
        raise InvalidOperation(f"Invalid glob pattern {pattern!r}: {e}") from e


class SearchEngine:
    """
    Glob and grep across every level of a tree.
    """
    store: ObjectStore
    tree: FSTree

    def __init__(self, store: ObjectStore, tree: FSTree):
        self.store = store
        self.tree = tree

    def glob(self, root: str, pattern: str) -> list[str]:
        """
        Match file paths by glob pattern.

        Args:
            root: Root hash or ref name
            pattern: Glob pattern matched against full relative paths (e.g. "src/**/*.ts")

        Returns:
            Matching paths of non-tree entries, sorted; empty if the root is unknown
        """
        regex = compile_glob(pattern)
        return sorted(path for path, _ in self.tree.walk(root) if regex.fullmatch(path))

    def grep(
        self,
        root: str,
        pattern: str,
        glob_filter: Optional[str] = None,
        max_results: int = DEFAULT_MAX_RESULTS,
        context_lines: int = 0,
    ) -> list[GrepMatch]:
        """
        Search the lines of text objects by regex.

        Results follow tree traversal order and the walk stops as soon as
        max_results matches have been collected.

        Args:
            root: Root hash or ref name
            pattern: Regular expression searched in each line
            glob_filter: Only search paths matching this glob
            max_results: Maximum number of matches to return
            context_lines: Lines of context on each side of a match

        Raises:
            InvalidOperation: The regex or glob filter does not compile
        """
        try:
            regex = re.compile(pattern)
        except re.error as e:
            raise InvalidOperation(f"Invalid regex pattern {pattern!r}: {e}") from e
        path_filter = compile_glob(glob_filter) if glob_filter is not None else None

        matches: list[GrepMatch] = []
        if max_results <= 0:
            return matches
        for path, entry in self.tree.walk(root):
            if entry.type != "text":
                continue
            if path_filter is not None and not path_filter.fullmatch(path):
                continue
            obj = self.store.get(entry.hash)
            if not isinstance(obj, TextObject):
                logger.debug(f"Skipping unreadable text object at {path}")
                continue
            for index, line in enumerate(obj.lines):
                if not regex.search(line):
                    continue
                context = None
                if context_lines > 0:
                    context = obj.lines[max(0, index - context_lines) : index + context_lines + 1]
                matches.append(GrepMatch(path, index, line, context))
                if len(matches) >= max_results:
                    return matches
        return matches
