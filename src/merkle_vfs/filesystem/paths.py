"""
Path splitting shared by the tree engine and search.

Paths are "/"-separated and relative to a root tree. Empty segments and "."
are dropped, so "", "/" and "." all name the root itself.
"""
from ..errors import InvalidOperation


def split_path(path: str) -> list[str]:
    """
    Split a path into its segments.

    Examples:
        >>> split_path("/src//lib/./a.py")
        ['src', 'lib', 'a.py']
        >>> split_path("/")
        []
    """
    if not path or path in {".", "/"}:
        return []
    return [s for s in path.split("/") if s and s != "."]


def mutation_segments(path: str) -> list[str]:
    """
    Split a path that is about to be written or deleted.

    Raises:
        InvalidOperation: The path names the root itself or contains "..".
    """
    segments = split_path(path)
    if not segments:
        raise InvalidOperation("Cannot mutate the root path")
    if ".." in segments:
        raise InvalidOperation(f"Path may not contain '..': {path}")
    return segments


def join_path(prefix: str, name: str) -> str:
    return f"{prefix}/{name}" if prefix else name
