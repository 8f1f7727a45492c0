"""
Errors raised by write-side operations and config loading.
Read-side absence is reported as None, never as an exception.
"""


class MerkleVFSError(Exception):
    """Base class for all store errors."""


class InvalidReference(MerkleVFSError):
    """
    An explicit hash supplied to a write or to set_ref is not in the object store.
    """
    def __init__(self, hash_value: str, message: str = "Hash not found"):
        super().__init__(f"{message}: {hash_value}")
        self.hash_value = hash_value


class InvalidOperation(MerkleVFSError):
    """A structurally disallowed request (empty path, editing a non-text object, ...)."""


class ConfigError(MerkleVFSError):
    """The config file exists but cannot be read as a config."""


class RefConflict(InvalidOperation):
    """The ref moved since the caller last read it."""
    def __init__(self, ref: str, expected: str, actual: str):
        super().__init__(
            f"Ref {ref} is at {actual or '<missing>'}, expected {expected or '<missing>'}"
        )
        self.ref = ref
        self.expected = expected
        self.actual = actual
