"""
Shared fixtures: every test gets its own store in a temporary directory.
"""

import pytest

from merkle_vfs.filesystem import FSOperations
from merkle_vfs.refs import RefTable
from merkle_vfs.store import ObjectStore


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "db"


@pytest.fixture
def store(db_path):
    return ObjectStore(db_path)


@pytest.fixture
def refs(db_path, store):
    return RefTable(db_path, store)


@pytest.fixture
def fs(db_path):
    return FSOperations(db_path)
