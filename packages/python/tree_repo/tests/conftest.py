import pytest

from tree_repo import NestedSetTree, SqliteTreeStore


@pytest.fixture()
def store():
    store = SqliteTreeStore(":memory:")
    store.ensure_schema()
    yield store
    store.close()


@pytest.fixture()
def tree(store):
    return NestedSetTree(store)
