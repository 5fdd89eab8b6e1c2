import numpy as np
import pytest

from checkin.vector_store import FAISSVectorStore
from checkin.verification import l2_normalize

DIM = 8


def unit(i):
    v = np.zeros(DIM, dtype=np.float32)
    v[i] = 1.0
    return v


@pytest.fixture
def store(tmp_path):
    return FAISSVectorStore(
        index_path=tmp_path / "index.bin",
        metadata_path=tmp_path / "meta.json",
        dim=DIM,
    )


def test_empty_store(store):
    assert store.count == 0
    assert store.search(unit(0)) == []


def test_add_assigns_sequential_indices(store):
    assert store.add(unit(0)) == 0
    assert store.add(unit(1)) == 1
    assert store.count == 2


def test_search_returns_nearest_first(store):
    store.add(unit(0))
    store.add(unit(1))
    store.add(l2_normalize(unit(0) + 0.1 * unit(1)))

    matches = store.search(unit(0), top_k=3)
    indices = [m[0] for m in matches]
    assert indices[0] == 0
    assert indices[1] == 2
    assert matches[0][2] == pytest.approx(0.0, abs=1e-4)
    assert matches[-1][2] == pytest.approx(1.0, abs=1e-4)


def test_wrong_dimension_rejected(store):
    with pytest.raises(ValueError):
        store.add(np.ones(DIM + 1, dtype=np.float32))


def test_deleted_vectors_are_not_returned(store):
    a = store.add(unit(0))
    b = store.add(unit(1))
    assert store.delete(a)
    assert not store.delete(a)
    assert store.count == 1
    assert [m[0] for m in store.search(unit(0), top_k=5)] == [b]


def test_delete_unknown(store):
    assert not store.delete(42)


def test_rebuild_keeps_embedding_indices(store):
    a = store.add(unit(0))
    b = store.add(unit(1))
    c = store.add(unit(2))
    store.delete(b)

    assert store.rebuild_index() == 2
    assert store.search(unit(2), top_k=1)[0][0] == c
    assert store.search(unit(0), top_k=1)[0][0] == a
    # New vectors keep counting from where they left off
    assert store.add(unit(3)) == 3


def test_persistence(tmp_path, store):
    store.add(unit(0))
    idx = store.add(unit(1))
    store.delete(0)

    reloaded = FAISSVectorStore(
        index_path=tmp_path / "index.bin",
        metadata_path=tmp_path / "meta.json",
        dim=DIM,
    )
    assert reloaded.count == 1
    assert reloaded.search(unit(1), top_k=1)[0][0] == idx
    assert reloaded.add(unit(2)) == 2


def test_dimension_change_starts_fresh(tmp_path, store):
    store.add(unit(0))

    other = FAISSVectorStore(
        index_path=tmp_path / "index.bin",
        metadata_path=tmp_path / "meta.json",
        dim=DIM * 2,
    )
    assert other.count == 0
    assert other.add(np.ones(DIM * 2, dtype=np.float32) / np.sqrt(DIM * 2)) == 0
