"""Tests for the package name index."""

import pytest

from pkgstore.entity_store import CommitResult
from pkgstore.errors import InternalError, InvariantViolation, NotFound
from pkgstore.name_index import NameIndex, sanity_check
from tests.doubles import FakeEntityStore

KIND = "VerdaccioDataStore"


@pytest.fixture
def entities():
    return FakeEntityStore()


@pytest.fixture
def index(entities):
    return NameIndex(entities, KIND)


def _results(*counts):
    return [CommitResult(index_updates=c) for c in counts]


class TestSanityCheck:
    def test_no_results(self):
        with pytest.raises(NotFound) as err:
            sanity_check([])
        assert err.value.message == "not found"

    @pytest.mark.parametrize(
        "counts", ((2,), (0, 2), (4, 4), (2, 0, 2))
    )
    def test_any_update_succeeds(self, counts):
        sanity_check(_results(*counts))

    @pytest.mark.parametrize("counts", ((0,), (0, 0)))
    def test_no_updates(self, counts):
        with pytest.raises(NotFound):
            sanity_check(_results(*counts))

    @pytest.mark.parametrize("counts", ((None,), (-1,), ("two",)))
    def test_malformed_results(self, counts):
        with pytest.raises(InvariantViolation) as err:
            sanity_check(_results(*counts))
        assert err.value.message == "this should not happen"

    def test_results_without_counts(self):
        with pytest.raises(InvariantViolation):
            sanity_check([object()])


def test_add_then_list(index):
    index.add("foo")
    index.add("bar")
    assert sorted(index.list()) == ["bar", "foo"]


def test_add_does_not_deduplicate(index):
    index.add("foo")
    index.add("foo")
    assert index.list() == ["foo", "foo"]


def test_list_empty(index):
    assert index.list() == []


def test_add_failure(index, entities):
    entities.failures["upsert"] = RuntimeError("quota exceeded")
    with pytest.raises(InternalError) as err:
        index.add("foo")
    assert err.value.message == "quota exceeded"


def test_list_failure(index, entities):
    entities.failures["run"] = RuntimeError("unavailable")
    with pytest.raises(InternalError):
        index.list()


def test_remove(index, entities):
    index.add("foo")
    index.add("bar")
    index.remove("foo")
    assert index.list() == ["bar"]


def test_remove_converts_ids(index, entities):
    index.add("foo")
    index.remove("foo")
    ((kind, id),) = entities.deleted
    assert kind == KIND
    assert isinstance(id, int)


def test_remove_every_duplicate(index, entities):
    index.add("foo")
    index.add("foo")
    index.add("bar")
    index.remove("foo")
    assert index.list() == ["bar"]
    assert len(entities.deleted) == 2


def test_remove_unknown_name(index):
    index.add("bar")
    with pytest.raises(NotFound):
        index.remove("foo")


def test_remove_with_no_index_updates(entities):
    entities.index_updates = 0
    index = NameIndex(entities, KIND)
    index.add("foo")
    with pytest.raises(NotFound):
        index.remove("foo")


def test_remove_with_malformed_count(entities):
    entities.index_updates = -1
    index = NameIndex(entities, KIND)
    index.add("foo")
    with pytest.raises(InvariantViolation):
        index.remove("foo")


def test_remove_delete_failure(index, entities):
    index.add("foo")
    entities.failures["delete"] = RuntimeError("deadline exceeded")
    with pytest.raises(InternalError) as err:
        index.remove("foo")
    assert err.value.message == "deadline exceeded"


def test_remove_read_failure(index, entities):
    entities.failures["entities"] = RuntimeError("unavailable")
    with pytest.raises(InternalError):
        index.remove("foo")
