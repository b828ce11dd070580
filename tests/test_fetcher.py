from __future__ import annotations

import threading

import pytest

from datastore.document_store import MockDocumentStore
from models.records import Predicate, Query
from services.errors import FetchFailure
from services.fetcher import RecordFetcher


class BarrierStore(MockDocumentStore):
    """Blocks each query until ``parties`` queries are in flight at once."""

    def __init__(self, parties: int) -> None:
        super().__init__()
        self.barrier = threading.Barrier(parties, timeout=5)

    def query(self, entity_set, predicates=(), order_by=None, descending=False, limit=None):
        self.barrier.wait()
        return super().query(entity_set, predicates, order_by, descending, limit)


class FailingStore(MockDocumentStore):
    def query(self, entity_set, predicates=(), order_by=None, descending=False, limit=None):
        if entity_set == "penalties":
            raise OSError("store offline")
        return super().query(entity_set, predicates, order_by, descending, limit)


@pytest.fixture
def fetcher_factory():
    created = []

    def build(store, workers=4):
        fetcher = RecordFetcher(store, workers=workers)
        created.append(fetcher)
        return fetcher

    yield build
    for fetcher in created:
        fetcher.shutdown()


def test_fetch_applies_query(fetcher_factory) -> None:
    store = MockDocumentStore()
    store.create_many("penalties", [{"id": "p1", "ulbId": "u1"}, {"id": "p2", "ulbId": "u2"}])
    fetcher = fetcher_factory(store)

    records = fetcher.fetch(Query("penalties", (Predicate("ulbId", "==", "u1"),)))

    assert [record["id"] for record in records] == ["p1"]


def test_fetch_all_runs_queries_concurrently(fetcher_factory) -> None:
    store = BarrierStore(parties=3)
    store.create("incentive_rewards", {"id": "r1"})
    fetcher = fetcher_factory(store, workers=3)

    fetched = fetcher.fetch_all(
        {
            "rewards": Query("incentive_rewards"),
            "penalties": Query("penalties"),
            "redemptions": Query("point_redemptions"),
        }
    )

    assert list(fetched) == ["rewards", "penalties", "redemptions"]
    assert [record["id"] for record in fetched["rewards"]] == ["r1"]
    assert fetched["penalties"] == []


def test_fetch_failure_names_entity_set(fetcher_factory) -> None:
    fetcher = fetcher_factory(FailingStore())

    with pytest.raises(FetchFailure) as excinfo:
        fetcher.fetch_all({"rewards": Query("incentive_rewards"), "penalties": Query("penalties")})

    assert excinfo.value.entity_set == "penalties"
    assert "store offline" in str(excinfo.value)
