"""Concurrent record retrieval from the document store."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from functools import lru_cache
from typing import Dict, List, Mapping, Optional

from datastore.document_store import MockDocumentStore, build_default_store
from models.records import Query, Record
from services.errors import FetchFailure
from settings import get_settings

logger = logging.getLogger(__name__)


class RecordFetcher:
    """Runs store queries, fanning independent entity-set reads out to a pool."""

    def __init__(self, store: MockDocumentStore, workers: int = 4) -> None:
        self.store = store
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fetch")

    def fetch(self, query: Query) -> List[Record]:
        start_time = time.perf_counter()
        try:
            records = self.store.query(
                query.entity_set,
                query.predicates,
                order_by=query.order_by,
                descending=query.descending,
                limit=query.limit,
            )
        except Exception as exc:
            logger.error(
                "Record fetch failed",
                extra={"entity_set": query.entity_set, "reason": repr(exc)},
            )
            raise FetchFailure(query.entity_set, exc) from exc
        logger.debug(
            "Fetched records",
            extra={
                "entity_set": query.entity_set,
                "record_count": len(records),
                "elapsed_ms": int((time.perf_counter() - start_time) * 1000),
            },
        )
        return records

    def fetch_all(self, queries: Mapping[str, Query]) -> Dict[str, List[Record]]:
        """Issue every query concurrently and join; the first failure aborts all."""
        futures: Dict[str, Future[List[Record]]] = {
            name: self.executor.submit(self.fetch, query) for name, query in queries.items()
        }
        results: Dict[str, List[Record]] = {}
        try:
            for name, future in futures.items():
                results[name] = future.result()
        except FetchFailure:
            for future in futures.values():
                future.cancel()
            raise
        return results

    def shutdown(self) -> None:
        """Clean up executor resources during application shutdown."""
        self.executor.shutdown(wait=False, cancel_futures=True)


@lru_cache
def build_default_fetcher(workers: Optional[int] = None) -> RecordFetcher:
    """Factory that wires the fetcher with the default store."""
    settings = get_settings()
    store = build_default_store()
    return RecordFetcher(store=store, workers=workers or settings.fetch_workers)
