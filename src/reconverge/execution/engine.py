"""Parallel-collection engine used by the convergence driver.

The driver only needs a handful of primitives from a collection engine:
split items into partitions, map each partition in parallel, fold a value
over everything, and checkpoint / release intermediate collections. Any
engine satisfying :class:`CollectionEngine` can be plugged in; the bundled
:class:`LocalCollectionEngine` runs partitions on a thread pool.

ARCHITECTURE
────────────
::

    CollectionEngine (Protocol)
      ├── parallelize(items)            ─ items → PartitionedCollection
      ├── map_partitions(coll, fn)      ─ fn(partition_index, items) per partition
      ├── aggregate(coll, seq, comb, z) ─ per-partition fold, then combine
      ├── persist / unpersist           ─ checkpoint hints (may be no-ops)
      └── collect(coll)                 ─ flatten back to a list

    LocalCollectionEngine
      ThreadPoolExecutor(max_workers=parallelism), contiguous partitions

Example::

    engine = LocalCollectionEngine(parallelism=4, num_partitions=8)
    coll = engine.parallelize(range(100))
    squares = engine.map_partitions(coll, lambda idx, xs: [x * x for x in xs])
    total = engine.aggregate(squares, lambda x: x, lambda a, b: a + b, 0)
"""

from __future__ import annotations

import concurrent.futures
import contextvars
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, Iterator, Protocol, Sequence, TypeVar

from reconverge.core.errors import InvalidConfigError
from reconverge.core.logging import get_logger
from reconverge.core.settings import get_settings

T = TypeVar("T")
U = TypeVar("U")
M = TypeVar("M")

logger = get_logger(__name__)


@dataclass(frozen=True)
class PartitionedCollection(Generic[T]):
    """Immutable collection split into ordered partitions."""

    partitions: tuple[tuple[T, ...], ...]
    collection_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def num_partitions(self) -> int:
        return len(self.partitions)

    def __len__(self) -> int:
        return sum(len(p) for p in self.partitions)

    def __iter__(self) -> Iterator[T]:
        for partition in self.partitions:
            yield from partition


class CollectionEngine(Protocol):
    """Primitives the convergence driver delegates to."""

    def parallelize(self, items: Iterable[T]) -> PartitionedCollection[T]: ...

    def map_partitions(
        self,
        collection: PartitionedCollection[T],
        fn: Callable[[int, Sequence[T]], list[U]],
    ) -> PartitionedCollection[U]: ...

    def aggregate(
        self,
        collection: PartitionedCollection[T],
        seq_op: Callable[[T], M],
        comb_op: Callable[[M, M], M],
        zero: M,
    ) -> M: ...

    def persist(self, collection: PartitionedCollection[T]) -> PartitionedCollection[T]: ...

    def unpersist(self, collection: PartitionedCollection[T]) -> None: ...

    def collect(self, collection: PartitionedCollection[T]) -> list[T]: ...


class LocalCollectionEngine:
    """In-process engine running partitions on a thread pool.

    Collections are materialized eagerly, so ``persist`` only records the
    checkpoint. Partition order and within-partition order are preserved,
    which makes ``collect`` return items in input order.

    Parameters
    ----------
    parallelism : int | None
        Worker threads (default from settings).
    num_partitions : int | None
        Partitions created by :meth:`parallelize` (default from settings).
    """

    def __init__(self, parallelism: int | None = None, num_partitions: int | None = None) -> None:
        settings = get_settings()
        self.parallelism = parallelism if parallelism is not None else settings.parallelism
        self.num_partitions = num_partitions if num_partitions is not None else settings.partitions
        if self.parallelism < 1:
            raise InvalidConfigError("parallelism", self.parallelism)
        if self.num_partitions < 1:
            raise InvalidConfigError("num_partitions", self.num_partitions)
        self._persisted: set[str] = set()
        self._lock = threading.Lock()

    # ── Building ─────────────────────────────────────────────────────

    def parallelize(self, items: Iterable[T]) -> PartitionedCollection[T]:
        """Split items into at most ``num_partitions`` contiguous partitions."""
        data = list(items)
        if not data:
            return PartitionedCollection(partitions=())
        count = min(self.num_partitions, len(data))
        size, extra = divmod(len(data), count)
        partitions = []
        start = 0
        for index in range(count):
            end = start + size + (1 if index < extra else 0)
            partitions.append(tuple(data[start:end]))
            start = end
        return PartitionedCollection(partitions=tuple(partitions))

    # ── Transformations ──────────────────────────────────────────────

    def _run_partitions(
        self,
        collection: PartitionedCollection[T],
        fn: Callable[[int, tuple[T, ...]], U],
    ) -> list[U]:
        if collection.num_partitions <= 1 or self.parallelism == 1:
            return [fn(index, part) for index, part in enumerate(collection.partitions)]

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.parallelism) as pool:
            futures = [
                pool.submit(contextvars.copy_context().run, fn, index, part)
                for index, part in enumerate(collection.partitions)
            ]
            return [future.result() for future in futures]

    def map_partitions(
        self,
        collection: PartitionedCollection[T],
        fn: Callable[[int, Sequence[T]], list[U]],
    ) -> PartitionedCollection[U]:
        """Apply ``fn(partition_index, items)`` to every partition in parallel."""
        mapped = self._run_partitions(collection, lambda index, part: tuple(fn(index, part)))
        return PartitionedCollection(partitions=tuple(mapped))

    def aggregate(
        self,
        collection: PartitionedCollection[T],
        seq_op: Callable[[T], M],
        comb_op: Callable[[M, M], M],
        zero: M,
    ) -> M:
        """Fold each partition with ``seq_op``/``comb_op``, then combine partials.

        ``comb_op`` must be associative with ``zero`` as identity.
        """

        def fold(index: int, part: tuple[T, ...]) -> M:
            acc = zero
            for item in part:
                acc = comb_op(acc, seq_op(item))
            return acc

        total = zero
        for partial in self._run_partitions(collection, fold):
            total = comb_op(total, partial)
        return total

    # ── Checkpoints ──────────────────────────────────────────────────

    def persist(self, collection: PartitionedCollection[T]) -> PartitionedCollection[T]:
        with self._lock:
            self._persisted.add(collection.collection_id)
        logger.debug("engine.persist", collection_id=collection.collection_id, size=len(collection))
        return collection

    def unpersist(self, collection: PartitionedCollection[T]) -> None:
        with self._lock:
            self._persisted.discard(collection.collection_id)
        logger.debug("engine.unpersist", collection_id=collection.collection_id)

    def is_persisted(self, collection: PartitionedCollection[T]) -> bool:
        with self._lock:
            return collection.collection_id in self._persisted

    @property
    def persisted_count(self) -> int:
        with self._lock:
            return len(self._persisted)

    def collect(self, collection: PartitionedCollection[T]) -> list[T]:
        return list(collection)
