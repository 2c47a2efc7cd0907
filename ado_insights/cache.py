"""
Dataset-scoped caching for derived Azure DevOps data.

Relation data fetched for a loaded set of work items is only valid for that
set. The cache here is bound to a dataset key (the identity of the loaded
collection): it is written at most once per key and invalidated wholesale
whenever the key changes.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Hashable, Optional

logger = logging.getLogger(__name__)


class CacheEntry:
    """
    A cached value tied to the dataset it was computed from.

    Attributes:
        data: The cached data
        dataset_key: Identity of the dataset the data belongs to
        created_at: When this entry was created
        hit_count: Number of times this entry was retrieved
    """

    def __init__(self, data: Any, dataset_key: Hashable):
        self.data = data
        self.dataset_key = dataset_key
        self.created_at = datetime.now()
        self.hit_count = 0

    def age_seconds(self) -> float:
        """Get age of this entry in seconds."""
        return (datetime.now() - self.created_at).total_seconds()

    def record_hit(self):
        """Record a cache hit."""
        self.hit_count += 1


class DatasetCache:
    """
    Write-once-per-dataset cache.

    Features:
    - Bound to the currently loaded dataset key
    - Writes for any other key are discarded (superseded fetches)
    - Tracks whether a fetch was already attempted for the current key
    - Cache statistics (hits, misses, stale writes, invalidations)

    Example:
        cache = DatasetCache("relations")
        cache.bind(dataset.version)
        if cache.get(dataset.version) is None and not cache.was_attempted(dataset.version):
            cache.mark_attempted(dataset.version)
            cache.set(dataset.version, await fetch())
    """

    def __init__(self, name: str = "dataset"):
        self.name = name
        self._dataset_key: Optional[Hashable] = None
        self._entry: Optional[CacheEntry] = None
        self._attempted = False
        self._stats = {
            'hits': 0,
            'misses': 0,
            'stale_writes': 0,
            'invalidations': 0
        }

    @property
    def dataset_key(self) -> Optional[Hashable]:
        """Key of the dataset the cache is currently bound to."""
        return self._dataset_key

    def bind(self, dataset_key: Hashable) -> bool:
        """
        Bind the cache to a dataset.

        Args:
            dataset_key: Identity of the newly loaded dataset

        Returns:
            True if the key changed and the cache was invalidated
        """
        if dataset_key == self._dataset_key:
            return False

        self.invalidate()
        self._dataset_key = dataset_key
        logger.debug(f"Cache '{self.name}' bound to dataset {dataset_key}")
        return True

    def get(self, dataset_key: Hashable) -> Optional[Any]:
        """
        Get the cached value for a dataset.

        Returns:
            Cached value, or None if nothing is cached for this key
        """
        entry = self._entry
        if entry is None or entry.dataset_key != dataset_key:
            self._stats['misses'] += 1
            return None

        entry.record_hit()
        self._stats['hits'] += 1
        logger.debug(
            f"Cache '{self.name}' hit for dataset {dataset_key} "
            f"(age: {entry.age_seconds():.1f}s, hits: {entry.hit_count})"
        )
        return entry.data

    def set(self, dataset_key: Hashable, value: Any) -> bool:
        """
        Store a value for a dataset.

        Values for a dataset other than the bound one are discarded, and an
        existing entry is never overwritten.

        Returns:
            True if the value was stored
        """
        if dataset_key != self._dataset_key:
            self._stats['stale_writes'] += 1
            logger.info(
                f"Cache '{self.name}': discarding result for superseded dataset "
                f"{dataset_key} (current: {self._dataset_key})"
            )
            return False

        if self._entry is not None:
            logger.debug(f"Cache '{self.name}' already populated for dataset {dataset_key}")
            return False

        self._entry = CacheEntry(value, dataset_key)
        logger.debug(f"Cache '{self.name}' set for dataset {dataset_key}")
        return True

    def mark_attempted(self, dataset_key: Hashable):
        """Record that a fetch was started for the bound dataset."""
        if dataset_key == self._dataset_key:
            self._attempted = True

    def was_attempted(self, dataset_key: Hashable) -> bool:
        """Whether a fetch was already started for this dataset."""
        return self._attempted and dataset_key == self._dataset_key

    def invalidate(self):
        """Drop the cached value and the attempt marker."""
        if self._entry is not None or self._attempted:
            self._stats['invalidations'] += 1
            logger.debug(f"Cache '{self.name}' invalidated (dataset {self._dataset_key})")
        self._entry = None
        self._attempted = False

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache statistics
        """
        total_requests = self._stats['hits'] + self._stats['misses']
        hit_rate = (
            (self._stats['hits'] / total_requests * 100)
            if total_requests > 0
            else 0
        )

        return {
            'name': self.name,
            'dataset_key': self._dataset_key,
            'populated': self._entry is not None,
            'attempted': self._attempted,
            'hits': self._stats['hits'],
            'misses': self._stats['misses'],
            'hit_rate_percent': round(hit_rate, 2),
            'stale_writes': self._stats['stale_writes'],
            'invalidations': self._stats['invalidations'],
            'total_requests': total_requests
        }
