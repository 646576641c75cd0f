"""Memory-bounded FIFO cache.

The cache keeps entries in insertion order and, on every insert, measures
the estimated deep size of all keys and values together with the per-entry
table overhead (:meth:`SizeEstimator.estimate_entries`). While that estimate
exceeds the configured limit the oldest entry is evicted. The bound is only as
good as the estimate: see :mod:`sizecache.sizing`.
"""

from __future__ import annotations

import logging
import threading
import types
import typing
from collections import OrderedDict
from collections.abc import Callable, Iterator
from typing import Any, Generic, TypeVar

from sizecache.errors import SizeCacheConfigError
from sizecache.sizing import SizeEstimator, default_estimator

logger = logging.getLogger("sizecache.cache")

T = TypeVar("T")

_MISSING: Any = object()


def _instance_check_type(tp: object) -> Any:
    """Return something usable with isinstance() for a value type annotation."""

    origin = typing.get_origin(tp)
    if origin is typing.Union or origin is types.UnionType:
        return tuple(_instance_check_type(arg) for arg in typing.get_args(tp))
    if origin is not None:
        return origin
    if tp is typing.Any:
        return object
    return tp


def _zero_factory(value_type: object, default: object) -> Callable[[], Any]:
    if default is not _MISSING:
        return lambda: default
    if value_type is type(None):
        return lambda: None
    if not callable(value_type):
        raise SizeCacheConfigError(
            f"Cannot derive a default value for {value_type!r}; pass default= explicitly."
        )
    try:
        value_type()
    except Exception as e:
        raise SizeCacheConfigError(
            f"Cannot derive a default value for {value_type!r}; pass default= explicitly."
        ) from e
    return value_type


class BoundedCache(Generic[T]):
    """Thread-safe key/value cache bounded by estimated memory size.

    Keys are strings and every value is an instance of the single
    ``value_type`` given at construction. Eviction is strictly FIFO by
    insertion; overwriting a key moves it to the back of the queue.
    """

    def __init__(
        self,
        limit_bytes: int,
        value_type: type[T],
        *,
        default: T = _MISSING,
        estimator: SizeEstimator | None = None,
    ) -> None:
        if not isinstance(limit_bytes, int) or isinstance(limit_bytes, bool):
            raise SizeCacheConfigError("limit_bytes must be an integer.")
        if limit_bytes < 0:
            raise SizeCacheConfigError("limit_bytes must be >= 0.")

        self._estimator = estimator if estimator is not None else default_estimator()

        # Fail at construction, not on the first insert.
        self._estimator.check_type(value_type)
        self._zero = _zero_factory(value_type, default)
        zero = self._zero()
        self._estimator.estimate_size(zero)
        if type(zero).__eq__ is object.__eq__:
            # Identity-compared zero values are shared so repeated reads agree.
            self._zero = lambda: zero

        self._value_type = value_type
        self._isinstance_type = _instance_check_type(value_type)
        self._limit_bytes = limit_bytes
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, T] = OrderedDict()

    @property
    def limit_bytes(self) -> int:
        return self._limit_bytes

    @property
    def value_type(self) -> type[T]:
        return self._value_type

    @property
    def estimator(self) -> SizeEstimator:
        return self._estimator

    def get(self, key: str) -> T:
        """Return the value for ``key``, or the default value if absent."""

        with self._lock:
            if key in self._entries:
                return self._entries[key]
        return self._zero()

    def set(self, key: str, value: T) -> int:
        """Insert or overwrite ``key`` and evict oldest entries while over the limit.

        Returns the summed estimated size of the evicted values (0 if none).
        The just-inserted entry is never evicted by its own insert; if it
        alone exceeds the limit it stays and the bound is exceeded.

        Raises UnsupportedKindError, leaving the cache unchanged, if the new
        value or any stored value (mutated since it was inserted) cannot be
        sized.
        """

        if not isinstance(key, str):
            raise TypeError(f"cache keys must be str, got {type(key).__name__}")
        if not isinstance(value, self._isinstance_type):
            raise TypeError(
                f"cache values must be {self._value_type!r}, got {type(value).__name__}"
            )

        with self._lock:
            # The resulting contents are measured before anything is mutated.
            size = self._estimator.estimate_entries(self._items_with(key, value))

            self._entries.pop(key, None)
            self._entries[key] = value

            if size <= self._limit_bytes:
                return 0
            return self._evict(key, size)

    def size_bytes(self) -> int:
        """Current estimated size of all entries."""

        with self._lock:
            return self._data_size()

    def keys(self) -> list[str]:
        """Keys oldest first."""

        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def _data_size(self) -> int:
        return self._estimator.estimate_entries(self._entries.items())

    def _items_with(self, key: str, value: T) -> Iterator[tuple[str, T]]:
        for k, v in self._entries.items():
            if k != key:
                yield k, v
        yield key, value

    def _evict(self, newest: str, size: int) -> int:
        evicted = 0
        count = 0
        while size > self._limit_bytes and len(self._entries) > 1:
            key, value = next(iter(self._entries.items()))
            freed = self._estimator.must_estimate_size(value)
            del self._entries[key]
            evicted += freed
            count += 1
            logger.debug("Evicted %r (%d bytes)", key, freed)
            size = self._data_size()

        if count:
            logger.debug(
                "Evicted %d entries (%d bytes); cache now %d/%d bytes",
                count,
                evicted,
                size,
                self._limit_bytes,
            )
        if size > self._limit_bytes:
            logger.warning(
                "Entry %r alone exceeds the cache limit (%d > %d bytes)",
                newest,
                size,
                self._limit_bytes,
            )
        return evicted


def new_bounded_cache(
    limit_bytes: int,
    value_type: type[T],
    *,
    default: T = _MISSING,
    estimator: SizeEstimator | None = None,
) -> BoundedCache[T]:
    """Create a cache, validating eagerly that ``value_type`` can be sized."""

    return BoundedCache(limit_bytes, value_type, default=default, estimator=estimator)
