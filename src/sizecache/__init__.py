from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from sizecache.cache import BoundedCache, new_bounded_cache
from sizecache.errors import SizeCacheConfigError, SizeCacheError, UnsupportedKindError
from sizecache.sizing import (
    Kind,
    SizeConstants,
    SizeEstimator,
    check_type,
    estimate_size,
    must_estimate_size,
)


def _package_version() -> str:
    try:
        return version("sizecache")
    except PackageNotFoundError:
        # Running from a source checkout, or otherwise not installed.
        return "0.0.0"


__version__ = _package_version()

__all__ = [
    "BoundedCache",
    "Kind",
    "SizeCacheConfigError",
    "SizeCacheError",
    "SizeConstants",
    "SizeEstimator",
    "UnsupportedKindError",
    "__version__",
    "check_type",
    "estimate_size",
    "must_estimate_size",
    "new_bounded_cache",
]
