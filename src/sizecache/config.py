"""Configuration loading for sizecache.

This module only reads `sizecache.toml` and performs light validation; it has
no effect on the library API unless a caller builds objects from the result.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sizecache.errors import SizeCacheConfigError
from sizecache.sizing import DEFAULT_MAP_ENTRY_OVERHEAD, POINTER_SIZE, SizeConstants

CONFIG_FILENAME = "sizecache.toml"

# The ceiling the original exerciser ran with.
DEFAULT_LIMIT_BYTES = 100_000


@dataclass(frozen=True)
class CacheConfig:
    limit_bytes: int


@dataclass(frozen=True)
class EstimatorConfig:
    map_entry_overhead: float
    pointer_size: int


@dataclass(frozen=True)
class SizeCacheConfig:
    version: int
    cache: CacheConfig
    estimator: EstimatorConfig

    def estimator_constants(self) -> SizeConstants:
        return SizeConstants(
            pointer_size=self.estimator.pointer_size,
            map_entry_overhead=self.estimator.map_entry_overhead,
        )


def default_config() -> SizeCacheConfig:
    return SizeCacheConfig(
        version=1,
        cache=CacheConfig(limit_bytes=DEFAULT_LIMIT_BYTES),
        estimator=EstimatorConfig(
            map_entry_overhead=DEFAULT_MAP_ENTRY_OVERHEAD,
            pointer_size=POINTER_SIZE,
        ),
    )


def find_project_root(start: Path) -> Path:
    """Walk upward from `start` (file or directory) looking for `sizecache.toml`."""

    cur = start
    try:
        if cur.is_file():
            cur = cur.parent
    except OSError:
        cur = cur.parent

    cur = cur.resolve()
    while True:
        if (cur / CONFIG_FILENAME).is_file():
            return cur
        if cur.parent == cur:
            break
        cur = cur.parent

    raise SizeCacheConfigError(
        f"Could not find {CONFIG_FILENAME} by walking upward from start path."
    )


def _as_table(value: Any, *, name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise SizeCacheConfigError(f"Expected [{name}] to be a table.")
    return value


def _as_int(value: Any, *, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise SizeCacheConfigError(f"Expected {name} to be an integer.")
    return value


def _as_float(value: Any, *, name: str) -> float:
    # TOML writes `10` and `10.0` differently; accept both.
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise SizeCacheConfigError(f"Expected {name} to be a number.")
    return float(value)


def load_config(*, root: Path | None = None, config_path: Path | None = None) -> SizeCacheConfig:
    """Load and validate `sizecache.toml`.

    If neither `root` nor `config_path` are provided, the project root is
    discovered by walking upward from the current working directory.
    """

    if config_path is None:
        if root is None:
            root = find_project_root(Path.cwd())
        config_path = root / CONFIG_FILENAME

    try:
        raw = config_path.read_bytes()
    except FileNotFoundError as e:
        raise SizeCacheConfigError(f"Missing {CONFIG_FILENAME} at: {config_path}") from e
    except OSError as e:
        raise SizeCacheConfigError(f"Failed reading config file: {config_path}") from e

    try:
        data = tomllib.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise SizeCacheConfigError(f"Config is not valid UTF-8: {config_path}") from e
    except tomllib.TOMLDecodeError as e:
        raise SizeCacheConfigError(f"Invalid TOML in {config_path}: {e}") from e

    version = data.get("version", None)
    if version is None:
        raise SizeCacheConfigError(f"Missing required `version = 1` in {CONFIG_FILENAME}.")
    version_i = _as_int(version, name="version")
    if version_i != 1:
        raise SizeCacheConfigError(f"Unsupported config version: {version_i} (expected 1).")

    cache_tbl = _as_table(data.get("cache"), name="cache")
    estimator_tbl = _as_table(data.get("estimator"), name="estimator")

    if "limit_bytes" in cache_tbl:
        limit_bytes = _as_int(cache_tbl["limit_bytes"], name="cache.limit_bytes")
    else:
        limit_bytes = DEFAULT_LIMIT_BYTES

    if "map_entry_overhead" in estimator_tbl:
        map_entry_overhead = _as_float(
            estimator_tbl["map_entry_overhead"], name="estimator.map_entry_overhead"
        )
    else:
        map_entry_overhead = DEFAULT_MAP_ENTRY_OVERHEAD

    if "pointer_size" in estimator_tbl:
        pointer_size = _as_int(estimator_tbl["pointer_size"], name="estimator.pointer_size")
    else:
        pointer_size = POINTER_SIZE

    # Validation
    if limit_bytes < 0:
        raise SizeCacheConfigError("Invalid config: cache.limit_bytes must be >= 0.")

    if map_entry_overhead < 0:
        raise SizeCacheConfigError("Invalid config: estimator.map_entry_overhead must be >= 0.")

    if pointer_size < 1:
        raise SizeCacheConfigError("Invalid config: estimator.pointer_size must be >= 1.")

    return SizeCacheConfig(
        version=version_i,
        cache=CacheConfig(limit_bytes=limit_bytes),
        estimator=EstimatorConfig(
            map_entry_overhead=map_entry_overhead,
            pointer_size=pointer_size,
        ),
    )
