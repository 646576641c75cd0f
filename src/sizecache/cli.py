from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Callable
from pathlib import Path

from sizecache import __version__
from sizecache.cache import new_bounded_cache
from sizecache.config import (
    CONFIG_FILENAME,
    SizeCacheConfig,
    default_config,
    find_project_root,
    load_config,
)
from sizecache.diagnostics import format_error_with_hint
from sizecache.errors import SizeCacheConfigError, UnsupportedKindError
from sizecache.sizing import SizeEstimator

EXIT_OK = 0
EXIT_CONFIG_OR_USAGE = 2
EXIT_UNSUPPORTED_KIND = 3


def _noop() -> None:
    return None


# value type name -> (value type, value built from the loop counter)
_DEMO_TYPES: dict[str, tuple[object, Callable[[int], object]]] = {
    "int": (int, lambda i: i),
    "str": (str, lambda i: str(i)),
    "bytes": (bytes, lambda i: str(i).encode("ascii")),
    "list": (list, lambda i: [i]),
    "dict": (dict, lambda i: {"i": i}),
    "function": (type(_noop), lambda i: _noop),
}


def _add_config_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--root",
        type=str,
        default=None,
        help="Project root (defaults to searching upward from cwd for sizecache.toml).",
    )
    p.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to sizecache.toml (defaults to <root>/sizecache.toml).",
    )
    p.add_argument(
        "--json",
        dest="json_output",
        action="store_true",
        help="Print a single JSON object instead of text.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sizecache")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")

    subparsers = parser.add_subparsers(dest="command", required=True)

    demo_p = subparsers.add_parser("demo", help="Fill a bounded cache and report its size.")
    _add_config_flags(demo_p)
    demo_p.add_argument("--count", type=int, default=1000, help="Number of inserts.")
    demo_p.add_argument("--limit", type=int, default=None, help="Byte limit override.")
    demo_p.add_argument(
        "--value-type",
        choices=sorted(_DEMO_TYPES),
        default="int",
        help="Value type the cache is created for.",
    )

    estimate_p = subparsers.add_parser("estimate", help="Estimate the size of a JSON document.")
    _add_config_flags(estimate_p)
    estimate_p.add_argument("path", help="JSON file to load, or - for stdin.")

    return parser


def parse_args(argv: list[str]) -> argparse.Namespace:
    return _build_parser().parse_args(argv)


def _eprint(msg: str) -> None:
    print(msg, file=sys.stderr)


def _configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


def _load_config(args: argparse.Namespace) -> SizeCacheConfig:
    if args.config:
        return load_config(config_path=Path(args.config).resolve())
    if args.root:
        root = Path(args.root).resolve()
        if (root / CONFIG_FILENAME).is_file():
            return load_config(root=root)
        return default_config()

    # A project without sizecache.toml runs on defaults.
    try:
        root = find_project_root(Path.cwd())
    except SizeCacheConfigError:
        return default_config()
    return load_config(root=root)


def cmd_demo(args: argparse.Namespace) -> int:
    if args.count < 0:
        _eprint("error: --count must be >= 0")
        return EXIT_CONFIG_OR_USAGE

    try:
        cfg = _load_config(args)
        limit = args.limit if args.limit is not None else cfg.cache.limit_bytes
        value_type, make_value = _DEMO_TYPES[args.value_type]
        cache = new_bounded_cache(
            limit,
            value_type,  # type: ignore[arg-type]
            estimator=SizeEstimator(cfg.estimator_constants()),
        )
    except SizeCacheConfigError as e:
        _eprint(format_error_with_hint(e))
        return EXIT_CONFIG_OR_USAGE
    except UnsupportedKindError as e:
        _eprint(format_error_with_hint(e))
        return EXIT_UNSUPPORTED_KIND

    evicted = 0
    for i in range(args.count):
        if not args.json_output:
            print(f"[{i}], dataSize: {cache.size_bytes()}")
        evicted += cache.set(str(i), make_value(i))

    if args.json_output:
        out = {
            "inserted": args.count,
            "entries": len(cache),
            "size_bytes": cache.size_bytes(),
            "limit_bytes": cache.limit_bytes,
            "evicted_bytes": evicted,
        }
        print(json.dumps(out, sort_keys=True))
    return EXIT_OK


def cmd_estimate(args: argparse.Namespace) -> int:
    try:
        if args.path == "-":
            text = sys.stdin.read()
        else:
            text = Path(args.path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        _eprint(f"error: failed reading {args.path}: {e}")
        return EXIT_CONFIG_OR_USAGE

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        _eprint(f"error: invalid JSON in {args.path}: {e}")
        return EXIT_CONFIG_OR_USAGE

    try:
        cfg = _load_config(args)
    except SizeCacheConfigError as e:
        _eprint(format_error_with_hint(e))
        return EXIT_CONFIG_OR_USAGE

    size = SizeEstimator(cfg.estimator_constants()).estimate_size(data)
    if args.json_output:
        print(json.dumps({"path": args.path, "size_bytes": size}, sort_keys=True))
    else:
        print(size)
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    try:
        args = parse_args(list(sys.argv[1:] if argv is None else argv))
    except SystemExit as e:
        # argparse uses SystemExit for --help/--version and parse errors.
        code = e.code
        return int(code) if isinstance(code, int) else EXIT_CONFIG_OR_USAGE

    _configure_logging(args.verbose)

    if args.command == "demo":
        return cmd_demo(args)
    if args.command == "estimate":
        return cmd_estimate(args)

    return EXIT_CONFIG_OR_USAGE


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
