"""Error formatting and actionable hints for sizecache CLI output.

Keep this module small and dependency-light: it is imported by the CLI layer
and only depends on the error hierarchy.
"""

from __future__ import annotations

from sizecache.errors import SizeCacheConfigError, UnsupportedKindError


def format_hint(exc: BaseException) -> str | None:
    """Return an actionable hint for a known error, or None."""
    msg = str(exc)

    if isinstance(exc, SizeCacheConfigError):
        if "sizecache.toml" in msg and "find" in msg.lower():
            return "create a sizecache.toml with `version = 1` or pass --config"
        if "default value" in msg:
            return "pass default= when the value type cannot be called without arguments"
        return None

    if isinstance(exc, UnsupportedKindError):
        if exc.kind == "function":
            return "cache the data a function produces, not the function itself"
        return (
            "register a sizing handler for this type with SizeEstimator.register "
            "or store a plain data representation instead"
        )

    return None


def format_error_with_hint(exc: BaseException) -> str:
    """Format error message + optional hint for stderr output."""
    msg = (str(exc) or repr(exc)).strip()

    result = f"error: {msg}"
    hint = format_hint(exc)
    if hint:
        result += f"\nhint: {hint}"
    return result
