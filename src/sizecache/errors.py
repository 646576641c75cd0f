"""sizecache exception hierarchy.

Keep this module small and dependency-free: it is imported by every other
module and by tests.
"""


class SizeCacheError(Exception):
    """Base exception for all sizecache errors."""


class SizeCacheConfigError(SizeCacheError):
    """Raised for invalid configuration or constructor arguments."""


class UnsupportedKindError(SizeCacheError):
    """Raised when the estimator meets a value kind it cannot size."""

    def __init__(self, kind: str, detail: str | None = None) -> None:
        self.kind = kind
        msg = f"unsupported kind: {kind}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)
