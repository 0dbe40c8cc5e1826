"""Error taxonomy for CloneWatch."""

from __future__ import annotations

from typing import Optional


class CloneWatchError(Exception):
    """Base error for the detection engine."""


class RenderFailure(CloneWatchError):
    """Navigation, timeout or network error while rendering a page."""

    def __init__(self, reason: str, url: Optional[str] = None):
        self.reason = reason
        self.url = url
        message = f"{url}: {reason}" if url else reason
        super().__init__(message)


class FeatureExtractionFailure(CloneWatchError):
    """Catastrophic parse error (normal malformed markup degrades to zero counts)."""


class SimilarityComputeFailure(CloneWatchError):
    """Raster decode error; mapped to a fallback score inside the engine."""


class StorageFailure(CloneWatchError):
    """Persistence layer unavailable or a write/read failed."""


class BaselineCorrupt(StorageFailure):
    """A persisted baseline exists but cannot be decoded."""


class BaselineMissing(CloneWatchError):
    """No baseline has been created yet."""
