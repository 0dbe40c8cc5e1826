"""Ownership of the trusted baseline snapshot."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..errors import BaselineCorrupt, BaselineMissing, StorageFailure
from .features import FeatureExtractor
from .models import Baseline

logger = logging.getLogger(__name__)


class BaselineManager:
    """Creates, persists and serves the single process-wide Baseline.

    Readers call ``current()`` and keep the returned reference for the whole
    check; writers build a complete new Baseline and swap the reference, so a
    refresh never exposes a half-updated value.
    """

    def __init__(
        self,
        *,
        renderer,
        extractor: FeatureExtractor,
        store,
        url: str,
        render_timeout_ms: int = 30000,
        evidence_store=None,
    ):
        self.renderer = renderer
        self.extractor = extractor
        self.store = store
        self.url = url
        self.render_timeout_ms = render_timeout_ms
        self.evidence_store = evidence_store
        self._baseline: Optional[Baseline] = None
        self._write_lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._baseline is not None

    def current(self) -> Optional[Baseline]:
        return self._baseline

    async def create(self) -> Baseline:
        """Render the legitimate site and replace the baseline."""
        async with self._write_lock:
            return await self._create_locked()

    async def _create_locked(self) -> Baseline:
        logger.info("Creating baseline from %s", self.url)
        snapshot = await self.renderer.render(self.url, self.render_timeout_ms)
        baseline = Baseline(snapshot=snapshot, features=self.extractor.extract(snapshot))

        await self.store.put_baseline(baseline)
        if self.evidence_store is not None:
            try:
                await self.evidence_store.save_baseline_screenshot(snapshot.screenshot.png)
            except StorageFailure as exc:
                logger.warning("Baseline screenshot copy not written: %s", exc)

        self._baseline = baseline
        logger.info(
            "Baseline created (%dx%d screenshot, %d brand terms)",
            snapshot.screenshot.width,
            snapshot.screenshot.height,
            len(baseline.features.brand_keywords),
        )
        return baseline

    async def refresh(self) -> Baseline:
        return await self.create()

    async def load(self) -> Baseline:
        """Load the persisted baseline, creating a new one if absent or corrupt."""
        async with self._write_lock:
            return await self._load_locked()

    async def _read_stored(self) -> Baseline:
        """Stored baseline; other StorageFailures (store down) propagate."""
        try:
            baseline = await self.store.get_baseline()
        except BaselineCorrupt as exc:
            raise BaselineMissing(f"stored baseline unusable ({exc})") from exc
        if baseline is None:
            raise BaselineMissing("no baseline found")
        return baseline

    async def _load_locked(self) -> Baseline:
        try:
            baseline = await self._read_stored()
        except BaselineMissing as exc:
            logger.info("%s, creating new one", exc)
            return await self._create_locked()

        self._baseline = baseline
        logger.info("Baseline loaded (created %s)", baseline.created_at.isoformat())
        return baseline

    async def ensure(self) -> Baseline:
        """Return the live baseline, loading or creating it on first use."""
        baseline = self._baseline
        if baseline is not None:
            return baseline
        async with self._write_lock:
            # Another task may have finished loading while we waited.
            if self._baseline is not None:
                return self._baseline
            return await self._load_locked()
