"""Single-domain check: render, extract, score, persist."""

from __future__ import annotations

import asyncio
import logging

from ..analyzer.models import CheckRecord, utcnow
from ..errors import StorageFailure
from ..utils.domains import canonicalize_domain, target_url
from ..utils.locks import KeyedLock

logger = logging.getLogger(__name__)


class DomainChecker:
    """Runs one domain through Renderer -> FeatureExtractor -> SimilarityEngine.

    Checks of the same domain are serialized; checks of different domains run
    concurrently up to ``max_concurrent_checks``.
    """

    def __init__(
        self,
        *,
        baseline_manager,
        renderer,
        extractor,
        engine,
        store,
        evidence_store,
        render_timeout_ms: int = 30000,
        max_concurrent_checks: int = 3,
    ):
        self.baseline_manager = baseline_manager
        self.renderer = renderer
        self.extractor = extractor
        self.engine = engine
        self.store = store
        self.evidence_store = evidence_store
        self.render_timeout_ms = render_timeout_ms
        self.max_concurrent_checks = max(1, int(max_concurrent_checks))
        self._domain_locks = KeyedLock()
        self._slots = asyncio.Semaphore(self.max_concurrent_checks)

    def in_flight(self) -> list[str]:
        """Domains with a check currently holding their lock."""
        return self._domain_locks.keys()

    async def check(self, domain: str) -> CheckRecord:
        """Check one domain against the baseline and record the result.

        Raises RenderFailure when the page (or a missing baseline) cannot be
        rendered, and StorageFailure when the result cannot be persisted. In
        both cases no CheckRecord is stored.
        """
        domain = (domain or "").strip()
        if not domain:
            raise ValueError("domain is required")

        # Captured once; a concurrent refresh does not affect this check.
        baseline = await self.baseline_manager.ensure()

        key = canonicalize_domain(domain) or domain.lower()
        if self._domain_locks.locked(key):
            logger.info("Check already in progress for %s; queued", domain)

        async with self._domain_locks.hold(key):
            async with self._slots:
                logger.info("Checking domain: %s", domain)
                snapshot = await self.renderer.render(target_url(domain), self.render_timeout_ms)
                features = self.extractor.extract(snapshot)
                result = await asyncio.to_thread(
                    self.engine.score_baseline, baseline, snapshot, features
                )

            checked_at = utcnow()
            screenshot_ref = await self.evidence_store.save_screenshot(
                domain, snapshot.screenshot.png, checked_at
            )
            record = CheckRecord(
                domain=domain,
                result=result,
                screenshot_ref=screenshot_ref,
                checked_at=checked_at,
            )
            try:
                await self.store.record_check(record)
            except StorageFailure:
                self.evidence_store.delete(screenshot_ref)
                raise

        logger.info(
            "Check complete: %s - %s%% similarity (%s)",
            domain,
            result.composite,
            result.threat_level.value,
        )
        return record
