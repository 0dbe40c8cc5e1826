"""CloneWatch service: owns the components and exposes the control surface."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from ..analyzer.baseline import BaselineManager
from ..analyzer.features import FeatureExtractor
from ..analyzer.models import Baseline, CheckRecord, ThreatLevel, WatchedDomain
from ..analyzer.renderer import PlaywrightRenderer
from ..analyzer.similarity import SimilarityEngine
from ..config import Config
from ..errors import CloneWatchError, StorageFailure
from ..monitoring.health import HealthServer
from ..storage import Database, EvidenceStore
from .checker import DomainChecker
from .scheduler import MonitoringScheduler

logger = logging.getLogger(__name__)


class CloneWatchService:
    """Wires renderer, extractor, engine, store and scheduler together."""

    def __init__(
        self,
        config: Config,
        *,
        renderer=None,
        store=None,
        evidence_store=None,
    ):
        self.config = config
        self._started_at = datetime.now(timezone.utc)
        self._stop_lock = asyncio.Lock()
        self._stop_task: asyncio.Task | None = None
        self._running = False

        self.store = store if store is not None else Database(config.db_path)
        self.evidence_store = (
            evidence_store if evidence_store is not None else EvidenceStore(config.screenshots_dir)
        )
        self.renderer = renderer if renderer is not None else PlaywrightRenderer(headless=config.headless)
        self.extractor = FeatureExtractor(config.brand_keywords)
        self.engine = SimilarityEngine(config.similarity_settings())

        self.baseline_manager = BaselineManager(
            renderer=self.renderer,
            extractor=self.extractor,
            store=self.store,
            url=config.legitimate_site_url,
            render_timeout_ms=config.render_timeout_ms,
            evidence_store=self.evidence_store,
        )
        self.checker = DomainChecker(
            baseline_manager=self.baseline_manager,
            renderer=self.renderer,
            extractor=self.extractor,
            engine=self.engine,
            store=self.store,
            evidence_store=self.evidence_store,
            render_timeout_ms=config.render_timeout_ms,
            max_concurrent_checks=config.max_concurrent_checks,
        )
        self.scheduler = MonitoringScheduler(
            checker=self.checker,
            store=self.store,
            baseline_manager=self.baseline_manager,
            interval_seconds=config.check_interval_seconds,
            run_on_start=config.monitor_run_on_start,
        )
        self.health_server = HealthServer(
            host=config.health_host,
            port=config.health_port,
            status_provider=self._health_snapshot,
            enabled=config.health_enabled,
        )

    async def _health_snapshot(self) -> dict:
        uptime = (datetime.now(timezone.utc) - self._started_at).total_seconds()
        status = self.scheduler.status()
        snapshot = {
            "status": "ok" if self._running else "stopped",
            "uptime_seconds": round(uptime, 1),
            "monitoring_running": status["running"],
            "baseline_loaded": status["baseline_loaded"],
            "checks_in_flight": len(self.checker.in_flight()),
            "cycles_completed": status["cycles_completed"],
            "last_cycle_failures": status["last_cycle_failures"],
            "last_cycle_at": status["last_cycle_at"],
        }

        try:
            domains = await self.store.get_watched_domains()
        except StorageFailure as exc:
            logger.warning("Health snapshot could not read the watchlist: %s", exc)
            snapshot["store_available"] = False
            if self._running:
                snapshot["status"] = "degraded"
            return snapshot

        # Domains not yet checked have no threat level.
        by_level = {level.value: 0 for level in ThreatLevel}
        by_level["unchecked"] = 0
        for watched in domains:
            level = watched.current_threat_level
            by_level[level.value if level else "unchecked"] += 1
        snapshot["store_available"] = True
        snapshot["watched_domains"] = by_level
        return snapshot

    async def start(self):
        """Connect storage, load the baseline and start the health endpoint."""
        logger.info("Starting CloneWatch...")
        await self.store.connect()
        self._running = True

        try:
            await self.baseline_manager.load()
        except CloneWatchError as exc:
            # Checks retry lazily through BaselineManager.ensure().
            logger.error("Baseline unavailable at startup: %s", exc)

        await self.health_server.start()

        if self.config.monitor_autostart:
            self.start_monitoring()
        logger.info("CloneWatch started")

    async def stop(self):
        """Stop all components (idempotent)."""
        async with self._stop_lock:
            if self._stop_task is None:
                self._stop_task = asyncio.create_task(self._stop_impl())
            stop_task = self._stop_task
        await stop_task

    async def _stop_impl(self):
        logger.info("Stopping CloneWatch...")
        self._running = False
        self.scheduler.stop()
        await self.scheduler.wait_closed()
        await self.health_server.stop()
        stop_renderer = getattr(self.renderer, "stop", None)
        if stop_renderer is not None:
            await stop_renderer()
        await self.store.close()
        logger.info("CloneWatch stopped")

    # Monitoring control

    def start_monitoring(self) -> dict:
        if not self.scheduler.start():
            return {"success": False, "message": "Monitoring already active"}
        return {"success": True, "message": "Monitoring started"}

    def stop_monitoring(self) -> dict:
        if not self.scheduler.stop():
            return {"success": False, "message": "Monitoring not active"}
        return {"success": True, "message": "Monitoring stopped"}

    def monitoring_status(self) -> dict:
        status = self.scheduler.status()
        status["timestamp"] = datetime.now(timezone.utc).isoformat()
        return status

    async def check_now(self, domain: str) -> CheckRecord:
        return await self.checker.check(domain)

    async def refresh_baseline(self) -> Baseline:
        return await self.baseline_manager.refresh()

    # Watchlist

    async def add_domain(self, domain: str) -> bool:
        added = await self.store.add_domain(domain)
        if added:
            logger.info("Domain added to watchlist: %s", domain)
        return added

    async def remove_domain(self, domain: str) -> bool:
        removed = await self.store.remove_domain(domain)
        if removed:
            logger.info("Domain removed from watchlist: %s", domain)
        return removed

    async def list_domains(self) -> list[WatchedDomain]:
        return await self.store.get_watched_domains()

    async def check_history(self, domain: Optional[str] = None, limit: int = 50) -> list[CheckRecord]:
        return await self.store.get_check_logs(domain=domain, limit=limit)
