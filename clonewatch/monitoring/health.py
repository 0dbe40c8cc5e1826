"""Health and metrics endpoints for CloneWatch."""

from __future__ import annotations

import inspect
import logging
from typing import Awaitable, Callable, Union

from aiohttp import web

logger = logging.getLogger(__name__)

METRIC_PREFIX = "clonewatch_"

# Label used when a status field is a breakdown (dict) rather than a number.
METRIC_LABELS = {"watched_domains": "threat_level"}


class HealthServer:
    """Serves /healthz (JSON status) and /metrics (plain-text gauges)."""

    def __init__(
        self,
        host: str,
        port: int,
        status_provider: Callable[[], Union[dict, Awaitable[dict]]],
        enabled: bool = True,
    ):
        self.host = host
        self.port = port
        self.status_provider = status_provider
        self.enabled = enabled
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/healthz", self._handle_health)
        app.router.add_get("/metrics", self._handle_metrics)
        return app

    async def start(self):
        if not self.enabled:
            logger.info("Health server disabled")
            return

        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()
        logger.info("Health server listening on %s:%s", self.host, self.port)

    async def stop(self):
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        self._runner = None
        self._site = None

    async def _snapshot(self) -> dict:
        try:
            status = self.status_provider()
            if inspect.isawaitable(status):
                status = await status
            return dict(status or {})
        except Exception as exc:
            logger.warning("Health status provider failed: %s", exc)
            return {"status": "error", "message": str(exc)}

    async def _handle_health(self, request):  # noqa: ANN001
        payload = await self._snapshot()
        payload.setdefault("status", "ok")
        return web.json_response(payload)

    async def _handle_metrics(self, request):  # noqa: ANN001
        """Numeric and boolean fields become gauges; a dict of numbers becomes
        one labelled gauge per entry. Everything else is skipped."""
        data = await self._snapshot()

        lines = []
        for key, value in data.items():
            metric_key = str(key).replace(".", "_").replace("-", "_")
            if isinstance(value, dict):
                label = METRIC_LABELS.get(metric_key, "name")
                for name, count in value.items():
                    if isinstance(count, (int, float)) and not isinstance(count, bool):
                        lines.append(f'{METRIC_PREFIX}{metric_key}{{{label}="{name}"}} {count}')
                continue
            if isinstance(value, bool):
                value = int(value)
            if isinstance(value, (int, float)):
                lines.append(f"{METRIC_PREFIX}{metric_key} {value}")
        if not lines:
            lines.append(f'{METRIC_PREFIX}status{{state="empty"}} 1')

        return web.Response(text="\n".join(lines) + "\n")
