"""Hand-written stand-ins for the renderer and store used across tests."""

from __future__ import annotations

import asyncio
import io

from PIL import Image

from clonewatch.analyzer.models import Raster, Snapshot, WatchedDomain
from clonewatch.errors import RenderFailure, StorageFailure


def solid_png(color=(255, 255, 255), size=(16, 16)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def checkerboard_png(size=(100, 100), inverted: bool = False) -> bytes:
    img = Image.new("RGB", size)
    pixels = img.load()
    for x in range(size[0]):
        for y in range(size[1]):
            white = (x + y) % 2 == 0
            if inverted:
                white = not white
            pixels[x, y] = (255, 255, 255) if white else (0, 0, 0)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def edge_png(edge_value: int | None = None, size: int = 8) -> bytes:
    """Black left half, white right half; ``edge_value`` repaints the first white column."""
    img = Image.new("RGB", (size, size), (255, 255, 255))
    pixels = img.load()
    half = size // 2
    for y in range(size):
        for x in range(half):
            pixels[x, y] = (0, 0, 0)
        if edge_value is not None:
            pixels[half, y] = (edge_value, edge_value, edge_value)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


BANK_HTML = """
<html><head><title>Example Bank</title><meta charset="utf-8"><meta name="x"></head>
<body>
  <a href="/">Home</a><a href="/help">Help</a>
  <img src="logo.png">
  <form action="/login">
    <input type="text" name="username" placeholder="Username">
    <input type="password" name="password">
    <button type="submit">Login</button>
  </form>
</body></html>
"""

BANK_TEXT = "Welcome to Example Bank. Login to your account."


def make_snapshot(
    url: str = "https://bank.example",
    html: str = BANK_HTML,
    text: str = BANK_TEXT,
    png: bytes | None = None,
) -> Snapshot:
    return Snapshot(
        source_url=url,
        html=html,
        visible_text=text,
        screenshot=Raster.from_png(png if png is not None else solid_png()),
    )


class FakeRenderer:
    """Returns canned snapshots per URL; an Exception value is raised instead."""

    def __init__(self, pages: dict | None = None, default: Snapshot | None = None, delay: float = 0):
        self.pages = dict(pages or {})
        self.default = default
        self.delay = delay
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0
        self.stopped = False
        # url -> asyncio.Event; renders of that url wait until it is set
        self.gates: dict = {}

    async def render(self, url: str, timeout_ms: int) -> Snapshot:
        self.calls.append(url)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            gate = self.gates.get(url)
            if gate is not None:
                await gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            page = self.pages.get(url, self.default)
            if page is None:
                raise RenderFailure("net::ERR_NAME_NOT_RESOLVED", url)
            if isinstance(page, Exception):
                raise page
            return page
        finally:
            self.active -= 1

    async def stop(self):
        self.stopped = True


class MemoryStore:
    """In-memory replacement for Database with the same coroutine surface."""

    def __init__(self, domains=None):
        self.baseline = None
        self.domains: dict[str, object] = {d: None for d in (domains or [])}
        self.logs: list = []
        self.put_calls = 0
        self.fail_get_baseline: Exception | None = None
        self.fail_record = False
        self.fail_list = False
        self.connected = False

    async def connect(self):
        self.connected = True

    async def close(self):
        self.connected = False

    async def get_baseline(self):
        if self.fail_get_baseline is not None:
            raise self.fail_get_baseline
        return self.baseline

    async def put_baseline(self, baseline):
        self.put_calls += 1
        self.baseline = baseline

    async def list_watched_domains(self):
        if self.fail_list:
            raise StorageFailure("list_watched_domains failed: disk I/O error")
        return list(self.domains)

    async def add_domain(self, domain):
        if domain in self.domains:
            return False
        self.domains[domain] = None
        return True

    async def remove_domain(self, domain):
        return self.domains.pop(domain, False) is not False

    async def get_watched_domains(self):
        if self.fail_list:
            raise StorageFailure("get_watched_domains failed: disk I/O error")
        watched = []
        for domain, record in self.domains.items():
            if record is None:
                watched.append(WatchedDomain(domain=domain))
            else:
                watched.append(
                    WatchedDomain(
                        domain=domain,
                        current_similarity=record.result.composite,
                        last_checked_at=record.checked_at,
                        current_screenshot_ref=record.screenshot_ref,
                        current_threat_level=record.result.threat_level,
                    )
                )
        return watched

    async def record_check(self, record):
        if self.fail_record:
            raise StorageFailure("record_check failed: database is locked")
        self.logs.append(record)
        if record.domain not in self.domains:
            return False
        self.domains[record.domain] = record
        return True

    async def get_check_logs(self, domain=None, limit=50):
        records = [r for r in reversed(self.logs) if domain is None or r.domain == domain]
        return records[:limit]
