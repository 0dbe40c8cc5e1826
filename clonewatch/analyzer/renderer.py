"""Page rendering through a headless Playwright browser."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import os
import random
import socket
import time
from typing import Optional, Protocol
from urllib.parse import urlparse

from playwright.async_api import async_playwright, Browser, Error as PlaywrightError

from ..errors import RenderFailure
from .models import Raster, Snapshot
from .renderer_constants import (
    ANTIBOT_DOMAINS,
    STEALTH_SCRIPT,
    USER_AGENTS,
    VIEWPORT,
    VISIBLE_TEXT_SCRIPT,
)

logger = logging.getLogger(__name__)


class Renderer(Protocol):
    """Anything that can turn a URL into a Snapshot."""

    async def render(self, url: str, timeout_ms: int) -> Snapshot:
        ...


async def _is_global_host(hostname: str) -> bool:
    try:
        return ipaddress.ip_address(hostname).is_global
    except ValueError:
        pass
    try:
        addrinfos = await asyncio.to_thread(
            socket.getaddrinfo, hostname, None, socket.AF_UNSPEC, socket.SOCK_STREAM
        )
    except OSError:
        # Unresolvable hosts fail on their own during navigation.
        return True
    resolved = {sockaddr[0] for *_rest, sockaddr in addrinfos}
    return bool(resolved) and all(ipaddress.ip_address(ip).is_global for ip in resolved)


class PlaywrightRenderer:
    """Renders pages in an isolated Chromium context per call."""

    def __init__(self, headless: bool = True, block_private_hosts: bool = True):
        self.headless = headless
        self.block_private_hosts = block_private_hosts
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._start_lock = asyncio.Lock()

    async def start(self):
        """Start the browser instance."""
        async with self._start_lock:
            if self._browser:
                return
            self._playwright = await async_playwright().start()
            disable_sandbox = os.getenv("CLONEWATCH_DISABLE_CHROMIUM_SANDBOX") == "1"
            sandbox_args: list[str] = []
            if disable_sandbox:
                sandbox_args = ["--no-sandbox", "--disable-setuid-sandbox"]
                logger.warning("Chromium sandbox disabled via CLONEWATCH_DISABLE_CHROMIUM_SANDBOX=1")
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                chromium_sandbox=not disable_sandbox,
                args=["--disable-dev-shm-usage", "--disable-gpu", *sandbox_args],
            )
            logger.info("Browser started")

    async def stop(self):
        """Stop the browser instance."""
        try:
            if self._browser:
                await self._browser.close()
        except PlaywrightError as exc:
            logger.warning("Browser close failed: %s", exc)
        finally:
            self._browser = None

        try:
            if self._playwright:
                await self._playwright.stop()
        except Exception as exc:  # pragma: no cover - shutdown path
            logger.warning("Playwright stop error: %s", exc)
        finally:
            self._playwright = None

        logger.info("Browser stopped")

    async def render(self, url: str, timeout_ms: int) -> Snapshot:
        """Navigate to url and capture HTML, visible text and a viewport screenshot."""
        if not self._browser:
            await self.start()

        # Hard ceiling on top of Playwright's own navigation timeout.
        budget = timeout_ms / 1000.0 + 5.0
        try:
            return await asyncio.wait_for(self._render(url, timeout_ms), timeout=budget)
        except asyncio.TimeoutError as exc:
            raise RenderFailure(f"render exceeded {timeout_ms}ms", url) from exc

    async def _render(self, url: str, timeout_ms: int) -> Snapshot:
        deadline = time.monotonic() + timeout_ms / 1000.0
        target_host = (urlparse(url).hostname or "").lower()
        if self.block_private_hosts and target_host and not await _is_global_host(target_host):
            raise RenderFailure(f"{target_host} resolves to a private or local address", url)

        context = None
        page = None
        try:
            context = await self._browser.new_context(
                viewport=dict(VIEWPORT),
                user_agent=random.choice(USER_AGENTS),
                ignore_https_errors=True,
                locale="en-US",
                color_scheme="light",
                device_scale_factor=1,
            )
            page = await context.new_page()
            await page.add_init_script(STEALTH_SCRIPT)

            host_cache: dict[str, bool] = {}

            async def handle_route(route):
                request_url = route.request.url
                lowered = request_url.lower()
                if any(antibot in lowered for antibot in ANTIBOT_DOMAINS):
                    logger.debug("Blocked anti-bot request: %s", request_url)
                    await route.abort()
                    return
                hostname = (urlparse(request_url).hostname or "").lower()
                if self.block_private_hosts and hostname:
                    if hostname not in host_cache:
                        host_cache[hostname] = await _is_global_host(hostname)
                    if not host_cache[hostname]:
                        logger.debug("Blocked private/local request: %s", request_url)
                        await route.abort()
                        return
                await route.continue_()

            await page.route("**/*", handle_route)

            try:
                await page.goto(url, timeout=timeout_ms, wait_until="domcontentloaded")
            except PlaywrightError as exc:
                raise RenderFailure(f"navigation failed: {str(exc)[:200]}", url) from exc

            remaining_ms = max(1000, int((deadline - time.monotonic()) * 1000))
            try:
                await page.wait_for_load_state("networkidle", timeout=remaining_ms)
            except PlaywrightError as idle_err:
                if "Timeout" in str(idle_err):
                    logger.warning("networkidle timeout for %s, continuing with DOM content", url)
                else:
                    raise RenderFailure(f"load failed: {str(idle_err)[:200]}", url) from idle_err

            html = await page.content()
            visible_text = await page.evaluate(VISIBLE_TEXT_SCRIPT)
            png = await page.screenshot(full_page=False)

            logger.info("Rendered %s (%d bytes html)", url, len(html))
            return Snapshot(
                source_url=url,
                html=html,
                visible_text=visible_text or "",
                screenshot=Raster.from_png(png),
            )
        except RenderFailure:
            raise
        except PlaywrightError as exc:
            raise RenderFailure(f"browser error: {str(exc)[:200]}", url) from exc
        finally:
            if page:
                try:
                    await page.close()
                except PlaywrightError:
                    pass
            if context:
                try:
                    await context.close()
                except PlaywrightError:
                    pass
