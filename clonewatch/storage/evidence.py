"""Screenshot artifact storage for CloneWatch."""

from __future__ import annotations

import asyncio
import logging
import secrets
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..errors import StorageFailure
from ..utils.domains import canonicalize_domain

logger = logging.getLogger(__name__)

BASELINE_SCREENSHOT_NAME = "baseline.png"


def _safe_component(value: str, max_length: int = 100) -> str:
    raw = (value or "").strip().lower()
    if not raw:
        return "unknown"
    return "".join(c if c.isalnum() else "_" for c in raw)[:max_length]


class EvidenceStore:
    """Writes screenshots under opaque names the static-file layer can serve."""

    def __init__(self, screenshots_dir: Path):
        self.screenshots_dir = Path(screenshots_dir)
        self.screenshots_dir.mkdir(parents=True, exist_ok=True)

    def screenshot_name(self, domain: str, checked_at: datetime) -> str:
        """Name derived from domain and timestamp; the random suffix keeps
        concurrent checks of the same domain from colliding."""
        stem = _safe_component(canonicalize_domain(domain) or domain)
        millis = int(checked_at.timestamp() * 1000)
        return f"{stem}_{millis}_{secrets.token_hex(4)}.png"

    def resolve(self, name: str) -> Path:
        """Map an opaque screenshot name back to its file."""
        path = (self.screenshots_dir / name).resolve()
        if path.parent != self.screenshots_dir.resolve():
            raise ValueError(f"screenshot name escapes storage dir: {name!r}")
        return path

    async def _write(self, name: str, data: bytes) -> str:
        path = self.resolve(name)
        try:
            await asyncio.to_thread(path.write_bytes, data)
        except OSError as exc:
            raise StorageFailure(f"failed to write screenshot {name}: {exc}") from exc
        return name

    async def save_screenshot(self, domain: str, png: bytes, checked_at: datetime) -> str:
        """Persist a target screenshot and return its reference name."""
        name = self.screenshot_name(domain, checked_at)
        return await self._write(name, png)

    async def save_baseline_screenshot(self, png: bytes) -> str:
        return await self._write(BASELINE_SCREENSHOT_NAME, png)

    def delete(self, name: str) -> bool:
        try:
            self.resolve(name).unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning("Failed to remove screenshot %s: %s", name, exc)
            return False

    def get_screenshot_path(self, name: Optional[str]) -> Optional[Path]:
        """Get screenshot path if it exists."""
        if not name:
            return None
        path = self.resolve(name)
        return path if path.exists() else None
