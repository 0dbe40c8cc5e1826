#!/usr/bin/env python3
"""Capture (or re-capture) the baseline of the legitimate site.

Renders LEGITIMATE_SITE_URL, stores the baseline in the CloneWatch database
and writes baseline.png next to the check screenshots.

Usage:
    python scripts/capture_baseline.py
    python scripts/capture_baseline.py --url https://combankdigital.com
    python scripts/capture_baseline.py --env-file /etc/clonewatch/clonewatch.env
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import dotenv_values

from clonewatch.config import load_config, validate_config
from clonewatch.pipeline.service import CloneWatchService

logger = logging.getLogger("capture_baseline")
logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")


def _load_env_file(path: str) -> None:
    """Load environment variables from a .env-style file."""
    for key, value in dotenv_values(path).items():
        if value is not None:
            os.environ[key] = value


async def main() -> int:
    parser = argparse.ArgumentParser(description="Capture the legitimate-site baseline.")
    parser.add_argument("--url", help="Override LEGITIMATE_SITE_URL for this capture.")
    parser.add_argument("--env-file", help="Load environment variables from a file before running.")
    args = parser.parse_args()

    if args.env_file:
        _load_env_file(args.env_file)
    if args.url:
        os.environ["LEGITIMATE_SITE_URL"] = args.url

    config = load_config()
    config.health_enabled = False
    config.monitor_autostart = False
    errors = validate_config(config)
    if errors:
        for err in errors:
            logger.error(err)
        return 1

    service = CloneWatchService(config)
    await service.store.connect()
    try:
        baseline = await service.refresh_baseline()
    finally:
        await service.stop()

    features = baseline.features
    print(f"Baseline captured from {baseline.snapshot.source_url}")
    print(f"  title:      {features.title or '-'}")
    print(f"  screenshot: {baseline.snapshot.screenshot.width}x{baseline.snapshot.screenshot.height}")
    print(f"  elements:   {features.dom_counts.as_dict()}")
    print(f"  keywords:   {features.brand_keywords or '-'}")
    print(f"  form fields: {len(features.form_fields)}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
