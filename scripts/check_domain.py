#!/usr/bin/env python3
"""Check one or more domains against the baseline right now.

Usage:
    python scripts/check_domain.py combank-login.example
    python scripts/check_domain.py --watch combank-login.example other.example
    python scripts/check_domain.py --history combank-login.example
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from clonewatch.config import load_config, validate_config
from clonewatch.errors import CloneWatchError
from clonewatch.pipeline.service import CloneWatchService

logger = logging.getLogger("check_domain")
logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")


def _print_record(record) -> None:
    result = record.result
    print(f"{record.domain}: {result.composite}% ({result.threat_level.value})")
    print(
        f"  text={result.text_similarity} visual={result.visual_similarity} "
        f"dom={result.dom_similarity} keyword={result.keyword_similarity}"
    )
    print(f"  checked_at={record.checked_at.isoformat()} screenshot={record.screenshot_ref}")


async def main() -> int:
    parser = argparse.ArgumentParser(description="Run on-demand clone checks.")
    parser.add_argument("domains", nargs="+", help="Domains or URLs to check.")
    parser.add_argument("--watch", action="store_true", help="Also add the domains to the watchlist.")
    parser.add_argument("--history", action="store_true", help="Print stored history instead of checking.")
    parser.add_argument("--limit", type=int, default=10, help="History entries per domain.")
    args = parser.parse_args()

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
    failed = 0
    try:
        for domain in args.domains:
            if args.history:
                for record in await service.check_history(domain, limit=args.limit):
                    _print_record(record)
                continue
            if args.watch and await service.add_domain(domain):
                print(f"Watching {domain}")
            try:
                _print_record(await service.check_now(domain))
            except CloneWatchError as exc:
                failed += 1
                logger.error("Check failed for %s: %s", domain, exc)
    finally:
        await service.stop()
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
