"""
One-shot liveness check from the command line.

Usage:
    python scripts/check_live.py @somechannel https://www.youtube.com/@other/live
    python scripts/check_live.py --external https://example.tv/live

Prints the same JSON the HTTP API returns.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from dotenv import load_dotenv

from services.external.models import ExternalSource
from services.external.prober import ExternalStatusProber
from services.youtube.resolver import LivenessResolver
from shared.config.liveness import load_liveness_config
from shared.runtime.quotas import QuotaTracker
from shared.runtime.ttl_cache import TTLCache


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Check whether sources are live")
    parser.add_argument(
        "sources",
        nargs="+",
        help="YouTube handles / URLs, or page URLs with --external",
    )
    parser.add_argument(
        "--external",
        action="store_true",
        help="Probe non-YouTube pages for ON AIR markers instead",
    )
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> dict:
    config = load_liveness_config()
    cache = TTLCache(name="batch")

    if args.external:
        prober = ExternalStatusProber(
            config.external,
            cache=cache,
            batch_deadline=config.api.request_deadline,
        )
        sources = [ExternalSource(id=str(i), url=url) for i, url in enumerate(args.sources)]
        items = await prober.probe(sources)
        return {"items": [item.to_dict() for item in items]}

    resolver = LivenessResolver(
        config.youtube,
        batch_cache=cache,
        last_good_cache=TTLCache(name="last_known_good"),
        quota=QuotaTracker(policy=config.youtube.quota),
        batch_deadline=config.api.request_deadline,
    )
    results = await resolver.resolve_batch(args.sources)
    return {"ok": True, "results": {k: r.to_dict() for k, r in results.items()}}


def main() -> int:
    load_dotenv()
    args = parse_args()
    payload = asyncio.run(_run(args))
    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
