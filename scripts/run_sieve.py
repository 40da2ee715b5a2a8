#!/usr/bin/env python3
"""Filter a feed page and print the per-item decisions.

Usage examples:
  python scripts/run_sieve.py --html snapshot.html --source soundcloud
  python scripts/run_sieve.py --html feed.html --page more1.html --page more2.html --json
  python scripts/run_sieve.py --url "https://soundcloud.com/discover" --duration 60
  python scripts/run_sieve.py --html feed.html --source youtube --config filters.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from urllib.parse import urlparse

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from apps.services.gateway.broker import create_broker
from apps.services.pipeline.controller import ProcessingController
from apps.services.pipeline.document_host import DocumentHost
from apps.services.pipeline.playwright_host import PlaywrightHost
from libs.core.config import get_settings
from libs.core.exceptions import FeedSieveError
from libs.core.logging_config import setup_logging
from libs.extraction.extractor import AttributeExtractor
from libs.extraction.sources import get_profile

SOURCE_HOSTS = {
    "soundcloud.com": "soundcloud",
    "music.youtube.com": "youtube_music",
    "youtube.com": "youtube",
}


def infer_source(url: str | None) -> str | None:
    if not url:
        return None
    host = (urlparse(url).hostname or "").lower()
    if host.startswith("www.") or host.startswith("m."):
        host = host.split(".", 1)[1]
    return SOURCE_HOSTS.get(host)


def _report(controller: ProcessingController) -> list[dict]:
    rows = []
    for key, (record, decision) in controller.decisions.items():
        rows.append({
            "key": key,
            "id": record.id,
            "title": record.title,
            "author": record.author,
            "year": record.year,
            "yearVerified": record.year_verified,
            "durationSeconds": record.duration_seconds,
            "tags": list(record.tags),
            "hidden": decision.hidden,
            "rule": decision.rule.value if decision.rule else None,
            "verdicts": {name.value: hides for name, hides in decision.verdicts.items()},
        })
    return rows


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    source = args.source or infer_source(args.url)
    if not source:
        print("Cannot infer the source; pass --source", file=sys.stderr)
        return 2

    broker = create_broker(settings)
    prefs = await broker.preferences.get()
    if not prefs.is_source_enabled(source) and not args.force:
        print(f"Source '{source}' is disabled in global settings (use --force)", file=sys.stderr)
        return 2

    if args.config:
        payload = json.loads(Path(args.config).read_text(encoding="utf-8"))
        response = await broker.handle({"action": "setConfig", "contextId": args.context, "config": payload})
        if not response["success"]:
            print(f"Config rejected: {response.get('error')}", file=sys.stderr)
            return 2
    config = await broker.tab_store.get(args.context)

    if args.html:
        pages = [Path(p).read_text(encoding="utf-8") for p in args.page]
        host = DocumentHost(
            Path(args.html).read_text(encoding="utf-8"),
            url=args.url,
            pages=pages,
            feed_selector=args.feed_selector,
        )
    else:
        host = await PlaywrightHost(args.url, settings.browser).start()

    extractor = AttributeExtractor(get_profile(source), year_resolver=broker.cache, page_url=args.url)
    controller = ProcessingController(host, extractor, config, context_id=args.context, settings=settings)
    broker.register_reload_hook(args.context, controller.apply_config)

    try:
        await controller.start()
        if args.no_scroll:
            await controller.stop_scroll()
        elif args.html:
            await controller.wait_scroll()
        else:
            await asyncio.sleep(args.duration)
        await controller.wait_idle()
    finally:
        await controller.stop()
        await broker.cache.aclose()
        if isinstance(host, PlaywrightHost):
            await host.close()

    rows = _report(controller)
    if args.json:
        print(json.dumps({"items": rows, "stats": vars(controller.stats)}, indent=2, ensure_ascii=False))
        return 0

    if not rows:
        print("(no items)")
        return 0
    for row in rows:
        verdict = f"HIDE [{row['rule']}]" if row["hidden"] else "SHOW"
        year = row["year"] if row["year"] is not None else "?"
        if row["yearVerified"]:
            year = f"{year}*"
        duration = row["durationSeconds"] if row["durationSeconds"] is not None else "?"
        print(f"{verdict:<18} {row['title'][:60]} :: {row['author'] or '-'}")
        print(f"  id={row['id']} year={year} duration={duration}s tags={','.join(row['tags']) or '-'}")
    stats = controller.stats
    print()
    print(f"processed={stats.processed} shown={stats.shown} hidden={stats.hidden} "
          f"abstained={stats.abstained} failed={stats.failed}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Filter a feed page and print per-item decisions.")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--html", help="Saved HTML snapshot to filter offline")
    target.add_argument("--url", help="Live page to open with Playwright")
    parser.add_argument("--page-url", dest="page_url", help="Original URL of an --html snapshot")
    parser.add_argument("--page", action="append", default=[], help="Fragment appended on scroll (repeatable, --html only)")
    parser.add_argument("--feed-selector", help="Container receiving --page fragments")
    parser.add_argument("--source", choices=["soundcloud", "youtube", "youtube_music"])
    parser.add_argument("--context", default="cli", help="Context id whose stored config is used")
    parser.add_argument("--config", help="JSON filter config to store for the context before running")
    parser.add_argument("--duration", type=float, default=60.0, help="Seconds to keep a live page running")
    parser.add_argument("--no-scroll", action="store_true", help="Do not drive the scroll loop")
    parser.add_argument("--force", action="store_true", help="Run even if the source is disabled")
    parser.add_argument("--json", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.html and args.page_url:
        args.url = args.page_url
    setup_logging(level=get_settings().log_level, log_dir=get_settings().log_dir, service_name="run_sieve")
    try:
        return asyncio.run(run(args))
    except FeedSieveError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
