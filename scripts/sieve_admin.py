#!/usr/bin/env python3
"""Inspect and edit feedsieve's persisted records.

Usage examples:
  python scripts/sieve_admin.py cache stats
  python scripts/sieve_admin.py cache clear
  python scripts/sieve_admin.py resolve dQw4w9WgXcQ
  python scripts/sieve_admin.py credential set AIza...
  python scripts/sieve_admin.py config get 42 --json
  python scripts/sieve_admin.py config set 42 --file filters.json
  python scripts/sieve_admin.py global set --file global.json
  python scripts/sieve_admin.py logs -n 100
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from apps.services.gateway.broker import MessageBroker, create_broker
from apps.services.settings.storage import JsonFileStorage
from libs.core.config import get_settings
from libs.core.logging_config import setup_logging, tail_logs


def _broker(args: argparse.Namespace) -> MessageBroker:
    settings = get_settings()
    storage = JsonFileStorage(Path(args.storage)) if args.storage else None
    return create_broker(settings, storage=storage)


def _send(args: argparse.Namespace, payload: dict) -> dict:
    async def _run() -> dict:
        broker = _broker(args)
        try:
            return await broker.handle(payload)
        finally:
            await broker.cache.aclose()
    return asyncio.run(_run())


def _print(response: dict, as_json: bool) -> int:
    if as_json or not response.get("success"):
        print(json.dumps(response, indent=2, ensure_ascii=False))
    return 0 if response.get("success") else 1


def _read_json(path: str) -> dict:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def cmd_cache(args: argparse.Namespace) -> int:
    if args.op == "clear":
        response = _send(args, {"action": "clearMetadataCache"})
        if response["success"]:
            print("cache cleared")
        return _print(response, args.json)

    response = _send(args, {"action": "getCacheStats"})
    if response["success"] and not args.json:
        print(f"entries={response['count']} approx_size={response['approxSizeBytes']} bytes")
    return _print(response, args.json)


def cmd_resolve(args: argparse.Namespace) -> int:
    response = _send(args, {"action": "resolveYear", "itemId": args.item_id})
    if response["success"] and not args.json:
        year = response["year"] if response["year"] is not None else "unresolved"
        print(f"{args.item_id}: {year}{' (cached)' if response.get('wasCached') else ''}")
    return _print(response, args.json)


def cmd_credential(args: argparse.Namespace) -> int:
    if args.op == "show":
        response = _send(args, {"action": "getCredential"})
        if response["success"] and not args.json:
            value = response.get("value")
            print(f"{value[:4]}...{value[-2:]}" if value else "(none)")
        return _print(response, args.json)

    value = args.value if args.op == "set" else None
    response = _send(args, {"action": "setCredential", "value": value})
    if response["success"]:
        print("credential updated" if value else "credential cleared")
    return _print(response, args.json)


def cmd_config(args: argparse.Namespace) -> int:
    if args.op == "set":
        if not args.file:
            print("config set requires --file", file=sys.stderr)
            return 2
        payload = {"action": "setConfig", "contextId": args.context_id, "config": _read_json(args.file)}
        response = _send(args, payload)
        if response["success"]:
            print(f"config saved for context {args.context_id}")
        return _print(response, args.json)

    if args.op == "delete":
        response = _send(args, {"action": "contextRemoved", "contextId": args.context_id})
        if response["success"]:
            print(f"config deleted for context {args.context_id}")
        return _print(response, args.json)

    response = _send(args, {"action": "getConfig", "contextId": args.context_id})
    if response["success"] and not args.json:
        print(json.dumps(response["config"], indent=2, ensure_ascii=False))
    return _print(response, args.json)


def cmd_global(args: argparse.Namespace) -> int:
    if args.op == "set":
        if not args.file:
            print("global set requires --file", file=sys.stderr)
            return 2
        response = _send(args, {"action": "setGlobalSettings", "settings": _read_json(args.file)})
        if response["success"]:
            print("global settings saved")
        return _print(response, args.json)

    response = _send(args, {"action": "getGlobalSettings"})
    if response["success"] and not args.json:
        print(json.dumps(response["settings"], indent=2, ensure_ascii=False))
    return _print(response, args.json)


def cmd_logs(args: argparse.Namespace) -> int:
    print(tail_logs(args.lines), end="")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inspect and edit feedsieve records.")
    parser.add_argument("--storage", help="Storage file (default: SIEVE_STORAGE_PATH)")
    parser.add_argument("--json", action="store_true", help="Print raw responses")
    sub = parser.add_subparsers(dest="command")

    cache_parser = sub.add_parser("cache", help="Metadata cache")
    cache_parser.add_argument("op", choices=["stats", "clear"])
    cache_parser.set_defaults(func=cmd_cache)

    resolve_parser = sub.add_parser("resolve", help="Resolve an item's publish year")
    resolve_parser.add_argument("item_id")
    resolve_parser.set_defaults(func=cmd_resolve)

    cred_parser = sub.add_parser("credential", help="API credential for tier-2 lookups")
    cred_parser.add_argument("op", choices=["show", "set", "clear"])
    cred_parser.add_argument("value", nargs="?")
    cred_parser.set_defaults(func=cmd_credential)

    config_parser = sub.add_parser("config", help="Per-context filter configuration")
    config_parser.add_argument("op", choices=["get", "set", "delete"])
    config_parser.add_argument("context_id")
    config_parser.add_argument("--file", help="JSON config (for set)")
    config_parser.set_defaults(func=cmd_config)

    global_parser = sub.add_parser("global", help="Per-source toggles and display options")
    global_parser.add_argument("op", choices=["get", "set"])
    global_parser.add_argument("--file", help="JSON settings (for set)")
    global_parser.set_defaults(func=cmd_global)

    logs_parser = sub.add_parser("logs", help="Tail the system log")
    logs_parser.add_argument("-n", "--lines", type=int, default=50)
    logs_parser.set_defaults(func=cmd_logs)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1
    if args.command == "credential" and args.op == "set" and not args.value:
        parser.error("credential set requires a value")
    settings = get_settings()
    setup_logging(level=settings.log_level, log_to_console=False, log_dir=settings.log_dir, service_name="sieve_admin")
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
