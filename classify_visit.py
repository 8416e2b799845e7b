#!/usr/bin/env python
"""Classify a single visit from the command line.

Usage examples:
  python classify_visit.py --remote-addr 10.0.0.5 \
      --header "X-Forwarded-For=203.0.113.9" \
      --user-agent "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0" \
      --referrer "https://www.google.com/search?q=duckdb"

  # Read settings from a DuckDB file and print JSON
  python classify_visit.py --settings-db stats.duckdb --json --referrer https://bing.com/?q=x

Exit codes:
  0 success
  1 unexpected failure
"""
from __future__ import annotations
import argparse, json, logging, pathlib, sys

from visitor_core import CoreConfig, RequestMeta, VisitorContext
from visitor_core.backends import DuckDBSettingsBackend
from visitor_core.exceptions import VisitorCoreError


def parse_headers(values: list[str]) -> dict:
    headers = {}
    for item in values or []:
        if '=' not in item:
            raise argparse.ArgumentTypeError(f"Header must be NAME=VALUE: {item}")
        name, value = item.split('=', 1)
        headers[name.strip()] = value.strip()
    return headers


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Classify one visit (client address, user agent, referrer)")
    p.add_argument('--remote-addr', help='Transport peer address')
    p.add_argument('--header', action='append', default=[], help='Request header NAME=VALUE (repeatable)')
    p.add_argument('--user-agent', default='', help='Raw User-Agent string')
    p.add_argument('--referrer', default='', help='Referer URL')
    p.add_argument('--settings-db', default=':memory:', help='DuckDB file holding settings')
    p.add_argument('--site-config', type=pathlib.Path, help='Site YAML (site_url, timezone_string, ...)')
    p.add_argument('--json', action='store_true', help='Print JSON output')
    p.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return p


def print_result(obj: dict, use_json: bool):
    if use_json:
        print(json.dumps(obj, indent=2, default=str))
        return
    for k, v in obj.items():
        print(f"{k}: {v}")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        headers = parse_headers(args.header)
        if args.user_agent:
            headers['User-Agent'] = args.user_agent
        if args.referrer:
            headers['Referer'] = args.referrer

        backend = DuckDBSettingsBackend(args.settings_db)
        backend.install_defaults()
        if args.site_config:
            config = CoreConfig.from_yaml(args.site_config, backend)
        else:
            config = CoreConfig(settings_backend=backend)

        context = VisitorContext(config, RequestMeta(remote_addr=args.remote_addr, headers=headers))
        result = context.fingerprint()
        engine = context.search_engine
        result['search_engine'] = engine.name
        result['search_query'] = context.search_query if engine.tag else None
        result['date'] = context.current_date()
        print_result(result, args.json)
        return 0
    except (VisitorCoreError, OSError, argparse.ArgumentTypeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
