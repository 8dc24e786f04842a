#!/usr/bin/env python3
"""
Command-line access to tabpilot operations.

Each command attaches to the tab for its own duration and detaches on exit.
Chrome must be running with ``--remote-debugging-port``.

    python -m tabpilot tabs
    python -m tabpilot tree <tab>
    python -m tabpilot resolve <tab> <backend_id> [<backend_id> ...]
    python -m tabpilot click <tab> <backend_id>
    python -m tabpilot fill <tab> <backend_id> <text>
    python -m tabpilot eval <tab> <script>
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from tabpilot.cdp.client import setup_logging
from tabpilot.controller import ControllerConfig, TabController
from tabpilot.core.errors import TabPilotError


async def _run(args: argparse.Namespace) -> int:
    config = ControllerConfig(host=args.host, port=args.port, debug=args.debug)

    async with TabController(config) as controller:
        if args.command == "tabs":
            for tab in await controller.list_tabs():
                print(f"{tab.target_id}\t{tab.title}\t{tab.url}")
            return 0

        if args.command == "tree":
            async with controller.session(args.tab, enable_dom=False):
                tree = await controller.get_accessibility_tree(args.tab)
            print(tree.to_text())
            return 0

        async with controller.session(args.tab):
            if args.command == "resolve":
                for backend_id in args.backend_ids:
                    selector = await controller.resolve_selector(args.tab, backend_id)
                    print(f"{backend_id}\t{selector}")
            elif args.command == "click":
                selector = await controller.resolve_selector(args.tab, args.backend_id)
                await controller.click(args.tab, selector)
                print(f"clicked {selector}")
            elif args.command == "fill":
                selector = await controller.resolve_selector(args.tab, args.backend_id)
                await controller.fill(args.tab, selector, args.text)
                print(f"filled {selector}")
            elif args.command == "eval":
                await controller.evaluate(args.tab, args.script)
                print("ok")
    return 0


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="tabpilot", description="Drive a Chrome tab over CDP.")
    parser.add_argument("--host", default="localhost", help="DevTools host (default: localhost).")
    parser.add_argument("--port", type=int, default=9222, help="DevTools port (default: 9222).")
    parser.add_argument("--debug", action="store_true", help="Log every CDP command.")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("tabs", help="List page targets.")

    tree = commands.add_parser("tree", help="Print the accessibility tree.")
    tree.add_argument("tab")

    resolve = commands.add_parser("resolve", help="Resolve backend node ids to selectors.")
    resolve.add_argument("tab")
    resolve.add_argument("backend_ids", type=int, nargs="+")

    click = commands.add_parser("click", help="Click the element behind a backend node id.")
    click.add_argument("tab")
    click.add_argument("backend_id", type=int)

    fill = commands.add_parser("fill", help="Fill the field behind a backend node id.")
    fill.add_argument("tab")
    fill.add_argument("backend_id", type=int)
    fill.add_argument("text")

    evaluate = commands.add_parser("eval", help="Evaluate a script in the page.")
    evaluate.add_argument("tab")
    evaluate.add_argument("script")

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    setup_logging(level=logging.WARNING, debug=args.debug)
    try:
        return asyncio.run(_run(args))
    except TabPilotError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
