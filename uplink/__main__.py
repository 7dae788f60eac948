"""
UPLINK command line

Loads the feed once and prints a summary of what the client would render.

Usage:
    python -m uplink
    python -m uplink --base-url https://example.org/ --route "#episoden"
    python -m uplink --passphrase secret --refresh
"""

from __future__ import annotations
from typing import List, Optional
import argparse
import asyncio
import sys

from .app import UplinkApp
from .contracts import GateState, Location
from .logging_utils import get_logger
from .settings import UplinkSettings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="uplink",
        description="UPLINK client - load the feed and print a summary",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m uplink                              # Load from UPLINK_BASE_URL
  python -m uplink --route "/?ep=3#episoden"    # Deep link to episode 3
  python -m uplink --passphrase secret          # Pass the maintenance gate
        """
    )

    parser.add_argument(
        '--base-url', '-u',
        default=None,
        help='Base URL serving data/*.json (overrides UPLINK_BASE_URL)'
    )

    parser.add_argument(
        '--storage', '-s',
        default=None,
        help='sqlite file for the persistent cache (overrides UPLINK_STORAGE_PATH)'
    )

    parser.add_argument(
        '--route', '-r',
        default='/',
        help='Client location (path, query and fragment) to route to'
    )

    parser.add_argument(
        '--passphrase', '-p',
        default=None,
        help='Maintenance passphrase, if the gate asks for one'
    )

    parser.add_argument(
        '--refresh',
        action='store_true',
        help='Force a live refresh after the initial load'
    )

    parser.add_argument(
        '--log-level',
        default=None,
        help='Logging level (overrides UPLINK_LOG_LEVEL)'
    )

    return parser


def print_summary(app: UplinkApp) -> None:
    state = app.state
    print("\n" + "─" * 60)
    print("UPLINK")
    print("─" * 60)

    if state.load_error is not None:
        print(f"  ✗ {state.load_error.code}: {state.load_error.message}")
        return

    if not app.gate.is_open:
        print(f"  ⚠ Maintenance gate: {app.gate.state.value}")
        if app.gate.last_error:
            print(f"      - {app.gate.last_error}")
        return

    stats = state.stats or {}
    print(f"  Page:      {state.current_page.value if state.current_page else '-'}")
    print(f"  Order:     {state.current_order.value}")
    print(f"  Phase:     {stats.get('phase') or '-'}")
    print(f"  Episodes:  {len(state.episodes)}")
    print(f"  Next:      {app.countdown.format()}")

    for episode in app.episodes.sort(state.episodes, state.current_order)[:10]:
        print(f"    {episode.label}  {episode.title[:40]:<40}  {len(episode.messages):>3} msgs")

    cache = app.cache.stats()
    print(f"\n  Cache: {cache.network_calls} network calls │ hit rate {cache.hit_rate:.0%}")


async def run(settings: UplinkSettings, route: str, passphrase: Optional[str], refresh: bool) -> int:
    app = UplinkApp.create(settings, location=Location.parse(route))
    await app.start()

    if app.gate.state is GateState.AWAITING_INPUT:
        if passphrase is None and app.gate.requires_passphrase:
            print_summary(app)
            return 2
        await app.unlock(passphrase or '')

    if refresh and app.state.ready:
        await app.refresh()

    print_summary(app)
    return 0 if app.state.ready else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    settings = UplinkSettings.from_env().with_overrides(
        base_url=args.base_url,
        storage_path=args.storage,
        log_level=args.log_level
    )
    get_logger("uplink", level=settings.log_level, log_dir=settings.log_dir)

    return asyncio.run(run(settings, args.route, args.passphrase, args.refresh))


if __name__ == "__main__":
    sys.exit(main())
