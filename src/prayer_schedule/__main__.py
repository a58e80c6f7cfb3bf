from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import date

from prayer_schedule.config import YamlConfigLoader
from prayer_schedule.config.models import AppConfig, ConfigLoadRequest
from prayer_schedule.logging import init_logging
from prayer_schedule.schedule.codec import format_hhmm
from prayer_schedule.schedule.models import ResolutionResult
from prayer_schedule.schedule.resolver import ScheduleResolver

logger = logging.getLogger(__name__)


def _parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Expected YYYY-MM-DD, got {value!r}") from e


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="prayer-schedule", description="Prayer schedule resolver")
    parser.add_argument(
        "--config",
        default="data/config/config.yaml",
        help="Path to config.yaml (default: data/config/config.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to run")

    # Command: resolve
    resolve_parser = subparsers.add_parser("resolve", help="Resolve and print the schedule for a day")
    resolve_parser.add_argument(
        "--date",
        type=_parse_day,
        default=None,
        help="Day to print as YYYY-MM-DD (default: today)",
    )
    resolve_parser.add_argument(
        "--force-refresh",
        action="store_true",
        help="Try the network first even when the cache-first strategy is configured.",
    )
    resolve_parser.add_argument(
        "--offline",
        action="store_true",
        help="Do not contact the network; use the cache or the bundled schedule.",
    )

    # Command: clear-cache
    subparsers.add_parser("clear-cache", help="Remove the cached schedule payload")

    return parser


def format_day(result: ResolutionResult, day: date) -> str:
    dataset = result.dataset
    lines = [f"{dataset.mosque} - {day.isoformat()} (source: {result.source})"]
    if result.warning:
        lines.append(f"warning: {result.warning}")

    entry = dataset.entry_for(day)
    if entry is None:
        lines.append(f"No schedule entry for {day.isoformat()}.")
        return "\n".join(lines)

    lines.append(f"{'Prayer':<10}{'Adhan':>8}{'Jamaah':>8}")
    for name, window in entry.windows():
        lines.append(f"{name.capitalize():<10}{format_hhmm(window.adhan):>8}{format_hhmm(window.jamaah):>8}")
        if name == "fajr":
            lines.append(f"{'Sunrise':<10}{format_hhmm(entry.sunrise):>8}")
    if entry.jummah is not None:
        lines.append(f"{'Jummah':<10}{format_hhmm(entry.jummah):>8}")
    return "\n".join(lines)


async def _load_config(args: argparse.Namespace) -> AppConfig:
    loader = YamlConfigLoader()
    request = ConfigLoadRequest(
        yaml_path=args.config,
    )
    return await loader.load(request)


async def _resolve(args: argparse.Namespace) -> None:
    config = await _load_config(args)
    init_logging(config.logging)
    logger.info("Resolving prayer schedule. endpoint=%s strategy=%s", config.schedule.endpoint, config.schedule.strategy.value)

    resolver = ScheduleResolver.from_settings(config.schedule)
    try:
        result = await resolver.resolve(force_refresh=args.force_refresh, skip_remote=args.offline)
        print(format_day(result, args.date or date.today()))
        await resolver.wait_for_revalidation()
    finally:
        await resolver.aclose()


async def _clear_cache(args: argparse.Namespace) -> None:
    config = await _load_config(args)
    init_logging(config.logging)

    resolver = ScheduleResolver.from_settings(config.schedule)
    resolver.clear_cache()
    logger.info("Prayer schedule cache cleared. path=%s", resolver.cache_store.path)


async def _main_async() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    if args.command == "resolve":
        await _resolve(args)
    elif args.command == "clear-cache":
        await _clear_cache(args)


def main() -> None:
    try:
        asyncio.run(_main_async())
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")


if __name__ == "__main__":
    main()
