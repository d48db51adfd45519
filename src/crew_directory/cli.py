"""Command-line entry point: fetch directory pages and print their buckets."""

from __future__ import annotations

import argparse
import asyncio
import logging
import logging.handlers
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
from platformdirs import user_config_dir
from rich.console import Console
from rich.table import Table

from crew_directory.action_messages import build_actionable_error
from crew_directory.buckets import Buckets
from crew_directory.config import load_config
from crew_directory.engine import DirectoryEngine
from crew_directory.errors import FetchError
from crew_directory.models import (
    CONFIG_APP_NAME,
    MODE_AUTHENTICATED,
    MODE_GUEST,
    SECTION_DIRECTORY,
    DirectoryConfig,
    SectionDefinition,
    SectionItem,
)
from crew_directory.roles import known_role_keys
from crew_directory.roles_cache import get_roles_db_path, load_or_fetch_roles_cached
from crew_directory.services.interfaces import AppServices, build_default_app_services

logger = logging.getLogger(__name__)

MAX_CLI_PAGES = 50


def _parse_filter_value(raw: str) -> Any:
    """Convert a command-line filter value: booleans, then numbers, else text."""
    text = raw.strip()
    lowered = text.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return text


def _parse_filter_args(pairs: list[str]) -> dict[str, Any]:
    """Parse repeated ``KEY=VALUE`` options. A repeated key collects a list.

    Raises ValueError on a malformed pair.
    """
    filters: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"expected KEY=VALUE, got {pair!r}")
        value = _parse_filter_value(raw)
        if key not in filters:
            filters[key] = value
        elif isinstance(filters[key], list):
            filters[key].append(value)
        else:
            filters[key] = [filters[key], value]
    return filters


def _build_section(key: str, labels: list[str]) -> SectionDefinition:
    return SectionDefinition(
        key=key,
        title=key.replace("_", " ").title(),
        items=tuple(SectionItem(label=label) for label in labels),
    )


def _configure_logging(debug: bool) -> None:
    """Configure logging. When debug=True, logs to file at DEBUG level."""
    if not debug:
        # Default: suppress all logging so stdout stays a clean table
        logging.disable(logging.CRITICAL)
        return

    log_dir = Path(user_config_dir(CONFIG_APP_NAME))
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "debug.log"

    handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    logging.root.addHandler(handler)
    logging.root.setLevel(logging.DEBUG)


def _render_buckets(console: Console, buckets: Buckets, *, has_more: bool) -> None:
    if not buckets:
        console.print("No results.")
        return
    for label, entities in buckets.items():
        table = Table("ID", "Name", "Role", "Category", "Location", title=f"{label} ({len(entities)})")
        for entity in entities:
            location = entity.location or entity.about.location or ""
            table.add_row(
                entity.id,
                entity.name,
                entity.primary_role or "",
                entity.category or "",
                location,
            )
        console.print(table)
    if has_more:
        console.print("[dim]More results available; raise --pages to load them.[/dim]")


async def _load_known_roles(
    *,
    engine: DirectoryEngine,
    services: AppServices,
    client: httpx.AsyncClient,
    config: DirectoryConfig,
    db_path: Path,
) -> None:
    category = engine.section.category or ""

    async def _fetch() -> list[str]:
        return await services.directory.fetch_roles(
            client=client,
            category=category,
            base_url=config.base_url,
            auth_token=config.auth_token,
            timeout_seconds=config.request_timeout_seconds,
            max_retries=config.max_retries,
        )

    try:
        names = await load_or_fetch_roles_cached(
            db_path=db_path,
            category=category,
            cache_ttl_hours=config.roles_cache_ttl_hours,
            fetch=_fetch,
        )
    except FetchError as exc:
        # Unknown roles classify as pending until a later run succeeds
        logger.warning("Role lookup failed: %s", exc.message)
        return
    engine.set_known_role_keys(known_role_keys(names, category))


async def _run_directory(
    args: argparse.Namespace,
    config: DirectoryConfig,
    filters: dict[str, Any],
    *,
    services: AppServices,
    roles_db_path: Path,
    console: Console,
) -> int:
    section = _build_section(args.section, args.item or [])
    mode = MODE_GUEST if args.guest else MODE_AUTHENTICATED
    async with httpx.AsyncClient(timeout=config.request_timeout_seconds) as client:
        engine = DirectoryEngine(
            section=section,
            mode=mode,
            services=services,
            config=config,
            client=client,
            search_text=args.search or "",
            filters=filters,
        )
        try:
            await _load_known_roles(
                engine=engine,
                services=services,
                client=client,
                config=config,
                db_path=roles_db_path,
            )
            await engine.start()
            for _ in range(args.pages - 1):
                if not engine.has_more or engine.error:
                    break
                await engine.load_more()
        finally:
            engine.close()

    key = engine.cache.current_key
    entry = engine.cache.entry(key) if key is not None else None
    if engine.error:
        print(engine.error, file=sys.stderr)
        if entry is None or not entry.pages:
            return 1
    _render_buckets(console, dict(engine.buckets), has_more=engine.has_more)
    return 0


def main(
    argv: list[str] | None = None,
    *,
    load_config_fn: Callable[[], DirectoryConfig] = load_config,
    configure_logging_fn: Callable[[bool], None] = _configure_logging,
    services_factory: Callable[[], AppServices] = build_default_app_services,
    roles_db_path_fn: Callable[[], Path] = get_roles_db_path,
    console: Console | None = None,
) -> int:
    """Main entry point. Returns exit code."""
    parser = argparse.ArgumentParser(
        description="Browse the crew directory: fetch pages and print grouped results"
    )
    parser.add_argument(
        "--section",
        type=str,
        default=SECTION_DIRECTORY,
        help="Section key: directory, custom, talent, crew, individuals, onehub, companies",
    )
    parser.add_argument(
        "--item",
        action="append",
        default=None,
        metavar="LABEL",
        help="Section item label; repeat for several buckets",
    )
    parser.add_argument(
        "--guest",
        action="store_true",
        help="Browse anonymously through the guest endpoint",
    )
    parser.add_argument("--search", type=str, default=None, help="Free-text search")
    parser.add_argument(
        "--filter",
        action="append",
        default=None,
        metavar="KEY=VALUE",
        help="Attribute filter, e.g. gender=female or age_min=20; repeat a key for a list",
    )
    parser.add_argument(
        "--pages",
        type=int,
        default=1,
        help=f"Number of pages to load (1-{MAX_CLI_PAGES}, default: 1)",
    )
    parser.add_argument("--base-url", type=str, default=None, help="Backend base URL")
    parser.add_argument("--token", type=str, default=None, help="Bearer token for the backend")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging to file (~/.config/crew-directory/debug.log)",
    )
    args = parser.parse_args(argv)

    if not 1 <= args.pages <= MAX_CLI_PAGES:
        print(f"Error: --pages must be between 1 and {MAX_CLI_PAGES}", file=sys.stderr)
        return 1
    try:
        filters = _parse_filter_args(args.filter or [])
    except ValueError as exc:
        print(
            build_actionable_error(
                "parse --filter",
                why=str(exc),
                next_step="pass filters as KEY=VALUE, for example --filter gender=female",
            ),
            file=sys.stderr,
        )
        return 1

    configure_logging_fn(args.debug)
    logger.debug("crew-directory starting, section=%s", args.section)

    config = load_config_fn()
    if args.base_url:
        config.base_url = args.base_url.rstrip("/")
    if args.token is not None:
        config.auth_token = args.token

    return asyncio.run(
        _run_directory(
            args,
            config,
            filters,
            services=services_factory(),
            roles_db_path=roles_db_path_fn(),
            console=console if console is not None else Console(),
        )
    )


__all__ = [
    "_configure_logging",
    "_parse_filter_args",
    "_parse_filter_value",
    "main",
]
