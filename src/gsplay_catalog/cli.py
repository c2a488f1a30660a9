"""
Command-line interface for the game catalog.

Admin commands to reconcile libraries, run enrichment and inspect the
catalog. Output is JSON.
"""

import asyncio
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from gsplay_catalog.config import get_settings
from gsplay_catalog.logger import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__, component="cli")


class CLIOutput(BaseModel):
    """Structured output for CLI commands."""

    success: bool
    command: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: dict[str, Any] | list[Any] | None = None
    error: str | None = None


def print_json(output: CLIOutput) -> None:
    """Print output as formatted JSON."""
    print(json.dumps(output.model_dump(mode="json"), indent=2, default=str))


def option_value(args: list[str], name: str, default: str | None = None) -> str | None:
    """Value following `name` in args, if present."""
    if name in args:
        idx = args.index(name)
        if idx + 1 < len(args):
            return args[idx + 1]
    return default


def positional(args: list[str]) -> list[str]:
    """Arguments that are neither options nor option values."""
    values: list[str] = []
    skip = False
    for arg in args:
        if skip:
            skip = False
            continue
        if arg.startswith("--"):
            skip = arg not in ("--full",)
            continue
        values.append(arg)
    return values


def build_service(with_provider: bool = False) -> Any:
    from gsplay_catalog.enrichment.providers import IGDBProvider
    from gsplay_catalog.service import CatalogService

    settings = get_settings()
    provider = IGDBProvider(settings.igdb, retry_config=settings.retry) if with_provider else None
    return CatalogService.from_settings(settings, provider)


async def cmd_test_config() -> None:
    """Test configuration loading."""
    settings = get_settings()

    output = CLIOutput(
        success=True,
        command="test-config",
        data={
            "environment": settings.environment,
            "igdb_base_url": settings.igdb.base_url,
            "igdb_requests_per_minute": settings.igdb.requests_per_minute,
            "igdb_credentials_configured": bool(
                settings.igdb.client_id and settings.igdb.client_secret.get_secret_value()
            ),
            "database_url": settings.database.url,
            "enrichment_enabled": settings.enrichment.enabled,
            "enrichment_batch_size": settings.enrichment.batch_size,
            "search_max_limit": settings.search.max_limit,
        },
    )
    print_json(output)


async def cmd_init_db() -> None:
    """Create the catalog schema."""
    from gsplay_catalog.catalog.db import create_catalog_engine, init_db

    settings = get_settings()
    init_db(create_catalog_engine(settings.database))
    print_json(CLIOutput(success=True, command="init-db", data={"url": settings.database.url}))


async def cmd_reconcile(user_id: str, json_file: str, full: bool = False) -> None:
    """Reconcile a user's library from a JSON list of reported games."""
    from gsplay_catalog.ownership import SyncMode

    reported = json.loads(Path(json_file).read_text(encoding="utf-8"))
    if not isinstance(reported, list):
        raise ValueError("Library file must contain a JSON array")

    mode = SyncMode.FULL if full else SyncMode.INCREMENTAL
    logger.info("Reconciling library file", user_id=user_id, file=json_file, mode=mode.value)

    result = build_service().reconcile_user_library(user_id, reported, mode)
    print_json(CLIOutput(success=True, command="reconcile", data=result.to_dict()))


async def cmd_enrich(batch_size: int | None = None) -> None:
    """Run one enrichment batch against IGDB."""
    service = build_service(with_provider=True)
    async with service.provider:
        result = await service.run_enrichment_batch(batch_size)

    print_json(CLIOutput(success=True, command="enrich", data=result.to_dict()))


async def cmd_restore_failed() -> None:
    """Return FAILED games to UNSET."""
    restored = build_service().restore_failed_games()
    print_json(CLIOutput(success=True, command="restore-failed", data={"restored": restored}))


async def cmd_search(name: str | None, sort: str | None, order: str | None, page: str | None) -> None:
    """Search enriched games."""
    filters = {"name": name} if name else None
    result = build_service().search(filters, sort=sort, order=order, page=page)
    print_json(CLIOutput(success=True, command="search", data=result.model_dump(mode="json")))


async def cmd_details(game_id: str) -> None:
    """Show one game with its owners."""
    view = build_service().get_game_details(game_id)
    print_json(CLIOutput(success=True, command="details", data=view.model_dump(mode="json")))


async def cmd_filter_options() -> None:
    options = build_service().get_filter_options()
    print_json(CLIOutput(success=True, command="filter-options", data=options.model_dump()))


async def cmd_stats() -> None:
    stats = build_service().get_catalog_stats()
    print_json(CLIOutput(success=True, command="stats", data=stats))


def print_usage() -> None:
    """Print CLI usage information."""
    usage = """
GSPlay Catalog CLI
==================

Usage: python -m gsplay_catalog.cli <command> [arguments]

Commands:
  test-config                        Test configuration loading
  init-db                            Create the catalog schema
  reconcile <user_id> <json_file>    Reconcile a library (incremental)
  enrich [batch_size]                Run one IGDB enrichment batch
  restore-failed                     Return failed games to the queue
  search [name]                      Search enriched games
  details <game_id>                  Show a game with its owners
  filter-options                     List available filter values
  stats                              Catalog statistics

Options:
  --full                             reconcile: remove games not in the file
  --sort <key>                       search: name|rating|releaseDate|createdAt|ownerCount
  --order <asc|desc>                 search: sort direction
  --page <n>                         search: page number

Examples:
  python -m gsplay_catalog.cli reconcile user-1 library.json --full
  python -m gsplay_catalog.cli search mario --sort ownerCount --order desc
"""
    print(usage)


def main() -> None:
    """Main CLI entry point."""
    if len(sys.argv) < 2:
        print_usage()
        sys.exit(1)

    command = sys.argv[1]
    args = sys.argv[2:]
    values = positional(args)

    try:
        if command == "test-config":
            asyncio.run(cmd_test_config())

        elif command == "init-db":
            asyncio.run(cmd_init_db())

        elif command == "reconcile":
            if len(values) < 2:
                print("Error: user_id and json_file required")
                sys.exit(1)
            asyncio.run(cmd_reconcile(values[0], values[1], full="--full" in args))

        elif command == "enrich":
            batch_size = int(values[0]) if values else None
            asyncio.run(cmd_enrich(batch_size))

        elif command == "restore-failed":
            asyncio.run(cmd_restore_failed())

        elif command == "search":
            asyncio.run(
                cmd_search(
                    values[0] if values else None,
                    option_value(args, "--sort"),
                    option_value(args, "--order"),
                    option_value(args, "--page"),
                )
            )

        elif command == "details":
            if not values:
                print("Error: game_id required")
                sys.exit(1)
            asyncio.run(cmd_details(values[0]))

        elif command == "filter-options":
            asyncio.run(cmd_filter_options())

        elif command == "stats":
            asyncio.run(cmd_stats())

        elif command in ("help", "--help", "-h"):
            print_usage()

        else:
            print(f"Unknown command: {command}")
            print_usage()
            sys.exit(1)

    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.exception("CLI error", error=str(e))
        output = CLIOutput(
            success=False,
            command=command,
            error=str(e),
        )
        print_json(output)
        sys.exit(1)


if __name__ == "__main__":
    main()
