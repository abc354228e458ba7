"""CLI entry point for channel_archive.

Usage:
    python -m channel_archive lurk --channel-id 456        # Export, ingest, index
    python -m channel_archive archive --channel-id 456     # Export, upload, move
    python -m channel_archive status                       # Ledger activity
    python -m channel_archive search "release date"        # Semantic search
    python -m channel_archive serve --port 8080            # HTTP trigger
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from channel_archive.config.settings import load_config
from channel_archive.core.errors import PipelineBusy
from channel_archive.pipeline.logger import logger
from channel_archive.pipeline.models import PipelineVariant
from channel_archive.pipeline.run import run_archive, run_search, run_status
from channel_archive.utils.logging import setup_logging
from channel_archive.utils.masking import mask_sensitive_info

# Exit code when another archive job is still running
EXIT_BUSY = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="channel-archive",
        description="Discord Channel Archive Pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  channel-archive lurk --channel-id 987654321
      Export the channel to JSON, ingest it and update the search index

  channel-archive archive --channel-id 987654321 --guild-id 123456789
      Export to HTML, upload it and move the channel to the archive category

  channel-archive status --hours 48
      Show whether a job is running and the last 48 hours of activity

  channel-archive search "when is the launch"
      Search archived messages by meaning

  channel-archive --config /path/to/config.json serve
      Start the HTTP trigger with a custom config file
        """,
    )

    parser.add_argument(
        "--config",
        type=str,
        default="config.json",
        help="Path to config.json (default: config.json)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output (DEBUG level)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode with third-party library logs",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        help="Optional file to write logs to",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("lurk", "Run the local pipeline (export, ingest, index)"),
        ("archive", "Run the remote pipeline (export, upload, relocate)"),
    ):
        job = subparsers.add_parser(name, help=help_text)
        job.add_argument(
            "--channel-id",
            type=int,
            required=True,
            help="Channel to archive",
        )
        job.add_argument(
            "--guild-id",
            type=int,
            help="Guild of the channel (default: discord.guild_id from config)",
        )

    status = subparsers.add_parser("status", help="Show recent ledger activity")
    status.add_argument(
        "--hours",
        type=float,
        default=24.0,
        help="How far back to show activity (default: 24)",
    )

    search = subparsers.add_parser("search", help="Search archived messages")
    search.add_argument("query", help="Free-text query")
    search.add_argument(
        "--limit",
        type=int,
        default=5,
        help="Maximum number of results (default: 5)",
    )

    serve = subparsers.add_parser("serve", help="Start the HTTP trigger")
    serve.add_argument("--host", type=str, help="Bind address (default: from config)")
    serve.add_argument("--port", type=int, help="Port (default: from config)")
    serve.add_argument(
        "--variant",
        choices=[v.value for v in PipelineVariant],
        help="Pipeline started by POST /export (default: pipeline.variant from config)",
    )

    return parser


def serve(
    config_path: str, host: str | None, port: int | None, variant: str | None
) -> None:
    """Run the HTTP trigger under uvicorn."""
    import uvicorn

    from channel_archive.server.app import create_app

    settings = load_config(config_path)
    app = create_app(settings, variant=PipelineVariant(variant) if variant else None)
    uvicorn.run(
        app,
        host=host or settings.server.host,
        port=port or settings.server.port,
        log_config=None,
    )


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    # Configure logging based on CLI flags
    if args.debug:
        log_level = logging.DEBUG
        debug_third_party = True
    elif args.verbose:
        log_level = logging.DEBUG
        debug_third_party = False
    else:
        log_level = logging.INFO
        debug_third_party = False

    setup_logging(
        level=log_level,
        log_file=args.log_file,
        debug_third_party=debug_third_party,
    )

    try:
        if args.command in ("lurk", "archive"):
            variant = (
                PipelineVariant.LOCAL if args.command == "lurk" else PipelineVariant.REMOTE
            )
            result = asyncio.run(
                run_archive(
                    config_path=args.config,
                    variant=variant,
                    channel_id=args.channel_id,
                    guild_id=args.guild_id,
                )
            )
            if result.success:
                logger.success("Archive complete!")
            else:
                logger.error("Archive finished with failed stages")
                sys.exit(1)
        elif args.command == "status":
            asyncio.run(run_status(config_path=args.config, hours=args.hours))
        elif args.command == "search":
            asyncio.run(
                run_search(config_path=args.config, query=args.query, limit=args.limit)
            )
        elif args.command == "serve":
            serve(args.config, args.host, args.port, args.variant)
    except PipelineBusy:
        logger.warning("Busy: another archive job is still running. Try again later.")
        sys.exit(EXIT_BUSY)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {mask_sensitive_info(str(e))}")
        raise


if __name__ == "__main__":
    main()
