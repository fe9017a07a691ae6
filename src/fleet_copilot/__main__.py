"""CLI entry point for fleet-copilot."""

from __future__ import annotations

import argparse
import asyncio
import sys

import uvicorn

from fleet_copilot.app import FleetCopilotApp
from fleet_copilot.config import AppConfig, load_config
from fleet_copilot.log import setup_logging


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    parser.add_argument("-e", "--env", default=".env", help="Path to .env file")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="fleet-copilot",
        description="Conversational assistant over fleet telematics with Claude AI",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP server")
    _add_config_args(serve_parser)
    serve_parser.add_argument("--host", default=None, help="Override server.host")
    serve_parser.add_argument("--port", type=int, default=None, help="Override server.port")

    check_parser = subparsers.add_parser("config-check", help="Validate configuration")
    _add_config_args(check_parser)

    sync_parser = subparsers.add_parser("sync-tags", help="Synchronize the tag directory now")
    _add_config_args(sync_parser)

    args = parser.parse_args(argv)

    if args.command is None:
        # Default to serve
        args = parser.parse_args(["serve", *(argv or [])])

    match args.command:
        case "config-check":
            _check_config(args.config, args.env)
        case "sync-tags":
            _sync_tags(_load_or_exit(args.config, args.env))
        case "serve":
            _serve(_load_or_exit(args.config, args.env), args.host, args.port)


def _load_or_exit(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Copy config.example.yaml to config.yaml and fill in the credentials", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    config = _load_or_exit(config_path, env_path)
    print(f"Configuration valid: {config_path}")
    print(f"  Data directory: {config.data_dir}")
    print(f"  Model: {config.anthropic.model} (max_tokens={config.anthropic.max_tokens})")
    print(f"  Telematics API: {config.telematics.base_url}")
    print(f"  Storage: {config.storage.db_path}")
    print(f"  Media: {config.media.base_path} -> {config.media.url_prefix}")
    print(f"  Tag sync interval: {config.tags.sync_interval_seconds}s")
    print(f"  Server: {config.server.host}:{config.server.port}")


def _sync_tags(config: AppConfig) -> None:
    setup_logging(config.log_level, config.json_logs)

    async def _async_main() -> None:
        copilot = FleetCopilotApp(config)
        await copilot.start()
        try:
            result = await copilot.tag_sync.sync_now()
        finally:
            await copilot.stop()
        print(result.describe())

    asyncio.run(_async_main())


def _serve(config: AppConfig, host: str | None, port: int | None) -> None:
    from fleet_copilot.server.api import create_app

    setup_logging(config.log_level, config.json_logs)
    app = create_app(FleetCopilotApp(config))
    uvicorn.run(
        app,
        host=host or config.server.host,
        port=port or config.server.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
