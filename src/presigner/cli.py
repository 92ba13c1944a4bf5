"""CLI entry point for the presign service."""

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

from presigner.config import PresignerConfig, load_config
from presigner.logging_config import configure_logging
from presigner.server import create_app


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="presigner",
        description="Presigner - issues SigV4 presigned URLs for S3-compatible storage",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: environment only)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host address to bind to (overrides config)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to listen on (overrides config)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config, default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )
    parser.add_argument(
        "--shutdown-timeout",
        type=int,
        default=None,
        help="Seconds to wait for in-flight requests on shutdown (overrides config)",
    )
    return parser.parse_args(argv)


def apply_overrides(config: PresignerConfig, args: argparse.Namespace) -> PresignerConfig:
    """Return a copy of ``config`` with command-line overrides applied.

    The configuration models are frozen, so overrides produce new instances.
    """
    server: dict = {}
    if args.host is not None:
        server["host"] = args.host
    if args.port is not None:
        server["port"] = args.port
    if args.shutdown_timeout is not None:
        server["shutdown_timeout"] = args.shutdown_timeout

    observability: dict = {}
    if args.log_level is not None:
        observability["log_level"] = args.log_level
    if args.log_format is not None:
        observability["log_format"] = args.log_format

    return config.model_copy(
        update={
            "server": config.server.model_copy(update=server),
            "observability": config.observability.model_copy(update=observability),
        }
    )


def main(argv: list[str] | None = None) -> None:
    """Main entry point: parse args, load config, start uvicorn.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    args = parse_args(argv)

    # Basic stderr logger for config-loading errors
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    logger = logging.getLogger("presigner")

    try:
        config = load_config(args.config)
    except FileNotFoundError:
        logger.error("Config file not found: %s", args.config)
        sys.exit(1)
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        sys.exit(1)

    config = apply_overrides(config, args)

    configure_logging(
        level=config.observability.log_level,
        fmt=config.observability.log_format,
    )

    logger.info("Starting presigner on %s:%d", config.server.host, config.server.port)

    app = create_app(config)

    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.observability.log_level.lower(),
        timeout_graceful_shutdown=config.server.shutdown_timeout,
        timeout_keep_alive=5,
    )


if __name__ == "__main__":
    main()
