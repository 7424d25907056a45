"""Command-line entry point: ``udlgate --config udlgate.yaml``."""

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

from udlgate.config import GatewayConfig, load_config
from udlgate.logging_config import configure_logging
from udlgate.server import create_app

logger = logging.getLogger("udlgate")

# CLI flag destination -> ServerConfig field. Flags left unset keep the
# value from the config file.
_SERVER_OVERRIDES = ("host", "port", "log_level", "log_format", "shutdown_timeout")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="udlgate",
        description="Authenticated multipart upload gateway in front of object storage.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("udlgate.yaml"),
        help="YAML configuration file (default: %(default)s)",
    )
    server = parser.add_argument_group("server overrides")
    server.add_argument("--host", help="bind address")
    server.add_argument("--port", type=int, help="listen port")
    server.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    )
    server.add_argument("--log-format", choices=["text", "json"])
    server.add_argument(
        "--shutdown-timeout",
        type=int,
        help="seconds to let in-flight requests finish on SIGTERM",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def apply_overrides(config: GatewayConfig, args: argparse.Namespace) -> GatewayConfig:
    """Return ``config`` with any server flags given on the command line applied.

    The configuration is frozen, so a changed copy is returned; with no
    flags set the original object comes back unchanged.
    """
    overrides = {
        field: getattr(args, field)
        for field in _SERVER_OVERRIDES
        if getattr(args, field) is not None
    }
    if not overrides:
        return config
    return config.model_copy(update={"server": config.server.model_copy(update=overrides)})


def _load(path: Path) -> GatewayConfig:
    """Load the config file, exiting with status 1 if it cannot be used."""
    try:
        return load_config(path)
    except FileNotFoundError:
        logger.error("Config file not found: %s", path)
    except Exception as exc:
        logger.error("Failed to load config %s: %s", path, exc)
    sys.exit(1)


def main(argv: list[str] | None = None) -> None:
    """Load configuration, set up logging and serve until interrupted.

    uvicorn handles SIGTERM and waits up to ``server.shutdown_timeout``
    seconds for open requests.
    """
    args = parse_args(argv)

    # Until the config is read, errors go to a plain stderr handler.
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    config = apply_overrides(_load(args.config), args)
    server = config.server

    configure_logging(level=server.log_level, fmt=server.log_format)
    logger.info(
        "Starting udlgate on %s:%d (storage=%s)", server.host, server.port, config.storage.backend
    )

    uvicorn.run(
        create_app(config),
        host=server.host,
        port=server.port,
        log_level=server.log_level.lower(),
        timeout_graceful_shutdown=server.shutdown_timeout,
        timeout_keep_alive=5,
    )


if __name__ == "__main__":
    main()
