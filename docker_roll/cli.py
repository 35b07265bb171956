#!/usr/bin/env python3
"""
docker-roll CLI entry point.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from docker_roll import __version__
from docker_roll.config.settings import (
    DEFAULT_PROXY_DIR,
    NamingScheme,
    RolloutConfig,
    env_default,
)
from docker_roll.errors import RolloutError
from docker_roll.logging_config import setup_logging
from docker_roll.orchestrator import SUCCESS_STATES, RolloutOrchestrator
from docker_roll.preflight import check_requirements
from docker_roll.runtime import DockerComposeRuntime

logger = logging.getLogger("docker_roll.cli")


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="docker-roll",
        description="docker-roll - A CLI tool for rolling updates with Traefik",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Roll out a new version of the "web" service
  docker-roll up --domain myapp.example.com --service web --port 8080

  # Use blue/green slot names and switch traffic in one step
  docker-roll up -d myapp.example.com --color-scheme --no-shift
        """,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    up = subparsers.add_parser("up", help="Perform a rolling update")
    up.add_argument("--domain", "-d", help="Domain name for the service (required)")
    up.add_argument(
        "--service", "-s", help="Service name in docker-compose to update (default: app)"
    )
    up.add_argument(
        "--port",
        "-p",
        type=int,
        help="Internal container port the service runs on (default: 3000)",
    )
    up.add_argument(
        "--compose-file", "-f", help="Path to docker-compose file (default: docker-compose.yml)"
    )
    up.add_argument("--health-path", help="Health check endpoint path (default: /health)")
    up.add_argument(
        "--health-timeout", type=int, help="Health check timeout in seconds (default: 60)"
    )
    up.add_argument(
        "--shift-interval",
        type=float,
        help="Time between traffic shifts in seconds (default: 20)",
    )
    up.add_argument(
        "--traefik-dir",
        default=None,
        help=f"Path to Traefik directory (default: {DEFAULT_PROXY_DIR})",
    )
    up.add_argument(
        "--no-shift",
        action="store_true",
        default=None,
        help="Deploy without gradual traffic shifting",
    )
    up.add_argument(
        "--color-scheme",
        action="store_true",
        help="Use blue-green naming instead of timestamps",
    )
    up.add_argument("--config", "-c", help="YAML file with default option values")
    up.add_argument("--log-dir", help="Also write a rotating log file to this directory")
    up.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    subparsers.add_parser("help", help="Show this help message")
    subparsers.add_parser("version", help="Show version information")
    return parser


def config_from_args(args: argparse.Namespace) -> RolloutConfig:
    """Turn parsed `up` arguments into a RolloutConfig."""
    values: Dict[str, Any] = {
        "domain": args.domain,
        "service": args.service,
        "port": args.port,
        "compose_file": args.compose_file,
        "health_path": args.health_path,
        "health_timeout": args.health_timeout,
        "shift_interval": args.shift_interval,
        "proxy_dir": args.traefik_dir or env_default("TRAEFIK_DIR"),
        "no_shift": args.no_shift,
        "naming_scheme": NamingScheme.ALTERNATING if args.color_scheme else None,
    }
    if args.config:
        return RolloutConfig.from_file(Path(args.config), **values)
    return RolloutConfig.build(**{k: v for k, v in values.items() if v is not None})


def run_up(args: argparse.Namespace) -> int:
    """Run the `up` command."""
    setup_logging(console_level="DEBUG" if args.verbose else "INFO", log_dir=args.log_dir)

    try:
        config = config_from_args(args)
        logger.debug(f"Configuration: {config.log_summary()}")
        runtime = DockerComposeRuntime()
        check_requirements(config, runtime)
        state = RolloutOrchestrator(config, runtime).run()
    except RolloutError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.error("Interrupted. The proxy keeps whatever split was last written.")
        return 1
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1

    return 0 if state in SUCCESS_STATES else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        # argparse exits 2 on usage errors
        return 0 if e.code in (0, None) else 1

    if args.command == "help":
        parser.print_help()
        return 0
    if args.command == "version":
        print(f"docker-roll version {__version__}")
        return 0
    if args.command is None:
        parser.print_help()
        return 1

    return run_up(args)


if __name__ == "__main__":
    sys.exit(main())
