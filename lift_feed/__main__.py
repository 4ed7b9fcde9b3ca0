"""Command line entry point: ``python -m lift_feed serve|refresh|status``."""
from __future__ import annotations

import argparse
import json
import sys
from typing import List, Optional

from lift_feed.config import ConfigError, load_config
from lift_feed.logging import get_logger, setup_logging
from lift_feed.models import known_kinds

logger = get_logger(__name__)


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="lift_feed", description="Whistler Blackcomb lift and webcam feed")
    parser.add_argument("--config", help="YAML file merged over the packaged defaults")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", help="Bind address (default from config)")
    serve.add_argument("--port", type=int, help="Bind port (default from config)")
    serve.add_argument("--no-scheduler", action="store_true", help="Disable the interval refresh job")

    refresh = subparsers.add_parser("refresh", help="Fetch once, write the cache and print the snapshot")
    refresh.add_argument("kind", nargs="?", default="all", choices=[*known_kinds(), "all"])

    subparsers.add_parser("status", help="Print cache and refresh status")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    config = load_config(config_path=args.config)
    setup_logging(config.logging, force=True)

    try:
        config.validate()
    except ConfigError as exc:
        logger.error("config.invalid", error=str(exc))
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    if args.command == "serve":
        import uvicorn

        from lift_feed.api import create_app

        app = create_app(config, enable_scheduler=False if args.no_scheduler else None)
        uvicorn.run(app, host=args.host or config.service.host, port=args.port or config.service.port)
        return 0

    from lift_feed.orchestrator import RefreshOrchestrator

    orchestrator = RefreshOrchestrator.from_config(config)
    try:
        if args.command == "status":
            print(json.dumps(orchestrator.status(), indent=2))
            return 0

        kinds = orchestrator.kinds if args.kind == "all" else (args.kind,)
        exit_code = 0
        for kind in kinds:
            snapshot = orchestrator.force_refresh(kind)
            print(json.dumps(snapshot.to_dict(), indent=2))
            if snapshot.is_empty:
                exit_code = 1
        return exit_code
    finally:
        orchestrator.shutdown(wait=True)


if __name__ == "__main__":
    sys.exit(main())
