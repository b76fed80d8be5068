from __future__ import annotations

import argparse
import json
import logging
import os
import sys

import uvicorn

from notioncal.calendar_auth import authorize_interactive
from notioncal.config_manager import ConfigManager
from notioncal.sync_engine import SyncEngine

logger = logging.getLogger(__name__)

EXIT_CODES = {"success": 0, "dry_run": 0, "skipped": 0, "error": 1, "partial": 2}


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="notioncal", description="Keep a Notion task database and a calendar in sync.")
    parser.add_argument(
        "--config",
        default=os.getenv("NOTIONCAL_CONFIG_PATH", "config.yaml"),
        help="path to the YAML config file",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="run one reconciliation pass (default)")
    sub.add_parser("plan", help="print the actions a pass would take without applying them")
    sub.add_parser("serve", help="start the admin API with the interval scheduler")
    sub.add_parser("authorize", help="run the Google OAuth consent flow")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    command = args.command or "run"

    if command == "serve":
        os.environ["NOTIONCAL_CONFIG_PATH"] = args.config
        host = os.getenv("NOTIONCAL_HOST", "0.0.0.0")
        port = int(os.getenv("NOTIONCAL_PORT", "8080"))
        uvicorn.run("notioncal.web_admin:create_app", factory=True, host=host, port=port, reload=False)
        return 0

    config = ConfigManager(args.config).load()

    if command == "authorize":
        authorize_interactive(config.caldav)
        print(f"Token saved to {config.caldav.oauth_token_path}")
        return 0

    engine = SyncEngine(config)
    if command == "plan":
        missing = engine.missing_config()
        if missing:
            logger.warning("Config missing %s. Plan skipped.", ", ".join(missing))
            return EXIT_CODES["skipped"]
        try:
            plan = engine.plan()
        except Exception:
            logger.exception("Plan aborted before reconciliation")
            return EXIT_CODES["error"]
        print(json.dumps(plan.to_dict(), indent=2, ensure_ascii=False))
        return 0

    result = engine.run_once(trigger="cli")
    return EXIT_CODES.get(result.status, 1)


if __name__ == "__main__":
    sys.exit(main())
