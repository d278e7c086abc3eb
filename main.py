"""
StayConnected — Entry Point.

    python main.py serve              start the HTTP API
    python main.py check-inactivity   run one inactivity cycle (for cron)
"""

import argparse
import asyncio
import json
import logging

from stayconnected.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger("stayconnected")


def serve() -> None:
    import uvicorn

    from stayconnected.web.api import create_app

    uvicorn.run(create_app(), host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


def check_inactivity() -> int:
    from stayconnected.web.api import build_services

    services = build_services()
    report = asyncio.run(services.monitor.run_cycle())
    print(json.dumps(report.to_dict(), indent=2))
    return 1 if report.errors else 0


def main() -> int:
    parser = argparse.ArgumentParser(prog="stayconnected")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="Start the HTTP API")
    sub.add_parser("check-inactivity", help="Run one inactivity cycle and exit")
    args = parser.parse_args()

    if args.command == "check-inactivity":
        return check_inactivity()
    serve()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
