from __future__ import annotations

import argparse
import sys

import structlog
import uvicorn

from trace_relay.config import get_settings
from trace_relay.errors import ConfigurationError
from trace_relay.main import create_app
from trace_relay.observability.logging import configure_logging

logger = structlog.get_logger("trace_relay")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Trace relay demo server")
    parser.add_argument("--host", default=None, help="Interface to bind (default: HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="TCP port to listen on (default: PORT or 8000)")
    args = parser.parse_args(argv)

    try:
        settings = get_settings()
    except ConfigurationError as exc:
        configure_logging()
        logger.error("startup_failed", error=str(exc))
        return 1

    configure_logging(settings.log_level)
    app = create_app(settings)

    host = settings.host if args.host is None else args.host
    port = settings.port if args.port is None else args.port

    logger.info("start_server", host=host, port=port, app_name=settings.app_name)
    try:
        uvicorn.run(app, host=host, port=port, log_config=None, log_level=settings.log_level.lower())
    except SystemExit as exc:
        # uvicorn logs bind/startup failures itself and then exits non-zero.
        if exc.code in (0, None):
            return 0
        logger.error("listen_failed", exit_code=exc.code, host=host, port=port)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
