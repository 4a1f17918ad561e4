#!/usr/bin/env python3
"""
VPN Hub - Entry point

Runs the management API on top of the VPN and device managers:
- Loads settings from the environment (VPNHUB_*) and .env
- Configures logging to stdout and an optional log file
- Serves the FastAPI app with uvicorn
"""

import logging
import sys

import uvicorn

from .config import Settings, get_settings

logger = logging.getLogger('vpnhub')


def setup_logging(settings: Settings, level: str) -> None:
    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.LOG_FILE:
        handlers.append(logging.FileHandler(settings.LOG_FILE))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


def main():
    """Entry point"""
    import argparse

    settings = get_settings()

    parser = argparse.ArgumentParser(description="VPN Hub management API")
    parser.add_argument(
        "--host",
        default=settings.HOST,
        help="Address to bind",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.PORT,
        help="Port to listen on",
    )
    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL.upper(),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level",
    )

    args = parser.parse_args()

    setup_logging(settings, args.log_level)

    from .api import create_app

    try:
        app = create_app(settings)
        uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
