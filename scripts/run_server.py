#!/usr/bin/env python3
"""
Run the RS.ge bridge API with uvicorn.

Settings come from the environment (.env is loaded); --port and --reload
override what the environment says.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import uvicorn
from dotenv import load_dotenv

load_dotenv()

from rsge_bridge.config import load_settings
from rsge_bridge.errors import ConfigError


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the RS.ge bridge API")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=None, help="Defaults to $PORT or 3005")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    try:
        settings = load_settings()
    except ConfigError as e:
        logging.error("Missing required environment variables: %s", ", ".join(e.missing))
        return 1

    port = args.port or settings.port
    logging.info("Starting %s on %s:%d (%s)", settings.service_name, args.host, port, settings.environment)
    uvicorn.run(
        "rsge_bridge.api.main:create_app",
        factory=True,
        host=args.host,
        port=port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
