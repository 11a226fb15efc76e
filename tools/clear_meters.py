#!/usr/bin/env python3
"""Delete every meter record from the monitor database.

Usage:
    poetry run python tools/clear_meters.py [-c CONFIG] [--url DATABASE_URL]

The engine re-registers the configured meters on its next start.
"""

import argparse
import logging

from theft_monitor.config import load_config
from theft_monitor.store import Store

logger = logging.getLogger("clear_meters")


def main() -> None:
    parser = argparse.ArgumentParser(description="Delete all meter records")
    parser.add_argument("-c", "--config", default="/app/config.yaml", help="Path to config YAML file")
    parser.add_argument("--url", help="Database URL (overrides the config file)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    url = args.url or load_config(args.config).database.url
    store = Store(url)
    try:
        deleted = store.delete_meters()
        logger.info("Deleted %d meter records from %s", deleted, url)
    finally:
        store.dispose()


if __name__ == "__main__":
    main()
