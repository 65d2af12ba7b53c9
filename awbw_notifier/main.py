from __future__ import annotations

import argparse
import json
import logging
from typing import List, Optional

from . import config, monitor
from .server import TriggerServer


def setup_logging() -> None:
    level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def run_cli() -> int:
    """Perform one cycle from the command line (cron mode)."""
    logger = logging.getLogger(__name__)
    try:
        result = monitor.run_once()
    except Exception:
        logger.exception("Run failed")
        return 1
    print(json.dumps(result.to_dict()))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Validate configuration, then serve the trigger or run once."""
    parser = argparse.ArgumentParser(prog="awbw_notifier", description="AWBW turn notifier")
    parser.add_argument("--once", action="store_true", help="run a single check and exit")
    parser.add_argument("--port", type=int, default=None, help="listen port (default: $PORT or 8080)")
    args = parser.parse_args(argv)

    setup_logging()
    config.validate()
    logger = logging.getLogger(__name__)

    if args.once:
        return run_cli()

    logger.info(
        "Starting AWBW notifier (backend=%s, object=%s)",
        config.STATE_BACKEND,
        config.STATE_OBJECT,
    )
    TriggerServer(port=args.port).serve_forever()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
