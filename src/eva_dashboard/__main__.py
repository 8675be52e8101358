"""Command-line entry point: ``eva-dashboard`` / ``python -m eva_dashboard``."""

from __future__ import annotations

import asyncio
import sys

from eva_dashboard import __version__
from eva_dashboard.config import load_config
from eva_dashboard.errors import FailedPreconditionError
from eva_dashboard.logging import get_logger, setup_logging
from eva_dashboard.service import run

logger = get_logger(__name__)


def main(argv: list[str] | None = None) -> int:
    """
    Run the dashboard.

    Args:
        argv: Command-line arguments. If None, uses sys.argv.

    Returns:
        Process exit status.
    """
    config = load_config(cli_args=argv)
    setup_logging(config.logging)

    logger.info(
        "Starting EVA dashboard",
        extra={
            "version": __version__,
            "db_path": str(config.storage.db_path),
            "address": config.server.listen,
            "endpoints": config.sampling.endpoints,
        },
    )

    try:
        asyncio.run(run(config))
    except FailedPreconditionError as e:
        logger.critical(
            "Cannot open daily average store",
            extra={"error": e.message, "details": e.details},
        )
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
