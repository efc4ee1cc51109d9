"""Logging configuration for the podcatch CLI."""

import logging

TIMESTAMP_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
PLAIN_FORMAT = "%(name)s - %(levelname)s - %(message)s"


def configure_logging(level: int = logging.INFO, log_time: bool = True) -> None:
    """Configure root logging for a run.

    Args:
        level: Minimum severity to emit.
        log_time: Whether each line starts with a timestamp.
    """
    logging.basicConfig(
        level=level,
        format=TIMESTAMP_FORMAT if log_time else PLAIN_FORMAT,
        force=True,
    )
    # requests/urllib3 are noisy at DEBUG
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))
