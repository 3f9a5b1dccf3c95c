"""Logging setup shared by the relay server and client entry points."""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Setup process-wide logging.

    Args:
        level: Logging level name
    """
    logging.basicConfig(level=getattr(logging, level.upper()), format=LOG_FORMAT)

    # websockets logs every handshake at INFO
    if level.upper() != "DEBUG":
        logging.getLogger("websockets").setLevel(logging.WARNING)
