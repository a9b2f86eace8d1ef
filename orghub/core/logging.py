# orghub/core/logging.py
import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
    logging.getLogger("orghub").setLevel(getattr(logging, level.upper(), logging.INFO))
    # httpx logs full request URLs at INFO; keep them out of the default output.
    logging.getLogger("httpx").setLevel(logging.WARNING)
