"""Logging configuration for the backend."""
import logging
import sys


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the application."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
    )

    # Per-request access lines are noisy next to the 5s tick logs
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
