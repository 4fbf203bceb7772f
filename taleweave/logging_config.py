"""
Centralized logging configuration for Taleweave.

Call setup_logging() once at application startup (from the FastAPI
lifespan handler).  Every source module then gets its own logger via:

    import logging
    logger = logging.getLogger(__name__)

Level mapping:
  DEBUG   – cache hits, prompt sizes, raw model output
  INFO    – turn processing, Director calls, tool calls
  WARNING – fallbacks, rejected tool input, corrupt persisted blobs
  ERROR   – failed background tasks, provider errors
"""

import logging
import sys


def setup_logging(level: str = "INFO") -> None:
    """Configure root logger and quiet noisy third-party loggers."""
    fmt = "[%(name)s] %(message)s"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt,
        stream=sys.stdout,
        force=True,
    )

    # Quiet noisy third-party loggers
    for name in (
        "httpx",
        "httpcore",
        "uvicorn.access",
        "openai",
        "anthropic",
        "google_genai",
        "sqlalchemy.engine",
    ):
        logging.getLogger(name).setLevel(logging.WARNING)
