"""Logging setup and per-stage latency tracking.

Set LOG_LEVEL env var to DEBUG to see request payload sizes and stream progress.
"""

from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from typing import Generator


def setup_logging(level: str | None = None) -> None:
    """Configure root logging.

    Reads LOG_LEVEL from environment if not specified. Default: INFO.
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s │ %(levelname)-7s │ %(name)-36s │ %(message)s",
        datefmt="%H:%M:%S",
    )

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)


@contextmanager
def latency_tracker(stage: str, logger_instance: logging.Logger | None = None) -> Generator[dict, None, None]:
    """Measure and log how long a pipeline stage takes.

    Usage:
        with latency_tracker("llm_generate", logger) as metrics:
            text = await llm.complete(messages)
        # metrics["elapsed_ms"] now has the duration
    """
    log = logger_instance or logging.getLogger("latency")
    metrics: dict = {"stage": stage, "elapsed_ms": 0.0}
    start = time.perf_counter()
    try:
        yield metrics
    finally:
        elapsed = (time.perf_counter() - start) * 1000
        metrics["elapsed_ms"] = round(elapsed, 2)
        # Model calls routinely take seconds; flag only the really slow ones
        if elapsed > 5000:
            log.info(f"⏱ {stage}: {elapsed:.1f}ms ⚠️ SLOW")
        else:
            log.debug(f"⏱ {stage}: {elapsed:.1f}ms")
