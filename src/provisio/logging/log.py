# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/logging/log.py

from __future__ import annotations

import logging
import os
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path

LOG_DIR_ENV = "PROVISIO_LOG_DIR"


def default_log_dir() -> Path:
    env = os.environ.get(LOG_DIR_ENV)
    return Path(env) if env else Path.home() / ".provisio" / "logs"


def init_logging(
    *,
    base_dir: Path | None = None,
    deployment: str | None = None,
    run_id: str | None = None,
    name: str = "provisio",
    verbose: bool = False,
    console: bool = True,
) -> tuple[logging.Logger, str, Path]:
    """
    One log file per run:
      - full DEBUG trace (worker thread names included) in
        <base_dir>/<deployment>-<utc ts>-<run id>.log
      - console at INFO, DEBUG with --debug
    base_dir falls back to $PROVISIO_LOG_DIR, then ~/.provisio/logs.
    Re-initialising replaces the previous run's handlers.
    Returns (logger, run_id, log_path); observers reuse the run id.
    """
    run_id = run_id or str(uuid.uuid4())
    base_dir = Path(base_dir) if base_dir is not None else default_log_dir()
    base_dir.mkdir(parents=True, exist_ok=True)

    stem = re.sub(r"[^\w.-]", "_", deployment or name)
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = base_dir / f"{stem}-{ts}-{run_id}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    for h in list(logger.handlers):
        h.close()
        logger.removeHandler(h)
    logger.propagate = False

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(threadName)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    fh = logging.FileHandler(log_path)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(formatter)
    logger.addHandler(fh)

    if console:
        ch = logging.StreamHandler()
        ch.setLevel(logging.DEBUG if verbose else logging.INFO)
        ch.setFormatter(logging.Formatter("%(levelname)-7s %(message)s"))
        logger.addHandler(ch)

    logger.debug("provisio run %s started, deployment=%s", run_id, deployment or "-")
    logger.info("log file: %s", log_path)
    return logger, run_id, log_path
