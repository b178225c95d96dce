# SPDX-License-Identifier: MIT
"""Logging utilities for the gltf_dom package."""

import logging
import os
from typing import Optional

LOG_LEVEL_ENV = "GLTF_DOM_LOG_LEVEL"


def get_logger(name: str) -> logging.Logger:
    """Get a logger below the gltf_dom namespace."""
    if name == "gltf_dom":
        return logging.getLogger(name)
    if name.startswith("gltf_dom."):
        name = name[len("gltf_dom."):]
    return logging.getLogger(f"gltf_dom.{name}")


def _level_from_env() -> int:
    value = os.environ.get(LOG_LEVEL_ENV, "").strip().upper()
    if not value:
        return logging.INFO
    if value.isdigit():
        return int(value)
    level = logging.getLevelName(value)
    return level if isinstance(level, int) else logging.INFO


def setup_logging(level: Optional[int] = None) -> None:
    """Set up logging for the gltf_dom package."""
    if level is None:
        level = _level_from_env()

    # Configure the logger
    logger = logging.getLogger("gltf_dom")
    logger.setLevel(level)

    # Only add handler if none exists
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(level)

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        handler.setFormatter(formatter)

        logger.addHandler(handler)
