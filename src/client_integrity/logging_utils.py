from __future__ import annotations

import logging
import os
from typing import Optional

from .config_loader import DEFAULT_LOG_FORMAT, PipelineConfig

LOG_LEVEL_ENV = "CLIENT_INTEGRITY_LOG_LEVEL"


def _level_number(level_name: Optional[str]) -> int:
    name = (level_name or "").strip().upper()
    if name.isdigit():
        return int(name)
    level = logging.getLevelName(name) if name else logging.WARNING
    # getLevelName answers "Level X" for names it does not know
    return level if isinstance(level, int) else logging.WARNING


def effective_level(config: PipelineConfig, level_override: Optional[str] = None) -> int:
    """
    Pick the root log level. The first one set wins:

    1. ``CLIENT_INTEGRITY_LOG_LEVEL`` environment variable
    2. ``level_override`` (the ``--log-level`` flag)
    3. ``logging.level`` from the YAML config
    4. ``WARNING``
    """
    return _level_number(os.getenv(LOG_LEVEL_ENV) or level_override or config.logging.level)


def configure_logging(config: PipelineConfig, level_override: Optional[str] = None) -> None:
    level = effective_level(config, level_override)
    root_logger = logging.getLogger()
    if root_logger.handlers:
        root_logger.setLevel(level)
        return
    logging.basicConfig(level=level, format=config.logging.format or DEFAULT_LOG_FORMAT)
