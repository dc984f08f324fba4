"""
Logging setup for the CLI and the API process.

The handler/formatter layout comes from the packaged `config/logging.yaml`; the level comes
from `app.log_level` (env: `WHERELSE_LOG_LEVEL`) unless the caller passes one, e.g. the
CLI's `--log-level`.
"""

from __future__ import annotations

import copy
import logging.config

from wherelse.config.settings import get_logging_config, get_settings


def configure_logging(level: str | None = None) -> None:
    # The packaged config is cached; work on a copy so repeated calls start from the file.
    config = copy.deepcopy(get_logging_config())
    resolved = (level or get_settings().app.log_level).upper()

    config.setdefault("root", {})["level"] = resolved
    config.setdefault("loggers", {}).setdefault("wherelse", {})["level"] = resolved
    for handler in config.get("handlers", {}).values():
        handler["level"] = resolved

    logging.config.dictConfig(config)
