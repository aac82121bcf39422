"""
logging_config.py
=================
Root logger setup for hosts embedding the workflow core.
"""

import logging
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger

from . import config

_HANDLER_NAME = "careflow-stdout"


def setup_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> logging.Logger:
    """
    Install a stdout handler on the root logger.
    JSON lines by default, plain text when LOG_JSON=false. Safe to call twice.
    """
    level = (level or config.LOG_LEVEL).upper()
    json_output = config.LOG_JSON if json_output is None else json_output

    if json_output:
        formatter = jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s"
        )
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(level)

    return logging.getLogger("careflow")
