"""
Logging helpers for genops.

Modules log through ``logging.getLogger(__name__)``; this module only
decides how much of that reaches the terminal.
"""

from __future__ import annotations

import logging
from typing import Optional, TextIO


def configure_logging(verbosity: int, stream: Optional[TextIO] = None) -> None:
    """
    Configure the root logger based on a verbosity count.

    verbosity == 0 -> WARNING
    verbosity == 1 -> INFO
    verbosity >= 2 -> DEBUG

    Log records go to stderr by default so JSON printed by the CLI on
    stdout stays machine readable.
    """

    if verbosity <= 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=stream,
    )
