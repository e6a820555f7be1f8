"""Process-wide logging configuration for the haproxy-configurator entry points."""

from __future__ import annotations

import logging
import sys

_DEVELOPMENT_FORMAT: str = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_PRODUCTION_FORMAT: str = "%(asctime)s level=%(levelname)s logger=%(name)s msg=%(message)s"


def configure_logging(development: bool = False) -> None:
    """Configure the root logger.

    Development mode logs at DEBUG in a human-oriented format; production
    mode logs at INFO in a key=value format. Errors and everything else go
    to stderr so stdout stays free for command output.
    """
    level = logging.DEBUG if development else logging.INFO
    fmt = _DEVELOPMENT_FORMAT if development else _PRODUCTION_FORMAT
    logging.basicConfig(level=level, format=fmt, stream=sys.stderr, force=True)
    # requests/urllib3 debug output drowns the service's own messages
    logging.getLogger("urllib3").setLevel(logging.INFO if development else logging.WARNING)
