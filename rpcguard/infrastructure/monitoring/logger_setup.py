"""Root logger setup for rpcguard.

Guard modules only call ``logging.getLogger(__name__)``; the composition root
calls ``setup_logging`` once with the resolved LoggingSettings so library
users who never run the CLI keep their own logging configuration.
"""

import logging
import sys

from rpcguard.domain.models.common import LoggingSettings

logger = logging.getLogger(__name__)


def _attach(root_logger: logging.Logger, handler: logging.Handler, settings: LoggingSettings) -> None:
    handler.setLevel(settings['level'])
    handler.setFormatter(logging.Formatter(settings['format']))
    root_logger.addHandler(handler)


def setup_logging(settings: LoggingSettings) -> None:
    """Replaces the root logger's handlers with ones built from ``settings``.

    Args:
        settings: Resolved level, format string and optional log file path,
            as returned by ``get_logging_settings``.
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(settings['level'])

    _attach(root_logger, logging.StreamHandler(sys.stdout), settings)

    if settings['file']:
        try:
            _attach(root_logger, logging.FileHandler(settings['file'], encoding='utf-8'), settings)
        except OSError as e:
            logger.error(f"Failed to open log file {settings['file']}: {e}", exc_info=True)

    logger.debug(f"Logging configured: level={logging.getLevelName(settings['level'])}, file={settings['file']}")
