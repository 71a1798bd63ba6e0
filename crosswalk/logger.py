"""
Centralized Logging Configuration for the Crosswalk Engine

Every module logs through a child of the ``crosswalk`` package logger
(``crosswalk.model``, ``crosswalk.adjust`` ...). Only the package logger
carries handlers, so one call to :func:`configure_logging` or
:func:`configure_logging_from_config` sets the level, console output and
log file of a whole fit-and-adjust run.
"""

import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .config import CrosswalkConfig

PACKAGE_LOGGER = 'crosswalk'
CONSOLE_FORMAT = '%(levelname)s: %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class _ConsoleHandler(logging.StreamHandler):
    """Stream handler that writes to whatever sys.stdout is at emit time."""

    def __init__(self):
        super().__init__(sys.stdout)

    @property
    def stream(self):
        return sys.stdout

    @stream.setter
    def stream(self, value):
        pass


class CrosswalkLogger:
    """
    Owner of the handlers on the ``crosswalk`` package logger.

    Module loggers carry no handlers of their own and propagate to the
    package logger, which does not propagate further.

    Example:
        >>> from crosswalk.logger import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Fitting crosswalk model")
        >>> logger.warning("Inlier set still changing")
    """

    _configured: bool = False

    @staticmethod
    def setup_logger(
        level: int = logging.INFO,
        log_file: Optional[str] = None,
        verbose: bool = True,
        log_format: Optional[str] = None
    ) -> logging.Logger:
        """
        Configure (or reconfigure) the package logger.

        Args:
            level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_file: Optional path of a log file, appended to
            verbose: If False, suppress console output (only log to file)
            log_format: Optional format string for both handlers

        Returns:
            The package logger
        """
        logger = logging.getLogger(PACKAGE_LOGGER)
        CrosswalkLogger._close_handlers(logger)
        logger.setLevel(level)
        logger.propagate = False

        if verbose:
            console_handler = _ConsoleHandler()
            console_handler.setLevel(level)
            console_handler.setFormatter(logging.Formatter(log_format or CONSOLE_FORMAT))
            logger.addHandler(console_handler)

        if log_file:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(log_format or FILE_FORMAT))
            logger.addHandler(file_handler)

        # Quiet runs must not fall through to logging.lastResort on stderr
        if not logger.handlers:
            logger.addHandler(logging.NullHandler())

        CrosswalkLogger._configured = True
        return logger

    @staticmethod
    def _close_handlers(logger: logging.Logger) -> None:
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)

    @staticmethod
    def ensure_configured() -> logging.Logger:
        """Package logger, with console defaults on first use."""
        if not CrosswalkLogger._configured:
            return CrosswalkLogger.setup_logger()
        return logging.getLogger(PACKAGE_LOGGER)

    @staticmethod
    def reset_loggers() -> None:
        """
        Restore the console defaults on the package logger, closing any log
        file. Useful for testing or reconfiguration.
        """
        CrosswalkLogger.setup_logger()


def get_logger(name: str = PACKAGE_LOGGER) -> logging.Logger:
    """
    Logger for a module of the crosswalk package.

    Names outside the package namespace are placed under it, so scripts
    share the package handlers.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Adjustment started")
    """
    CrosswalkLogger.ensure_configured()
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + '.'):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)


def configure_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    verbose: bool = True
) -> logging.Logger:
    """Configure the package logger; see :meth:`CrosswalkLogger.setup_logger`."""
    return CrosswalkLogger.setup_logger(level, log_file, verbose)


def configure_logging_from_config(config: 'CrosswalkConfig') -> logging.Logger:
    """
    Configure the package logger from a CrosswalkConfig.

    When a log file is configured, a session banner records the run name,
    gold definition, transform and comparison data source.

    Args:
        config: CrosswalkConfig instance with logging settings

    Returns:
        The package logger
    """
    logging_config = config.logging
    logger = configure_logging(
        level=getattr(logging, logging_config.level.upper(), logging.INFO),
        log_file=logging_config.log_file,
        verbose=config.verbose
    )

    if logging_config.log_file:
        transform = config.fit_params.transform
        logger.info("=" * 70)
        logger.info(f"Crosswalk session started: {datetime.now().isoformat()}")
        logger.info(f"  Run: {config.name or 'unnamed'}")
        logger.info(f"  Gold definition: {config.fit_params.gold_definition}")
        logger.info(f"  Transform: {getattr(transform, 'value', transform)}")
        logger.info(f"  Comparison data: {config.data.source}")
        logger.info("=" * 70)
    return logger


@contextmanager
def log_stage(logger: logging.Logger, title: str) -> Iterator[None]:
    """
    Log a banner around a pipeline stage with its elapsed time.

    A failing stage is logged at ERROR level and the exception re-raised.

    Example:
        >>> with log_stage(logger, "STAGE 2: FITTING CROSSWALK MODEL"):
        ...     fitted = model.fit()
    """
    logger.info("=" * 70)
    logger.info(title)
    logger.info("=" * 70)
    start = time.perf_counter()
    try:
        yield
    except Exception as e:
        logger.error(f"{title} failed after {time.perf_counter() - start:.2f}s: {e}")
        raise
    logger.info(f"{title} completed in {time.perf_counter() - start:.2f}s")
