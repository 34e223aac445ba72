'''
Application logger.

Every module imports the same `log`. SQLAlchemy's engine logger can be
attached to the same handler (SQL_ECHO) so statements and retries show up
interleaved with the booking messages that caused them.
'''
import logging
import sys

from .config import settings

LOGGER_NAME = 'tuition-scheduler'
LOG_FORMAT = '%(asctime)s - %(module)s - %(levelname)s\n - %(message)s'


def _build_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def setup_logger(level: str = settings.LOG_LEVEL, sql_echo: bool = settings.SQL_ECHO) -> logging.Logger:
    """
    Configures the application logger once; repeated calls only adjust the level.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())

    if not logger.handlers:
        handler = _build_handler()
        logger.addHandler(handler)
        if sql_echo:
            sql_logger = logging.getLogger('sqlalchemy.engine')
            sql_logger.setLevel(logging.INFO)
            sql_logger.addHandler(handler)

    logger.propagate = False
    return logger

log = setup_logger()
