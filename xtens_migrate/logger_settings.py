"""
logger_settings.py
Logging configuration for the migration scripts.
The logger is built once per run by the entry script and handed to the
parser, daemon client and migrator, instead of being imported as a global.
"""

import os
import sys
import logging
from logging.config import dictConfig
from datetime import datetime

from . import settings

MIGRATE_LOGGER_NAME = 'migrate_logger'


def get_logging_config(log_file_dir=settings.LOG_FILE_DIR, console_level='INFO'):
    return dict(
        version=1,
        disable_existing_loggers=False,
        formatters={
            'verbose': {
                'format': ("[%(asctime)s] %(levelname)s "
                           "[%(name)s:%(lineno)s] %(message)s"),
                'datefmt': "%d/%b/%Y %H:%M:%S",
            },
            'simple': {
                'format': '%(levelname)s %(message)s',
            },
        },
        handlers={
            'migrate-logger': {'class': 'logging.handlers.RotatingFileHandler',
                               'formatter': 'verbose',
                               'level': logging.DEBUG,
                               'filename': datetime.now().strftime(
                                   os.path.join(log_file_dir, 'migrate_%Y%m%d.log')),
                               'maxBytes': 52428800,
                               'backupCount': 7},
            'error-logger': {'class': 'logging.handlers.RotatingFileHandler',
                             'formatter': 'verbose',
                             'level': logging.ERROR,
                             'filename': os.path.join(log_file_dir, 'error.log'),
                             'maxBytes': 52428800,
                             'backupCount': 7},
            'console': {
                'class': 'logging.StreamHandler',
                'level': console_level,
                'formatter': 'simple',
                'stream': sys.stdout,
            },
        },
        loggers={
            MIGRATE_LOGGER_NAME: {
                'handlers': ['migrate-logger', 'error-logger', 'console'],
                'level': logging.DEBUG,
                'propagate': False,
            },
        }
    )


def get_logger(log_file_dir=settings.LOG_FILE_DIR, console_level='INFO'):
    """
     configure logging for this run and return the migration logger
    """
    os.makedirs(log_file_dir, exist_ok=True)
    dictConfig(get_logging_config(log_file_dir, console_level))
    return logging.getLogger(MIGRATE_LOGGER_NAME)
