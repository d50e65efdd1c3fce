import logging
import sys
from pathlib import Path
from typing import Optional

from concurrent_log_handler import ConcurrentRotatingFileHandler

from pg_mask.common.constants import LOG_FILE_MAX_BYTES, LOG_FILE_BACKUP_COUNT
from pg_mask.common.enums import VerboseOptions

LOG_LEVELS = {
    VerboseOptions.INFO: logging.INFO,
    VerboseOptions.DEBUG: logging.DEBUG,
    VerboseOptions.ERROR: logging.ERROR,
}


class Logger:
    """
    Process wide ``pg_mask`` logger: stdout always, plus the log file of the current run
    """

    _instance = None
    _formatter: logging.Formatter
    _file_handler: Optional[ConcurrentRotatingFileHandler] = None

    logger = None

    def __new__(cls):
        if cls._instance is not None:
            return cls._instance

        cls._instance = super().__new__(cls)
        cls._instance.logger = logging.getLogger('pg_mask')
        cls._instance.logger.setLevel(logging.INFO)
        cls._instance.logger.propagate = False

        cls._instance._formatter = logging.Formatter(
            datefmt="%Y-%m-%d %H:%M:%S",
            fmt="%(asctime)s,%(msecs)03d - %(levelname)8s - %(message)s",
        )

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(cls._instance._formatter)
        cls._instance.logger.addHandler(handler)

        return cls._instance

    def add_file_handler(self, log_file: Path):
        # one run, one file
        self.remove_file_handler()

        log_file.parent.mkdir(parents=True, exist_ok=True)
        self._file_handler = ConcurrentRotatingFileHandler(
            str(log_file),
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUP_COUNT,
        )
        self._file_handler.setFormatter(self._formatter)
        self.logger.addHandler(self._file_handler)

    def remove_file_handler(self):
        if self._file_handler is None:
            return

        self.logger.removeHandler(self._file_handler)
        self._file_handler.close()
        self._file_handler = None

    def set_verbosity(self, verbose: VerboseOptions):
        self.logger.setLevel(LOG_LEVELS.get(verbose, logging.INFO))


def get_logger() -> logging.Logger:
    return Logger().logger


def logger_add_file_handler(log_file: Path):
    Logger().add_file_handler(log_file)


def logger_remove_file_handler():
    Logger().remove_file_handler()


def logger_set_verbosity(verbose: VerboseOptions):
    Logger().set_verbosity(verbose)
