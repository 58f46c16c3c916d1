import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path


class Logger:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Logger, cls).__new__(cls)
            cls._instance._setup_logger()
        return cls._instance

    def _setup_logger(self):
        self.logger = logging.getLogger('vmvpn')
        self.logger.setLevel(getattr(logging, os.getenv('LOG_LEVEL', 'INFO').upper(), logging.INFO))
        self.logger.propagate = False

        home = Path(os.getenv('VMVPN_HOME', str(Path.home() / '.vmvpn'))).expanduser()
        self.log_file = home / 'logs' / 'vmvpn.log'
        self.file_handler = None
        self._attach_file_handler(self.log_file)

    def _attach_file_handler(self, log_file: Path):
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            # Use RotatingFileHandler to limit log file size
            file_handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024,
                                               backupCount=3)
        except OSError as e:
            self.logger.addHandler(logging.NullHandler())
            self.logger.warning(f"Could not setup file logging: {e}")
            return
        formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(name)s:%(lineno)d - %(pathname)s - %(message)s')
        file_handler.setFormatter(formatter)

        if self.file_handler is not None:
            self.logger.removeHandler(self.file_handler)
            self.file_handler.close()
        self.file_handler = file_handler
        self.logger.addHandler(file_handler)

    def configure(self, level: str, log_file: Path):
        """Apply settings chosen after import (CLI options, environment)."""
        self.logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        if Path(log_file) != self.log_file:
            self.log_file = Path(log_file)
            self._attach_file_handler(self.log_file)

    def get_logger(self):
        return self.logger


logger = Logger().get_logger()
