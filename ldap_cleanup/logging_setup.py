"""
Logging setup and configuration for LDAP User Cleanup.

The cleanup runs as a one-shot container job, so all output goes to stdout,
either as one JSON object per line or as plain text. The level is fixed once
at process start and the configured application logger is handed to the
components that need it.
"""

import re
import sys
import json
import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

APP_LOGGER_NAME = 'ldap_cleanup'

LEVEL_NAMES = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARN': logging.WARNING,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
}


class SensitiveDataFilter(logging.Filter):
    """Filter to scrub sensitive data from log messages."""

    SENSITIVE_KEYWORDS = [
        'password', 'bindPassword', 'bind_password', 'token', 'secret',
        'credential', 'pwd', 'authorization', 'bearer', 'client_secret',
        'access_token', 'refresh_token'
    ]

    def filter(self, record):
        """Filter out sensitive data from log records."""
        msg = record.getMessage()

        for keyword in self.SENSITIVE_KEYWORDS:
            # key=value
            msg = re.sub(rf'({keyword}\s*=\s*)[^\s,}}\]]+(\s|,|$)', r'\1****\2', msg, flags=re.IGNORECASE)
            # "key": "value"
            msg = re.sub(rf'("{keyword}"\s*:\s*")[^"]*(")', r'\1****\2', msg, flags=re.IGNORECASE)
            # 'key': 'value'
            msg = re.sub(rf"('{keyword}'\s*:\s*')[^']*(')", r'\1****\2', msg, flags=re.IGNORECASE)

        msg = re.sub(r'(Authorization:\s*Bearer\s+)[^\s,}}\]]+(\s|,|$)', r'\1****\2', msg, flags=re.IGNORECASE)

        record.msg = msg
        record.args = None
        return True


class JsonFormatter(logging.Formatter):
    """Render each record as a single-line JSON object."""

    def format(self, record):
        payload = {
            'time': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'msg': record.getMessage(),
        }
        if record.exc_info:
            payload['error'] = self.formatException(record.exc_info)
        return json.dumps(payload)


def parse_log_level(name: Optional[str]) -> Tuple[int, bool]:
    """
    Map a level name to a logging level.

    Returns:
        Tuple of (level, recognised). Unknown names map to INFO.
    """
    level = LEVEL_NAMES.get((name or '').strip().upper())
    if level is None:
        return logging.INFO, False
    return level, True


class LoggingManager:
    """Configures the root logger once per process."""

    def __init__(self):
        self.configured = False
        self.level = logging.INFO

    def setup_logging(self, level_name: str = 'INFO', log_format: str = 'json',
                      stream=None) -> logging.Logger:
        """
        Set up logging and return the application logger.

        Args:
            level_name: Level name such as DEBUG, INFO, WARN or ERROR
            log_format: 'json' or 'text'
            stream: Output stream, defaults to stdout
        """
        app_logger = logging.getLogger(APP_LOGGER_NAME)
        if self.configured:
            return app_logger

        self.level, recognised = parse_log_level(level_name)

        root_logger = logging.getLogger()
        root_logger.setLevel(self.level)
        root_logger.handlers.clear()

        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setLevel(self.level)
        if log_format == 'text':
            handler.setFormatter(logging.Formatter(
                '%(asctime)s [%(levelname)s] %(name)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
        else:
            handler.setFormatter(JsonFormatter())
        handler.addFilter(SensitiveDataFilter())
        root_logger.addHandler(handler)

        # The kubernetes client logs request bodies at debug
        logging.getLogger('kubernetes').setLevel(max(self.level, logging.INFO))

        self.configured = True

        if not recognised:
            app_logger.warning(f"Couldn't parse OSLUC_LOG_LEVEL {level_name!r}, defaulting to INFO")
        app_logger.info(f"Logging setup: level={logging.getLevelName(self.level)}, format={log_format}")
        return app_logger


# Global logging manager instance
_logging_manager = LoggingManager()


def setup_logging(level_name: str = 'INFO', log_format: str = 'json', stream=None) -> logging.Logger:
    """
    Convenience function to set up logging.

    Returns:
        The application logger to pass to components
    """
    return _logging_manager.setup_logging(level_name, log_format, stream)
