import contextlib
import contextvars
import datetime
import logging
import os
import re
import sys

_context = contextvars.ContextVar('io_mssql_log_context', default='system')


class IoMssqlLogger:
    """
    Custom logger for the MSSQL adapter
    Logs format: datetime : context : error/warning/info : log details
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(IoMssqlLogger, cls).__new__(cls)
            cls._instance._setup_logger()
        return cls._instance

    def _setup_logger(self):
        """Set up the logger with the required format"""
        self.logger = logging.getLogger('io_mssql')

        # Read log level from environment variable, default to INFO
        log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()

        log_level_map = {
            'DEBUG': logging.DEBUG,
            'INFO': logging.INFO,
            'WARNING': logging.WARNING,
            'ERROR': logging.ERROR,
            'CRITICAL': logging.CRITICAL
        }
        log_level = log_level_map.get(log_level_str, logging.INFO)
        self.logger.setLevel(log_level)

        # Prevent duplicate log entries
        if self.logger.hasHandlers():
            self.logger.handlers.clear()
        self.logger.propagate = False

        log_file = os.getenv('LOG_FILE')
        if log_file:
            handler = logging.FileHandler(log_file)
        else:
            handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(log_level)

        # We handle the custom format in our methods
        handler.setFormatter(logging.Formatter('%(message)s'))
        self.logger.addHandler(handler)

        # Passwords end up in provisioning scripts
        self.redact_patterns = [
            (re.compile(r"PASSWORD\s*=\s*'(?:[^']|'')*'", re.IGNORECASE), "PASSWORD='***'"),
            (re.compile(r"PWD=[^;]*", re.IGNORECASE), "PWD=***"),
        ]

    def _redact(self, message):
        for pattern, replacement in self.redact_patterns:
            message = pattern.sub(replacement, message)
        return message

    def _format_message(self, level, message):
        """Format the log message according to requirements"""
        timestamp = datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        return f"{timestamp} : {_context.get()} : {level} : {self._redact(str(message))}"

    def _render(self, message, args):
        if args:
            message = message % args if '%' in message else message.format(*args)
        return message

    def debug(self, message, *args):
        """Log a debug message. Supports format strings: debug("format %s", arg)"""
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(self._format_message('debug', self._render(message, args)))

    def info(self, message, *args):
        """Log an info message. Supports format strings: info("format %s", arg)"""
        self.logger.info(self._format_message('info', self._render(message, args)))

    def warning(self, message, *args):
        self.logger.warning(self._format_message('warning', self._render(message, args)))

    def error(self, message, *args):
        """Log an error message without traceback."""
        self.logger.error(self._format_message('error', self._render(message, args)), exc_info=False)

    def exception(self, message):
        # Use error instead of exception to avoid traceback
        self.logger.error(self._format_message('error', message))

    def add_redact_pattern(self, pattern, replacement='***'):
        self.redact_patterns.append((re.compile(pattern), replacement))


@contextlib.contextmanager
def log_context(name):
    """Tag every log line emitted inside the block with ``name``."""
    token = _context.set(name)
    try:
        yield
    finally:
        _context.reset(token)


# Create a singleton instance
logger = IoMssqlLogger()


def debug(message, *args):
    logger.debug(message, *args)


def info(message, *args):
    logger.info(message, *args)


def warning(message, *args):
    logger.warning(message, *args)


def error(message, *args):
    logger.error(message, *args)


def exception(message):
    logger.exception(message)


def add_redact_pattern(pattern, replacement='***'):
    logger.add_redact_pattern(pattern, replacement)
