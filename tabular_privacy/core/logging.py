"""
Logging configuration for the privacy engine.

This module provides:
- Console and rotating-file logging setup
- Structured logging with JSON formatting
- Run-scoped logger adapters
- Performance logging of engine runs
"""

import logging
import logging.handlers
import json
import sys
from typing import Optional
from pathlib import Path
from datetime import datetime


_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName',
    'created', 'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'message', 'taskName',
}


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        # Extra fields such as run_id
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


def setup_logging(log_level: str = 'INFO', log_to_file: bool = False,
                  log_dir: str = 'logs',
                  log_format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
                  ) -> logging.Logger:
    """
    Configure the 'tabular_privacy' logger hierarchy

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_to_file: Also write a rotating text log and a JSON log
        log_dir: Directory for log files
        log_format: Console/file line format

    Returns:
        Package root logger
    """
    level = getattr(logging, str(log_level).upper(), logging.INFO)

    logger = logging.getLogger('tabular_privacy')
    logger.setLevel(level)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(log_format, datefmt='%Y-%m-%d %H:%M:%S'))
    logger.addHandler(console_handler)

    if log_to_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path / 'engine.log',
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        logger.addHandler(file_handler)

        json_handler = logging.handlers.RotatingFileHandler(
            log_path / 'engine_structured.json',
            maxBytes=10*1024*1024,
            backupCount=3
        )
        json_handler.setLevel(logging.INFO)
        json_handler.setFormatter(JsonFormatter())
        logger.addHandler(json_handler)

    logger.info(f"Logging configured with level {logging.getLevelName(level)} "
                f"(file logging: {log_to_file})")

    return logger


class RunLoggerAdapter(logging.LoggerAdapter):
    """Tags every record with the id of the engine run that emitted it"""

    def __init__(self, logger: logging.Logger, run_id: Optional[str] = None):
        super().__init__(logger, {})
        self.run_id = run_id

    def process(self, msg, kwargs):
        if self.run_id:
            kwargs.setdefault('extra', {})['run_id'] = self.run_id
            msg = f"[{self.run_id}] {msg}"
        return msg, kwargs


def get_logger(name: str, run_id: Optional[str] = None):
    """
    Get a logger, optionally bound to a run id

    Args:
        name: Logger name
        run_id: Optional run identifier added to each record
    """
    logger = logging.getLogger(name)
    if run_id:
        return RunLoggerAdapter(logger, run_id)
    return logger


class log_performance:
    """
    Context manager logging how long an operation took

    Example:
        with log_performance(logger, "k-anonymity"):
            ...
    """

    def __init__(self, logger, operation_name: str):
        self.logger = logger
        self.operation_name = operation_name
        self.start_time = None
        self.duration = None

    def __enter__(self):
        self.start_time = datetime.now()
        self.logger.debug(f"Starting operation: {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = (datetime.now() - self.start_time).total_seconds()
        if exc_type is None:
            self.logger.info(f"Operation {self.operation_name} completed in {self.duration:.3f}s")
        else:
            self.logger.warning(f"Operation {self.operation_name} failed after "
                                f"{self.duration:.3f}s: {exc_val}")
        return False
