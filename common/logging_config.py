import logging
import os
import re
import sys
from typing import Optional


class SensitiveDataFilter(logging.Filter):
    """Filter to mask service account tokens and secret payloads in log records."""

    PATTERNS = [
        (re.compile(r'(token["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)', re.IGNORECASE), r'\1***MASKED***'),
        (re.compile(r'(bearer\s+)([^\s,}\'\"]+)', re.IGNORECASE), r'\1***MASKED***'),
        (re.compile(r'(authorization["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)', re.IGNORECASE), r'\1***MASKED***'),
        (re.compile(r'(data\.tar\.gz["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)', re.IGNORECASE), r'\1***MASKED***'),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        """Mask sensitive data in the log message."""
        if isinstance(record.msg, str):
            for pattern, replacement in self.PATTERNS:
                record.msg = pattern.sub(replacement, record.msg)

        if hasattr(record, 'args') and record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._mask_value(v) for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(self._mask_value(arg) for arg in record.args)

        return True

    def _mask_value(self, value):
        """Mask sensitive values in arguments."""
        if isinstance(value, str):
            for pattern, replacement in self.PATTERNS:
                value = pattern.sub(replacement, value)
        return value


def resolve_log_level(log_level: Optional[str] = None, debug: bool = False) -> int:
    """
    Resolve the effective log level.

    Args:
        log_level: Explicit level name (DEBUG, INFO, WARNING, ERROR)
        debug: Force DEBUG regardless of the other sources

    Returns:
        Numeric logging level, falling back to LOG_LEVEL env var or INFO
    """
    if debug:
        return logging.DEBUG
    if log_level is None:
        log_level = os.getenv('LOG_LEVEL', 'INFO')
    return getattr(logging, log_level.upper(), logging.INFO)


def setup_logging(
    component_name: str,
    log_level: Optional[str] = None,
    debug: bool = False
) -> logging.Logger:
    """
    Set up logging configuration for a component.

    Handlers are attached to the component logger and to the package
    loggers below it, so module loggers obtained with
    logging.getLogger(__name__) share the same output.

    Args:
        component_name: Name of the component (e.g., 'kube-secret-fs')
        log_level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to LOG_LEVEL env var or INFO
        debug: Enable debug output

    Returns:
        Configured logger instance
    """
    level = resolve_log_level(log_level, debug)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    logger = logging.getLogger(component_name)
    for name in (component_name, 'secretfs', 'common'):
        target = logging.getLogger(name)
        target.setLevel(level)

        if target.handlers:
            for handler in target.handlers:
                handler.setLevel(level)
            continue

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(SensitiveDataFilter())

        target.addHandler(handler)
        target.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
