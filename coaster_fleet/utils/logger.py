"""
Logging configuration
"""

import logging
import sys
from pathlib import Path
from typing import Optional


DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = 'INFO', log_dir: Optional[str] = None,
                  is_dev: bool = True, log_format: str = None):
    """
    Setup logging configuration

    Console output follows the environment: everything from ``level`` up in
    development, warnings and errors only in production. When ``log_dir`` is
    given, ``error.log`` and ``warn.log`` are always written and ``info.log``
    only in development.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files (optional)
        is_dev: Whether the process runs in development mode
        log_format: Log message format (optional)
    """
    if log_format is None:
        log_format = DEFAULT_FORMAT

    base_level = getattr(logging, level.upper())
    formatter = logging.Formatter(log_format)

    root = logging.getLogger()
    root.setLevel(min(base_level, logging.INFO) if is_dev else base_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(base_level if is_dev else max(base_level, logging.WARNING))
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    # File handlers (if specified)
    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        file_levels = [('error.log', logging.ERROR), ('warn.log', logging.WARNING)]
        if is_dev:
            file_levels.append(('info.log', logging.INFO))

        for file_name, file_level in file_levels:
            file_handler = logging.FileHandler(log_path / file_name)
            file_handler.setLevel(file_level)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

    logging.info("Logging configured successfully")
